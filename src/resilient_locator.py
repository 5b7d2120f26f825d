"""Ordered fallback element location.

A caller hands over candidates in priority order; the first one that is
visible (and enabled, when asked) wins. A candidate whose probe blows up
counts as absent so one stale selector never aborts the search. Only a
dead browser session (DriverFatalError) escapes.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Sequence

from page_driver import DriverFatalError, PageDriver


logger = logging.getLogger(__name__)

DEFAULT_PER_CANDIDATE_TIMEOUT = 3.0
DEFAULT_PER_ELEMENT_TIMEOUT = 1.0
DEFAULT_SCAN_TIMEOUT = 30.0


class ElementNotFound(AssertionError):
    pass


class DragError(Exception):
    pass


class GeometryUnavailable(DragError):
    pass


@dataclass(frozen=True)
class CandidateDescriptor:
    selector: str
    label: str | None = None

    def __post_init__(self):
        if not isinstance(self.selector, str) or not self.selector.strip():
            raise ValueError("selector must be a non-empty string")

    @property
    def name(self) -> str:
        return self.label or self.selector

    @classmethod
    def from_target(cls, target: dict) -> "CandidateDescriptor":
        """Build from a structured target.

        target keys accepted:
          - engine: 'testid'|'css'|'text'|'role'
          - value/text/role/name_regex
        """
        engine = target.get("engine")
        label = target.get("label")
        if engine == "testid":
            return cls(f"[data-testid='{target['value']}']", label)
        if engine == "css":
            return cls(target["value"], label)
        if engine == "text":
            return cls(f"text={target['text']}", label)
        if engine == "role":
            name_regex = target.get("name_regex")
            if name_regex:
                return cls(f"role={target['role']}[name=/{name_regex}/i]", label)
            return cls(f"role={target['role']}", label)
        raise ValueError(f"Unknown target engine: {engine!r}")


def candidates(*items) -> list[CandidateDescriptor]:
    """Ordered descriptors from strings, target dicts or descriptors."""
    out: list[CandidateDescriptor] = []
    for item in items:
        if isinstance(item, CandidateDescriptor):
            out.append(item)
        elif isinstance(item, dict):
            out.append(CandidateDescriptor.from_target(item))
        else:
            out.append(CandidateDescriptor(item))
    return out


@dataclass(frozen=True)
class Found:
    handle: Any = field(compare=False)
    index: int

    def __bool__(self) -> bool:
        return True


@dataclass(frozen=True)
class NotFound:
    attempted: int

    def __bool__(self) -> bool:
        return False


LocateOutcome = Found | NotFound


@dataclass(frozen=True)
class LocateOptions:
    per_candidate_timeout: float = DEFAULT_PER_CANDIDATE_TIMEOUT
    require_enabled: bool = False
    overall_timeout: float | None = None

    def __post_init__(self):
        if self.per_candidate_timeout <= 0:
            raise ValueError("per_candidate_timeout must be > 0")
        if self.overall_timeout is not None and self.overall_timeout <= 0:
            raise ValueError("overall_timeout must be > 0")

    def budget(self, count: int) -> float:
        if self.overall_timeout is not None:
            return self.overall_timeout
        return self.per_candidate_timeout * count


def text_contains(*keywords: str) -> Callable[[str], bool]:
    lowered = [k.lower() for k in keywords]

    def predicate(text: str) -> bool:
        t = (text or "").lower()
        return any(k in t for k in lowered)

    return predicate


def _loop_time() -> float:
    return asyncio.get_running_loop().time()


async def _probe(driver: PageDriver, cand: CandidateDescriptor, timeout: float, require_enabled: bool):
    handle = await asyncio.wait_for(driver.resolve_visible(cand.selector, timeout), timeout=timeout)
    if handle is None:
        return None
    if require_enabled and not await driver.is_enabled(handle, timeout):
        logger.debug("Candidate %s is visible but disabled", cand.name)
        return None
    return handle


async def locate(driver: PageDriver, cands: Sequence[CandidateDescriptor], options: LocateOptions | None = None) -> LocateOutcome:
    if not cands:
        raise ValueError("locate() needs at least one candidate")
    opts = options or LocateOptions()
    deadline = _loop_time() + opts.budget(len(cands))
    attempted = 0
    for index, cand in enumerate(cands):
        remaining = deadline - _loop_time()
        if remaining <= 0:
            logger.debug("Locate deadline reached after %d of %d candidates", attempted, len(cands))
            break
        attempted += 1
        timeout = min(opts.per_candidate_timeout, remaining)
        try:
            handle = await _probe(driver, cand, timeout, opts.require_enabled)
        except DriverFatalError:
            raise
        except asyncio.TimeoutError:
            logger.debug("Candidate %s timed out after %.2fs", cand.name, timeout)
            continue
        except Exception as e:
            logger.debug("Candidate %s probe failed: %s", cand.name, e)
            continue
        if handle is not None:
            logger.debug("Found element using candidate %d: %s", index, cand.name)
            return Found(handle, index)
    return NotFound(attempted)


async def locate_or_raise(driver: PageDriver, cands: Sequence[CandidateDescriptor], options: LocateOptions | None = None, what: str = "element") -> Found:
    outcome = await locate(driver, cands, options)
    if not outcome:
        raise ElementNotFound(f"Could not find {what} ({outcome.attempted} of {len(cands)} candidates tried)")
    return outcome


async def locate_by_predicate(
    driver: PageDriver,
    container_selectors: Sequence[str],
    text_predicate: Callable[[str], bool],
    options: LocateOptions | None = None,
) -> LocateOutcome:
    """Return the first visible element whose text satisfies text_predicate.

    Containers are scanned in order and elements in document order. The
    index in Found is the position of the container selector.
    """
    if not container_selectors:
        raise ValueError("locate_by_predicate() needs at least one container selector")
    opts = options or LocateOptions(per_candidate_timeout=DEFAULT_PER_ELEMENT_TIMEOUT, overall_timeout=DEFAULT_SCAN_TIMEOUT)
    deadline = _loop_time() + (opts.overall_timeout or DEFAULT_SCAN_TIMEOUT)
    attempted = 0
    for index, selector in enumerate(container_selectors):
        remaining = deadline - _loop_time()
        if remaining <= 0:
            break
        attempted += 1
        try:
            elements = await asyncio.wait_for(driver.query_all(selector), timeout=remaining)
        except DriverFatalError:
            raise
        except asyncio.TimeoutError:
            logger.debug("Container %s could not be enumerated before the deadline", selector)
            break
        except Exception as e:
            logger.debug("Container %s could not be enumerated: %s", selector, e)
            continue
        for el in elements:
            remaining = deadline - _loop_time()
            if remaining <= 0:
                break
            timeout = min(opts.per_candidate_timeout, remaining)
            try:
                text = await asyncio.wait_for(driver.read_text(el, timeout), timeout=timeout)
            except DriverFatalError:
                raise
            except asyncio.TimeoutError:
                logger.debug("Skipping element in %s, text read timed out after %.2fs", selector, timeout)
                continue
            except Exception as e:
                logger.debug("Skipping element in %s, text unreadable: %s", selector, e)
                continue
            try:
                matched = text_predicate(text)
            except Exception as e:
                logger.debug("Text predicate failed on %r: %s", text, e)
                continue
            if not matched:
                continue
            remaining = deadline - _loop_time()
            if remaining <= 0:
                break
            timeout = min(opts.per_candidate_timeout, remaining)
            try:
                visible = await asyncio.wait_for(driver.is_visible(el, timeout), timeout=timeout)
                if visible and opts.require_enabled:
                    visible = await driver.is_enabled(el, timeout)
            except DriverFatalError:
                raise
            except Exception as e:
                logger.debug("Visibility probe failed for %r in %s: %s", text, selector, e)
                continue
            if visible:
                logger.debug("Found element with text %r in %s", text.strip()[:60], selector)
                return Found(el, index)
    return NotFound(attempted)


async def first_successful(strategies: Iterable[tuple[str, Callable[[], Awaitable[Any]]]]) -> str:
    """Run strategies in order and return the name of the first that completes."""
    last_error: Exception | None = None
    tried = 0
    for name, action in strategies:
        tried += 1
        try:
            await action()
            return name
        except DriverFatalError:
            raise
        except Exception as e:
            logger.debug("Strategy %s failed: %s", name, e)
            last_error = e
    if last_error is None:
        raise ValueError("first_successful() needs at least one strategy")
    raise last_error


async def _resolve_for_drag(driver: PageDriver, cand: CandidateDescriptor, timeout: float, role: str):
    try:
        handle = await asyncio.wait_for(driver.resolve_visible(cand.selector, timeout), timeout=timeout)
    except DriverFatalError:
        raise
    except asyncio.TimeoutError:
        handle = None
    except Exception as e:
        raise DragError(f"{role} could not be resolved: {cand.name}: {e}") from e
    if handle is None:
        raise DragError(f"{role} not visible: {cand.name}")
    return handle


async def drag_and_drop(driver: PageDriver, source: CandidateDescriptor, target: CandidateDescriptor, timeout: float = 30.0) -> str:
    """Drag source onto target; returns the strategy that worked ('native' or 'pointer')."""
    src = await _resolve_for_drag(driver, source, timeout, "Drag source")
    dst = await _resolve_for_drag(driver, target, timeout, "Drop target")

    async def native():
        await driver.native_drag_to(src, dst)

    async def pointer():
        src_box = await driver.bounding_box(src)
        dst_box = await driver.bounding_box(dst)
        if src_box is None or dst_box is None:
            raise GeometryUnavailable("Could not get bounding boxes for drag and drop")
        await driver.pointer_move(*src_box.center())
        await driver.pointer_down()
        await driver.pointer_move(*dst_box.center())
        await driver.pointer_up()

    try:
        return await first_successful([("native", native), ("pointer", pointer)])
    except (DriverFatalError, DragError):
        raise
    except Exception as e:
        raise DragError(f"Drag and drop failed: {e}") from e
