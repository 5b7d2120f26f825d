import contextlib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Protocol

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError


# Messages Playwright uses once the page, context or browser is gone
FATAL_MARKERS = (
    "has been closed",
    "target closed",
    "browser closed",
    "connection closed",
    "session closed",
)


class DriverFatalError(Exception):
    """The browser session is gone; no other candidate can help."""


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    def center(self) -> tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2


class PageDriver(Protocol):
    """Capability the locator and correlator need from a live page.

    Durations are seconds. Handles are opaque to callers.
    """

    async def resolve_visible(self, selector: str, timeout: float) -> Any | None: ...

    async def is_visible(self, handle: Any, timeout: float) -> bool: ...

    async def is_enabled(self, handle: Any, timeout: float) -> bool: ...

    async def read_text(self, handle: Any, timeout: float) -> str: ...

    async def query_all(self, selector: str) -> list[Any]: ...

    async def click(self, handle: Any, timeout: float) -> None: ...

    async def fill(self, handle: Any, text: str) -> None: ...

    async def input_value(self, handle: Any) -> str: ...

    async def set_input_files(self, handle: Any, path: str) -> None: ...

    async def bounding_box(self, handle: Any) -> Rect | None: ...

    async def native_drag_to(self, source: Any, target: Any) -> None: ...

    async def pointer_move(self, x: float, y: float) -> None: ...

    async def pointer_down(self) -> None: ...

    async def pointer_up(self) -> None: ...

    async def on_next_response(self, predicate: Callable[[str, str], bool], timeout: float) -> Any | None: ...

    async def goto(self, url: str) -> None: ...

    async def wait_for_load_state(self, state: str, timeout: float) -> bool: ...

    async def pause(self, seconds: float) -> None: ...

    async def screenshot(self, path: Path) -> None: ...


def to_ms(seconds: float) -> float:
    return max(seconds, 0) * 1000


def is_fatal_error(exc: BaseException) -> bool:
    msg = str(exc).lower()
    return any(marker in msg for marker in FATAL_MARKERS)


class PlaywrightResponse:
    """Response seen by the correlator; body is read on demand."""

    def __init__(self, response):
        self._response = response

    @property
    def status(self) -> int:
        return self._response.status

    @property
    def method(self) -> str:
        try:
            return (self._response.request.method or "").upper()
        except Exception:
            return ""

    @property
    def url(self) -> str:
        return self._response.url

    async def body_text(self) -> str:
        return await self._response.text()


class PlaywrightDriver:
    """PageDriver backed by a playwright.async_api.Page."""

    def __init__(self, page: Page):
        self.page = page

    def _fatal(self, exc: BaseException) -> bool:
        try:
            if self.page.is_closed():
                return True
        except Exception:
            return True
        return is_fatal_error(exc)

    @contextlib.asynccontextmanager
    async def _guarded(self):
        try:
            yield
        except PlaywrightError as exc:
            if self._fatal(exc):
                raise DriverFatalError(str(exc)) from exc
            raise

    async def resolve_visible(self, selector: str, timeout: float) -> Locator | None:
        loc = self.page.locator(selector).first
        async with self._guarded():
            try:
                await loc.wait_for(state="visible", timeout=to_ms(timeout))
            except PlaywrightTimeoutError:
                return None
        return loc

    async def is_visible(self, handle: Locator, timeout: float) -> bool:
        async with self._guarded():
            try:
                await handle.wait_for(state="visible", timeout=to_ms(timeout))
            except PlaywrightTimeoutError:
                return False
        return True

    async def is_enabled(self, handle: Locator, timeout: float) -> bool:
        async with self._guarded():
            try:
                return await handle.is_enabled(timeout=to_ms(timeout))
            except PlaywrightTimeoutError:
                return False

    async def read_text(self, handle: Locator, timeout: float) -> str:
        async with self._guarded():
            return (await handle.text_content(timeout=to_ms(timeout))) or ""

    async def query_all(self, selector: str) -> list[Locator]:
        async with self._guarded():
            return await self.page.locator(selector).all()

    async def click(self, handle: Locator, timeout: float) -> None:
        async with self._guarded():
            await handle.click(timeout=to_ms(timeout))

    async def fill(self, handle: Locator, text: str) -> None:
        async with self._guarded():
            await handle.fill(text)

    async def input_value(self, handle: Locator) -> str:
        async with self._guarded():
            return await handle.input_value()

    async def set_input_files(self, handle: Locator, path: str) -> None:
        async with self._guarded():
            await handle.set_input_files(path)

    async def bounding_box(self, handle: Locator) -> Rect | None:
        async with self._guarded():
            box = await handle.bounding_box()
        if not box:
            return None
        return Rect(box["x"], box["y"], box["width"], box["height"])

    async def native_drag_to(self, source: Locator, target: Locator) -> None:
        async with self._guarded():
            await source.drag_to(target, force=True)

    async def pointer_move(self, x: float, y: float) -> None:
        async with self._guarded():
            await self.page.mouse.move(x, y)

    async def pointer_down(self) -> None:
        async with self._guarded():
            await self.page.mouse.down()

    async def pointer_up(self) -> None:
        async with self._guarded():
            await self.page.mouse.up()

    async def on_next_response(self, predicate: Callable[[str, str], bool], timeout: float) -> PlaywrightResponse | None:
        def matches(response) -> bool:
            try:
                return bool(predicate(response.request.method.upper(), response.url))
            except Exception:
                return False

        async with self._guarded():
            try:
                response = await self.page.wait_for_event("response", predicate=matches, timeout=to_ms(timeout))
            except PlaywrightTimeoutError:
                return None
        return PlaywrightResponse(response)

    async def goto(self, url: str) -> None:
        async with self._guarded():
            await self.page.goto(url, wait_until="domcontentloaded")

    async def wait_for_load_state(self, state: str, timeout: float) -> bool:
        """Return False instead of raising when the state is not reached in time."""
        async with self._guarded():
            try:
                await self.page.wait_for_load_state(state, timeout=to_ms(timeout))
            except PlaywrightTimeoutError:
                return False
        return True

    async def pause(self, seconds: float) -> None:
        await self.page.wait_for_timeout(to_ms(seconds))

    async def screenshot(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        async with self._guarded():
            await self.page.screenshot(path=str(path), full_page=True)
