"""Best-effort matching of network responses to the UI action just taken.

A UI action may or may not be backed by an observable request, so a wait
that runs out is a normal outcome (TimedOut), never an exception.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable

from page_driver import DriverFatalError, PageDriver


logger = logging.getLogger(__name__)

ResponsePredicate = Callable[[str, str], bool]

WRITE_METHODS = ("POST", "PUT", "PATCH")
UPLOAD_METHODS = ("POST", "PUT")


class ResponseAssertionError(AssertionError):
    pass


@dataclass(frozen=True)
class Matched:
    status: int
    body: str = ""
    method: str = ""
    url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self):
        """Parsed body when it is a JSON object, else None."""
        text = (self.body or "").strip()
        if not text.startswith("{"):
            return None
        try:
            return json.loads(text)
        except ValueError:
            return None


@dataclass(frozen=True)
class TimedOut:
    def __bool__(self) -> bool:
        return False


@dataclass(frozen=True)
class UnexpectedStatus:
    status: int
    body: str = ""
    method: str = ""
    url: str = ""


CorrelationOutcome = Matched | TimedOut


def method_url_predicate(methods: Iterable[str] | None, pattern: str | re.Pattern) -> ResponsePredicate:
    allowed = {m.upper() for m in methods} if methods else None

    def predicate(method: str, url: str) -> bool:
        if allowed is not None and (method or "").upper() not in allowed:
            return False
        lowered = (url or "").lower()
        if isinstance(pattern, str):
            return pattern.lower() in lowered
        return pattern.search(lowered) is not None

    return predicate


def _safe(predicate: ResponsePredicate) -> ResponsePredicate:
    def wrapped(method: str, url: str) -> bool:
        try:
            return bool(predicate(method, url))
        except Exception as e:
            logger.debug("Response predicate raised on %s %s: %s", method, url, e)
            return False

    return wrapped


async def await_matching(driver: PageDriver, predicate: ResponsePredicate, timeout: float) -> CorrelationOutcome:
    if timeout <= 0:
        raise ValueError("timeout must be > 0")
    try:
        response = await asyncio.wait_for(driver.on_next_response(_safe(predicate), timeout), timeout=timeout)
    except DriverFatalError:
        raise
    except asyncio.TimeoutError:
        response = None
    except Exception as e:
        logger.warning("Response wait failed, treating as not observed: %s", e)
        response = None
    if response is None:
        logger.debug("No matching response within %.1fs", timeout)
        return TimedOut()

    try:
        body = await response.body_text()
    except DriverFatalError:
        raise
    except Exception as e:
        logger.debug("Could not read body of %s: %s", response.url, e)
        body = ""
    return Matched(status=response.status, body=body or "", method=response.method, url=response.url)


async def await_successful(driver: PageDriver, predicate: ResponsePredicate, timeout: float) -> Matched | UnexpectedStatus | TimedOut:
    outcome = await await_matching(driver, predicate, timeout)
    if isinstance(outcome, Matched) and not outcome.ok:
        return UnexpectedStatus(outcome.status, outcome.body, outcome.method, outcome.url)
    return outcome


def start_matching(driver: PageDriver, predicate: ResponsePredicate, timeout: float) -> "asyncio.Task[CorrelationOutcome]":
    """Begin listening now; await the task after triggering the UI action."""
    return asyncio.create_task(await_matching(driver, predicate, timeout))


def start_successful(driver: PageDriver, predicate: ResponsePredicate, timeout: float) -> asyncio.Task:
    return asyncio.create_task(await_successful(driver, predicate, timeout))


def expect_success(outcome):
    if isinstance(outcome, UnexpectedStatus):
        raise ResponseAssertionError(f"Expected 2xx from {outcome.method} {outcome.url}, got {outcome.status}")
    return outcome


def check_success_body(matched: Matched, accepted_statuses: Iterable[str]) -> None:
    payload = matched.json()
    if not isinstance(payload, dict):
        return
    if "success" in payload and not payload["success"]:
        raise ResponseAssertionError(f"Response from {matched.url} reports success={payload['success']!r}")
    status = payload.get("status")
    if isinstance(status, str) and status:
        accepted = {s.lower() for s in accepted_statuses}
        if status.lower() not in accepted:
            raise ResponseAssertionError(f"Response from {matched.url} reports status={status!r}")
