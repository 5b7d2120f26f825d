import asyncio
from pathlib import Path

import pytest

from page_driver import DriverFatalError, Rect


class FakeElement:
    def __init__(self, name="el", visible=True, enabled=True, text="", box=Rect(0, 0, 10, 10), value="", text_error=None, text_delay=0.0, on_click=None, on_fill=None):
        self.name = name
        self.visible = visible
        self.enabled = enabled
        self.text = text
        self.box = box
        self.value = value
        self.text_error = text_error
        self.text_delay = text_delay
        self.on_click = on_click
        self.on_fill = on_fill
        self.clicks = 0
        self.files = None

    def __repr__(self):
        return f"FakeElement({self.name!r})"


class FakeResponse:
    def __init__(self, status=200, method="GET", url="https://example.test/", body="", body_error=None):
        self.status = status
        self.method = method
        self.url = url
        self._body = body
        self._body_error = body_error

    async def body_text(self) -> str:
        if self._body_error:
            raise self._body_error
        return self._body


class FakeDriver:
    """In-memory page: selectors map to elements, responses arrive on a queue."""

    def __init__(self, elements=None, errors=None, hang=(), responses=None):
        self.elements = dict(elements or {})
        self.errors = dict(errors or {})
        self.hang = set(hang)
        self.responses = list(responses or [])
        self.response_error = None
        self.native_drag_error = None
        self.pointer_error = None
        self.screenshot_error = None
        self.probes: list[str] = []
        self.pointer: list[tuple] = []
        self.drags: list[tuple] = []
        self.screenshots: list[Path] = []
        self.visited: list[str] = []

    def _all(self, selector):
        found = self.elements.get(selector)
        if found is None:
            return []
        return found if isinstance(found, list) else [found]

    async def resolve_visible(self, selector, timeout):
        self.probes.append(selector)
        if selector in self.errors:
            raise self.errors[selector]
        if selector in self.hang:
            await asyncio.sleep(timeout * 20)
        for el in self._all(selector):
            if el.visible:
                return el
        return None

    async def is_visible(self, handle, timeout):
        return handle.visible

    async def is_enabled(self, handle, timeout):
        return handle.enabled

    async def read_text(self, handle, timeout):
        if handle.text_delay:
            await asyncio.sleep(handle.text_delay)
        if handle.text_error:
            raise handle.text_error
        return handle.text

    async def query_all(self, selector):
        if selector in self.errors:
            raise self.errors[selector]
        return self._all(selector)

    async def click(self, handle, timeout):
        handle.clicks += 1
        if handle.on_click:
            handle.on_click()

    async def fill(self, handle, text):
        handle.value = text
        if handle.on_fill:
            handle.on_fill()

    async def input_value(self, handle):
        return handle.value

    async def set_input_files(self, handle, path):
        handle.files = path
        handle.value = path
        if handle.on_fill:
            handle.on_fill()

    async def bounding_box(self, handle):
        return handle.box

    async def native_drag_to(self, source, target):
        if self.native_drag_error:
            raise self.native_drag_error
        self.drags.append((source, target))

    async def pointer_move(self, x, y):
        if self.pointer_error:
            raise self.pointer_error
        self.pointer.append(("move", x, y))

    async def pointer_down(self):
        self.pointer.append(("down",))

    async def pointer_up(self):
        self.pointer.append(("up",))

    async def on_next_response(self, predicate, timeout):
        if self.response_error:
            raise self.response_error
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            while self.responses:
                response = self.responses.pop(0)
                if predicate(response.method, response.url):
                    return response
            if loop.time() >= deadline:
                return None
            await asyncio.sleep(0.005)

    async def goto(self, url):
        self.visited.append(url)

    async def wait_for_load_state(self, state, timeout):
        return True

    async def pause(self, seconds):
        return None

    async def screenshot(self, path):
        if self.screenshot_error:
            raise self.screenshot_error
        self.screenshots.append(path)


@pytest.fixture
def fatal():
    return DriverFatalError("Target page, context or browser has been closed")


@pytest.fixture
def upload_file(tmp_path):
    path = tmp_path / "test-upload.txt"
    path.write_text("upload me", encoding="utf-8")
    return path
