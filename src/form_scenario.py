import asyncio
import contextlib
import re
from pathlib import Path

from playwright.async_api import async_playwright

from form_pages import FORM_BUILDER_SELECTORS, DashboardPage, FormBuilderPage, LoginPage
from page_driver import DriverFatalError, PageDriver, PlaywrightDriver
from resilient_locator import LocateOptions, locate_or_raise
from response_correlator import (
    WRITE_METHODS,
    Matched,
    TimedOut,
    UnexpectedStatus,
    check_success_body,
    expect_success,
    method_url_predicate,
    start_matching,
)
from run_config import RunConfig


SCENARIO_NAME = "Complete form creation with textbox and file upload"

TEXT_INPUT_PATTERN = re.compile(r"api|save|update", re.I)
UPLOAD_ACCEPTED = ("success", "completed", "uploaded")
SAVE_ACCEPTED = ("success", "saved", "created")


def sanitize_for_filename(text: str) -> str:
    text = re.sub(r"[^\w\s-]", "", text)
    text = re.sub(r"[-\s]+", "_", text)
    return text.strip("_").lower()[:100]


async def _discard(task: asyncio.Task) -> None:
    """Stop a listener whose action failed and collect whatever it ended with."""
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError, Exception):
        await task


def describe_outcome(outcome) -> dict:
    if isinstance(outcome, Matched):
        return {"outcome": "matched", "status": outcome.status, "method": outcome.method, "url": outcome.url}
    if isinstance(outcome, UnexpectedStatus):
        return {"outcome": "unexpected_status", "status": outcome.status, "method": outcome.method, "url": outcome.url}
    return {"outcome": "timed_out"}


class FormUploadScenario:
    """Login, build a form with a textbox and a file upload, save it."""

    def __init__(self, driver: PageDriver, config: RunConfig, screenshots_dir: Path, verbose: bool = False):
        self.driver = driver
        self.config = config
        self.screenshots_dir = screenshots_dir
        self.verbose = verbose
        self.login_page = LoginPage(driver, config, verbose)
        self.dashboard = DashboardPage(driver, config, verbose)
        self.form_builder = FormBuilderPage(driver, config, verbose)
        self.network: list[dict] = []

    def log(self, message: str) -> None:
        if self.verbose:
            print(message)

    def steps(self) -> list[tuple[str, object]]:
        return [
            ("Login to the application", self.step_login),
            ("Navigate to Automation menu", self.dashboard.navigate_to_automation),
            ("Create new Form", self.dashboard.select_create_form),
            ("Fill form details and create", self.form_builder.fill_form_details_and_create),
            ("Drag Textbox element to canvas", self.form_builder.drag_textbox_to_canvas),
            ("Verify Textbox element and properties panel", self.step_verify_textbox),
            ("Drag File Upload element to canvas", self.form_builder.drag_file_upload_to_canvas),
            ("Verify File Upload element and properties panel", self.step_verify_file_upload),
            ("Enter text into Textbox", self.step_enter_text),
            ("Upload document", self.step_upload),
            ("Save the form", self.step_save),
            ("Verify upload and save success", self.step_verify_all),
        ]

    async def _await_response(self, step: str, task: asyncio.Task):
        outcome = await task
        self.network.append({"step": step, **describe_outcome(outcome)})
        if isinstance(outcome, TimedOut):
            self.log(f"→ {step}: API response not captured, verifying UI state instead")
        return outcome

    async def _visible(self, key: str, what: str, require_enabled: bool = False):
        opts = LocateOptions(per_candidate_timeout=self.config.timeout("MEDIUM"), require_enabled=require_enabled)
        return await locate_or_raise(self.driver, FORM_BUILDER_SELECTORS[key], opts, what=what)

    async def step_login(self) -> None:
        await self.login_page.login()
        await self.dashboard.verify_dashboard_loaded()

    async def step_verify_textbox(self) -> None:
        await self._visible("textbox_on_canvas", "Textbox on canvas", require_enabled=True)
        await self.form_builder.click_textbox_and_verify()
        await self._visible("textbox_on_canvas", "Textbox on canvas after click")

    async def step_verify_file_upload(self) -> None:
        await self._visible("file_upload_on_canvas", "File Upload on canvas")
        await self.form_builder.click_file_upload_and_verify()
        await self._visible("file_upload_on_canvas", "File Upload on canvas after click")

    async def step_enter_text(self) -> None:
        await self._visible("textbox_on_canvas", "Textbox on canvas", require_enabled=True)
        # A text input may or may not trigger a request
        task = start_matching(self.driver, method_url_predicate(WRITE_METHODS, TEXT_INPUT_PATTERN), 10.0)
        try:
            await self.form_builder.enter_text_in_textbox()
        except BaseException:
            await _discard(task)
            raise
        await self._await_response("text input", task)

    async def step_upload(self) -> None:
        await self._visible("file_upload_on_canvas", "file input")
        task = self.form_builder.wait_for_file_upload_response()
        try:
            await self.form_builder.upload_document()
        except BaseException:
            await _discard(task)
            raise
        outcome = expect_success(await self._await_response("file upload", task))
        if isinstance(outcome, Matched):
            check_success_body(outcome, UPLOAD_ACCEPTED)
            self.log("✓ File upload API response verified successfully")
        await self.form_builder.verify_file_upload_success()

    async def step_save(self) -> None:
        await self._visible("save_button", "Save button", require_enabled=True)
        task = self.form_builder.wait_for_form_save_response()
        try:
            await self.form_builder.save_form()
        except BaseException:
            await _discard(task)
            raise
        outcome = expect_success(await self._await_response("form save", task))
        if isinstance(outcome, Matched):
            check_success_body(outcome, SAVE_ACCEPTED)
            self.log("✓ Form save API response verified successfully")

    async def step_verify_all(self) -> None:
        await self.form_builder.verify_file_upload_success()
        await self.form_builder.verify_form_save_success()
        textbox = await self._visible("textbox_on_canvas", "Textbox on canvas")
        await self._visible("file_upload_on_canvas", "File Upload on canvas")
        value = await self.driver.input_value(textbox.handle)
        if self.config.textbox_value.lower() not in (value or "").lower():
            raise AssertionError(f"Textbox lost its value: expected {self.config.textbox_value!r}, got {value!r}")

    async def capture_failure(self, step_index: int, step_name: str) -> str:
        if self.config.screenshot_delay_ms:
            await asyncio.sleep(self.config.screenshot_delay_ms / 1000)
        filename = f"test_{sanitize_for_filename(SCENARIO_NAME)}_step{step_index:02d}_failure_{sanitize_for_filename(step_name)}.png"
        shot = self.screenshots_dir / filename
        try:
            await self.driver.screenshot(shot)
        except Exception as e:
            print(f"⚠️ Could not save failure screenshot: {e}")
            return ""
        print(f"📸 Failure screenshot saved: {shot.name}")
        return str(shot)

    async def run(self, steps=None) -> dict:
        steps = steps if steps is not None else self.steps()
        print(f"\n===== Running Test: {SCENARIO_NAME} =====")
        executed: list[dict] = []
        status, error, screenshot = "passed", "", ""
        for i, (name, action) in enumerate(steps, start=1):
            self.log(f"→ Step {i}: {name}")
            try:
                await action()
            except DriverFatalError as e:
                executed.append({"step": i, "name": name, "status": "failed"})
                status, error = "failed", f"Browser session lost at step {i} ({name}): {e}"
                break
            except Exception as e:
                executed.append({"step": i, "name": name, "status": "failed"})
                status, error = "failed", f"Step {i} ({name}) failed: {e}"
                screenshot = await self.capture_failure(i, name)
                break
            executed.append({"step": i, "name": name, "status": "passed"})
            self.log(f"✓ {name}")

        if status == "passed":
            print(f"✓ Passed: {SCENARIO_NAME}")
        else:
            err_excerpt = error if len(error) < 300 else (error[:297] + "...")
            print(f"✖ Failed: {SCENARIO_NAME} — {err_excerpt}")
        return {
            "name": SCENARIO_NAME,
            "status": status,
            "error": error,
            "screenshot": screenshot,
            "steps": executed,
            "network": self.network,
        }


async def run_form_upload_suite(config: RunConfig, run_dir: Path, headless: bool = True, verbose: bool = False) -> dict:
    screenshots_dir = run_dir / "screenshots"
    screenshots_dir.mkdir(parents=True, exist_ok=True)

    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=headless)
        context = await browser.new_context(viewport={"width": 1366, "height": 900})
        page = await context.new_page()
        try:
            scenario = FormUploadScenario(PlaywrightDriver(page), config, screenshots_dir, verbose)
            result = await scenario.run()
        finally:
            await browser.close()
    return {"tests": [result]}
