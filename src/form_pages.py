import re
from pathlib import Path

import pyotp

from page_driver import DriverFatalError, PageDriver
from resilient_locator import (
    ElementNotFound,
    LocateOptions,
    candidates,
    drag_and_drop,
    locate,
    locate_by_predicate,
    locate_or_raise,
    text_contains,
)
from response_correlator import (
    UPLOAD_METHODS,
    WRITE_METHODS,
    method_url_predicate,
    start_successful,
)
from run_config import RunConfig


QUICK = LocateOptions(per_candidate_timeout=3.0)
PATIENT = LocateOptions(per_candidate_timeout=5.0)

# Candidate lists run most specific first
LOGIN_SELECTORS = {
    "username": candidates(
        "input[type='email']",
        "input[name*='email' i]",
        "input[name*='username' i]",
        "input[id*='email' i]",
        "input[id*='username' i]",
        "input[placeholder*='email' i]",
        "input[placeholder*='username' i]",
        {"engine": "role", "role": "textbox", "name_regex": r"email|user", "label": "username textbox"},
    ),
    "password": candidates(
        "input[type='password']",
        "input[name*='password' i]",
        "input[id*='password' i]",
    ),
    "submit": candidates(
        "button[type='submit']",
        "button:has-text('Sign In')",
        "button:has-text('Log In')",
        "button:has-text('Login')",
        "button[aria-label*='login' i]",
        "button[aria-label*='sign in' i]",
    ),
    "otp": candidates(
        "#otp",
        "input[name*='otp' i]",
        "input[id*='otp' i]",
        "input[autocomplete='one-time-code']",
        "input[name*='code' i]",
    ),
}

NAVIGATION_SELECTORS = {
    "automation": candidates(
        "text=/automation/i",
        "[aria-label*='automation' i]",
        "a:has-text('Automation')",
        "button:has-text('Automation')",
        "[role='menuitem']:has-text('Automation')",
        "[role='link']:has-text('Automation')",
        "nav a:has-text('Automation')",
        "a, button, [role='menuitem'], [role='link']",
    ),
    "create": candidates(
        "button[aria-label='Create']",
        "button:has-text('Create')",
        "[aria-label='Create']",
        "button[aria-label*='Create']",
        "button:has-text('create')",
    ),
    "create_scan": ["button", "[role='button']", "a", "[class*='button']", "[class*='create']"],
    "form_option": candidates(
        "[role='menuitem']:has-text('Form')",
        "[role='option']:has-text('Form')",
        "a:has-text('Form')",
        "li:has-text('Form')",
        "text=Form",
        "[role='menuitem'], [role='option'], a, li",
    ),
}

FORM_BUILDER_SELECTORS = {
    "name_input": candidates("input[name*='name'], input[id*='name'], input[placeholder*='name' i]"),
    "description_input": candidates("textarea[name*='description'], textarea[id*='description'], input[name*='description']"),
    "create_button": candidates(
        "button:has-text('Create')",
        "button[type='submit']:has-text('Create')",
    ),
    "save_button": candidates(
        "button:has-text('Save')",
        "button[type='submit']:has-text('Save')",
    ),
    "canvas": candidates(
        "[class*='canvas']",
        "[class*='Canvas']",
        "[id*='canvas']",
        "[id*='Canvas']",
        ".form-canvas",
        "[class*='drop']",
        "[class*='Drop']",
        "main",
        "[role='main']",
    ),
    "textbox_palette": candidates(
        "text=Textbox",
        "text=TextBox",
        "[data-element='textbox']",
        "[data-element='TextBox']",
        "[title*='Textbox' i]",
        "[aria-label*='textbox' i]",
        "button:has-text('Textbox')",
        "div:has-text('Textbox')",
    ),
    "file_upload_palette": candidates(
        "text=File Upload",
        "text=FileUpload",
        "text=Select File",
        "[data-element='file']",
        "[data-element='fileupload']",
        "[title*='File Upload' i]",
        "[title*='FileUpload' i]",
        "[aria-label*='file' i]",
        "button:has-text('File')",
        "div:has-text('File Upload')",
    ),
    "textbox_on_canvas": candidates("[class*='textbox']", "input[type='text']"),
    "file_upload_on_canvas": candidates("input[type='file']", "[class*='file-upload']"),
    "properties_panel": candidates("[class*='properties']", "[class*='panel']", "[class*='settings']"),
}

SUCCESS_SELECTORS = {
    "save": candidates("text=/saved|success|created/i"),
    "upload": candidates(
        "text=/upload.*success|file.*uploaded/i",
        "[class*='success']",
        "[class*='uploaded']",
    ),
    "file_input": candidates("input[type='file']", "[class*='file-upload']", "[class*='file-input']"),
    "file_name": candidates(
        r"text=/.*\.(pdf|doc|docx|txt|jpg|png)/i",
        "[class*='file-name']",
        "[class*='filename']",
    ),
}

SAVE_URL_PATTERN = re.compile(r"save|form|api", re.I)
UPLOAD_URL_PATTERN = re.compile(r"upload|file|api", re.I)


class BasePage:
    def __init__(self, driver: PageDriver, config: RunConfig, verbose: bool = False):
        self.driver = driver
        self.config = config
        self.verbose = verbose

    def log(self, message: str) -> None:
        if self.verbose:
            print(message)

    async def settle(self, seconds: float = 2.0) -> None:
        await self.driver.wait_for_load_state("domcontentloaded", self.config.timeout("LONG"))
        await self.driver.pause(seconds)

    async def click_first(self, cands, what: str, options: LocateOptions = QUICK):
        found = await locate_or_raise(self.driver, cands, options, what=what)
        self.log(f"→ Clicking {what} via {cands[found.index].name}")
        await self.driver.click(found.handle, self.config.timeout("LONG"))
        return found

    async def fill_first(self, cands, text: str, what: str, options: LocateOptions = QUICK):
        found = await locate_or_raise(self.driver, cands, options, what=what)
        self.log(f"→ Filled {what} via {cands[found.index].name}")
        await self.driver.fill(found.handle, text)
        return found


class LoginPage(BasePage):
    async def goto(self) -> None:
        await self.driver.goto(self.config.login_url)
        if not await self.driver.wait_for_load_state("networkidle", self.config.timeout("LONG")):
            self.log("→ Network idle timeout, but page may still be usable")

    async def enter_username(self, username: str | None = None) -> None:
        await self.fill_first(LOGIN_SELECTORS["username"], username or self.config.username, "username/email input")

    async def enter_password(self, password: str | None = None) -> None:
        await self.fill_first(LOGIN_SELECTORS["password"], password or self.config.password, "password input")

    async def click_login(self) -> None:
        await self.click_first(LOGIN_SELECTORS["submit"], "login button")

    async def enter_otp_if_prompted(self) -> bool:
        """Fill a one-time code when a TOTP secret is configured and a code field shows up."""
        if not self.config.totp_secret:
            return False
        found = await locate(self.driver, LOGIN_SELECTORS["otp"], LocateOptions(per_candidate_timeout=2.0))
        if not found:
            self.log("→ No one-time code field shown")
            return False
        code = pyotp.TOTP(self.config.totp_secret).now()
        await self.driver.fill(found.handle, code)
        self.log("✓ OTP filled")
        await self.click_login()
        await self.driver.wait_for_load_state("networkidle", self.config.timeout("LONG"))
        return True

    async def login(self, username: str | None = None, password: str | None = None) -> None:
        await self.goto()
        await self.enter_username(username)
        await self.enter_password(password)
        await self.click_login()
        await self.driver.wait_for_load_state("networkidle", self.config.timeout("LONG"))
        await self.enter_otp_if_prompted()
        await self.driver.pause(3.0)


class DashboardPage(BasePage):
    async def verify_dashboard_loaded(self) -> None:
        await self.driver.wait_for_load_state("domcontentloaded", self.config.timeout("LONG"))
        if await self.driver.resolve_visible("body", 10.0) is None:
            raise AssertionError("Dashboard page did not load")
        await self.driver.pause(2.0)

    async def navigate_to_automation(self) -> None:
        await self.settle()
        await self.click_first(NAVIGATION_SELECTORS["automation"], "Automation menu")
        await self.settle()

    async def click_create_dropdown(self) -> None:
        await self.settle(3.0)
        found = await locate(self.driver, NAVIGATION_SELECTORS["create"], PATIENT)
        if not found:
            self.log("→ Create button not found by selector, scanning labels")
            found = await locate_by_predicate(self.driver, NAVIGATION_SELECTORS["create_scan"], text_contains("create", "new"))
        if not found:
            # Last resort: first visible button
            found = await locate(self.driver, candidates("button"), LocateOptions(per_candidate_timeout=5.0))
        if not found:
            raise ElementNotFound("Could not find Create button or dropdown")
        await self.driver.click(found.handle, self.config.timeout("LONG"))
        await self.driver.pause(1.0)

    async def select_create_form(self) -> None:
        await self.click_create_dropdown()
        await self.driver.pause(1.0)
        await self.click_first(NAVIGATION_SELECTORS["form_option"], "Form option")
        await self.settle(3.0)

    async def navigate_to_form_builder(self) -> None:
        await self.navigate_to_automation()
        await self.select_create_form()


class FormBuilderPage(BasePage):
    async def fill_form_details_and_create(self, form_name: str | None = None, description: str | None = None) -> None:
        await self.driver.pause(2.0)
        optional = LocateOptions(per_candidate_timeout=5.0)
        name = await locate(self.driver, FORM_BUILDER_SELECTORS["name_input"], optional)
        if name:
            await self.driver.fill(name.handle, form_name or self.config.form_name)
        desc = await locate(self.driver, FORM_BUILDER_SELECTORS["description_input"], optional)
        if desc:
            await self.driver.fill(desc.handle, description or self.config.form_description)
        await self.click_first(
            FORM_BUILDER_SELECTORS["create_button"],
            "Create button",
            LocateOptions(per_candidate_timeout=self.config.timeout("MEDIUM"), require_enabled=True),
        )
        if not await self.driver.wait_for_load_state("networkidle", self.config.timeout("LONG")):
            self.log("→ Network idle timeout after Create")
        await self.driver.pause(3.0)

    async def _drag_to_canvas(self, palette_key: str, what: str) -> str:
        await self.settle()
        palette = FORM_BUILDER_SELECTORS[palette_key]
        canvas = FORM_BUILDER_SELECTORS["canvas"]
        source = await locate_or_raise(self.driver, palette, QUICK, what=f"{what} in element library")
        target = await locate_or_raise(self.driver, canvas, QUICK, what="form canvas")
        strategy = await drag_and_drop(self.driver, palette[source.index], canvas[target.index], self.config.timeout("LONG"))
        if strategy != "native":
            self.log(f"→ Standard drag and drop failed, used {strategy} approach for {what}")
        await self.driver.pause(2.0)
        return strategy

    async def drag_textbox_to_canvas(self) -> str:
        return await self._drag_to_canvas("textbox_palette", "Textbox")

    async def drag_file_upload_to_canvas(self) -> str:
        return await self._drag_to_canvas("file_upload_palette", "File Upload")

    async def _click_and_verify_panel(self, canvas_key: str, what: str) -> None:
        long = LocateOptions(per_candidate_timeout=self.config.timeout("LONG"))
        await self.click_first(FORM_BUILDER_SELECTORS[canvas_key], f"{what} on canvas", long)
        await self.driver.pause(1.0)
        await locate_or_raise(
            self.driver,
            FORM_BUILDER_SELECTORS["properties_panel"],
            LocateOptions(per_candidate_timeout=self.config.timeout("SHORT"), overall_timeout=self.config.timeout("MEDIUM")),
            what="properties panel",
        )
        self.log(f"✓ Properties panel visible for {what}")

    async def click_textbox_and_verify(self) -> None:
        await self._click_and_verify_panel("textbox_on_canvas", "Textbox")

    async def click_file_upload_and_verify(self) -> None:
        await self._click_and_verify_panel("file_upload_on_canvas", "File Upload")

    async def enter_text_in_textbox(self, text: str | None = None) -> str:
        text = text or self.config.textbox_value
        found = await locate_or_raise(
            self.driver,
            FORM_BUILDER_SELECTORS["textbox_on_canvas"],
            LocateOptions(per_candidate_timeout=self.config.timeout("LONG"), require_enabled=True),
            what="Textbox on canvas",
        )
        await self.driver.click(found.handle, self.config.timeout("LONG"))
        await self.driver.fill(found.handle, text)
        value = await self.driver.input_value(found.handle)
        if value != text:
            raise AssertionError(f"Textbox value mismatch: expected {text!r}, got {value!r}")
        return value

    async def upload_document(self, file_path: str | None = None) -> None:
        file_path = file_path or self.config.upload_file
        if not Path(file_path).exists():
            raise FileNotFoundError(f"File not found at path: {file_path}. Please verify the file exists and the path is accessible.")
        found = await locate_or_raise(
            self.driver,
            FORM_BUILDER_SELECTORS["file_upload_on_canvas"],
            LocateOptions(per_candidate_timeout=self.config.timeout("LONG")),
            what="file input",
        )
        await self.driver.set_input_files(found.handle, file_path)
        self.log(f"→ File set on input: {file_path}")
        await self.driver.pause(3.0)

    async def save_form(self) -> None:
        await self.click_first(
            FORM_BUILDER_SELECTORS["save_button"],
            "Save button",
            LocateOptions(per_candidate_timeout=self.config.timeout("LONG"), require_enabled=True),
        )
        await self.driver.wait_for_load_state("networkidle", self.config.timeout("LONG"))
        await self.driver.pause(2.0)

    async def verify_form_save_success(self) -> bool:
        """True when a success message is shown; absence is logged, not failed."""
        found = await locate(self.driver, SUCCESS_SELECTORS["save"], LocateOptions(per_candidate_timeout=10.0))
        if not found:
            print("→ Explicit success message not found, verifying save button state")
            return False
        return True

    async def verify_file_upload_success(self) -> str:
        """Return which indicator confirmed the upload ('message', 'input', 'filename' or 'none')."""
        await self.driver.pause(2.0)
        if await locate(self.driver, SUCCESS_SELECTORS["upload"], QUICK):
            return "message"
        for cand in SUCCESS_SELECTORS["file_input"]:
            found = await locate(self.driver, [cand], QUICK)
            if not found:
                continue
            try:
                value = await self.driver.input_value(found.handle)
            except DriverFatalError:
                raise
            except Exception:
                value = ""
            if value:
                self.log("✓ File upload verified: File input has value")
                return "input"
        if await locate(self.driver, SUCCESS_SELECTORS["file_name"], QUICK):
            return "filename"
        print("→ File upload completion verified by absence of error messages")
        return "none"

    def wait_for_form_save_response(self, pattern=SAVE_URL_PATTERN):
        return start_successful(self.driver, method_url_predicate(WRITE_METHODS, pattern), self.config.timeout("LONG"))

    def wait_for_file_upload_response(self, pattern=UPLOAD_URL_PATTERN):
        return start_successful(self.driver, method_url_predicate(UPLOAD_METHODS, pattern), self.config.timeout("LONG"))
