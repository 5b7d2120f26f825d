import pyotp
import pytest

from conftest import FakeDriver, FakeElement
from form_pages import DashboardPage, FormBuilderPage, LoginPage
from resilient_locator import ElementNotFound
from run_config import RunConfig


TOTP_SECRET = "JBSWY3DPEHPK3PXP"


@pytest.fixture
def config(upload_file):
    return RunConfig(username="qa@example.test", password="pw", upload_file=str(upload_file), base_url="https://aa.example.test")


class TestLoginPage:
    @pytest.mark.asyncio
    async def test_login_fills_and_submits(self, config):
        user, password, submit = FakeElement("user"), FakeElement("pw"), FakeElement("submit")
        driver = FakeDriver({
            "input[name*='username' i]": user,
            "input[type='password']": password,
            "button:has-text('Sign In')": submit,
        })
        await LoginPage(driver, config).login()
        assert driver.visited == ["https://aa.example.test/#/home"]
        assert user.value == "qa@example.test"
        assert password.value == "pw"
        assert submit.clicks == 1

    @pytest.mark.asyncio
    async def test_missing_login_button_is_fatal_to_the_step(self, config):
        driver = FakeDriver({"input[type='email']": FakeElement(), "input[type='password']": FakeElement()})
        with pytest.raises(ElementNotFound, match="login button"):
            await LoginPage(driver, config).login()

    @pytest.mark.asyncio
    async def test_otp_only_with_secret(self, config):
        otp = FakeElement("otp")
        driver = FakeDriver({"#otp": otp, "button[type='submit']": FakeElement()})
        assert await LoginPage(driver, config).enter_otp_if_prompted() is False
        assert otp.value == ""

        config.totp_secret = TOTP_SECRET
        assert await LoginPage(driver, config).enter_otp_if_prompted() is True
        assert pyotp.TOTP(TOTP_SECRET).verify(otp.value, valid_window=1)


class TestDashboardPage:
    @pytest.mark.asyncio
    async def test_create_falls_back_to_label_scan(self, config):
        new_button = FakeElement("new", text="New")
        driver = FakeDriver({"button": [FakeElement("help", text="Help"), new_button]})
        await DashboardPage(driver, config).click_create_dropdown()
        assert new_button.clicks == 1

    @pytest.mark.asyncio
    async def test_create_missing_everywhere(self, config):
        with pytest.raises(ElementNotFound, match="Create"):
            await DashboardPage(FakeDriver(), config).click_create_dropdown()

    @pytest.mark.asyncio
    async def test_blank_page_is_not_a_dashboard(self, config):
        with pytest.raises(AssertionError, match="did not load"):
            await DashboardPage(FakeDriver(), config).verify_dashboard_loaded()


class TestFormBuilderPage:
    @pytest.mark.asyncio
    async def test_details_are_optional(self, config):
        create = FakeElement("create")
        driver = FakeDriver({"button:has-text('Create')": create})
        await FormBuilderPage(driver, config).fill_form_details_and_create()
        assert create.clicks == 1

    @pytest.mark.asyncio
    async def test_drag_uses_later_palette_candidate(self, config):
        driver = FakeDriver({"[data-element='textbox']": FakeElement("palette"), "main": FakeElement("canvas")})
        driver.native_drag_error = RuntimeError("dragTo failed")
        assert await FormBuilderPage(driver, config).drag_textbox_to_canvas() == "pointer"
        assert [p[0] for p in driver.pointer] == ["move", "down", "move", "up"]

    @pytest.mark.asyncio
    async def test_enter_text_verifies_value(self, config):
        textbox = FakeElement("textbox")
        driver = FakeDriver({"input[type='text']": textbox})
        assert await FormBuilderPage(driver, config).enter_text_in_textbox("abc") == "abc"
        assert textbox.clicks == 1

    @pytest.mark.asyncio
    async def test_disabled_textbox_is_not_used(self, config):
        driver = FakeDriver({"[class*='textbox']": FakeElement(enabled=False)})
        config.timeouts["LONG"] = 0.05
        with pytest.raises(ElementNotFound):
            await FormBuilderPage(driver, config).enter_text_in_textbox("abc")

    @pytest.mark.asyncio
    async def test_upload_requires_existing_file(self, config, tmp_path):
        driver = FakeDriver({"input[type='file']": FakeElement()})
        with pytest.raises(FileNotFoundError):
            await FormBuilderPage(driver, config).upload_document(str(tmp_path / "absent.pdf"))

    @pytest.mark.asyncio
    async def test_upload_sets_file(self, config, upload_file):
        file_input = FakeElement("file")
        driver = FakeDriver({"input[type='file']": file_input})
        await FormBuilderPage(driver, config).upload_document()
        assert file_input.files == str(upload_file)

    @pytest.mark.asyncio
    async def test_upload_indicators(self, config):
        page = FormBuilderPage(FakeDriver({"[class*='uploaded']": FakeElement()}), config)
        assert await page.verify_file_upload_success() == "message"
        page = FormBuilderPage(FakeDriver({"[class*='file-input']": FakeElement(value="C:\\fakepath\\a.txt")}), config)
        assert await page.verify_file_upload_success() == "input"
        page = FormBuilderPage(FakeDriver({"[class*='filename']": FakeElement()}), config)
        assert await page.verify_file_upload_success() == "filename"
        page = FormBuilderPage(FakeDriver(), config)
        assert await page.verify_file_upload_success() == "none"

    @pytest.mark.asyncio
    async def test_missing_save_message_is_a_soft_pass(self, config):
        assert await FormBuilderPage(FakeDriver(), config).verify_form_save_success() is False
        driver = FakeDriver({"text=/saved|success|created/i": FakeElement()})
        assert await FormBuilderPage(driver, config).verify_form_save_success() is True
