import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping


DEFAULT_BASE_URL = "https://community.cloud.automationanywhere.digital"

# Seconds
TIMEOUTS = {
    "SHORT": 5.0,
    "MEDIUM": 15.0,
    "LONG": 30.0,
    "VERY_LONG": 60.0,
}

REQUIRED_ENV = {
    "username": "AA_USERNAME",
    "password": "AA_PASSWORD",
    "upload_file": "UPLOAD_FILE_PATH",
}


class ConfigError(ValueError):
    pass


def default_form_name() -> str:
    return f"TestForm_{int(time.time() * 1000)}"


@dataclass
class RunConfig:
    username: str = ""
    password: str = ""
    upload_file: str = ""
    base_url: str = DEFAULT_BASE_URL
    login_url: str = ""
    totp_secret: str | None = None
    form_name: str = field(default_factory=default_form_name)
    form_description: str = "Automated test form with file upload"
    textbox_value: str = "This is a test text input for automation"
    screenshot_delay_ms: int = 0
    timeouts: dict = field(default_factory=lambda: dict(TIMEOUTS))

    def __post_init__(self):
        self.base_url = self.base_url.rstrip("/")
        if not self.login_url:
            self.login_url = f"{self.base_url}/#/home"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides) -> "RunConfig":
        env = os.environ if environ is None else environ
        values = {
            "username": env.get("AA_USERNAME", ""),
            "password": env.get("AA_PASSWORD", ""),
            "upload_file": env.get("UPLOAD_FILE_PATH", ""),
            "base_url": env.get("AA_BASE_URL") or DEFAULT_BASE_URL,
            "login_url": env.get("AA_LOGIN_URL", ""),
            "totp_secret": env.get("AA_TOTP_SECRET") or None,
            "screenshot_delay_ms": int(env.get("SCREENSHOT_DELAY_MS", "0") or 0),
        }
        for key, var in (("form_name", "FORM_NAME"), ("form_description", "FORM_DESCRIPTION"), ("textbox_value", "TEXTBOX_VALUE")):
            if env.get(var):
                values[key] = env[var]
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def missing(self) -> list[str]:
        return [var for attr, var in REQUIRED_ENV.items() if not getattr(self, attr)]

    def validate(self) -> "RunConfig":
        missing = self.missing()
        if missing:
            raise ConfigError(f"Missing required environment variables: {', '.join(missing)}. Please set these before running tests.")
        if not Path(self.upload_file).exists():
            raise ConfigError(f"File not found at path: {self.upload_file}. Please verify the file exists and the path is accessible.")
        return self

    def timeout(self, name: str) -> float:
        return self.timeouts[name.upper()]

    def redacted(self) -> dict:
        """Settings safe to print or write into a report."""
        return {
            "base_url": self.base_url,
            "login_url": self.login_url,
            "username": self.username,
            "password": "***" if self.password else "",
            "totp": bool(self.totp_secret),
            "upload_file": self.upload_file,
            "form_name": self.form_name,
        }
