import json

import pytest

import run_form_upload
from run_form_upload import exit_code, main, write_html_report


PASSED = {"tests": [{"name": "flow", "status": "passed", "error": "", "screenshot": "", "steps": [], "network": []}]}
FAILED = {"tests": [{"name": "flow", "status": "failed", "error": "<b>boom</b>", "screenshot": "", "steps": [], "network": []}]}


@pytest.fixture
def env(monkeypatch, upload_file):
    for var in ("AA_BASE_URL", "AA_LOGIN_URL", "AA_TOTP_SECRET"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("AA_USERNAME", "qa@example.test")
    monkeypatch.setenv("AA_PASSWORD", "pw")
    monkeypatch.setenv("UPLOAD_FILE_PATH", str(upload_file))


def test_exit_code():
    assert exit_code(PASSED) == 0
    assert exit_code(FAILED) == 1
    assert exit_code({"tests": []}) == 1


def test_html_report_escapes_errors(tmp_path):
    path = tmp_path / "report.html"
    write_html_report(FAILED, path, settings={"password": "***"})
    text = path.read_text(encoding="utf-8")
    assert "&lt;b&gt;boom&lt;/b&gt;" in text
    assert "<strong class=\"fail\">Failed:</strong> 1" in text
    assert "***" in text


def test_missing_config_exits_before_browser(monkeypatch, tmp_path):
    for var in ("AA_USERNAME", "AA_PASSWORD", "UPLOAD_FILE_PATH"):
        monkeypatch.delenv(var, raising=False)

    async def must_not_run(**kwargs):
        raise AssertionError("browser launched")

    monkeypatch.setattr(run_form_upload, "run_form_upload_suite", must_not_run)
    code = main(["--env-file", str(tmp_path / "none.env"), "--output-dir", str(tmp_path)])
    assert code == 2


@pytest.mark.parametrize("results,expected", [(PASSED, 0), (FAILED, 1)])
def test_main_writes_artifacts(monkeypatch, tmp_path, env, results, expected):
    seen = {}

    async def fake_suite(config, run_dir, headless, verbose):
        seen.update(config=config, headless=headless)
        return results

    monkeypatch.setattr(run_form_upload, "run_form_upload_suite", fake_suite)
    code = main(["--env-file", str(tmp_path / "none.env"), "--output-dir", str(tmp_path / "runs"), "--base-url", "https://aa.example.test"])
    assert code == expected
    assert seen["headless"] is True
    assert seen["config"].login_url == "https://aa.example.test/#/home"

    (run_dir,) = (tmp_path / "runs").iterdir()
    assert json.loads((run_dir / "results.json").read_text(encoding="utf-8")) == results
    assert (run_dir / "report.html").exists()


def test_env_file_is_loaded(monkeypatch, tmp_path, upload_file):
    for var in ("AA_USERNAME", "AA_PASSWORD", "UPLOAD_FILE_PATH"):
        monkeypatch.delenv(var, raising=False)
    env_file = tmp_path / "test.env"
    env_file.write_text(f"AA_USERNAME=qa\nAA_PASSWORD=pw\nUPLOAD_FILE_PATH={upload_file}\n", encoding="utf-8")

    async def fake_suite(config, run_dir, headless, verbose):
        return PASSED

    monkeypatch.setattr(run_form_upload, "run_form_upload_suite", fake_suite)
    assert main(["--env-file", str(env_file), "--output-dir", str(tmp_path / "runs")]) == 0
