#!/usr/bin/env python3

import argparse
import asyncio
import html
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv

from form_scenario import run_form_upload_suite
from run_config import ConfigError, RunConfig


def write_html_report(results_json: dict, html_path: Path, settings: dict | None = None):
    tests = results_json.get("tests", [])
    passed = sum(1 for r in tests if r.get("status") == "passed")
    failed = sum(1 for r in tests if r.get("status") == "failed")
    total = len(tests)
    settings_block = f"<pre>{html.escape(json.dumps(settings, indent=2))}</pre>" if settings else ""

    page = f"""
<html><head><title>Form Upload Test Report</title>
<style>
body {{ font-family: Arial, sans-serif; padding: 20px; }}
.summary {{ margin-bottom: 16px; }}
.pass {{ color: #0a7b44; }}
.fail {{ color: #b00020; }}
pre {{ background: #f6f8fa; padding: 12px; border-radius: 6px; overflow: auto; }}
</style>
</head><body>
  <h1>Form Upload Test Report</h1>
  <div class="summary">
    <strong>Total:</strong> {total} &nbsp; <strong class="pass">Passed:</strong> {passed} &nbsp; <strong class="fail">Failed:</strong> {failed}
  </div>
  {settings_block}
  <hr />
  {''.join(render_test_result(tr) for tr in tests)}
</body></html>
"""
    with open(html_path, "w", encoding="utf-8") as f:
        f.write(page)


def render_test_result(test_result: dict) -> str:
    status_class = "pass" if test_result.get("status") == "passed" else "fail"
    name = html.escape(test_result.get("name", "Unnamed Test"))
    error = test_result.get("error", "")
    screenshot = test_result.get("screenshot", "")
    steps_rendered = html.escape(json.dumps(test_result.get("steps", []), indent=2))
    network_rendered = html.escape(json.dumps(test_result.get("network", []), indent=2))
    img_tag = f"<div><img src=\"{html.escape(screenshot)}\" style=\"max-width: 100%; border: 1px solid #ddd;\" /></div>" if screenshot else ""
    error_block = f"<pre>{html.escape(error)}</pre>" if error else ""
    return f"""
  <section>
    <h3 class="{status_class}">{name} — {test_result.get('status','unknown').upper()}</h3>
    <details>
      <summary>Steps</summary>
      <pre>{steps_rendered}</pre>
    </details>
    <details>
      <summary>Network</summary>
      <pre>{network_rendered}</pre>
    </details>
    {img_tag}
    {error_block}
  </section>
  <hr />
"""


def exit_code(results_json: dict) -> int:
    tests = results_json.get("tests", [])
    if not tests:
        return 1
    return 0 if all(r.get("status") == "passed" for r in tests) else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Form with upload flow → Playwright run → report")
    parser.add_argument("--base-url", help="Base URL under test (default: AA_BASE_URL or community cloud)")
    parser.add_argument("--login-url", help="Login URL (default: AA_LOGIN_URL or <base-url>/#/home)")
    parser.add_argument("--upload-file", help="File to upload (default: UPLOAD_FILE_PATH)")
    parser.add_argument("--env-file", default=".env", help="dotenv file with credentials and paths")
    parser.add_argument("--output-dir", default="data/runs", help="Where run folders are created")
    parser.add_argument("--headful", action="store_true", help="Run browser headful for debugging")
    parser.add_argument("--verbose", action="store_true", help="Print step logs and locator diagnostics")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    load_dotenv(args.env_file)

    config = RunConfig.from_env(base_url=args.base_url, login_url=args.login_url, upload_file=args.upload_file)
    try:
        config.validate()
    except ConfigError as e:
        print(f"✖ {e}")
        return 2

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    run_dir = Path(args.output_dir) / f"run_{timestamp}"
    run_dir.mkdir(parents=True, exist_ok=True)

    print("🏃 Running form upload flow with Playwright...")
    results_json = asyncio.run(run_form_upload_suite(
        config=config,
        run_dir=run_dir,
        headless=(not args.headful),
        verbose=args.verbose,
    ))

    results_path = run_dir / "results.json"
    with open(results_path, "w", encoding="utf-8") as f:
        json.dump(results_json, f, indent=2)
    print(f"📊 Results written: {results_path}")

    report_path = run_dir / "report.html"
    write_html_report(results_json, report_path, settings=config.redacted())
    print(f"📝 HTML report: {report_path}")

    total = len(results_json.get("tests", []))
    passed = sum(1 for r in results_json.get("tests", []) if r.get("status") == "passed")
    print(f"✅ Done. Total: {total}, Passed: {passed}, Failed: {total - passed}")
    return exit_code(results_json)


if __name__ == "__main__":
    sys.exit(main())
