import os
import threading
import time

import pytest

from social_link.web import create_app

pytestmark = pytest.mark.skipif(
    os.getenv("SOCIAL_LINK_E2E_PLAYWRIGHT") != "1",
    reason=(
        "Playwright E2E tests are opt-in. Set SOCIAL_LINK_E2E_PLAYWRIGHT=1 and run "
        "`python -m playwright install` to enable."
    ),
)


def _start_app_in_thread(settings, provisioned, port: int = 8791) -> str:
    app = create_app(settings, provisioned)
    thread = threading.Thread(
        target=app.run,
        kwargs={"host": "127.0.0.1", "port": port, "use_reloader": False},
        daemon=True,
    )
    thread.start()
    # Best-effort wait for the dev server to come up.
    time.sleep(1.5)
    return f"http://127.0.0.1:{port}"


def test_home_page_loads_with_playwright(settings, provisioned) -> None:
    try:
        from playwright.sync_api import sync_playwright  # type: ignore[import]
    except Exception:  # pragma: no cover - environment-specific
        pytest.skip("playwright not available in this environment")

    base_url = _start_app_in_thread(settings, provisioned)

    with sync_playwright() as p:
        browser = p.chromium.launch()
        page = browser.new_page()
        page.goto(base_url, wait_until="load")
        assert page.inner_text("h1") == "Hello Logto"
        browser.close()
