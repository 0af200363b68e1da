from __future__ import annotations

from typing import Any, Dict

from tpp_uploader.config import Config
from tpp_uploader.json_logger import JsonLogger, log_event
from tpp_uploader.session import PortalSession

VIEWPORT = {"width": 1080, "height": 1024}
CHROMIUM_ARGS = ["--no-sandbox"]


async def open_session(*, playwright: Any, config: Config, logger: JsonLogger) -> PortalSession:
    launch_kwargs: Dict[str, Any] = {"headless": config.headless, "args": list(CHROMIUM_ARGS)}

    log_event(
        logger=logger,
        phase="init",
        message="Launching Playwright with bundled Chromium",
        headless=config.headless,
    )

    browser = await playwright.chromium.launch(**launch_kwargs)
    try:
        page = await browser.new_page(viewport=dict(VIEWPORT))
        page.set_default_navigation_timeout(config.navigation_timeout_ms)
    except Exception:
        await browser.close()
        raise

    return PortalSession(
        page=page,
        browser=browser,
        logger=logger,
        navigation_timeout_ms=config.navigation_timeout_ms,
    )
