"""Thin driver over one Playwright page.

The workflow modules only talk to the portal through the verbs below, so a
fake with the same methods is enough to exercise them without a browser.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence

from playwright.async_api import Page

from tpp_uploader.json_logger import JsonLogger, log_event

_COLUMN_SCRIPT = """
(rows, cellSelector) => rows.map((row) => {
  const cell = row.querySelector(cellSelector);
  return cell && cell.textContent ? cell.textContent.trim() : '';
})
"""


class PortalSession:
    def __init__(
        self,
        *,
        page: Page,
        browser: Any,
        logger: JsonLogger,
        navigation_timeout_ms: int = 30_000,
    ) -> None:
        self.page = page
        self.browser = browser
        self.logger = logger
        self.navigation_timeout_ms = navigation_timeout_ms
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def url(self) -> str:
        return self.page.url or ""

    async def navigate(self, url: str) -> None:
        response = await self.page.goto(
            url, wait_until="domcontentloaded", timeout=self.navigation_timeout_ms
        )
        response_status = None
        if response is not None:
            response_status = response.status
        log_event(
            logger=self.logger,
            phase="session",
            message="navigation completed",
            target_url=url,
            current_url=self.page.url,
            response_status=response_status,
        )

    async def fill(self, selector: str, value: str) -> None:
        await self.page.fill(selector, value)

    async def click(self, selector: str) -> None:
        await self.page.click(selector)

    async def click_and_wait_for_navigation(self, selector: str) -> None:
        async with self.page.expect_navigation(
            wait_until="domcontentloaded", timeout=self.navigation_timeout_ms
        ):
            await self.page.click(selector)

    async def press(self, key: str) -> None:
        await self.page.keyboard.press(key)

    async def read_text(self, selector: str) -> str | None:
        """Return the trimmed text of the first match, or None when nothing matches."""

        locator = self.page.locator(selector)
        if await locator.count() == 0:
            return None
        text = await locator.first.text_content()
        return (text or "").strip()

    async def read_column(self, row_selector: str, cell_selector: str) -> list[str]:
        values = await self.page.eval_on_selector_all(row_selector, _COLUMN_SCRIPT, cell_selector)
        return [str(value) for value in values or []]

    async def read_href(self, selector: str) -> str:
        return await self.page.eval_on_selector(selector, "(el) => el.href")

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> None:
        await self.page.wait_for_selector(selector, timeout=timeout_ms)

    async def choose_files(
        self, trigger_selector: str, paths: Sequence[str | Path], timeout_ms: int
    ) -> None:
        async with self.page.expect_file_chooser(timeout=timeout_ms) as chooser_info:
            await self.page.click(trigger_selector)
        chooser = await chooser_info.value
        await chooser.set_files([str(path) for path in paths])

    async def bind_download_dir(self, directory: Path) -> None:
        """Let Chrome save downloads straight into ``directory`` under the server's file name."""

        cdp = await self.page.context.new_cdp_session(self.page)
        # Playwright sets download behaviour per browser context, so the
        # override has to target this page's context id to take effect.
        target = await cdp.send("Target.getTargetInfo")
        context_id = target["targetInfo"]["browserContextId"]
        await cdp.send(
            "Browser.setDownloadBehavior",
            {
                "behavior": "allow",
                "browserContextId": context_id,
                "downloadPath": str(directory.resolve()),
            },
        )
        log_event(
            logger=self.logger,
            phase="session",
            message="download directory bound",
            download_dir=str(directory),
        )

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.browser.close()
        log_event(logger=self.logger, phase="session", message="browser closed")
