"""Fetching the finished build artifact.

Chrome writes straight into the bound directory and only renames the
``.crdownload`` partial to the final name once the transfer completes, so
the appearance of the exact file name is the completion signal.
"""
from __future__ import annotations

import asyncio
import time
from pathlib import Path, PurePosixPath
from urllib.parse import unquote, urlparse

from tpp_uploader import page_selectors
from tpp_uploader.json_logger import JsonLogger, log_event
from tpp_uploader.session import PortalSession

DEFAULT_DOWNLOAD_TIMEOUT_S = 300.0
DEFAULT_POLL_INTERVAL_S = 1.0


class DownloadError(RuntimeError):
    """Raised when the artifact download cannot be started."""


class DownloadTimeoutError(DownloadError):
    """Raised when the artifact never appears before the deadline."""


def file_name_from_link(href: str) -> str:
    name = unquote(PurePosixPath(urlparse(href).path).name)
    if not name:
        raise DownloadError(f"Cannot derive a file name from download link {href!r}")
    return name


async def wait_for_download(
    directory: Path,
    file_name: str,
    *,
    timeout_s: float = DEFAULT_DOWNLOAD_TIMEOUT_S,
    poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
) -> Path:
    """Block until ``directory/file_name`` exists; raise DownloadTimeoutError after ``timeout_s``."""

    target = directory / file_name
    deadline = time.monotonic() + timeout_s
    while True:
        if target.is_file():
            return target
        if time.monotonic() >= deadline:
            raise DownloadTimeoutError(
                f"Download timeout: {file_name} did not appear in {directory} within {timeout_s}s"
            )
        await asyncio.sleep(poll_interval_s)


class Downloader:
    def __init__(
        self,
        *,
        session: PortalSession,
        download_dir: Path,
        logger: JsonLogger,
        timeout_s: float = DEFAULT_DOWNLOAD_TIMEOUT_S,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
    ) -> None:
        self.session = session
        self.download_dir = download_dir
        self.logger = logger
        self.timeout_s = timeout_s
        self.poll_interval_s = poll_interval_s

    async def download_build(self) -> Path:
        """Download the artifact of the tracked build and close the session."""

        log_event(logger=self.logger, phase="download", message="starting download")
        href = await self.session.read_href(page_selectors.DOWNLOAD_LINK)
        file_name = file_name_from_link(href)

        target = self.download_dir / file_name
        if target.exists():
            log_event(
                logger=self.logger,
                phase="download",
                status="error",
                message="download target already exists",
                path=str(target),
            )
            raise DownloadError(f"Refusing to download over existing file {target}")

        self.download_dir.mkdir(parents=True, exist_ok=True)
        await self.session.bind_download_dir(self.download_dir)

        started = time.monotonic()
        await self.session.click(page_selectors.DOWNLOAD_LINK)
        log_event(logger=self.logger, phase="download", message="download started", link=href, file_name=file_name)

        try:
            path = await wait_for_download(
                self.download_dir,
                file_name,
                timeout_s=self.timeout_s,
                poll_interval_s=self.poll_interval_s,
            )
        except DownloadTimeoutError as exc:
            log_event(
                logger=self.logger,
                phase="download",
                status="error",
                message="download timed out",
                file_name=file_name,
                timeout_s=self.timeout_s,
                error=str(exc),
            )
            raise

        duration_s = round(time.monotonic() - started, 3)
        log_event(
            logger=self.logger,
            phase="download",
            message="download completed",
            duration_s=duration_s,
            path=str(path),
        )
        await self.session.close()
        return path
