from __future__ import annotations

from pathlib import Path

from tpp_uploader import page_selectors
from tpp_uploader.json_logger import JsonLogger, log_event
from tpp_uploader.session import PortalSession


class UploadError(RuntimeError):
    """Raised when the build file could not be handed to the portal."""


async def upload_file(
    session: PortalSession,
    path: Path,
    *,
    timeout_ms: int,
    logger: JsonLogger,
) -> None:
    """Attach ``path`` through the portal's file picker and submit the form.

    Submitting starts a remote build, so this must run once per run.
    """

    if not path.is_file():
        log_event(logger=logger, phase="upload", status="error", message="upload file not found", path=str(path))
        raise UploadError(f"Upload file does not exist: {path}")

    log_event(logger=logger, phase="upload", message="uploading file", path=str(path))
    try:
        await session.choose_files(page_selectors.UPLOAD_TRIGGER, [path], timeout_ms)
    except Exception as exc:
        log_event(
            logger=logger,
            phase="upload",
            status="error",
            message="file chooser did not accept the upload",
            timeout_ms=timeout_ms,
            error=str(exc),
        )
        raise UploadError(f"File chooser failed for {path}: {exc}") from exc

    await session.click(page_selectors.UPLOAD_COMMIT)
    log_event(logger=logger, phase="upload", message="upload successful", path=str(path))
