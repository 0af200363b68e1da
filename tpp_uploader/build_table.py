"""Reading the portal's build table.

The portal shows a free-text status label per build row. There is no
enumeration behind it, so outcomes are decided by substring tests.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from tpp_uploader import page_selectors
from tpp_uploader.json_logger import JsonLogger, log_event
from tpp_uploader.session import PortalSession

SUCCESS_MARKER = "Success"
FAILED_MARKER = "Failed"


class BuildOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


class StatusExtractionError(RuntimeError):
    """Raised when the build table is missing or has no status cells."""


@dataclass(frozen=True)
class StatusRow:
    update: str
    status: str

    @property
    def outcome(self) -> BuildOutcome:
        return classify_status(self.status)


def classify_status(label: str | None) -> BuildOutcome:
    if not label:
        return BuildOutcome.PENDING
    if SUCCESS_MARKER in label:
        return BuildOutcome.SUCCESS
    if FAILED_MARKER in label:
        return BuildOutcome.FAILED
    return BuildOutcome.PENDING


async def navigate_to_build_list(session: PortalSession, builds_url: str) -> None:
    await session.navigate(builds_url)
    # the table renders lazily; jumping to the bottom makes every row load
    await session.press("End")


async def read_build_status(
    session: PortalSession,
    *,
    timeout_ms: int,
    logger: JsonLogger,
    row_index: int = 0,
) -> StatusRow:
    try:
        await session.wait_for_selector(page_selectors.BUILD_ROWS, timeout_ms)
        statuses = await session.read_column(page_selectors.BUILD_ROWS, page_selectors.ROW_STATUS_CELL)
        updates = await session.read_column(page_selectors.BUILD_ROWS, page_selectors.ROW_UPDATE_CELL)
    except Exception as exc:
        log_event(
            logger=logger,
            phase="status",
            status="error",
            message="failed to get table status",
            timeout_ms=timeout_ms,
            error=str(exc),
        )
        raise StatusExtractionError(f"Failed to get table status: {exc}") from exc

    if not statuses:
        log_event(logger=logger, phase="status", status="error", message="no status cells found in table")
        raise StatusExtractionError("Failed to get table status: no status cells found in table")

    index = row_index if 0 <= row_index < len(statuses) else 0
    update = updates[index] if index < len(updates) else ""
    row = StatusRow(update=update, status=statuses[index])

    log_event(
        logger=logger,
        phase="status",
        message="build table read",
        rows=len(statuses),
        row_index=index,
        update_status=row.update,
        build_status=row.status,
    )
    return row
