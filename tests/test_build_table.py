import asyncio
import io

import pytest

from tpp_uploader import page_selectors
from tpp_uploader.build_table import (
    BuildOutcome,
    StatusExtractionError,
    StatusRow,
    classify_status,
    navigate_to_build_list,
    read_build_status,
)
from tpp_uploader.json_logger import JsonLogger
from portal_fakes import FakeSession


def run(coro):
    return asyncio.run(coro)


def _logger():
    return JsonLogger(run_id="test", stream=io.StringIO())


@pytest.mark.parametrize(
    ("label", "expected"),
    [
        ("Success", BuildOutcome.SUCCESS),
        ("Build Success", BuildOutcome.SUCCESS),
        ("Failed", BuildOutcome.FAILED),
        ("Failed - see log", BuildOutcome.FAILED),
        ("Pending", BuildOutcome.PENDING),
        ("Building", BuildOutcome.PENDING),
        ("success", BuildOutcome.PENDING),
        ("", BuildOutcome.PENDING),
        (None, BuildOutcome.PENDING),
    ],
)
def test_classify_status_uses_substring_markers(label, expected):
    assert classify_status(label) is expected


def test_status_row_exposes_outcome():
    assert StatusRow(update="", status="Build Failed").outcome is BuildOutcome.FAILED


def test_navigate_to_build_list_scrolls_to_bottom():
    session = FakeSession()

    run(navigate_to_build_list(session, "https://tak.gov/user_builds"))

    assert session.calls == [("navigate", "https://tak.gov/user_builds"), ("press", "End")]


def test_read_build_status_returns_tracked_row():
    session = FakeSession(statuses=["Pending"])

    row = run(read_build_status(session, timeout_ms=5000, logger=_logger()))

    assert row == StatusRow(update="Updated 1 minute ago", status="Pending")
    assert session.calls[0] == ("wait_for_selector", page_selectors.BUILD_ROWS, 5000)


def test_read_build_status_falls_back_to_first_row_when_index_out_of_range():
    session = FakeSession(statuses=["Pending"])

    row = run(read_build_status(session, timeout_ms=5000, logger=_logger(), row_index=7))

    assert row.status == "Pending"


def test_read_build_status_reads_requested_row():
    session = FakeSession(statuses=["Pending"])

    row = run(read_build_status(session, timeout_ms=5000, logger=_logger(), row_index=1))

    assert row.status == "Success"
    assert row.update == ""


def test_missing_table_raises_extraction_error():
    def fail_on(verb, target):
        if verb == "wait_for_selector":
            return TimeoutError("Timeout 5000ms exceeded")
        return None

    session = FakeSession(fail_on=fail_on)

    with pytest.raises(StatusExtractionError, match="Failed to get table status"):
        run(read_build_status(session, timeout_ms=5000, logger=_logger()))


def test_empty_table_is_not_treated_as_pending():
    class EmptyTableSession(FakeSession):
        async def read_column(self, row_selector, cell_selector):
            return []

    with pytest.raises(StatusExtractionError, match="no status cells"):
        run(read_build_status(EmptyTableSession(), timeout_ms=5000, logger=_logger()))


def test_download_link_points_at_first_row_last_cell():
    assert page_selectors.DOWNLOAD_LINK == "table.table-full-width tbody tr:first-child td:last-child a"
    assert page_selectors.DOWNLOAD_LINK.startswith(page_selectors.BUILD_ROWS)
