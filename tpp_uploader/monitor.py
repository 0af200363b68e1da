"""Build lifecycle monitor.

The portal has no push channel, so the tracked build (row 0 of the build
table) is sampled on a fixed interval until it reports Success or Failed.
Ticks run strictly one after another: the next sleep only starts once the
previous tick, including any re-login detour, has finished.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

from tpp_uploader.auth import AuthenticationError, Authenticator
from tpp_uploader.build_table import (
    BuildOutcome,
    classify_status,
    navigate_to_build_list,
    read_build_status,
)
from tpp_uploader.json_logger import JsonLogger, log_event
from tpp_uploader.session import PortalSession


class MonitorState(str, Enum):
    INITIALIZING = "initializing"
    POLLING = "polling"
    REAUTHENTICATING = "reauthenticating"
    UNKNOWN_RETRY = "unknown_retry"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABORTED = "aborted"


TERMINAL_STATES = frozenset({MonitorState.SUCCEEDED, MonitorState.FAILED, MonitorState.ABORTED})


class MonitorAbortedError(RuntimeError):
    """Raised when ticks keep failing past the configured bounds."""


class ArtifactDownloader(Protocol):
    async def download_build(self) -> Path: ...


@dataclass
class MonitorResult:
    state: MonitorState
    status: str | None
    ticks: int
    renavigations: int
    artifact: Path | None = None


class BuildMonitor:
    def __init__(
        self,
        *,
        session: PortalSession,
        authenticator: Authenticator,
        downloader: ArtifactDownloader,
        builds_url: str,
        logger: JsonLogger,
        poll_interval_s: float = 60.0,
        table_timeout_ms: int = 5_000,
        auth_max_attempts: int = 3,
        max_tick_failures: int = 5,
    ) -> None:
        self.session = session
        self.authenticator = authenticator
        self.downloader = downloader
        self.builds_url = builds_url
        self.logger = logger
        self.poll_interval_s = poll_interval_s
        self.table_timeout_ms = table_timeout_ms
        self.auth_max_attempts = auth_max_attempts
        self.max_tick_failures = max_tick_failures

        self.state = MonitorState.INITIALIZING
        self.status: str | None = None
        self.ticks = 0
        self.renavigations = 0
        self.artifact: Path | None = None
        self._auth_failures = 0
        self._tick_failures = 0

    def _log(self, status: str, message: str, **extras) -> None:
        log_event(
            logger=self.logger,
            phase="monitor",
            status=status,
            message=message,
            state=self.state.value,
            tick=self.ticks,
            **extras,
        )

    def _transition(self, state: MonitorState) -> None:
        if state is not self.state:
            previous = self.state
            self.state = state
            self._log("info", "state changed", previous=previous.value)

    async def _read_status(self) -> str:
        row = await read_build_status(
            self.session, timeout_ms=self.table_timeout_ms, logger=self.logger
        )
        self.status = row.status
        return row.status

    async def _refresh(self) -> str:
        await navigate_to_build_list(self.session, self.builds_url)
        return await self._read_status()

    async def initialize(self) -> None:
        self._transition(MonitorState.INITIALIZING)
        status = await self._read_status()
        self._log("info", "initial status", build_status=status)

        if classify_status(status) is BuildOutcome.SUCCESS:
            # A fresh upload may not have replaced the previous build's row yet.
            self._log("info", "initial status already successful; rechecking")
            await self._refresh()

        self._transition(MonitorState.POLLING)

    async def tick(self) -> MonitorState:
        self.ticks += 1

        if not await self.authenticator.is_authenticated():
            self._transition(MonitorState.REAUTHENTICATING)
            await self.authenticator.authenticate()
            self._auth_failures = 0
            await self._refresh()
            self._transition(MonitorState.POLLING)

        self._log("info", "status", build_status=self.status)
        outcome = classify_status(self.status)

        if outcome is BuildOutcome.SUCCESS:
            self._transition(MonitorState.SUCCEEDED)
        elif outcome is BuildOutcome.FAILED:
            self._transition(MonitorState.FAILED)
        else:
            self._transition(MonitorState.POLLING)
            self._log("info", "update page")
            self.renavigations += 1
            await self._refresh()

        return self.state

    def _record_tick_failure(self, exc: Exception) -> None:
        self._tick_failures += 1
        if isinstance(exc, AuthenticationError):
            self._auth_failures += 1

        self.state = MonitorState.UNKNOWN_RETRY
        self._log(
            "warn",
            "tick failed; retrying on next tick",
            error=str(exc),
            exc_type=type(exc).__name__,
            consecutive_failures=self._tick_failures,
            consecutive_auth_failures=self._auth_failures,
        )

        if self._auth_failures >= self.auth_max_attempts:
            self.state = MonitorState.ABORTED
            self._log("error", "re-authentication keeps failing; giving up")
            raise MonitorAbortedError(
                f"Re-authentication failed {self._auth_failures} times in a row"
            ) from exc

        if self._tick_failures >= self.max_tick_failures:
            self.state = MonitorState.ABORTED
            self._log("error", "status polling keeps failing; giving up")
            raise MonitorAbortedError(f"{self._tick_failures} consecutive poll ticks failed") from exc

    async def poll(self) -> MonitorState:
        """Tick until a terminal state is reached."""

        while self.state not in TERMINAL_STATES:
            await asyncio.sleep(self.poll_interval_s)
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self._record_tick_failure(exc)
            else:
                self._tick_failures = 0
                self._auth_failures = 0
        return self.state

    async def run(self) -> MonitorResult:
        self._log("info", "waiting for build")
        await self.initialize()
        await self.poll()

        if self.state is MonitorState.SUCCEEDED:
            self.artifact = await self.downloader.download_build()
        elif self.state is MonitorState.FAILED:
            self._log("error", "the build failed, exiting", build_status=self.status)
            await self.session.close()

        return MonitorResult(
            state=self.state,
            status=self.status,
            ticks=self.ticks,
            renavigations=self.renavigations,
            artifact=self.artifact,
        )
