"""Single-run orchestration: authenticate, upload, monitor, download."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass

from tpp_uploader.auth import AuthenticationError, Authenticator
from tpp_uploader.build_table import StatusExtractionError, navigate_to_build_list
from tpp_uploader.config import Config
from tpp_uploader.download import DownloadError, Downloader, DownloadTimeoutError
from tpp_uploader.json_logger import ExitCodes, JsonLogger, log_event, timed_event
from tpp_uploader.monitor import BuildMonitor, MonitorAbortedError, MonitorResult, MonitorState
from tpp_uploader.session import PortalSession
from tpp_uploader.upload import UploadError, upload_file


@dataclass
class RunContext:
    """Owns the browser session and the polling task for one run."""

    config: Config
    logger: JsonLogger
    session: PortalSession
    poll_task: asyncio.Task | None = None
    polling_cancelled: bool = False

    def build_authenticator(self) -> Authenticator:
        return Authenticator(
            session=self.session,
            login_url=self.config.login_url,
            username=self.config.username,
            password=self.config.password,
            otp_secret=self.config.otp_secret,
            logger=self.logger,
        )

    def build_downloader(self) -> Downloader:
        return Downloader(
            session=self.session,
            download_dir=self.config.download_dir,
            logger=self.logger,
            timeout_s=self.config.download_timeout_s,
        )

    def build_monitor(self, authenticator: Authenticator) -> BuildMonitor:
        return BuildMonitor(
            session=self.session,
            authenticator=authenticator,
            downloader=self.build_downloader(),
            builds_url=self.config.builds_url,
            logger=self.logger.bind(builds_url=self.config.builds_url),
            poll_interval_s=self.config.poll_interval_s,
            table_timeout_ms=self.config.table_timeout_ms,
            auth_max_attempts=self.config.auth_max_attempts,
            max_tick_failures=self.config.max_tick_failures,
        )

    async def cancel_polling(self) -> None:
        task = self.poll_task
        if task is None or task.done():
            return
        self.polling_cancelled = True
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        log_event(logger=self.logger, phase="orchestrator", status="warn", message="polling cancelled")


_OUTCOME_EXIT_CODES = {
    MonitorState.SUCCEEDED: ExitCodes.OK,
    MonitorState.FAILED: ExitCodes.BUILD_FAILED,
}


async def _start_and_monitor(ctx: RunContext, *, upload: bool) -> MonitorResult:
    config = ctx.config
    authenticator = ctx.build_authenticator()

    with timed_event(logger=ctx.logger, phase="auth", message="initial login"):
        await authenticator.authenticate()
    await navigate_to_build_list(ctx.session, config.builds_url)

    if upload:
        if config.upload_file is None:
            raise UploadError("No upload file configured")
        await upload_file(
            ctx.session,
            config.upload_file,
            timeout_ms=config.file_chooser_timeout_ms,
            logger=ctx.logger,
        )

    monitor = ctx.build_monitor(authenticator)
    ctx.poll_task = asyncio.create_task(monitor.run(), name="build-monitor")
    return await ctx.poll_task


async def run_workflow(ctx: RunContext, *, upload: bool = True) -> int:
    logger = ctx.logger
    log_event(logger=logger, phase="orchestrator", message="run start", upload=upload)

    try:
        result = await _start_and_monitor(ctx, upload=upload)
    except asyncio.CancelledError:
        if not ctx.polling_cancelled:
            raise
        log_event(logger=logger, phase="orchestrator", status="error", message="run stopped before the build finished")
        return ExitCodes.UNCAUGHT
    except (AuthenticationError, UploadError) as exc:
        log_event(
            logger=logger,
            phase="orchestrator",
            status="error",
            message="run failed during setup",
            extras={"error": str(exc), "exc_type": type(exc).__name__},
        )
        return ExitCodes.AUTH_FAILED
    except DownloadTimeoutError as exc:
        log_event(
            logger=logger,
            phase="orchestrator",
            status="error",
            message="artifact download timed out",
            extras={"error": str(exc)},
        )
        return ExitCodes.NET_TIMEOUT
    except (MonitorAbortedError, StatusExtractionError, DownloadError) as exc:
        log_event(
            logger=logger,
            phase="orchestrator",
            status="error",
            message="build monitoring aborted",
            extras={"error": str(exc), "exc_type": type(exc).__name__},
        )
        return ExitCodes.UNCAUGHT
    except Exception as exc:
        log_event(
            logger=logger,
            phase="orchestrator",
            status="error",
            message="run failed with unexpected error",
            extras={"error": str(exc), "exc_type": type(exc).__name__},
        )
        return ExitCodes.UNCAUGHT
    finally:
        await ctx.cancel_polling()
        await ctx.session.close()

    log_event(
        logger=logger,
        phase="orchestrator",
        message="run complete",
        state=result.state.value,
        build_status=result.status,
        ticks=result.ticks,
        renavigations=result.renavigations,
        artifact=str(result.artifact) if result.artifact else None,
    )
    return _OUTCOME_EXIT_CODES.get(result.state, ExitCodes.UNCAUGHT)
