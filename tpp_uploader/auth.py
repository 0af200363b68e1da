"""Portal login: username/password form followed by the TOTP step."""
from __future__ import annotations

from typing import Callable

from tpp_uploader import page_selectors
from tpp_uploader.json_logger import JsonLogger, log_event
from tpp_uploader.otp import current_code
from tpp_uploader.session import PortalSession


class AuthenticationError(RuntimeError):
    """Raised when the login or 2FA sequence could not be completed."""


class Authenticator:
    def __init__(
        self,
        *,
        session: PortalSession,
        login_url: str,
        username: str,
        password: str,
        otp_secret: str,
        logger: JsonLogger,
        code_provider: Callable[[str], str] = current_code,
    ) -> None:
        self.session = session
        self.login_url = login_url
        self.username = username
        self.password = password
        self.otp_secret = otp_secret
        self.logger = logger
        self.code_provider = code_provider

    def _log(self, status: str, message: str, **extras) -> None:
        log_event(logger=self.logger, phase="auth", status=status, message=message, **extras)

    async def authenticate(self) -> None:
        """Run the full login sequence once. Callers own any retry policy."""

        session = self.session
        step = "open login page"
        try:
            await session.navigate(self.login_url)

            step = "open login form"
            await session.click_and_wait_for_navigation(page_selectors.LOGIN_BUTTON)

            step = "submit credentials"
            self._log(
                "info",
                "submitting credentials",
                username=self.username,
                password_len=len(self.password),
            )
            await session.fill(page_selectors.LOGIN_USERNAME, self.username)
            await session.fill(page_selectors.LOGIN_PASSWORD, self.password)
            await session.click_and_wait_for_navigation(page_selectors.LOGIN_SUBMIT)
            self._log("ok", "login successful")

            step = "submit one-time code"
            code = self.code_provider(self.otp_secret)
            await session.fill(page_selectors.LOGIN_OTP, code)
            await session.click_and_wait_for_navigation(page_selectors.LOGIN_SUBMIT)
        except Exception as exc:
            self._log("error", "authentication failed", step=step, error=str(exc))
            raise AuthenticationError(f"Authentication failed at step '{step}': {exc}") from exc

        self._log("ok", "auth successful", current_url=session.url)

    async def is_authenticated(self) -> bool:
        text = await self.session.read_text(page_selectors.NAVBAR_USER)
        if text is None:
            self._log("warn", "navbar user indicator not found; treating session as logged out")
            return False
        return page_selectors.AUTH_MARKER in text
