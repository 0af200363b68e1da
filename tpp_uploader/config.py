"""
CONFIG.PY: SINGLE SOURCE OF TRUTH

This module is the ONLY place allowed to read environment variables.

Required values (portal credentials, the TOTP secret and the upload/download
paths) must exist; if any group is missing the run MUST fail before a
browser is launched. Tunables (timeouts, poll interval, retry bounds) carry
defaults.

To use a config value, build it once at startup and pass it down:

    from tpp_uploader.config import Config

    config = Config.load_from_env()

Do not access os.getenv directly from any other module.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict

from dotenv import load_dotenv

from tpp_uploader.otp import validate_secret


# Determine project root correctly (directory containing the top-level package)
PROJECT_ROOT = Path(__file__).resolve().parents[1]

# Load variables from .env if it exists; OS env overrides these automatically
load_dotenv(PROJECT_ROOT / ".env")

if os.getenv("DEBUG_CONFIG") == "1":
    print("[CONFIG] Loaded .env from:", PROJECT_ROOT / ".env")


logger = logging.getLogger(__name__)

CREDENTIAL_KEYS = ["USER_NAME", "USER_PASS"]
SECRET_KEYS = ["FA_SECRET"]
PATH_KEYS = ["DOWNLOAD_PATH", "UPLOAD_FILE"]

DEFAULTS: Dict[str, str] = {
    "PORTAL_BASE_URL": "https://tak.gov",
    "PORTAL_BUILDS_PATH": "/user_builds",
    "POLL_INTERVAL_SECONDS": "60",
    "DOWNLOAD_TIMEOUT_SECONDS": "300",
    "FILE_CHOOSER_TIMEOUT_MS": "2000",
    "TABLE_TIMEOUT_MS": "5000",
    "NAVIGATION_TIMEOUT_MS": "30000",
    "AUTH_MAX_ATTEMPTS": "3",
    "MAX_TICK_FAILURES": "5",
    "HEADLESS": "false",
    "JSON_LOG_FILE": "",
}

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded."""


def _env(key: str) -> str:
    return (os.getenv(key) or "").strip()


def _optional(key: str) -> str:
    value = _env(key)
    return value or DEFAULTS[key]


def _require_group(keys: list[str]) -> Dict[str, str]:
    values = {key: _env(key) for key in keys}
    if not all(values.values()):
        message = f"Failed to find {' or '.join(keys)}."
        logger.error(message)
        raise ConfigError(message)
    return values


def _parse_bool(value: str, *, key: str) -> bool:
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    message = f"Config key {key} must be a boolean string; got {value!r}"
    logger.error(message)
    raise ConfigError(message)


def _parse_positive_int(value: str, *, key: str) -> int:
    try:
        parsed = int(value.strip())
    except (TypeError, ValueError):
        message = f"Config key {key} must be an integer; got {value!r}"
        logger.error(message)
        raise ConfigError(message)
    if parsed <= 0:
        message = f"Config key {key} must be positive; got {parsed}"
        logger.error(message)
        raise ConfigError(message)
    return parsed


def _parse_positive_float(value: str, *, key: str) -> float:
    try:
        parsed = float(value.strip())
    except (TypeError, ValueError):
        message = f"Config key {key} must be a number; got {value!r}"
        logger.error(message)
        raise ConfigError(message)
    if parsed <= 0:
        message = f"Config key {key} must be positive; got {parsed}"
        logger.error(message)
        raise ConfigError(message)
    return parsed


def _clean_url(value: str, *, key: str) -> str:
    stripped = value.strip().rstrip("/")
    if not stripped:
        message = f"Config key {key} cannot be blank"
        logger.error(message)
        raise ConfigError(message)
    return stripped


def _clean_path_segment(value: str) -> str:
    stripped = value.strip()
    if not stripped.startswith("/"):
        stripped = f"/{stripped}"
    return stripped


@dataclass(slots=True, frozen=True)
class Config:
    username: str
    password: str
    otp_secret: str
    download_dir: Path
    upload_file: Path | None

    portal_base_url: str
    builds_path: str
    poll_interval_s: float
    download_timeout_s: float
    file_chooser_timeout_ms: int
    table_timeout_ms: int
    navigation_timeout_ms: int
    auth_max_attempts: int
    max_tick_failures: int
    headless: bool
    json_log_file: str

    @property
    def login_url(self) -> str:
        return self.portal_base_url

    @property
    def builds_url(self) -> str:
        return f"{self.portal_base_url}{self.builds_path}"

    def with_overrides(self, **changes) -> Config:
        return replace(self, **changes)

    @classmethod
    def load_from_env(cls, *, require_upload: bool = True) -> Config:
        credentials = _require_group(CREDENTIAL_KEYS)
        secrets = _require_group(SECRET_KEYS)
        paths = _require_group(PATH_KEYS if require_upload else ["DOWNLOAD_PATH"])

        try:
            validate_secret(secrets["FA_SECRET"])
        except ValueError as exc:
            message = "FA_SECRET is not a valid base32 TOTP secret"
            logger.error(message)
            raise ConfigError(message) from exc

        upload_raw = paths.get("UPLOAD_FILE") or _env("UPLOAD_FILE")
        upload_file = Path(upload_raw).expanduser() if upload_raw else None

        return cls(
            username=credentials["USER_NAME"],
            password=credentials["USER_PASS"],
            otp_secret=secrets["FA_SECRET"],
            download_dir=Path(paths["DOWNLOAD_PATH"]).expanduser(),
            upload_file=upload_file,
            portal_base_url=_clean_url(_optional("PORTAL_BASE_URL"), key="PORTAL_BASE_URL"),
            builds_path=_clean_path_segment(_optional("PORTAL_BUILDS_PATH")),
            poll_interval_s=_parse_positive_float(
                _optional("POLL_INTERVAL_SECONDS"), key="POLL_INTERVAL_SECONDS"
            ),
            download_timeout_s=_parse_positive_float(
                _optional("DOWNLOAD_TIMEOUT_SECONDS"), key="DOWNLOAD_TIMEOUT_SECONDS"
            ),
            file_chooser_timeout_ms=_parse_positive_int(
                _optional("FILE_CHOOSER_TIMEOUT_MS"), key="FILE_CHOOSER_TIMEOUT_MS"
            ),
            table_timeout_ms=_parse_positive_int(
                _optional("TABLE_TIMEOUT_MS"), key="TABLE_TIMEOUT_MS"
            ),
            navigation_timeout_ms=_parse_positive_int(
                _optional("NAVIGATION_TIMEOUT_MS"), key="NAVIGATION_TIMEOUT_MS"
            ),
            auth_max_attempts=_parse_positive_int(
                _optional("AUTH_MAX_ATTEMPTS"), key="AUTH_MAX_ATTEMPTS"
            ),
            max_tick_failures=_parse_positive_int(
                _optional("MAX_TICK_FAILURES"), key="MAX_TICK_FAILURES"
            ),
            headless=_parse_bool(_optional("HEADLESS"), key="HEADLESS"),
            json_log_file=_env("JSON_LOG_FILE"),
        )
