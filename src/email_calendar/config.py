"""
Configuration loading: INI file section, then environment overrides.
"""

import logging
import os
from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path

from email_calendar.caldav_client import DEFAULT_SERVER_URL
from email_calendar.caldav_client import CalDAVTransport
from email_calendar.session import CalendarSession

DEFAULT_CONFIG = Path.home() / ".config/email-calendar.conf"
CONFIG_SECTION = "email-calendar"

ENV_SERVER_URL = "CALDAV_URL"
ENV_USERNAME = "CALDAV_USERNAME"
ENV_APP_PASSWORD = "CALDAV_APP_PASSWORD"
ENV_MAX_WORKERS = "CALDAV_MAX_WORKERS"

logger = logging.getLogger(__name__)


@dataclass
class CalendarConfig:
    """Connection settings. A missing app password disables calendar features."""

    username: str | None = None
    app_password: str | None = None
    server_url: str = DEFAULT_SERVER_URL
    max_workers: int = 4
    timeout: int | None = None
    verbose: bool = False

    @property
    def calendar_enabled(self) -> bool:
        return bool(self.username and self.app_password)


def _load_config_file(config_path: Path) -> dict[str, str]:
    if not config_path.exists():
        return {}
    parser = ConfigParser()
    parser.read(config_path)
    if CONFIG_SECTION not in parser:
        return {}
    return dict(parser[CONFIG_SECTION])


def _int_setting(raw: str | None, name: str, default: int | None) -> int | None:
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def load_config(config_path: Path = DEFAULT_CONFIG, environ=None, verbose: bool = False) -> CalendarConfig:
    environ = os.environ if environ is None else environ
    values = _load_config_file(config_path)

    return CalendarConfig(
        username=environ.get(ENV_USERNAME) or values.get("username") or None,
        app_password=environ.get(ENV_APP_PASSWORD) or values.get("app_password") or None,
        server_url=environ.get(ENV_SERVER_URL) or values.get("server_url") or DEFAULT_SERVER_URL,
        max_workers=_int_setting(
            environ.get(ENV_MAX_WORKERS) or values.get("max_workers"), "max_workers", 4
        ),
        timeout=_int_setting(values.get("timeout"), "timeout", None),
        verbose=verbose,
    )


def build_session(config: CalendarConfig) -> CalendarSession | None:
    """Return a (not yet logged in) session, or None if calendar is disabled."""
    if not config.calendar_enabled:
        logger.warning(
            "%s/%s not set - calendar features will be disabled", ENV_USERNAME, ENV_APP_PASSWORD
        )
        return None
    transport = CalDAVTransport(
        username=config.username,
        password=config.app_password,
        server_url=config.server_url,
        timeout=config.timeout,
    )
    return CalendarSession(transport, max_workers=config.max_workers)
