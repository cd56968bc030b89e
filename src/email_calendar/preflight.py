"""
Preflight checks run before networked commands to catch common misconfigurations early.
"""

import logging

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from email_calendar.config import ENV_APP_PASSWORD
from email_calendar.config import ENV_USERNAME
from email_calendar.config import CalendarConfig
from email_calendar.models import AuthenticationError
from email_calendar.models import CalendarError
from email_calendar.models import TransportError

logger = logging.getLogger(__name__)


def run_preflight_checks(cfg: CalendarConfig, session, console: Console) -> bool:
    """Return True if the session is logged in; print issues and return False otherwise."""
    issues: list[tuple[str, str, str]] = []  # (label, detail, hint)

    # 1. Credentials present
    if not cfg.username:
        issues.append(("Username", "not configured", f"Set {ENV_USERNAME} or 'username' in the config file"))
    if not cfg.app_password:
        issues.append(
            (
                "App password",
                "not configured (calendar features disabled)",
                f"Set {ENV_APP_PASSWORD} or 'app_password' in the config file",
            )
        )
    if issues or session is None:
        _print_issues(issues, console)
        return False

    # 2. Login + discovery
    try:
        session.login()
    except AuthenticationError as e:
        logger.error("CalDAV login rejected: %s", e)
        issues.append(("Login", str(e), "Use an app-specific password, not the account password"))
    except TransportError as e:
        logger.error("CalDAV server unreachable: %s", e)
        issues.append(("Server", str(e), f"Check server_url ({cfg.server_url}) and network access"))
    except CalendarError as e:
        logger.error("CalDAV login failed: %s", e)
        issues.append(("Login", str(e), "Run with --verbose for protocol details"))
    else:
        if not session.list_calendars():
            issues.append(("Calendars", "account has no calendars", "Create a calendar on the server"))

    if issues:
        _print_issues(issues, console)
        return False

    return True


def _print_issues(issues: list[tuple[str, str, str]], console: Console) -> None:
    body = Text()
    for i, (label, detail, hint) in enumerate(issues):
        if i:
            body.append("\n")
        body.append(f"  ✗  {label}: ", style="bold red")
        body.append(detail, style="bold red")
        body.append(f"\n       → {hint}", style="yellow")

    console.print(Panel(body, title="[bold red]Preflight checks failed[/bold red]"))
