"""
CalDAV transport wrapper.

Discovery goes through ``caldav.DAVClient`` (principal → calendar home →
calendars). Object traffic uses ``DAVClient.request`` directly so the
conditional headers (If-Match / If-None-Match) and etags stay under our
control; multistatus bodies are parsed with lxml.
"""

import logging
from datetime import datetime
from urllib.parse import urljoin

import caldav
from caldav.lib import error as caldav_error
from lxml import etree

from email_calendar.codec import format_utc
from email_calendar.models import AuthenticationError
from email_calendar.models import Calendar
from email_calendar.models import CalendarObject
from email_calendar.models import ConflictingWriteError
from email_calendar.models import EventNotFoundError
from email_calendar.models import TransportError

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "https://caldav.fastmail.com/"

NS = {
    "d": "DAV:",
    "c": "urn:ietf:params:xml:ns:caldav",
    "cs": "http://calendarserver.org/ns/",
    "ical": "http://apple.com/ns/ical/",
}

_PROPFIND_CALENDAR_BODY = """<?xml version="1.0" encoding="utf-8"?>
<d:propfind xmlns:d="DAV:" xmlns:c="urn:ietf:params:xml:ns:caldav"
            xmlns:cs="http://calendarserver.org/ns/" xmlns:ical="http://apple.com/ns/ical/">
  <d:prop>
    <d:displayname/>
    <c:calendar-description/>
    <cs:getctag/>
    <ical:calendar-color/>
  </d:prop>
</d:propfind>"""

_CALENDAR_QUERY_BODY = """<?xml version="1.0" encoding="utf-8"?>
<c:calendar-query xmlns:d="DAV:" xmlns:c="urn:ietf:params:xml:ns:caldav">
  <d:prop>
    <d:getetag/>
    <c:calendar-data/>
  </d:prop>
  <c:filter>
    <c:comp-filter name="VCALENDAR">
      <c:comp-filter name="VEVENT">
        <c:time-range start="{start}" end="{end}"/>
      </c:comp-filter>
    </c:comp-filter>
  </c:filter>
</c:calendar-query>"""

_ICS_CONTENT_TYPE = "text/calendar; charset=utf-8"
_XML_CONTENT_TYPE = "application/xml; charset=utf-8"


def _header(response, name: str) -> str | None:
    headers = getattr(response, "headers", None) or {}
    value = headers.get(name)
    if value is None:
        # Plain dicts from test doubles are case-sensitive.
        value = headers.get(name.lower())
    return value


def _body(response) -> str:
    raw = getattr(response, "raw", "") or ""
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return raw


def parse_multistatus(body: str) -> list[tuple[str, dict[str, str]]]:
    """Return ``(href, {prop-tag: text})`` for every 200-OK propstat."""
    if not body.strip():
        return []
    try:
        root = etree.fromstring(body.encode("utf-8"))
    except etree.XMLSyntaxError as e:
        raise TransportError(None, f"Invalid multistatus response: {e}") from e

    results = []
    for response in root.findall("d:response", NS):
        href = (response.findtext("d:href", default="", namespaces=NS) or "").strip()
        props: dict[str, str] = {}
        for propstat in response.findall("d:propstat", NS):
            status = propstat.findtext("d:status", default="", namespaces=NS) or ""
            if status and " 200 " not in f"{status} ":
                continue
            prop = propstat.find("d:prop", NS)
            if prop is None:
                continue
            for child in prop:
                props[etree.QName(child).localname] = child.text or ""
        results.append((href, props))
    return results


class CalDAVTransport:
    """Speaks CalDAV to one account. Stateless apart from the HTTP client."""

    def __init__(
        self,
        username: str,
        password: str,
        server_url: str = DEFAULT_SERVER_URL,
        timeout: int | None = None,
        client=None,
    ):
        self.username = username
        self.server_url = server_url
        self._password = password
        self._timeout = timeout
        self.client = client

    def _connect_client(self):
        if self.client is None:
            kwargs = {"url": self.server_url, "username": self.username, "password": self._password}
            if self._timeout is not None:
                kwargs["timeout"] = self._timeout
            self.client = caldav.DAVClient(**kwargs)
        return self.client

    def _request(self, url: str, method: str, body: str = "", headers: dict | None = None):
        client = self._connect_client()
        logger.debug("%s %s", method, url)
        try:
            response = client.request(url, method, body, headers or {})
        except caldav_error.AuthorizationError as e:
            raise AuthenticationError(f"CalDAV server rejected credentials for {self.username}: {e}") from e
        except (caldav_error.DAVError, OSError) as e:
            raise TransportError(None, f"{method} {url} failed: {e}") from e
        status = getattr(response, "status", None)
        if status in (401, 403):
            raise AuthenticationError(
                f"CalDAV server rejected credentials for {self.username} (HTTP {status})"
            )
        return response

    # ------------------------------------------------------------------ #
    # Discovery                                                            #
    # ------------------------------------------------------------------ #

    def connect(self) -> list[Calendar]:
        """Authenticate and return every calendar collection of the account."""
        client = self._connect_client()
        try:
            principal = client.principal()
            collections = principal.calendars()
        except caldav_error.AuthorizationError as e:
            raise AuthenticationError(f"CalDAV login failed for {self.username}: {e}") from e
        except (caldav_error.DAVError, OSError) as e:
            raise TransportError(None, f"CalDAV discovery failed: {e}") from e

        calendars = [self._describe(str(collection.url), getattr(collection, "name", None))
                     for collection in collections]
        logger.debug("Discovered %d calendars for %s", len(calendars), self.username)
        return calendars

    def _describe(self, url: str, fallback_name: str | None) -> Calendar:
        props: dict[str, str] = {}
        try:
            response = self._request(
                url,
                "PROPFIND",
                _PROPFIND_CALENDAR_BODY,
                {"Depth": "0", "Content-Type": _XML_CONTENT_TYPE},
            )
            for _href, found in parse_multistatus(_body(response)):
                props.update(found)
        except TransportError as e:
            logger.warning("Could not read properties of %s: %s", url, e)

        return Calendar(
            id=url,
            url=url,
            display_name=props.get("displayname") or fallback_name or "Unnamed Calendar",
            ctag=props.get("getctag") or None,
            description=props.get("calendar-description") or None,
            color=props.get("calendar-color") or None,
        )

    # ------------------------------------------------------------------ #
    # Objects                                                              #
    # ------------------------------------------------------------------ #

    def fetch_objects(self, calendar_url: str, start: datetime, end: datetime) -> list[CalendarObject]:
        """Return the VEVENT objects of a calendar overlapping [start, end)."""
        body = _CALENDAR_QUERY_BODY.format(start=format_utc(start), end=format_utc(end))
        response = self._request(
            calendar_url,
            "REPORT",
            body,
            {"Depth": "1", "Content-Type": _XML_CONTENT_TYPE},
        )
        if response.status != 207:
            raise TransportError(response.status, getattr(response, "reason", "") or "REPORT failed")

        objects = []
        for href, props in parse_multistatus(_body(response)):
            data = props.get("calendar-data")
            if not data:
                continue
            objects.append(
                CalendarObject(
                    url=urljoin(calendar_url, href),
                    etag=props.get("getetag", ""),
                    data=data,
                )
            )
        return objects

    def fetch_object(self, url: str) -> CalendarObject | None:
        response = self._request(url, "GET")
        if response.status == 404:
            return None
        if not 200 <= response.status < 300:
            raise TransportError(response.status, getattr(response, "reason", "") or "GET failed")
        return CalendarObject(url=url, etag=_header(response, "ETag") or "", data=_body(response))

    def put_object(self, url: str, data: str, etag: str | None = None, create: bool = False) -> str | None:
        """PUT an object; returns the new etag when the server reports one."""
        headers = {"Content-Type": _ICS_CONTENT_TYPE}
        if create:
            headers["If-None-Match"] = "*"
        elif etag:
            headers["If-Match"] = etag
        response = self._request(url, "PUT", data, headers)

        if response.status == 412:
            raise ConflictingWriteError(
                f"{url} was modified on the server (stale etag {etag!r})"
                if not create
                else f"{url} already exists"
            )
        if response.status == 404:
            raise EventNotFoundError(f"Event not found: {url}")
        if not 200 <= response.status < 300:
            raise TransportError(response.status, getattr(response, "reason", "") or "PUT failed")
        return _header(response, "ETag")

    def delete_object(self, url: str, etag: str | None = None) -> None:
        headers = {"If-Match": etag} if etag else {}
        response = self._request(url, "DELETE", "", headers)

        if response.status == 412:
            raise ConflictingWriteError(f"{url} was modified on the server (stale etag {etag!r})")
        if response.status == 404:
            raise EventNotFoundError(f"Event not found: {url}")
        if not 200 <= response.status < 300:
            raise TransportError(response.status, getattr(response, "reason", "") or "DELETE failed")
