"""HTTP calendar client used to book visit slots.

Speaks the Google Calendar v3 events API (``POST
/calendars/{calendarId}/events``) with a bearer token. Each event carries an
id derived from its content, so a retried insert that already reached the
server answers 409 instead of booking the slot twice. Timeouts, connection
errors and 5xx responses are retried with exponential backoff; other 4xx
responses are not. Any final failure is raised as ``PersistenceFailure``.
"""

from __future__ import annotations

import hashlib
import logging
import time
from datetime import datetime
from typing import Protocol
from urllib.parse import quote

import httpx

from kb_concierge.errors import PersistenceFailure

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0
REQUEST_TIMEOUT_SECONDS = 15.0

_OPERATION = "calendar.create_event"


class CalendarClient(Protocol):
    def create_event(
        self,
        *,
        summary: str,
        description: str,
        start: datetime,
        end: datetime,
        timezone: str,
    ) -> str:
        """Create an event and return its identifier."""


def event_id_for(calendar_id: str, summary: str, description: str, start: datetime) -> str:
    """Stable event id; hex digits are valid in Calendar's base32hex ids."""

    key = "\x1f".join((calendar_id, summary, description, start.isoformat()))
    return "kb" + hashlib.sha256(key.encode("utf-8")).hexdigest()[:40]


class HttpCalendarClient:
    """Calendar REST client with idempotent, retried event inserts."""

    def __init__(
        self,
        token: str,
        *,
        calendar_id: str = "primary",
        base_url: str = "https://www.googleapis.com/calendar/v3",
        backoff_seconds: float = INITIAL_BACKOFF_SECONDS,
        client: httpx.Client | None = None,
    ):
        self._calendar_id = calendar_id
        self._backoff_seconds = backoff_seconds
        self._client = client or httpx.Client(
            base_url=base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=REQUEST_TIMEOUT_SECONDS,
        )

    def create_event(
        self,
        *,
        summary: str,
        description: str,
        start: datetime,
        end: datetime,
        timezone: str,
    ) -> str:
        event_id = event_id_for(self._calendar_id, summary, description, start)
        body = {
            "id": event_id,
            "summary": summary,
            "description": description,
            "start": {"dateTime": start.isoformat(), "timeZone": timezone},
            "end": {"dateTime": end.isoformat(), "timeZone": timezone},
        }
        path = f"/calendars/{quote(self._calendar_id, safe='')}/events"

        failure: object = "no attempt made"
        for attempt in range(1, MAX_RETRIES + 1):
            if attempt > 1:
                time.sleep(self._backoff_seconds * (2 ** (attempt - 2)))
            try:
                response = self._client.post(path, json=body)
            except httpx.TransportError as exc:
                failure = exc
                logger.warning(
                    "Calendar insert attempt %d/%d failed: %s",
                    attempt,
                    MAX_RETRIES,
                    type(exc).__name__,
                )
                continue

            if response.status_code == 409:
                # An earlier attempt already created this exact event.
                logger.info("Calendar event %s already exists", event_id)
                return event_id
            if response.status_code >= 500:
                failure = f"server error {response.status_code}"
                logger.warning(
                    "Calendar insert attempt %d/%d got %d",
                    attempt,
                    MAX_RETRIES,
                    response.status_code,
                )
                continue
            if response.status_code >= 400:
                raise PersistenceFailure(
                    _OPERATION, f"client error {response.status_code}: {response.text}"
                )
            return self._created_id(response, start)

        raise PersistenceFailure(_OPERATION, f"gave up after {MAX_RETRIES} attempts: {failure}")

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def _created_id(response: httpx.Response, start: datetime) -> str:
        try:
            data = response.json()
        except ValueError as exc:
            raise PersistenceFailure(_OPERATION, "response was not JSON") from exc
        created = data.get("id") if isinstance(data, dict) else None
        if not created:
            raise PersistenceFailure(_OPERATION, "response carried no event id")
        logger.info("Calendar event %s created for %s", created, start.isoformat())
        return str(created)
