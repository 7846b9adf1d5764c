"""
Google Calendar client that creates events with an attached Meet link.

The Google API client is synchronous, so every call runs in the default
executor. Its httplib2 transport is not thread-safe: the service object is
built once under a lock, and every request gets its own authorized Http.
Credentials are an OAuth refresh token obtained out of band; the consent flow
is not part of this service.
"""

import asyncio
import threading
import time
import uuid
from datetime import datetime
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict

from webinar_api.core.config import Settings
from webinar_api.core.exceptions import UpstreamError
from webinar_api.core.logging import get_logger
from webinar_api.core.metrics import upstream_errors, upstream_latency

logger = get_logger(__name__)

PROVIDER = "google_calendar"
SCOPES = ["https://www.googleapis.com/auth/calendar"]


class MeetingRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    description: str = ""
    start: datetime
    end: datetime
    attendee_emails: list[str]


class MeetingEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_id: str
    join_link: str


def _extract_video_link(event: dict) -> Optional[str]:
    entry_points = (event.get("conferenceData") or {}).get("entryPoints") or []
    for entry in entry_points:
        if entry.get("entryPointType") == "video" and entry.get("uri"):
            return entry["uri"]
    return event.get("hangoutLink")


def _authorized_http(credentials):
    import google_auth_httplib2
    import httplib2

    return google_auth_httplib2.AuthorizedHttp(credentials, http=httplib2.Http())


def per_request_http(credentials) -> Callable[..., Any]:
    """requestBuilder for googleapiclient that gives each request a fresh Http."""
    from googleapiclient.http import HttpRequest

    def build_request(http, *args, **kwargs):
        return HttpRequest(_authorized_http(credentials), *args, **kwargs)

    return build_request


class GoogleCalendarClient:
    def __init__(self, settings: Settings, service: Any = None):
        self._calendar_id = settings.GOOGLE_CALENDAR_ID
        self._timezone = settings.CALENDAR_TIMEZONE
        self._settings = settings
        self._service = service
        self._service_lock = threading.Lock()

    def _credentials(self):
        from google.oauth2.credentials import Credentials

        return Credentials(
            token=None,
            refresh_token=self._settings.GOOGLE_REFRESH_TOKEN,
            token_uri=self._settings.GOOGLE_TOKEN_URI,
            client_id=self._settings.GOOGLE_CLIENT_ID,
            client_secret=self._settings.GOOGLE_CLIENT_SECRET,
            scopes=SCOPES,
        )

    def _build_service(self):
        from googleapiclient.discovery import build

        credentials = self._credentials()
        return build(
            "calendar",
            "v3",
            http=_authorized_http(credentials),
            requestBuilder=per_request_http(credentials),
            cache_discovery=False,
        )

    def _get_service(self):
        if self._service is None:
            with self._service_lock:
                if self._service is None:
                    self._service = self._build_service()
                    logger.info("google_calendar_initialized", calendar_id=self._calendar_id)
        return self._service

    async def _run(self, operation: str, call: Callable[[], Any]) -> Any:
        start = time.perf_counter()
        try:
            return await asyncio.get_running_loop().run_in_executor(None, call)
        except UpstreamError:
            raise
        except Exception as e:
            upstream_errors.labels(provider=PROVIDER, operation=operation).inc()
            logger.error("google_calendar_failed", operation=operation, error=str(e))
            raise UpstreamError(f"Calendar provider error during {operation}", provider=PROVIDER) from e
        finally:
            upstream_latency.labels(provider=PROVIDER, operation=operation).observe(
                time.perf_counter() - start
            )

    def _time(self, value: datetime) -> dict:
        return {"dateTime": value.isoformat(), "timeZone": self._timezone}

    async def create_event(self, request: MeetingRequest) -> MeetingEvent:
        body = {
            "summary": request.title,
            "description": request.description,
            "start": self._time(request.start),
            "end": self._time(request.end),
            "attendees": [{"email": email} for email in request.attendee_emails],
            "conferenceData": {
                "createRequest": {
                    "requestId": f"meet-{uuid.uuid4().hex}",
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            },
        }

        def insert():
            return (
                self._get_service()
                .events()
                .insert(
                    calendarId=self._calendar_id,
                    body=body,
                    conferenceDataVersion=1,
                    sendUpdates="all",
                )
                .execute()
            )

        event = await self._run("create_event", insert)
        event_id = event.get("id")
        join_link = _extract_video_link(event)
        if not event_id or not join_link:
            upstream_errors.labels(provider=PROVIDER, operation="create_event").inc()
            raise UpstreamError("Calendar provider returned no event id or meeting link", provider=PROVIDER)

        logger.info("calendar_event_created", event_id=event_id)
        return MeetingEvent(event_id=event_id, join_link=join_link)

    async def update_event(self, event_id: str, **fields: Any) -> None:
        body = {}
        if "title" in fields:
            body["summary"] = fields["title"]
        if "description" in fields:
            body["description"] = fields["description"]
        if "start" in fields:
            body["start"] = self._time(fields["start"])
        if "end" in fields:
            body["end"] = self._time(fields["end"])
        if "attendee_emails" in fields:
            body["attendees"] = [{"email": email} for email in fields["attendee_emails"]]

        def patch():
            return (
                self._get_service()
                .events()
                .patch(calendarId=self._calendar_id, eventId=event_id, body=body, sendUpdates="all")
                .execute()
            )

        await self._run("update_event", patch)
        logger.info("calendar_event_updated", event_id=event_id, fields=sorted(body))

    async def delete_event(self, event_id: str) -> None:
        def delete():
            return (
                self._get_service()
                .events()
                .delete(calendarId=self._calendar_id, eventId=event_id, sendUpdates="all")
                .execute()
            )

        await self._run("delete_event", delete)
        logger.info("calendar_event_deleted", event_id=event_id)
