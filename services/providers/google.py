import httpx
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.httpx_client import AsyncOAuth2Client
from typing import Any, Callable, Dict, List, Optional
from datetime import datetime, timedelta
from urllib.parse import quote
import logging
import pytz

import config
from models.account import Account, TokenGrant
from models.event import AttendeeStatus, EventDetails, ProviderType
from services.errors import CredentialError, ProviderError, ProviderTransientError
from services.providers.base import FetchResult, ProviderAdapter

logger = logging.getLogger(__name__)

GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"

PAGE_SIZE = 250
RATE_LIMIT_REASONS = ("rateLimitExceeded", "userRateLimitExceeded")

# Canonical status -> Google responseStatus
GOOGLE_RESPONSE_STATUS = {
    AttendeeStatus.ACCEPTED: "accepted",
    AttendeeStatus.DECLINED: "declined",
    AttendeeStatus.PENDING: "needsAction",
}


def _default_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=config.PROVIDER_TIMEOUT_SECONDS)


def _default_oauth_client() -> AsyncOAuth2Client:
    return AsyncOAuth2Client(
        client_id=config.GOOGLE_CLIENT_ID,
        client_secret=config.GOOGLE_CLIENT_SECRET,
        timeout=config.PROVIDER_TIMEOUT_SECONDS
    )


def _rfc3339(value: datetime) -> str:
    return value.replace(microsecond=0).isoformat() + "Z"


def _to_server_zone(value: datetime, tz) -> datetime:
    if value.tzinfo is None:
        value = pytz.utc.localize(value)
    return value.astimezone(tz)


def to_google_event(event: EventDetails, include_reminders: bool = False) -> Dict[str, Any]:
    """Translate a local event into Google's wire shape, using the server's zone for timed events"""
    if event.is_all_day:
        start_date = event.start_time.date()
        end_date = event.end_time.date()
        # Google's all-day end date is exclusive
        if end_date <= start_date:
            end_date = start_date + timedelta(days=1)
        start = {"date": start_date.isoformat()}
        end = {"date": end_date.isoformat()}
    else:
        tz = pytz.timezone(config.SERVER_TIMEZONE)
        start = {"dateTime": _to_server_zone(event.start_time, tz).isoformat(), "timeZone": config.SERVER_TIMEZONE}
        end = {"dateTime": _to_server_zone(event.end_time, tz).isoformat(), "timeZone": config.SERVER_TIMEZONE}

    body = {
        "summary": event.title,
        "description": event.description,
        "location": event.location,
        "start": start,
        "end": end,
        "attendees": [
            {"email": attendee.email, "responseStatus": GOOGLE_RESPONSE_STATUS[attendee.status]}
            for attendee in event.attendees
        ],
    }
    if include_reminders:
        body["reminders"] = {"useDefault": True}
    return body


class GoogleCalendarAdapter(ProviderAdapter):
    provider_type = ProviderType.GOOGLE

    def __init__(
        self,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
        oauth_client_factory: Optional[Callable[[], AsyncOAuth2Client]] = None
    ):
        self._client_factory = client_factory or _default_client
        self._oauth_client_factory = oauth_client_factory or _default_oauth_client

    def _get_auth_headers(self, access_token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {access_token}"}

    def _events_url(self, account: Account, external_event_id: Optional[str] = None) -> str:
        url = f"{GOOGLE_CALENDAR_API}/calendars/{quote(account.external_calendar_id, safe='')}/events"
        if external_event_id:
            url += f"/{quote(external_event_id, safe='')}"
        return url

    async def _request(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        access_token: str,
        **kwargs
    ) -> httpx.Response:
        try:
            return await client.request(method, url, headers=self._get_auth_headers(access_token), **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"Google {method} {url} timed out: {str(e)}")
            raise ProviderTransientError("Google Calendar request timed out")
        except httpx.TransportError as e:
            logger.error(f"Google {method} {url} failed: {str(e)}")
            raise ProviderTransientError(f"Google Calendar unreachable: {str(e)}")

    def _raise_for_status(self, response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        status = response.status_code
        logger.error(f"Google {action} failed: {status} - {response.text}")
        if status == 401:
            raise CredentialError("Google rejected the access token", reconnect_required=True)
        if status == 429 or status >= 500:
            raise ProviderTransientError(f"Google {action} failed with {status}", http_status=status)
        if status == 403 and any(reason in response.text for reason in RATE_LIMIT_REASONS):
            raise ProviderTransientError(f"Google {action} rate limited", http_status=status)
        raise ProviderError(f"Google {action} failed with {status}", http_status=status)

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        try:
            async with self._oauth_client_factory() as oauth_client:
                token = await oauth_client.refresh_token(GOOGLE_TOKEN_URL, refresh_token=refresh_token)
        except AuthlibBaseError as e:
            logger.error(f"Google token refresh rejected: {str(e)}")
            raise CredentialError(f"Google token refresh rejected: {str(e)}", reconnect_required=True)
        except httpx.HTTPError as e:
            logger.error(f"Google token refresh failed: {str(e)}")
            raise CredentialError(f"Google token refresh failed: {str(e)}", reconnect_required=False)
        except ValueError as e:
            logger.error(f"Google token refresh returned an unreadable response: {str(e)}")
            raise CredentialError("Google token refresh returned an unreadable response", reconnect_required=False)

        if not token.get("access_token"):
            raise CredentialError("Google token refresh returned no access token", reconnect_required=True)
        return TokenGrant(
            access_token=token["access_token"],
            refresh_token=token.get("refresh_token"),
            expires_in=int(token.get("expires_in", 3600))
        )

    async def fetch_delta(self, access_token: str, account: Account, cursor: Optional[str]) -> FetchResult:
        params: Dict[str, Any] = {"singleEvents": "true", "maxResults": PAGE_SIZE}
        if cursor:
            # Google forbids time bounds and ordering together with a sync token
            params["syncToken"] = cursor
        else:
            now = datetime.utcnow()
            params["timeMin"] = _rfc3339(now - timedelta(days=config.SYNC_WINDOW_DAYS))
            params["timeMax"] = _rfc3339(now + timedelta(days=config.SYNC_WINDOW_DAYS))
            params["orderBy"] = "startTime"

        items: List[Dict[str, Any]] = []
        next_cursor = None
        page_token = None
        async with self._client_factory() as client:
            while True:
                page_params = dict(params)
                if page_token:
                    page_params["pageToken"] = page_token
                response = await self._request(client, "GET", self._events_url(account), access_token, params=page_params)
                if response.status_code == 410:
                    logger.warning(f"Google sync token expired for account {account.id}, full resync required")
                    return FetchResult(full_resync_required=True)
                self._raise_for_status(response, "events list")

                data = response.json()
                items.extend(data.get("items", []))
                page_token = data.get("nextPageToken")
                if not page_token:
                    next_cursor = data.get("nextSyncToken")
                    break

        logger.info(f"Fetched {len(items)} Google events for account {account.id} (incremental={bool(cursor)})")
        return FetchResult(events=items, next_cursor=next_cursor, is_full_snapshot=not cursor)

    async def create_remote_event(self, access_token: str, account: Account, event: EventDetails) -> Optional[str]:
        async with self._client_factory() as client:
            response = await self._request(
                client, "POST", self._events_url(account), access_token,
                json=to_google_event(event, include_reminders=True)
            )
            self._raise_for_status(response, "event insert")
            external_event_id = response.json()["id"]
        logger.info(f"Created Google event {external_event_id} on calendar {account.external_calendar_id}")
        return external_event_id

    async def update_remote_event(
        self, access_token: str, account: Account, external_event_id: str, event: EventDetails
    ) -> None:
        async with self._client_factory() as client:
            response = await self._request(
                client, "PATCH", self._events_url(account, external_event_id), access_token,
                json=to_google_event(event)
            )
            self._raise_for_status(response, "event patch")
        logger.info(f"Updated Google event {external_event_id}")

    async def delete_remote_event(self, access_token: str, account: Account, external_event_id: str) -> None:
        async with self._client_factory() as client:
            response = await self._request(
                client, "DELETE", self._events_url(account, external_event_id), access_token
            )
            if response.status_code in (404, 410):
                logger.info(f"Google event {external_event_id} already gone")
                return
            self._raise_for_status(response, "event delete")
        logger.info(f"Deleted Google event {external_event_id}")

    async def set_attendee_response(
        self,
        access_token: str,
        account: Account,
        external_event_id: str,
        attendee_email: str,
        status: AttendeeStatus
    ) -> None:
        # Google exposes attendees only as part of the event, so read-modify-write
        attendee_email = attendee_email.strip().lower()
        async with self._client_factory() as client:
            url = self._events_url(account, external_event_id)
            response = await self._request(client, "GET", url, access_token)
            self._raise_for_status(response, "event get")
            attendees = response.json().get("attendees", [])

            for attendee in attendees:
                if (attendee.get("email") or "").strip().lower() == attendee_email:
                    attendee["responseStatus"] = GOOGLE_RESPONSE_STATUS[status]
                    break
            else:
                logger.warning(f"Attendee {attendee_email} missing on Google event {external_event_id}, adding")
                attendees.append({"email": attendee_email, "responseStatus": GOOGLE_RESPONSE_STATUS[status]})

            response = await self._request(client, "PATCH", url, access_token, json={"attendees": attendees})
            self._raise_for_status(response, "attendee patch")
        logger.info(f"Set {attendee_email} to {status.value} on Google event {external_event_id}")

    async def get_user_info(self, access_token: str) -> Dict[str, Any]:
        """Profile of the Google login behind a freshly issued token"""
        async with self._client_factory() as client:
            response = await self._request(client, "GET", GOOGLE_USERINFO_URL, access_token)
            self._raise_for_status(response, "userinfo")
            return response.json()

    async def get_primary_calendar(self, access_token: str) -> Dict[str, Any]:
        async with self._client_factory() as client:
            response = await self._request(
                client, "GET", f"{GOOGLE_CALENDAR_API}/users/me/calendarList", access_token
            )
            self._raise_for_status(response, "calendar list")
            calendars = response.json().get("items", [])
        primary = next((calendar for calendar in calendars if calendar.get("primary")), None)
        if not primary:
            raise ProviderError("Could not find primary Google Calendar.")
        return primary
