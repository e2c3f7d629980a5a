"""Recording provider adapter for deterministic sync and outbound tests."""
from typing import Any, Dict, List, Optional

from models.account import Account, TokenGrant
from models.event import AttendeeStatus, EventDetails, ProviderType
from services.providers.base import FetchResult, ProviderAdapter


class FakeProviderAdapter(ProviderAdapter):
    """
    Serves queued FetchResults (or a fixed snapshot) and records every call.
    Set ``fail_with`` to make the next write raise.
    """

    def __init__(self, provider_type: ProviderType = ProviderType.GOOGLE):
        self.provider_type = provider_type
        self.fetch_queue: List[Any] = []
        self.snapshot: List[Dict[str, Any]] = []
        self.snapshot_cursor: Optional[str] = "sync-token-1"
        self.refresh_grant: Optional[TokenGrant] = None
        self.refresh_error: Optional[Exception] = None
        self.fail_with: Optional[Exception] = None
        self.calls: List[tuple] = []
        self._next_id = 0

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        self.calls.append(("refresh", refresh_token))
        if self.refresh_error:
            raise self.refresh_error
        return self.refresh_grant

    async def fetch_delta(self, access_token: str, account: Account, cursor: Optional[str]) -> FetchResult:
        self.calls.append(("fetch", access_token, cursor))
        if self.fetch_queue:
            result = self.fetch_queue.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return FetchResult(events=list(self.snapshot), next_cursor=self.snapshot_cursor, is_full_snapshot=not cursor)

    def _maybe_fail(self):
        if self.fail_with:
            raise self.fail_with

    async def create_remote_event(self, access_token: str, account: Account, event: EventDetails) -> Optional[str]:
        self.calls.append(("create", access_token, event.title))
        self._maybe_fail()
        self._next_id += 1
        return f"remote-{self._next_id}"

    async def update_remote_event(self, access_token, account, external_event_id, event) -> None:
        self.calls.append(("update", access_token, external_event_id, event.title))
        self._maybe_fail()

    async def delete_remote_event(self, access_token, account, external_event_id) -> None:
        self.calls.append(("delete", access_token, external_event_id))
        self._maybe_fail()

    async def set_attendee_response(
        self,
        access_token: str,
        account: Account,
        external_event_id: str,
        attendee_email: str,
        status: AttendeeStatus
    ) -> None:
        self.calls.append(("attendee", access_token, external_event_id, attendee_email, status))
        self._maybe_fail()

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]


def google_payload(event_id, title="Standup", start="2026-03-02T09:00:00Z", end="2026-03-02T09:30:00Z",
                   attendees=None, status="confirmed"):
    """A Google Calendar API event resource with the fields the normalizer reads"""
    payload = {
        "id": event_id,
        "status": status,
        "summary": title,
        "start": {"dateTime": start},
        "end": {"dateTime": end},
    }
    if attendees is not None:
        payload["attendees"] = attendees
    return payload
