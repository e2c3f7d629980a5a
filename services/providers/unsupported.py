from typing import Optional
import logging

from models.account import Account, TokenGrant
from models.event import AttendeeStatus, EventDetails, ProviderType
from services.errors import CredentialError
from services.providers.base import FetchResult, ProviderAdapter

logger = logging.getLogger(__name__)


class UnsupportedProviderAdapter(ProviderAdapter):
    """
    Pass-through adapter for providers without a sync integration (Apple/CalDAV,
    Outlook) and for local custom calendars. Fetches are empty and writes are
    no-ops, so syncing such an account is never an error.
    """
    supports_sync = False
    requires_credentials = False

    def __init__(self, provider_type: ProviderType):
        self.provider_type = provider_type

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        raise CredentialError(
            f"{self.provider_type.value} accounts do not hold refreshable credentials",
            reconnect_required=False
        )

    async def fetch_delta(self, access_token: str, account: Account, cursor: Optional[str]) -> FetchResult:
        logger.info(f"Skipping fetch for {self.provider_type.value} account {account.id}")
        return FetchResult(events=[], next_cursor=cursor, full_resync_required=False)

    async def create_remote_event(self, access_token: str, account: Account, event: EventDetails) -> Optional[str]:
        return None

    async def update_remote_event(self, access_token, account, external_event_id, event) -> None:
        return None

    async def delete_remote_event(self, access_token, account, external_event_id) -> None:
        return None

    async def set_attendee_response(
        self,
        access_token: str,
        account: Account,
        external_event_id: str,
        attendee_email: str,
        status: AttendeeStatus
    ) -> None:
        return None
