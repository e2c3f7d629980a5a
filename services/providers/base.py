from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from pydantic import BaseModel

from models.account import Account, TokenGrant
from models.event import AttendeeStatus, EventDetails, ProviderType


class FetchResult(BaseModel):
    events: List[Dict[str, Any]] = []
    next_cursor: Optional[str] = None
    # Provider rejected the cursor; caller must refetch without one
    full_resync_required: bool = False
    # Fetched without a cursor, so the result covers the whole sync window
    is_full_snapshot: bool = False


class ProviderAdapter(ABC):
    """
    Calendar provider operations. Implementations are stateless: the
    per-account access token is passed to every call and never stored.
    """
    provider_type: ProviderType
    supports_sync = True
    requires_credentials = True

    @abstractmethod
    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        ...

    @abstractmethod
    async def fetch_delta(self, access_token: str, account: Account, cursor: Optional[str]) -> FetchResult:
        ...

    @abstractmethod
    async def create_remote_event(self, access_token: str, account: Account, event: EventDetails) -> Optional[str]:
        """Create the event remotely and return its provider ID"""

    @abstractmethod
    async def update_remote_event(
        self, access_token: str, account: Account, external_event_id: str, event: EventDetails
    ) -> None:
        ...

    @abstractmethod
    async def delete_remote_event(self, access_token: str, account: Account, external_event_id: str) -> None:
        ...

    @abstractmethod
    async def set_attendee_response(
        self,
        access_token: str,
        account: Account,
        external_event_id: str,
        attendee_email: str,
        status: AttendeeStatus
    ) -> None:
        ...
