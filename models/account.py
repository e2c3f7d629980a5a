from pydantic import BaseModel, Field
from typing import Any, Dict, Optional
from datetime import datetime

from models.event import ProviderType

DEFAULT_DISPLAY_COLORS = {
    ProviderType.GOOGLE: "#FF4285F4",
    ProviderType.OUTLOOK: "#FF0078D4",
}
FALLBACK_DISPLAY_COLOR = "#FF888888"


class Account(BaseModel):
    """A connected external calendar. Token fields hold ciphertext, never clear text."""
    id: str = Field(..., description="Local account ID")
    owner_user_id: str = Field(..., description="User who connected this calendar")
    provider_type: ProviderType
    external_calendar_id: str = Field(..., description="Calendar ID on the provider, e.g. the primary calendar")
    display_name: str
    owner_email: str = Field(..., description="Login of the provider account")
    access_token: Optional[str] = Field(None, description="Encrypted access token")
    refresh_token: Optional[str] = Field(None, description="Encrypted refresh token")
    token_expires_at: datetime
    last_sync_cursor: Optional[str] = None
    display_color: str = FALLBACK_DISPLAY_COLOR
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def public_dict(self) -> Dict[str, Any]:
        """Account as returned to clients, without any token material"""
        return self.model_dump(
            mode="json",
            exclude={"access_token", "refresh_token", "last_sync_cursor"}
        )


class TokenGrant(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: int = 3600
