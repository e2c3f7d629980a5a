from typing import Any, Dict, Optional, Tuple
from datetime import datetime, timedelta
import logging

from models.account import Account, TokenGrant
from models.event import ProviderType
from services.account_db import AccountDBService
from services.errors import CredentialError
from services.providers.registry import ProviderRegistry
from services.token_cipher import TokenCipher

logger = logging.getLogger(__name__)


class CredentialStore:
    """
    Owns provider credentials for connected accounts: keeps access tokens
    valid, persists refreshed pairs, and is the only place tokens are
    encrypted or decrypted.
    """

    def __init__(self, account_db: AccountDBService, registry: ProviderRegistry, cipher: Optional[TokenCipher] = None):
        self.account_db = account_db
        self.registry = registry
        self.cipher = cipher or TokenCipher()

    async def get_valid_access_token(self, account: Account) -> Tuple[Optional[str], Account]:
        """
        Return a usable access token and the (possibly refreshed) account.
        Refreshes when token_expires_at <= now; raises CredentialError if the
        refresh fails, leaving the stored account untouched.
        """
        adapter = self.registry.get(account.provider_type)
        if not adapter.requires_credentials:
            return self.cipher.decrypt(account.access_token), account

        if account.token_expires_at > datetime.utcnow():
            return self.cipher.decrypt(account.access_token), account

        logger.info(f"Access token for {account.provider_type.value} account {account.id} expired, refreshing")
        refresh_token = self.cipher.decrypt(account.refresh_token)
        if not refresh_token:
            raise CredentialError(f"Account {account.id} has no refresh token, reconnect required")

        grant = await adapter.refresh_access_token(refresh_token)
        return await self._persist_grant(account, grant)

    async def _persist_grant(self, account: Account, grant: TokenGrant) -> Tuple[str, Account]:
        encrypted_access = self.cipher.encrypt(grant.access_token)
        # Providers may omit the refresh token on refresh; keep the stored one then
        encrypted_refresh = self.cipher.encrypt(grant.refresh_token) if grant.refresh_token else None
        expires_at = datetime.utcnow() + timedelta(seconds=grant.expires_in)

        swapped = await self.account_db.swap_tokens(
            account.id,
            expected_access_token=account.access_token,
            access_token=encrypted_access,
            refresh_token=encrypted_refresh,
            token_expires_at=expires_at
        )
        if not swapped:
            # A concurrent refresh persisted its pair first; use the stored winner
            logger.info(f"Token refresh for account {account.id} lost the race, using stored token")
            current = await self.account_db.get_account(account.id)
            if current is None:
                raise CredentialError(f"Account {account.id} disappeared during token refresh")
            return self.cipher.decrypt(current.access_token), current

        refreshed = account.model_copy(update={
            "access_token": encrypted_access,
            "refresh_token": encrypted_refresh or account.refresh_token,
            "token_expires_at": expires_at,
        })
        logger.info(f"Access token for account {account.id} refreshed, valid until {expires_at.isoformat()}")
        return grant.access_token, refreshed

    async def connect_account(
        self,
        owner_user_id: str,
        provider_type: ProviderType,
        owner_email: str,
        external_calendar_id: str,
        display_name: str,
        token: Dict[str, Any]
    ) -> Account:
        """Store the account for a completed OAuth consent, encrypting its tokens"""
        expires_in = int(token.get("expires_in", 3600))
        return await self.account_db.upsert_connected_account(
            owner_user_id=owner_user_id,
            provider_type=provider_type,
            owner_email=owner_email,
            external_calendar_id=external_calendar_id,
            display_name=display_name,
            access_token=self.cipher.encrypt(token["access_token"]),
            refresh_token=self.cipher.encrypt(token.get("refresh_token")),
            token_expires_at=datetime.utcnow() + timedelta(seconds=expires_in)
        )
