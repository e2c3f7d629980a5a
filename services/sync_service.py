from typing import Optional
import logging

import config
from models.account import Account
from models.event import SyncReport
from services.account_db import AccountDBService
from services.credential_store import CredentialStore
from services.errors import CalendarSyncError, CursorInvalidError
from services.event_db import EventDBService
from services.normalizer import normalize_events
from services.providers.base import FetchResult, ProviderAdapter
from services.providers.registry import ProviderRegistry
from services.reconciler import Reconciler
from services.retry import retry_with_backoff

logger = logging.getLogger(__name__)


class SyncService:
    """
    Per-account sync orchestration:

        lease -> ensure token -> fetch (-> clear cursor -> refetch once)
              -> reconcile -> persist cursor -> release lease

    ``sync_account`` never raises; a failing account is logged and left for
    the next tick, resuming from its last persisted cursor.
    """

    def __init__(
        self,
        account_db: AccountDBService,
        event_db: EventDBService,
        credential_store: CredentialStore,
        registry: ProviderRegistry
    ):
        self.account_db = account_db
        self.event_db = event_db
        self.credential_store = credential_store
        self.registry = registry
        self.reconciler = Reconciler(event_db)

    async def sync_account(self, account_id: str) -> None:
        """Sync one account. Safe to call repeatedly and concurrently."""
        try:
            account = await self.account_db.get_account(account_id)
            if not account:
                logger.error(f"Sync error: Account {account_id} not found.")
                return
            lease_owner = await self.account_db.acquire_sync_lease(account.id, config.SYNC_LEASE_SECONDS)
            if lease_owner is None:
                logger.info(f"Sync already in progress for account {account.id}, skipping")
                return
        except Exception as e:
            logger.exception(f"Could not start sync for account {account_id}: {str(e)}")
            return

        try:
            await self._run(account)
        except CalendarSyncError as e:
            logger.error(f"Error syncing {account.provider_type.value} account {account.id}: {e.message}")
        except Exception as e:
            logger.exception(f"Unexpected error syncing {account.provider_type.value} account {account.id}: {str(e)}")
        finally:
            try:
                if not await self.account_db.release_sync_lease(account.id, lease_owner):
                    logger.warning(f"Sync lease for account {account.id} expired before the sync finished")
            except Exception as e:
                # The lease expires on its own after SYNC_LEASE_SECONDS
                logger.error(f"Could not release sync lease for account {account.id}: {str(e)}")

    async def refresh_account(self, owner_user_id: str, account_id: str) -> None:
        """Request-triggered sync: the caller must own the account"""
        account = await self.account_db.get_owned_account(owner_user_id, account_id)
        await self.sync_account(account.id)

    async def sync_all_accounts(self) -> None:
        """Sweep every account whose provider supports sync"""
        provider_types = self.registry.syncable_types()
        accounts = await self.account_db.get_accounts_by_provider(provider_types)
        logger.info(f"Running scheduled sync for {len(accounts)} accounts")
        for account in accounts:
            logger.info(f"Syncing events for account: {account.display_name} ({account.provider_type.value})")
            await self.sync_account(account.id)
        logger.info("Scheduled calendar sync completed.")

    async def _run(self, account: Account) -> Optional[SyncReport]:
        adapter = self.registry.get(account.provider_type)
        access_token, account = await self.credential_store.get_valid_access_token(account)

        if not adapter.supports_sync:
            logger.info(f"Skipping sync for {account.provider_type.value} account {account.id}")
            return None

        cursor = account.last_sync_cursor
        result = await self._fetch(adapter, access_token, account, cursor)
        if result.full_resync_required:
            logger.warning(f"Sync cursor for account {account.id} rejected, performing full re-sync")
            cursor = None
            await self.account_db.update_sync_cursor(account.id, None)
            result = await self._fetch(adapter, access_token, account, None)
            if result.full_resync_required:
                raise CursorInvalidError(f"Provider rejected a full resync for account {account.id}")

        remote_set = normalize_events(result.events, account.owner_email)
        local_set = await self.event_db.get_account_remote_events(account.id)
        report = await self.reconciler.reconcile(
            account, remote_set, local_set, authoritative=result.is_full_snapshot
        )

        # A missing next cursor means the next sync starts over with a full fetch
        if result.next_cursor != cursor:
            await self.account_db.update_sync_cursor(account.id, result.next_cursor)
        return report

    @retry_with_backoff()
    async def _fetch(
        self, adapter: ProviderAdapter, access_token: str, account: Account, cursor: Optional[str]
    ) -> FetchResult:
        return await adapter.fetch_delta(access_token, account, cursor)
