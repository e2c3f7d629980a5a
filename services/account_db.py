from typing import List, Optional, Dict, Any, Iterable
from datetime import datetime, timedelta
from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument
import logging

from db.mongo import get_db
from models.account import Account, DEFAULT_DISPLAY_COLORS, FALLBACK_DISPLAY_COLOR
from models.event import ProviderType
from services.errors import AuthorizationError, NotFoundError

logger = logging.getLogger(__name__)

# Custom calendars never expire; they hold no provider credentials
CUSTOM_ACCOUNT_EXPIRY = datetime(9999, 12, 31)


def to_object_id(value: str) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


class AccountDBService:
    def __init__(self, database=None):
        self.collection_name = "accounts"
        self.collection = (database if database is not None else get_db())[self.collection_name]

    def _to_account(self, doc: Dict[str, Any]) -> Account:
        doc = dict(doc)
        doc["id"] = str(doc.pop("_id"))
        return Account(**doc)

    async def get_account(self, account_id: str) -> Optional[Account]:
        """Get an account by ID"""
        oid = to_object_id(account_id)
        if oid is None:
            return None
        try:
            doc = await self.collection.find_one({"_id": oid})
            return self._to_account(doc) if doc else None
        except Exception as e:
            logger.error(f"Error getting account {account_id}: {str(e)}")
            raise

    async def get_owned_account(self, owner_user_id: str, account_id: str) -> Account:
        """Get an account, checking it exists and belongs to the caller"""
        account = await self.get_account(account_id)
        if not account:
            raise NotFoundError("Calendar account not found.")
        if account.owner_user_id != str(owner_user_id):
            logger.warning(f"User {owner_user_id} tried to access account {account_id}")
            raise AuthorizationError("Not authorized to access this calendar account.")
        return account

    async def get_user_accounts(self, owner_user_id: str) -> List[Account]:
        """Get all accounts for a user"""
        try:
            cursor = self.collection.find({"owner_user_id": str(owner_user_id)})
            docs = await cursor.to_list(length=None)
            return [self._to_account(doc) for doc in docs]
        except Exception as e:
            logger.error(f"Error getting accounts for user {owner_user_id}: {str(e)}")
            raise

    async def get_accounts_by_provider(self, provider_types: Iterable[ProviderType]) -> List[Account]:
        """Get every account of the given provider types, across all users"""
        try:
            cursor = self.collection.find({"provider_type": {"$in": [p.value for p in provider_types]}})
            docs = await cursor.to_list(length=None)
            return [self._to_account(doc) for doc in docs]
        except Exception as e:
            logger.error(f"Error listing accounts by provider: {str(e)}")
            raise

    async def upsert_connected_account(
        self,
        owner_user_id: str,
        provider_type: ProviderType,
        owner_email: str,
        external_calendar_id: str,
        display_name: str,
        access_token: str,
        refresh_token: Optional[str],
        token_expires_at: datetime
    ) -> Account:
        """
        Create or update the account for an OAuth callback.
        Keyed by (user, provider, provider login); the sync cursor is reset so
        the next sync is a full fetch. Token arguments must already be encrypted.
        """
        now = datetime.utcnow()
        update_doc = {
            "owner_user_id": str(owner_user_id),
            "provider_type": provider_type.value,
            "owner_email": owner_email.strip().lower(),
            "external_calendar_id": external_calendar_id,
            "display_name": display_name,
            "access_token": access_token,
            "token_expires_at": token_expires_at,
            "last_sync_cursor": None,
            "updated_at": now
        }
        if refresh_token:
            update_doc["refresh_token"] = refresh_token

        try:
            doc = await self.collection.find_one_and_update(
                {
                    "owner_user_id": update_doc["owner_user_id"],
                    "provider_type": update_doc["provider_type"],
                    "owner_email": update_doc["owner_email"]
                },
                {
                    "$set": update_doc,
                    "$setOnInsert": {
                        "display_color": DEFAULT_DISPLAY_COLORS.get(provider_type, FALLBACK_DISPLAY_COLOR),
                        "created_at": now
                    }
                },
                upsert=True,
                return_document=ReturnDocument.AFTER
            )
            logger.info(f"Saved {provider_type.value} account {owner_email} for user {owner_user_id}")
            return self._to_account(doc)
        except Exception as e:
            logger.error(f"Error saving account {owner_email} for user {owner_user_id}: {str(e)}")
            raise

    async def get_or_create_custom_account(self, owner_user_id: str, owner_email: str) -> Account:
        """Get the user's local-only calendar, creating it on first use"""
        now = datetime.utcnow()
        try:
            doc = await self.collection.find_one_and_update(
                {
                    "owner_user_id": str(owner_user_id),
                    "provider_type": ProviderType.CUSTOM.value,
                    "owner_email": owner_email.strip().lower()
                },
                {
                    "$setOnInsert": {
                        "external_calendar_id": f"custom-{owner_user_id}",
                        "display_name": "My Calendar",
                        "access_token": None,
                        "refresh_token": None,
                        "token_expires_at": CUSTOM_ACCOUNT_EXPIRY,
                        "last_sync_cursor": None,
                        "display_color": FALLBACK_DISPLAY_COLOR,
                        "created_at": now,
                        "updated_at": now
                    }
                },
                upsert=True,
                return_document=ReturnDocument.AFTER
            )
            return self._to_account(doc)
        except Exception as e:
            logger.error(f"Error creating custom account for user {owner_user_id}: {str(e)}")
            raise

    async def swap_tokens(
        self,
        account_id: str,
        expected_access_token: Optional[str],
        access_token: str,
        refresh_token: Optional[str],
        token_expires_at: datetime
    ) -> bool:
        """
        Persist a refreshed token pair only if the stored access token is still
        the one the refresh started from. Returns False when another refresh won.
        """
        update = {
            "access_token": access_token,
            "token_expires_at": token_expires_at,
            "updated_at": datetime.utcnow()
        }
        if refresh_token:
            update["refresh_token"] = refresh_token
        try:
            result = await self.collection.update_one(
                {"_id": ObjectId(account_id), "access_token": expected_access_token},
                {"$set": update}
            )
            return result.matched_count > 0
        except Exception as e:
            logger.error(f"Error saving refreshed tokens for account {account_id}: {str(e)}")
            raise

    async def update_sync_cursor(self, account_id: str, cursor: Optional[str]) -> None:
        try:
            await self.collection.update_one(
                {"_id": ObjectId(account_id)},
                {"$set": {"last_sync_cursor": cursor, "updated_at": datetime.utcnow()}}
            )
        except Exception as e:
            logger.error(f"Error saving sync cursor for account {account_id}: {str(e)}")
            raise

    async def acquire_sync_lease(self, account_id: str, lease_seconds: int) -> Optional[str]:
        """
        Take the per-account sync lease. Returns the owner token to release it
        with, or None if another sync holds a live lease.
        """
        now = datetime.utcnow()
        owner = str(ObjectId())
        doc = await self.collection.find_one_and_update(
            {
                "_id": ObjectId(account_id),
                "$or": [
                    {"sync_lease_until": None},
                    {"sync_lease_until": {"$lt": now}}
                ]
            },
            {"$set": {"sync_lease_until": now + timedelta(seconds=lease_seconds), "sync_lease_owner": owner}},
            return_document=ReturnDocument.AFTER
        )
        return owner if doc is not None else None

    async def release_sync_lease(self, account_id: str, owner: str) -> bool:
        """Release the lease if this owner still holds it. False when another sync took it over."""
        result = await self.collection.update_one(
            {"_id": ObjectId(account_id), "sync_lease_owner": owner},
            {"$set": {"sync_lease_until": None, "sync_lease_owner": None}}
        )
        return result.matched_count > 0
