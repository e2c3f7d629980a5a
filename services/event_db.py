from typing import List, Optional, Dict, Any, Iterable
from datetime import datetime
from bson import ObjectId
from pymongo import ReturnDocument
import logging

from db.mongo import get_db
from models.event import Event
from services.account_db import to_object_id
from services.errors import AuthorizationError, NotFoundError

logger = logging.getLogger(__name__)


class EventDBService:
    def __init__(self, database=None):
        self.collection_name = "events"
        self.collection = (database if database is not None else get_db())[self.collection_name]

    def _to_event(self, doc: Dict[str, Any]) -> Event:
        doc = dict(doc)
        doc["id"] = str(doc.pop("_id"))
        return Event(**doc)

    async def create_event(self, event_data: Dict[str, Any]) -> Event:
        """Create a new event"""
        try:
            event_data = dict(event_data)
            event_data["created_at"] = datetime.utcnow()
            result = await self.collection.insert_one(event_data)
            event_data["_id"] = result.inserted_id
            return self._to_event(event_data)
        except Exception as e:
            logger.error(f"Error creating event: {str(e)}")
            raise

    async def get_event(self, event_id: str) -> Optional[Event]:
        """Get an event by ID"""
        oid = to_object_id(event_id)
        if oid is None:
            return None
        try:
            doc = await self.collection.find_one({"_id": oid})
            return self._to_event(doc) if doc else None
        except Exception as e:
            logger.error(f"Error getting event: {str(e)}")
            raise

    async def get_owned_event(self, owner_user_id: str, event_id: str) -> Event:
        """Get an event, checking it exists and belongs to the caller"""
        event = await self.get_event(event_id)
        if not event:
            raise NotFoundError("Event not found.")
        if event.owner_user_id != str(owner_user_id):
            logger.warning(f"User {owner_user_id} tried to access event {event_id}")
            raise AuthorizationError("Not authorized to access this event.")
        return event

    async def get_events_by_user(
        self,
        owner_user_id: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> List[Event]:
        """Get a user's events, optionally only those overlapping [start_date, end_date]"""
        try:
            query: Dict[str, Any] = {"owner_user_id": str(owner_user_id)}
            if end_date is not None:
                query["start_time"] = {"$lte": end_date}
            if start_date is not None:
                query["end_time"] = {"$gte": start_date}
            cursor = self.collection.find(query).sort("start_time", 1)
            docs = await cursor.to_list(length=None)
            return [self._to_event(doc) for doc in docs]
        except Exception as e:
            logger.error(f"Error getting user events: {str(e)}")
            raise

    async def get_account_remote_events(self, account_id: str) -> List[Event]:
        """Get every remote-origin event stored for an account"""
        try:
            cursor = self.collection.find({
                "account_id": account_id,
                "external_event_id": {"$ne": None}
            })
            docs = await cursor.to_list(length=None)
            return [self._to_event(doc) for doc in docs]
        except Exception as e:
            logger.error(f"Error getting events for account {account_id}: {str(e)}")
            raise

    async def update_event(self, event_id: str, update_data: Dict[str, Any]) -> Optional[Event]:
        """Update an event"""
        try:
            doc = await self.collection.find_one_and_update(
                {"_id": ObjectId(event_id)},
                {"$set": update_data},
                return_document=ReturnDocument.AFTER
            )
            return self._to_event(doc) if doc else None
        except Exception as e:
            logger.error(f"Error updating event: {str(e)}")
            raise

    async def delete_event(self, event_id: str) -> bool:
        """Delete an event"""
        try:
            result = await self.collection.delete_one({"_id": ObjectId(event_id)})
            return result.deleted_count > 0
        except Exception as e:
            logger.error(f"Error deleting event: {str(e)}")
            raise

    async def insert_remote_event(self, account_id: str, external_event_id: str, event_data: Dict[str, Any]) -> bool:
        """
        Insert a remote-origin event unless (account_id, external_event_id) is
        already stored. Returns True when a new document was written.
        """
        now = datetime.utcnow()
        result = await self.collection.update_one(
            {"account_id": account_id, "external_event_id": external_event_id},
            {"$setOnInsert": {**event_data, "created_at": now}},
            upsert=True
        )
        return result.upserted_id is not None

    async def get_remote_event(self, account_id: str, external_event_id: str) -> Optional[Event]:
        doc = await self.collection.find_one({"account_id": account_id, "external_event_id": external_event_id})
        return self._to_event(doc) if doc else None

    async def update_remote_event(self, account_id: str, external_event_id: str, update_data: Dict[str, Any]) -> bool:
        result = await self.collection.update_one(
            {"account_id": account_id, "external_event_id": external_event_id},
            {"$set": update_data}
        )
        return result.matched_count > 0

    async def delete_remote_events(self, account_id: str, external_event_ids: Iterable[str]) -> int:
        """Hard-delete the given remote events of an account"""
        ids = list(external_event_ids)
        if not ids:
            return 0
        result = await self.collection.delete_many({
            "account_id": account_id,
            "external_event_id": {"$in": ids}
        })
        logger.info(f"Deleted {result.deleted_count} events for account {account_id}")
        return result.deleted_count
