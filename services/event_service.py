from typing import List, Optional
from datetime import datetime
import logging

from models.account import Account
from models.event import AttendeeResponseUpdate, Event, EventCreate, EventDetails, ProviderType, to_naive_utc
from services.account_db import AccountDBService
from services.credential_store import CredentialStore
from services.errors import NotFoundError, ValidationError
from services.event_db import EventDBService
from services.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)


def _stored_fields(details: EventDetails) -> dict:
    return {
        "title": details.title,
        "description": details.description,
        "start_time": to_naive_utc(details.start_time),
        "end_time": to_naive_utc(details.end_time),
        "location": details.location,
        "attendees": [attendee.model_dump(mode="json") for attendee in details.attendees],
        "is_all_day": details.is_all_day,
    }


def _is_mirrored(event: Event) -> bool:
    return event.source_type != ProviderType.CUSTOM and bool(event.external_event_id)


class EventService:
    """
    Local event CRUD. Changes to provider-backed events are written to the
    provider first; if that write fails the local store is left untouched.
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

    async def _account_for(self, event: Event) -> Account:
        account = await self.account_db.get_account(event.account_id)
        if not account:
            raise NotFoundError("Associated calendar account not found.")
        return account

    async def list_events(
        self,
        owner_user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[Event]:
        start = to_naive_utc(start) if start else None
        end = to_naive_utc(end) if end else None
        if start and end and end < start:
            raise ValidationError("end must not be before start")
        return await self.event_db.get_events_by_user(owner_user_id, start, end)

    async def get_event(self, owner_user_id: str, event_id: str) -> Event:
        return await self.event_db.get_owned_event(owner_user_id, event_id)

    async def create_event(self, owner_user_id: str, payload: EventCreate) -> Event:
        account = await self.account_db.get_owned_account(owner_user_id, payload.account_id)

        external_event_id = None
        if account.provider_type != ProviderType.CUSTOM:
            adapter = self.registry.get(account.provider_type)
            access_token, account = await self.credential_store.get_valid_access_token(account)
            external_event_id = await adapter.create_remote_event(access_token, account, payload)

        event_data = {
            "owner_user_id": account.owner_user_id,
            "account_id": account.id,
            "external_event_id": external_event_id,
            **_stored_fields(payload),
            "source_type": account.provider_type.value,
            "is_newly_accepted": False,
            "last_synced_at": datetime.utcnow(),
        }
        if external_event_id:
            # A sync may already have stored this event from the provider feed
            await self.event_db.insert_remote_event(account.id, external_event_id, event_data)
            event = await self.event_db.get_remote_event(account.id, external_event_id)
        else:
            event = await self.event_db.create_event(event_data)
        logger.info(f"Created event {event.id} on {account.provider_type.value} account {account.id}")
        return event

    async def update_event(self, owner_user_id: str, event_id: str, payload: EventDetails) -> Event:
        event = await self.event_db.get_owned_event(owner_user_id, event_id)
        account = await self._account_for(event)

        if _is_mirrored(event):
            adapter = self.registry.get(account.provider_type)
            access_token, account = await self.credential_store.get_valid_access_token(account)
            await adapter.update_remote_event(access_token, account, event.external_event_id, payload)

        updated = await self.event_db.update_event(event.id, {
            **_stored_fields(payload),
            "last_synced_at": datetime.utcnow(),
        })
        if not updated:
            raise NotFoundError("Event not found.")
        logger.info(f"Updated event {event.id}")
        return updated

    async def delete_event(self, owner_user_id: str, event_id: str) -> None:
        event = await self.event_db.get_owned_event(owner_user_id, event_id)

        if _is_mirrored(event):
            account = await self._account_for(event)
            adapter = self.registry.get(account.provider_type)
            access_token, account = await self.credential_store.get_valid_access_token(account)
            await adapter.delete_remote_event(access_token, account, event.external_event_id)

        await self.event_db.delete_event(event.id)
        logger.info(f"Deleted event {event.id}")

    async def set_attendee_response(
        self, owner_user_id: str, event_id: str, payload: AttendeeResponseUpdate
    ) -> Event:
        event = await self.event_db.get_owned_event(owner_user_id, event_id)

        attendees = [attendee.model_copy() for attendee in event.attendees]
        match = next((a for a in attendees if a.email == payload.attendee_email), None)
        if match is None:
            raise NotFoundError("Attendee not found in this event.")
        match.status = payload.status

        if _is_mirrored(event):
            account = await self._account_for(event)
            adapter = self.registry.get(account.provider_type)
            access_token, account = await self.credential_store.get_valid_access_token(account)
            await adapter.set_attendee_response(
                access_token, account, event.external_event_id, payload.attendee_email, payload.status
            )

        updated = await self.event_db.update_event(event.id, {
            "attendees": [attendee.model_dump(mode="json") for attendee in attendees]
        })
        if not updated:
            raise NotFoundError("Event not found.")
        logger.info(f"Set attendee {payload.attendee_email} to {payload.status.value} on event {event.id}")
        return updated
