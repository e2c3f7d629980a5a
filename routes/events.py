from fastapi import APIRouter, Depends
from typing import Optional
from datetime import datetime
import logging

from models.event import AttendeeResponseUpdate, EventCreate, EventDetails
from services.event_service import EventService
from routes.session import current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])


def init_events_routes(event_service: EventService):

    @router.post("", status_code=201)
    async def create_event(payload: EventCreate, user=Depends(current_user)):
        """Create an event, mirroring it to the provider for non-custom calendars"""
        event = await event_service.create_event(user["id"], payload)
        return {"message": "Event created successfully", "event": event.model_dump(mode="json")}

    @router.get("")
    async def get_events(
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        user=Depends(current_user)
    ):
        """Get the caller's events across all calendars, optionally within a time range"""
        events = await event_service.list_events(user["id"], start, end)
        logger.info(f"Retrieved {len(events)} events for user {user['id']}")
        return [event.model_dump(mode="json") for event in events]

    @router.get("/{event_id}")
    async def get_event(event_id: str, user=Depends(current_user)):
        event = await event_service.get_event(user["id"], event_id)
        return event.model_dump(mode="json")

    @router.patch("/{event_id}")
    async def update_event(event_id: str, payload: EventDetails, user=Depends(current_user)):
        event = await event_service.update_event(user["id"], event_id, payload)
        return {"message": "Event updated successfully", "event": event.model_dump(mode="json")}

    @router.delete("/{event_id}")
    async def delete_event(event_id: str, user=Depends(current_user)):
        await event_service.delete_event(user["id"], event_id)
        return {"message": "Event removed successfully"}

    @router.patch("/{event_id}/attendees")
    async def update_attendee_status(event_id: str, payload: AttendeeResponseUpdate, user=Depends(current_user)):
        event = await event_service.set_attendee_response(user["id"], event_id, payload)
        return {"message": "Attendee status updated successfully", "event": event.model_dump(mode="json")}

    return router
