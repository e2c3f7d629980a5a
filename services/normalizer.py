"""
Maps provider-native event payloads onto the canonical event shape.

Google payloads are the reference. Microsoft Graph field names
(``subject``, ``bodyPreview``, ``emailAddress``, ``status.response``) are
read as fallbacks so a Graph adapter can reuse the same mapping.
"""
from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime
import logging

from models.event import Attendee, AttendeeStatus, NormalizedEvent, to_naive_utc

logger = logging.getLogger(__name__)

ACCEPTED_VALUES = {"accepted", "tentative", "tentativelyaccepted"}
DECLINED_VALUES = {"declined"}


def normalize_status(value: Optional[str]) -> AttendeeStatus:
    """Collapse any provider response value onto accepted / declined / pending"""
    if not value:
        return AttendeeStatus.PENDING
    value = value.strip().lower()
    if value in ACCEPTED_VALUES:
        return AttendeeStatus.ACCEPTED
    if value in DECLINED_VALUES:
        return AttendeeStatus.DECLINED
    return AttendeeStatus.PENDING


def _email_of(person: Optional[Dict[str, Any]]) -> Optional[str]:
    if not person:
        return None
    email = person.get("email") or (person.get("emailAddress") or {}).get("address")
    return email.strip().lower() if email else None


def _parse_time(boundary: Dict[str, Any]) -> datetime:
    """Handle both datetime and all-day date-only boundaries"""
    value = boundary.get("dateTime") or boundary.get("date")
    return to_naive_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def _is_date_only(boundary: Dict[str, Any]) -> bool:
    return bool(boundary.get("date")) and not boundary.get("dateTime")


def _attendee_status(attendee: Dict[str, Any]) -> Optional[str]:
    status = attendee.get("responseStatus")
    if status is None and isinstance(attendee.get("status"), dict):
        status = attendee["status"].get("response")
    return status


def normalize_attendees(
    payload: Dict[str, Any], owner_email: Optional[str]
) -> Tuple[List[Attendee], Optional[AttendeeStatus]]:
    """Attendee list plus the account owner's own response (None if not invited)"""
    organizer_email = _email_of(payload.get("organizer"))
    owner_email = owner_email.strip().lower() if owner_email else None
    attendees = []
    owner_response = None
    for raw in payload.get("attendees") or []:
        email = _email_of(raw)
        if not email:
            continue
        status = normalize_status(_attendee_status(raw))
        is_organizer = (
            (organizer_email is not None and email == organizer_email)
            or raw.get("organizer") is True
            or raw.get("type") == "organizer"
        )
        attendees.append(Attendee(email=email, status=status, is_organizer=is_organizer))
        if owner_email and email == owner_email:
            owner_response = status
    return attendees, owner_response


def normalize_event(payload: Dict[str, Any], owner_email: Optional[str]) -> Optional[NormalizedEvent]:
    """
    Build the canonical event for one provider payload.

    Returns None for payloads that cannot be stored: no identifier at all, or
    a live (not cancelled) event missing its start or end.
    """
    external_event_id = payload.get("id") or payload.get("iCalUID")
    if not external_event_id:
        logger.warning("Discarding provider event without an identifier")
        return None

    if payload.get("status") == "cancelled":
        return NormalizedEvent(external_event_id=external_event_id, cancelled=True)

    start = payload.get("start") or {}
    end = payload.get("end") or {}
    if not (start.get("dateTime") or start.get("date")) or not (end.get("dateTime") or end.get("date")):
        logger.warning(f"Discarding provider event {external_event_id} without start/end")
        return None

    location = payload.get("location")
    if isinstance(location, dict):
        location = location.get("displayName")

    attendees, owner_response = normalize_attendees(payload, owner_email)
    return NormalizedEvent(
        external_event_id=external_event_id,
        title=payload.get("summary") or payload.get("subject") or "(No title)",
        description=payload.get("description") or payload.get("bodyPreview"),
        start_time=_parse_time(start),
        end_time=_parse_time(end),
        location=location or None,
        attendees=attendees,
        is_all_day=_is_date_only(start),
        owner_response=owner_response,
    )


def normalize_events(payloads: List[Dict[str, Any]], owner_email: Optional[str]) -> List[NormalizedEvent]:
    """Normalize a fetch, dropping unusable payloads and keeping the last copy of a repeated ID"""
    by_id: Dict[str, NormalizedEvent] = {}
    for payload in payloads:
        try:
            event = normalize_event(payload, owner_email)
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Discarding malformed provider event {payload.get('id')}: {str(e)}")
            continue
        if event is not None:
            by_id[event.external_event_id] = event
    return list(by_id.values())
