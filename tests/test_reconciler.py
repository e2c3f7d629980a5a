from datetime import datetime
from unittest.mock import AsyncMock

import pytest

from models.event import AttendeeStatus
from services.errors import PartialReconciliationError
from services.normalizer import normalize_events
from services.reconciler import Reconciler, is_newly_accepted
from tests.fakes.fake_provider import google_payload

OWNER = "owner@example.com"


def invite(status):
    return [{"email": OWNER, "responseStatus": status}, {"email": "boss@example.com", "responseStatus": "accepted"}]


async def reconcile(event_db, account, payloads, authoritative=True):
    reconciler = Reconciler(event_db)
    local = await event_db.get_account_remote_events(account.id)
    return await reconciler.reconcile(account, normalize_events(payloads, OWNER), local, authoritative)


def test_newly_accepted_only_on_pending_to_accepted():
    assert is_newly_accepted(AttendeeStatus.PENDING, AttendeeStatus.ACCEPTED) is True
    assert is_newly_accepted(None, AttendeeStatus.ACCEPTED) is False
    assert is_newly_accepted(AttendeeStatus.ACCEPTED, AttendeeStatus.ACCEPTED) is False
    assert is_newly_accepted(AttendeeStatus.DECLINED, AttendeeStatus.ACCEPTED) is False
    assert is_newly_accepted(AttendeeStatus.PENDING, AttendeeStatus.DECLINED) is False


@pytest.mark.asyncio
async def test_snapshot_creates_updates_and_deletes_by_absence(make_account, event_db):
    account = await make_account()
    first = await reconcile(event_db, account, [google_payload("a"), google_payload("b")])
    assert (first.created, first.updated, first.deleted) == (2, 0, 0)

    second = await reconcile(event_db, account, [google_payload("a", title="Renamed"), google_payload("c")])

    assert (second.created, second.updated, second.deleted) == (1, 1, 1)
    events = {e.external_event_id: e for e in await event_db.get_account_remote_events(account.id)}
    assert set(events) == {"a", "c"}
    assert events["a"].title == "Renamed"
    assert events["c"].source_type.value == "google"


@pytest.mark.asyncio
async def test_same_snapshot_twice_is_idempotent(make_account, event_db):
    account = await make_account()
    payloads = [google_payload("a"), google_payload("b")]
    await reconcile(event_db, account, payloads)

    report = await reconcile(event_db, account, payloads)

    assert (report.created, report.deleted) == (0, 0)
    assert len(await event_db.get_account_remote_events(account.id)) == 2


@pytest.mark.asyncio
async def test_newly_accepted_flag_follows_owner_transition(make_account, event_db):
    account = await make_account()

    await reconcile(event_db, account, [google_payload("a", attendees=invite("needsAction"))])
    [event] = await event_db.get_account_remote_events(account.id)
    assert event.is_newly_accepted is False

    await reconcile(event_db, account, [google_payload("a", attendees=invite("accepted"))])
    [event] = await event_db.get_account_remote_events(account.id)
    assert event.is_newly_accepted is True

    await reconcile(event_db, account, [google_payload("a", attendees=invite("accepted"))])
    [event] = await event_db.get_account_remote_events(account.id)
    assert event.is_newly_accepted is False


@pytest.mark.asyncio
async def test_first_seen_accepted_event_is_not_newly_accepted(make_account, event_db):
    account = await make_account()

    await reconcile(event_db, account, [google_payload("a", attendees=invite("accepted"))])

    [event] = await event_db.get_account_remote_events(account.id)
    assert event.is_newly_accepted is False


@pytest.mark.asyncio
async def test_incremental_delta_only_deletes_cancelled(make_account, event_db):
    account = await make_account()
    await reconcile(event_db, account, [google_payload("a"), google_payload("b"), google_payload("c")])

    report = await reconcile(
        event_db, account,
        [google_payload("b", title="Moved"), {"id": "c", "status": "cancelled"}, {"id": "zz", "status": "cancelled"}],
        authoritative=False
    )

    assert (report.created, report.updated, report.deleted) == (0, 1, 1)
    ids = {e.external_event_id for e in await event_db.get_account_remote_events(account.id)}
    assert ids == {"a", "b"}


@pytest.mark.asyncio
async def test_custom_events_are_never_reconciled(make_account, event_db):
    account = await make_account()
    await event_db.create_event({
        "owner_user_id": account.owner_user_id,
        "account_id": account.id,
        "external_event_id": None,
        "title": "Local",
        "start_time": datetime(2026, 3, 2, 9, 0),
        "end_time": datetime(2026, 3, 2, 10, 0),
        "source_type": "custom",
    })

    await reconcile(event_db, account, [])

    assert len(await event_db.get_events_by_user(account.owner_user_id)) == 1


@pytest.mark.asyncio
async def test_failure_mid_batch_reports_applied_counts(make_account, event_db):
    account = await make_account()
    await reconcile(event_db, account, [google_payload("a")])
    event_db.insert_remote_event = AsyncMock(side_effect=RuntimeError("write failed"))

    with pytest.raises(PartialReconciliationError) as exc_info:
        await reconcile(event_db, account, [google_payload("b")])

    assert exc_info.value.deleted == 1
    assert exc_info.value.created == 0
