from typing import Dict, List, Optional
from datetime import datetime
import logging

from models.account import Account
from models.event import AttendeeStatus, Event, NormalizedEvent, SyncReport
from services.errors import PartialReconciliationError
from services.event_db import EventDBService

logger = logging.getLogger(__name__)


def owner_status(event: Event, owner_email: str) -> Optional[AttendeeStatus]:
    owner_email = owner_email.strip().lower()
    for attendee in event.attendees:
        if attendee.email == owner_email:
            return attendee.status
    return None


def is_newly_accepted(previous: Optional[AttendeeStatus], current: Optional[AttendeeStatus]) -> bool:
    return previous == AttendeeStatus.PENDING and current == AttendeeStatus.ACCEPTED


class Reconciler:
    """Applies one fetch to the local store as create / update / delete sets."""

    def __init__(self, event_db: EventDBService):
        self.event_db = event_db

    async def reconcile(
        self,
        account: Account,
        remote_set: List[NormalizedEvent],
        local_set: List[Event],
        authoritative: bool = True
    ) -> SyncReport:
        """
        With ``authoritative`` (a full-window snapshot) every local event absent
        from ``remote_set`` is deleted. An incremental delta only deletes the
        events the provider marked cancelled.

        Deletes, then creates, then updates. Not transactional: a failure part
        way raises PartialReconciliationError and keeps what was applied.
        """
        local_by_id: Dict[str, Event] = {event.external_event_id: event for event in local_set}
        local_ids = set(local_by_id)
        to_delete = set(local_ids) if authoritative else set()
        to_create: List[NormalizedEvent] = []
        to_update: List[NormalizedEvent] = []

        for remote in remote_set:
            event_id = remote.external_event_id
            if remote.cancelled:
                if event_id in local_ids:
                    to_delete.add(event_id)
                continue
            if event_id in local_ids:
                to_update.append(remote)
                to_delete.discard(event_id)
            else:
                to_create.append(remote)

        report = SyncReport()
        try:
            if to_delete:
                report.deleted = await self.event_db.delete_remote_events(account.id, to_delete)

            for remote in to_create:
                if await self._create(account, remote):
                    report.created += 1

            for remote in to_update:
                await self._update(account, local_by_id[remote.external_event_id], remote)
                report.updated += 1
        except Exception as e:
            logger.error(
                f"Reconciliation for account {account.id} failed after "
                f"{report.deleted} deletes, {report.created} creates, {report.updated} updates: {str(e)}"
            )
            raise PartialReconciliationError(
                f"Reconciliation for account {account.id} failed: {str(e)}",
                created=report.created,
                updated=report.updated,
                deleted=report.deleted
            ) from e

        logger.info(
            f"Reconciled account {account.id}: created {report.created}, "
            f"updated {report.updated}, deleted {report.deleted}"
        )
        return report

    async def _create(self, account: Account, remote: NormalizedEvent) -> bool:
        # A first-seen event is never "newly accepted", even if already accepted remotely
        return await self.event_db.insert_remote_event(
            account.id,
            remote.external_event_id,
            {
                "owner_user_id": account.owner_user_id,
                "account_id": account.id,
                "external_event_id": remote.external_event_id,
                **remote.mutable_fields(),
                "source_type": account.provider_type.value,
                "is_newly_accepted": False,
                "last_synced_at": datetime.utcnow(),
            }
        )

    async def _update(self, account: Account, local: Event, remote: NormalizedEvent) -> None:
        previous = owner_status(local, account.owner_email)
        await self.event_db.update_remote_event(
            account.id,
            remote.external_event_id,
            {
                **remote.mutable_fields(),
                "is_newly_accepted": is_newly_accepted(previous, remote.owner_response),
                "last_synced_at": datetime.utcnow(),
            }
        )
