"""Contact versioning and restore.

Every field mutation of a contact goes through VersionService.record_mutation,
which first snapshots the contact's current values under its current version
number and then applies the change with version + 1. Restoring never rewinds
the counter: it records a new version whose content equals an older one.

Snapshot writes are best effort. A failed snapshot is logged and the
mutation still proceeds, so history can have gaps but edits are never lost.

There is no locking. Two concurrent mutations of one contact may snapshot
stale values or collide on (contact_id, version); the collision shows up as
a logged snapshot failure.
"""

import uuid
from collections.abc import Callable, Mapping
from datetime import UTC, datetime

from contact_vault.core.fields import SEARCHABLE_FIELDS, ContactFields
from contact_vault.core.interfaces import IContactRepository, IContactVersionRepository
from contact_vault.core.models import Contact, ContactVersion
from contact_vault.database import utcnow
from contact_vault.errors import SnapshotWriteFailed, VersionNotFoundError
from contact_vault.observability import get_logger

logger = get_logger(__name__)


class VersionService:
    """Snapshot-before-mutate protocol plus single-record and bulk restore.

    Args:
        contact_repo: Record store for contacts.
        version_repo: Append-only snapshot store.
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        contact_repo: IContactRepository,
        version_repo: IContactVersionRepository,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._contact_repo = contact_repo
        self._version_repo = version_repo
        self._clock = clock

    async def snapshot_before_update(self, contact: Contact) -> ContactVersion | None:
        """Persist the contact's current values under its current version.

        Failures are logged and swallowed.

        Args:
            contact: The contact about to be mutated.

        Returns:
            The stored snapshot, or None if the write failed.
        """
        try:
            return await self._version_repo.create_snapshot(
                contact_id=contact.id,
                version=contact.version,
                fields=ContactFields.from_record(contact),
                taken_at=self._clock(),
            )
        except Exception as exc:
            failure = SnapshotWriteFailed(contact.id, contact.version, exc)
            logger.error(
                "Failed to write contact snapshot, continuing with mutation",
                contact_id=str(contact.id),
                version=contact.version,
                error=failure.message,
            )
            return None

    async def record_mutation(
        self,
        contact: Contact,
        changes: Mapping[str, str | None],
        reason: str = "update",
    ) -> Contact:
        """Snapshot the contact, then apply `changes` as the next version.

        This is the only supported way to change a contact's fields.

        Args:
            contact: The loaded contact.
            changes: Searchable field name → new value. May be empty, in which
                case only the version advances.
            reason: Short label for logs (update, restore, cleanup, ...).

        Returns:
            The updated contact.

        Raises:
            ValueError: If `changes` names a field outside SEARCHABLE_FIELDS.
        """
        unknown = set(changes) - set(SEARCHABLE_FIELDS)
        if unknown:
            raise ValueError(f"Not a versioned contact field: {', '.join(sorted(unknown))}")

        previous_version = contact.version
        await self.snapshot_before_update(contact)

        updated = await self._contact_repo.apply_changes(
            contact,
            dict(changes),
            version=previous_version + 1,
            updated_at=self._clock(),
        )
        logger.info(
            "Contact mutated",
            contact_id=str(contact.id),
            reason=reason,
            from_version=previous_version,
            to_version=updated.version,
            fields=sorted(changes),
        )
        return updated

    async def restore_to_version(self, contact_id: uuid.UUID, target_version: int) -> Contact:
        """Restore a contact's fields to those of an earlier version.

        The restore is itself a new version (current + 1), and the pre-restore
        values are snapshotted first so the restore can be undone.

        Args:
            contact_id: The contact UUID.
            target_version: The version whose values to bring back.

        Returns:
            The restored contact.

        Raises:
            RecordNotFoundError: If the contact does not exist.
            VersionNotFoundError: If no snapshot exists for target_version.
        """
        contact = await self._contact_repo.get_by_id(contact_id)
        snapshot = await self._version_repo.find_snapshot(contact_id, target_version)
        if snapshot is None:
            raise VersionNotFoundError(contact_id, target_version)

        restored = await self.record_mutation(
            contact,
            ContactFields.from_record(snapshot).as_dict(),
            reason=f"restore:v{target_version}",
        )
        logger.info(
            "Contact restored to version",
            contact_id=str(contact_id),
            restored_from=target_version,
            new_version=restored.version,
        )
        return restored

    async def restore_all_to_date(self, target_date: datetime) -> int:
        """Roll every active contact back to its latest snapshot at or before a date.

        Contacts created after `target_date`, contacts with no snapshot that
        old, and contacts whose current values already equal that snapshot
        are left untouched. Each contact is restored inside its own savepoint
        and a failure is logged without aborting the rest of the batch.

        Args:
            target_date: Point in time to restore to. A naive datetime is
                taken as UTC.

        Returns:
            Number of contacts whose field values changed.
        """
        if target_date.tzinfo is None:
            target_date = target_date.replace(tzinfo=UTC)

        contacts = await self._contact_repo.list_active_created_before(target_date)
        logger.info("Restoring contacts to date", target_date=target_date.isoformat(), candidates=len(contacts))

        restored = 0
        for contact in contacts:
            contact_id = contact.id
            try:
                async with self._contact_repo.savepoint():
                    changed = await self._restore_contact_to_date(contact, target_date)
            except Exception as exc:
                logger.error(
                    "Failed to restore contact to date, skipping",
                    contact_id=str(contact_id),
                    error=str(exc),
                )
                continue
            if changed:
                restored += 1

        logger.info("Bulk restore to date complete", target_date=target_date.isoformat(), restored=restored)
        return restored

    async def _restore_contact_to_date(self, contact: Contact, target_date: datetime) -> bool:
        snapshot = await self._version_repo.find_latest_snapshot_before(contact.id, target_date)
        if snapshot is None:
            return False

        target_fields = ContactFields.from_record(snapshot)
        if target_fields == ContactFields.from_record(contact):
            return False

        await self.record_mutation(contact, target_fields.as_dict(), reason=f"restore:date:v{snapshot.version}")
        return True

    async def list_versions(self, contact_id: uuid.UUID) -> list[ContactVersion]:
        """Return a contact's snapshot history, newest version first.

        Raises:
            RecordNotFoundError: If the contact does not exist.
        """
        await self._contact_repo.get_by_id(contact_id)
        return await self._version_repo.list_for_contact(contact_id)
