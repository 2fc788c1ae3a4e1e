"""Append-only persistence for contact version snapshots.

ContactVersion rows are inserted, never updated or deleted. Each insert runs
inside a SAVEPOINT so that a failed snapshot (for instance a duplicate
(contact_id, version) from two concurrent edits) rolls back only itself and
leaves the caller's transaction usable for the mutation that follows.
"""

import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from contact_vault.core.fields import ContactFields
from contact_vault.core.models import ContactVersion, new_contact_version
from contact_vault.database import BaseRepository
from contact_vault.observability import get_logger

logger = get_logger(__name__)


class ContactVersionRepository(BaseRepository[ContactVersion]):
    """Repository for ContactVersion snapshots.

    Deliberately has no update or delete methods.

    Args:
        session: The request-scoped async session.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize with a database session.

        Args:
            session: The SQLAlchemy async session for the primary DB.
        """
        super().__init__(session, ContactVersion)

    async def create_snapshot(
        self,
        contact_id: uuid.UUID,
        version: int,
        fields: ContactFields,
        taken_at: datetime,
    ) -> ContactVersion:
        """Insert a snapshot inside its own SAVEPOINT.

        Args:
            contact_id: UUID of the contact being snapshotted.
            version: The version number the values represent.
            fields: Field values at that version.
            taken_at: When the snapshot was taken.

        Returns:
            The persisted ContactVersion.
        """
        snapshot = new_contact_version(contact_id, version, fields.as_dict(), taken_at)
        async with self._session.begin_nested():
            self._session.add(snapshot)
            await self._session.flush()
        logger.debug("Stored contact snapshot", contact_id=str(contact_id), version=version)
        return snapshot

    async def find_snapshot(self, contact_id: uuid.UUID, version: int) -> ContactVersion | None:
        """Retrieve the snapshot for a specific version.

        Args:
            contact_id: The contact UUID.
            version: The version number to retrieve.

        Returns:
            The ContactVersion, or None if no such snapshot exists.
        """
        stmt = select(ContactVersion).where(
            ContactVersion.contact_id == contact_id,
            ContactVersion.version == version,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_latest_snapshot_before(
        self,
        contact_id: uuid.UUID,
        timestamp: datetime,
    ) -> ContactVersion | None:
        """Retrieve the highest-version snapshot taken at or before a timestamp.

        Args:
            contact_id: The contact UUID.
            timestamp: Inclusive upper bound on the snapshot's created_at.

        Returns:
            The ContactVersion, or None if the contact has no snapshot that old.
        """
        stmt = (
            select(ContactVersion)
            .where(
                ContactVersion.contact_id == contact_id,
                ContactVersion.created_at <= timestamp,
            )
            .order_by(ContactVersion.version.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_contact(self, contact_id: uuid.UUID) -> list[ContactVersion]:
        """List every snapshot of a contact, newest version first.

        Args:
            contact_id: The contact UUID.

        Returns:
            List of ContactVersion ordered by version descending.
        """
        stmt = (
            select(ContactVersion)
            .where(ContactVersion.contact_id == contact_id)
            .order_by(ContactVersion.version.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())
