"""SQLAlchemy repositories for the contact database.

Each repository implements the corresponding interface from core/interfaces.py
and extends BaseRepository.

Repositories:
- ContactRepository           — Contact record store: search, create, field writes, soft delete
- ContactGroupRepository      — ContactGroup CRUD and membership
- ContactUploadRepository     — CSV upload bookkeeping
- DisplaySettingsRepository   — keyed display-settings rows

NOTE: ContactVersionRepository lives in versioning/repository.py. It is
append-only and must not grow update or delete methods.
"""

import uuid
from collections.abc import Sequence
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from contact_vault.core.fields import ContactFields
from contact_vault.core.models import (
    Contact,
    ContactGroup,
    ContactGroupMember,
    ContactUpload,
    DisplaySettings,
)
from contact_vault.database import BaseRepository
from contact_vault.errors import NotFoundError, RecordNotFoundError
from contact_vault.observability import get_logger
from contact_vault.search.predicates import PredicateNode
from contact_vault.search.sql import to_clause

logger = get_logger(__name__)

SORTABLE_COLUMNS: dict[str, Any] = {
    "name": Contact.name,
    "email": Contact.email,
    "phone": Contact.phone,
    "address": Contact.address,
    "notes": Contact.notes,
    "created_at": Contact.created_at,
    "updated_at": Contact.updated_at,
}


class ContactRepository(BaseRepository[Contact]):
    """Record store for Contact rows.

    Args:
        session: The request-scoped async session.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize ContactRepository with a database session.

        Args:
            session: The SQLAlchemy async session for the primary DB.
        """
        super().__init__(session, Contact)

    def savepoint(self) -> AbstractAsyncContextManager[Any]:
        return self._session.begin_nested()

    def _search_conditions(self, predicate: PredicateNode, group_id: uuid.UUID | None) -> list[Any]:
        conditions = [Contact.is_active.is_(True), to_clause(predicate, Contact)]
        if group_id is not None:
            members = select(ContactGroupMember.contact_id).where(ContactGroupMember.group_id == group_id)
            conditions.append(Contact.id.in_(members))
        return conditions

    async def get_by_id(self, contact_id: uuid.UUID) -> Contact:
        """Retrieve a contact by ID, active or not.

        Args:
            contact_id: The contact UUID.

        Returns:
            The Contact.

        Raises:
            RecordNotFoundError: If not found.
        """
        contact = await self._session.get(Contact, contact_id)
        if contact is None:
            raise RecordNotFoundError(contact_id)
        return contact

    async def find(
        self,
        predicate: PredicateNode,
        sort_by: str = "name",
        sort_order: str = "asc",
        page: int = 1,
        page_size: int = 20,
        group_id: uuid.UUID | None = None,
    ) -> tuple[list[Contact], int]:
        """Search active contacts.

        Args:
            predicate: Compiled search predicate.
            sort_by: Key of SORTABLE_COLUMNS.
            sort_order: asc or desc.
            page: Page number (1-indexed).
            page_size: Records per page.
            group_id: Optional group membership filter.

        Returns:
            Tuple of (contacts on the requested page, total matches).
        """
        conditions = self._search_conditions(predicate, group_id)
        column = SORTABLE_COLUMNS.get(sort_by, Contact.name)
        ordering = column.desc() if sort_order == "desc" else column.asc()

        stmt = (
            select(Contact)
            .where(*conditions)
            .order_by(ordering, Contact.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        count_stmt = select(func.count()).select_from(Contact).where(*conditions)

        result = await self._session.execute(stmt)
        total = (await self._session.execute(count_stmt)).scalar_one()
        return list(result.scalars().all()), total

    async def find_ids(self, predicate: PredicateNode, group_id: uuid.UUID | None = None) -> list[uuid.UUID]:
        """Return IDs of all active contacts matching a predicate.

        Args:
            predicate: Compiled search predicate.
            group_id: Optional group membership filter.

        Returns:
            List of contact UUIDs.
        """
        stmt = select(Contact.id).where(*self._search_conditions(predicate, group_id))
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def create(self, fields: ContactFields, upload_id: uuid.UUID | None = None) -> Contact:
        """Create and persist a new contact at version 1.

        Args:
            fields: Initial field values.
            upload_id: Optional originating CSV upload.

        Returns:
            The persisted Contact.
        """
        contact = Contact(**fields.as_dict(), version=1, is_active=True, upload_id=upload_id)
        return await self.add(contact)

    async def apply_changes(
        self,
        contact: Contact,
        changes: dict[str, Any],
        version: int,
        updated_at: datetime,
    ) -> Contact:
        """Write field values and the new version onto a loaded contact.

        Args:
            contact: The Contact, attached to this session.
            changes: Field name → new value.
            version: New version number.
            updated_at: Modification timestamp.

        Returns:
            The updated Contact.
        """
        for field, value in changes.items():
            setattr(contact, field, value)
        contact.version = version
        contact.updated_at = updated_at
        await self._session.flush()
        return contact

    async def set_active(self, contact_id: uuid.UUID, is_active: bool) -> Contact:
        """Flip the soft-delete flag.

        Args:
            contact_id: The contact UUID.
            is_active: False to soft-delete, True to reactivate.

        Returns:
            The updated Contact.

        Raises:
            RecordNotFoundError: If not found.
        """
        contact = await self.get_by_id(contact_id)
        contact.is_active = is_active
        await self._session.flush()
        logger.info("Contact active flag changed", contact_id=str(contact_id), is_active=is_active)
        return contact

    async def list_active_created_before(self, target_date: datetime) -> list[Contact]:
        stmt = (
            select(Contact)
            .where(Contact.is_active.is_(True), Contact.created_at <= target_date)
            .order_by(Contact.created_at.asc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_with_null_or_blank(self, fields: Sequence[str]) -> list[Contact]:
        clauses = []
        for field in fields:
            column = getattr(Contact, field)
            clauses.extend([column.is_(None), column == ""])
        result = await self._session.execute(select(Contact).where(or_(*clauses)))
        return list(result.scalars().all())

    async def list_with_address_containing(self, fragment: str) -> list[Contact]:
        stmt = select(Contact).where(Contact.address.contains(fragment, autoescape=True))
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_with_email_oldest_first(self) -> list[Contact]:
        stmt = (
            select(Contact)
            .where(Contact.is_active.is_(True), Contact.email.is_not(None))
            .order_by(Contact.created_at.asc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_active(self) -> list[Contact]:
        result = await self._session.execute(select(Contact).where(Contact.is_active.is_(True)))
        return list(result.scalars().all())


class ContactGroupRepository(BaseRepository[ContactGroup]):
    """Repository for ContactGroup rows and their memberships.

    Args:
        session: The request-scoped async session.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, ContactGroup)

    async def create(self, name: str, description: str | None, color: str) -> ContactGroup:
        group = await self.add(ContactGroup(name=name, description=description, color=color))
        logger.info("Contact group created", group_id=str(group.id), name=name)
        return group

    async def get_by_id(self, group_id: uuid.UUID) -> ContactGroup:
        """Retrieve a group by ID.

        Raises:
            NotFoundError: If not found.
        """
        group = await self._session.get(ContactGroup, group_id)
        if group is None:
            raise NotFoundError(resource="ContactGroup", resource_id=str(group_id))
        return group

    async def list_all(self) -> list[ContactGroup]:
        result = await self._session.execute(select(ContactGroup).order_by(ContactGroup.name.asc()))
        return list(result.scalars().all())

    async def update(self, group_id: uuid.UUID, changes: dict[str, Any]) -> ContactGroup:
        group = await self.get_by_id(group_id)
        for field, value in changes.items():
            setattr(group, field, value)
        await self._session.flush()
        return group

    async def delete(self, group_id: uuid.UUID) -> None:
        group = await self.get_by_id(group_id)
        await self._session.execute(delete(ContactGroupMember).where(ContactGroupMember.group_id == group_id))
        await self._session.delete(group)
        await self._session.flush()
        logger.info("Contact group deleted", group_id=str(group_id))

    async def add_members(self, group_id: uuid.UUID, contact_ids: Sequence[uuid.UUID]) -> int:
        """Add contacts to a group, ignoring those already in it.

        Args:
            group_id: The group UUID.
            contact_ids: Contacts to add.

        Returns:
            Number of contacts that are members after the call, out of those requested.
        """
        await self.get_by_id(group_id)
        requested = list(dict.fromkeys(contact_ids))
        existing_stmt = select(ContactGroupMember.contact_id).where(
            ContactGroupMember.group_id == group_id,
            ContactGroupMember.contact_id.in_(requested),
        )
        existing = set((await self._session.execute(existing_stmt)).scalars().all())
        for contact_id in requested:
            if contact_id not in existing:
                self._session.add(ContactGroupMember(group_id=group_id, contact_id=contact_id))
        await self._session.flush()
        return len(requested)

    async def remove_members(self, group_id: uuid.UUID, contact_ids: Sequence[uuid.UUID]) -> int:
        await self.get_by_id(group_id)
        stmt = delete(ContactGroupMember).where(
            ContactGroupMember.group_id == group_id,
            ContactGroupMember.contact_id.in_(list(contact_ids)),
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0

    async def member_counts(self) -> dict[uuid.UUID, int]:
        stmt = select(ContactGroupMember.group_id, func.count()).group_by(ContactGroupMember.group_id)
        result = await self._session.execute(stmt)
        return {group_id: count for group_id, count in result.all()}


class ContactUploadRepository(BaseRepository[ContactUpload]):
    """Repository for CSV upload progress records."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, ContactUpload)

    async def create(self, filename: str, total_contacts: int) -> ContactUpload:
        upload = ContactUpload(
            filename=filename,
            total_contacts=total_contacts,
            processed_contacts=0,
            status="processing",
        )
        return await self.add(upload)

    async def update_progress(
        self,
        upload: ContactUpload,
        processed_contacts: int,
        status: str | None = None,
    ) -> ContactUpload:
        upload.processed_contacts = processed_contacts
        if status is not None:
            upload.status = status
        await self._session.flush()
        # A rolled-back savepoint expires the row; reload it before it is read.
        await self._session.refresh(upload)
        return upload

    async def list_recent(self, limit: int = 50) -> list[ContactUpload]:
        stmt = select(ContactUpload).order_by(ContactUpload.created_at.desc()).limit(limit)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


class DisplaySettingsRepository(BaseRepository[DisplaySettings]):
    """Repository for keyed DisplaySettings rows."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, DisplaySettings)

    async def get(self, user_key: str) -> DisplaySettings | None:
        stmt = select(DisplaySettings).where(DisplaySettings.user_key == user_key)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, user_key: str, values: dict[str, Any]) -> DisplaySettings:
        return await self.add(DisplaySettings(user_key=user_key, **values))

    async def update(self, settings: DisplaySettings, values: dict[str, Any]) -> DisplaySettings:
        for field, value in values.items():
            setattr(settings, field, value)
        await self._session.flush()
        return settings
