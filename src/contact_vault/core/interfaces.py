"""Abstract interfaces (Protocol classes) for contact-vault.

Defines the contracts between the service layer and the adapter layer using
typing.Protocol. Services depend on these protocols, never on the concrete
SQLAlchemy repositories, so they can be tested with mocks or in-memory fakes.

Protocols defined:
- IContactRepository
- IContactVersionRepository
- IContactGroupRepository
- IContactUploadRepository
- IDisplaySettingsRepository
"""

import uuid
from collections.abc import Sequence
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Any, Protocol

from contact_vault.core.fields import ContactFields
from contact_vault.core.models import (
    Contact,
    ContactGroup,
    ContactUpload,
    ContactVersion,
    DisplaySettings,
)
from contact_vault.search.predicates import PredicateNode


class IContactRepository(Protocol):
    """Record store contract for Contact persistence."""

    async def get_by_id(self, contact_id: uuid.UUID) -> Contact:
        """Retrieve a contact by ID.

        Args:
            contact_id: The contact UUID.

        Returns:
            The Contact.

        Raises:
            RecordNotFoundError: If no contact exists with the given ID.
        """
        ...

    async def find(
        self,
        predicate: PredicateNode,
        sort_by: str = "name",
        sort_order: str = "asc",
        page: int = 1,
        page_size: int = 20,
        group_id: uuid.UUID | None = None,
    ) -> tuple[list[Contact], int]:
        """Return one page of active contacts matching a predicate, plus the total count.

        Args:
            predicate: Compiled search predicate.
            sort_by: Column to order by.
            sort_order: asc or desc.
            page: Page number (1-indexed).
            page_size: Records per page.
            group_id: Restrict to members of this group.

        Returns:
            Tuple of (contacts on the page, total number of matches).
        """
        ...

    async def find_ids(self, predicate: PredicateNode, group_id: uuid.UUID | None = None) -> list[uuid.UUID]:
        """Return the IDs of every active contact matching a predicate."""
        ...

    async def create(self, fields: ContactFields, upload_id: uuid.UUID | None = None) -> Contact:
        """Create a contact at version 1.

        Args:
            fields: Initial field values.
            upload_id: CSV upload that produced the contact, if any.

        Returns:
            The persisted Contact.
        """
        ...

    async def apply_changes(
        self,
        contact: Contact,
        changes: dict[str, Any],
        version: int,
        updated_at: datetime,
    ) -> Contact:
        """Write field changes and the new version number onto a contact.

        Args:
            contact: The loaded Contact.
            changes: Searchable field name → new value.
            version: The contact's new version number.
            updated_at: Modification timestamp.

        Returns:
            The updated Contact.
        """
        ...

    async def set_active(self, contact_id: uuid.UUID, is_active: bool) -> Contact:
        """Soft-delete or reactivate a contact.

        Raises:
            RecordNotFoundError: If the contact does not exist.
        """
        ...

    async def list_active_created_before(self, target_date: datetime) -> list[Contact]:
        """List active contacts created on or before a timestamp."""
        ...

    async def list_with_null_or_blank(self, fields: Sequence[str]) -> list[Contact]:
        """List contacts where any of `fields` is null or an empty string."""
        ...

    async def list_with_address_containing(self, fragment: str) -> list[Contact]:
        """List contacts whose address contains `fragment` verbatim."""
        ...

    async def list_with_email_oldest_first(self) -> list[Contact]:
        """List active contacts that have an e-mail, oldest first."""
        ...

    async def list_active(self) -> list[Contact]:
        """List every active contact."""
        ...

    def savepoint(self) -> AbstractAsyncContextManager[Any]:
        """Return a context manager scoping work to a SAVEPOINT.

        Work inside it that raises is rolled back without affecting the
        enclosing transaction.
        """
        ...


class IContactVersionRepository(Protocol):
    """Append-only snapshot store contract."""

    async def create_snapshot(
        self,
        contact_id: uuid.UUID,
        version: int,
        fields: ContactFields,
        taken_at: datetime,
    ) -> ContactVersion:
        """Persist an immutable snapshot.

        Args:
            contact_id: The contact the snapshot belongs to.
            version: The version number the values represent.
            fields: The field values.
            taken_at: Snapshot timestamp.

        Returns:
            The persisted ContactVersion.
        """
        ...

    async def find_snapshot(self, contact_id: uuid.UUID, version: int) -> ContactVersion | None:
        """Return the snapshot for (contact_id, version), or None."""
        ...

    async def find_latest_snapshot_before(
        self,
        contact_id: uuid.UUID,
        timestamp: datetime,
    ) -> ContactVersion | None:
        """Return the highest-version snapshot taken at or before `timestamp`, or None."""
        ...

    async def list_for_contact(self, contact_id: uuid.UUID) -> list[ContactVersion]:
        """List all snapshots of a contact, newest version first."""
        ...


class IContactGroupRepository(Protocol):
    """Repository contract for ContactGroup persistence and membership."""

    async def create(self, name: str, description: str | None, color: str) -> ContactGroup:
        ...

    async def get_by_id(self, group_id: uuid.UUID) -> ContactGroup:
        """Raises NotFoundError if the group does not exist."""
        ...

    async def list_all(self) -> list[ContactGroup]:
        ...

    async def update(self, group_id: uuid.UUID, changes: dict[str, Any]) -> ContactGroup:
        ...

    async def delete(self, group_id: uuid.UUID) -> None:
        ...

    async def add_members(self, group_id: uuid.UUID, contact_ids: Sequence[uuid.UUID]) -> int:
        ...

    async def remove_members(self, group_id: uuid.UUID, contact_ids: Sequence[uuid.UUID]) -> int:
        ...

    async def member_counts(self) -> dict[uuid.UUID, int]:
        ...


class IContactUploadRepository(Protocol):
    """Repository contract for CSV upload bookkeeping."""

    async def create(self, filename: str, total_contacts: int) -> ContactUpload:
        ...

    async def update_progress(
        self,
        upload: ContactUpload,
        processed_contacts: int,
        status: str | None = None,
    ) -> ContactUpload:
        ...

    async def list_recent(self, limit: int = 50) -> list[ContactUpload]:
        ...


class IDisplaySettingsRepository(Protocol):
    """Repository contract for the keyed display-settings singleton."""

    async def get(self, user_key: str) -> DisplaySettings | None:
        ...

    async def create(self, user_key: str, values: dict[str, Any]) -> DisplaySettings:
        ...

    async def update(self, settings: DisplaySettings, values: dict[str, Any]) -> DisplaySettings:
        ...
