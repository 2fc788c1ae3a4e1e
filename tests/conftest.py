"""Test fixtures for contact-vault.

Provides:
- FakeClock: a controllable UTC clock injected into VersionService
- InMemoryContactRepository: IContactRepository over a dict of Contact rows
- InMemoryVersionRepository: IContactVersionRepository over a list of snapshots
- make_contact: build a transient Contact with explicit timestamps
- clock / contact_repo / version_repo / version_service fixtures
"""

import uuid
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from contact_vault.core.fields import SEARCHABLE_FIELDS, ContactFields
from contact_vault.core.models import Contact, ContactVersion, new_contact_version
from contact_vault.errors import RecordNotFoundError
from contact_vault.search.predicates import PredicateNode
from contact_vault.versioning.service import VersionService

T0 = datetime(2024, 1, 1, 9, 0, tzinfo=UTC)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_contact(
    created_at: datetime = T0,
    version: int = 1,
    is_active: bool = True,
    **fields: str | None,
) -> Contact:
    """Create a transient Contact ORM object for tests.

    Args:
        created_at: Creation (and last update) timestamp.
        version: Current version number.
        is_active: Soft-delete flag.
        **fields: Searchable field values; unspecified fields are null.

    Returns:
        A Contact that is not attached to any session.
    """
    values = {field: fields.get(field) for field in SEARCHABLE_FIELDS}
    return Contact(
        id=uuid.uuid4(),
        version=version,
        is_active=is_active,
        upload_id=None,
        created_at=created_at,
        updated_at=created_at,
        **values,
    )


class InMemoryContactRepository:
    """Dict-backed IContactRepository.

    `fail_on` holds contact IDs whose apply_changes() raises, to exercise
    per-record failure handling. `members` maps group ID to contact IDs.
    """

    def __init__(self) -> None:
        self.contacts: dict[uuid.UUID, Contact] = {}
        self.members: dict[uuid.UUID, set[uuid.UUID]] = {}
        self.fail_on: set[uuid.UUID] = set()
        self.savepoints = 0

    def put(self, *contacts: Contact) -> None:
        for contact in contacts:
            self.contacts[contact.id] = contact

    @asynccontextmanager
    async def _savepoint(self) -> AsyncIterator[None]:
        self.savepoints += 1
        kept = dict(self.contacts)
        try:
            yield
        except Exception:
            # Like a SAVEPOINT rollback: rows inserted inside it disappear.
            self.contacts = kept
            raise

    def savepoint(self) -> Any:
        return self._savepoint()

    def _search(self, predicate: PredicateNode, group_id: uuid.UUID | None) -> list[Contact]:
        allowed = self.members.get(group_id, set()) if group_id is not None else None
        return [
            c
            for c in self.contacts.values()
            if c.is_active and predicate.matches(c) and (allowed is None or c.id in allowed)
        ]

    async def get_by_id(self, contact_id: uuid.UUID) -> Contact:
        if contact_id not in self.contacts:
            raise RecordNotFoundError(contact_id)
        return self.contacts[contact_id]

    async def find(
        self,
        predicate: PredicateNode,
        sort_by: str = "name",
        sort_order: str = "asc",
        page: int = 1,
        page_size: int = 20,
        group_id: uuid.UUID | None = None,
    ) -> tuple[list[Contact], int]:
        matched = self._search(predicate, group_id)
        matched.sort(key=lambda c: (getattr(c, sort_by) or ""), reverse=sort_order == "desc")
        start = (page - 1) * page_size
        return matched[start : start + page_size], len(matched)

    async def find_ids(self, predicate: PredicateNode, group_id: uuid.UUID | None = None) -> list[uuid.UUID]:
        return [c.id for c in self._search(predicate, group_id)]

    async def create(self, fields: ContactFields, upload_id: uuid.UUID | None = None) -> Contact:
        contact = make_contact(**fields.as_dict())
        contact.upload_id = upload_id
        self.put(contact)
        return contact

    async def apply_changes(
        self,
        contact: Contact,
        changes: dict[str, Any],
        version: int,
        updated_at: datetime,
    ) -> Contact:
        if contact.id in self.fail_on:
            raise RuntimeError(f"write failed for {contact.id}")
        for field, value in changes.items():
            setattr(contact, field, value)
        contact.version = version
        contact.updated_at = updated_at
        return contact

    async def set_active(self, contact_id: uuid.UUID, is_active: bool) -> Contact:
        contact = await self.get_by_id(contact_id)
        contact.is_active = is_active
        return contact

    async def list_active_created_before(self, target_date: datetime) -> list[Contact]:
        return [c for c in self.contacts.values() if c.is_active and c.created_at <= target_date]

    async def list_with_null_or_blank(self, fields: Sequence[str]) -> list[Contact]:
        return [c for c in self.contacts.values() if any(not getattr(c, f) for f in fields)]

    async def list_with_address_containing(self, fragment: str) -> list[Contact]:
        return [c for c in self.contacts.values() if c.address and fragment in c.address]

    async def list_with_email_oldest_first(self) -> list[Contact]:
        found = [c for c in self.contacts.values() if c.is_active and c.email is not None]
        return sorted(found, key=lambda c: c.created_at)

    async def list_active(self) -> list[Contact]:
        return [c for c in self.contacts.values() if c.is_active]


class InMemoryVersionRepository:
    """List-backed IContactVersionRepository enforcing unique (contact_id, version)."""

    def __init__(self) -> None:
        self.snapshots: list[ContactVersion] = []
        self.fail_writes = False

    async def create_snapshot(
        self,
        contact_id: uuid.UUID,
        version: int,
        fields: ContactFields,
        taken_at: datetime,
    ) -> ContactVersion:
        if self.fail_writes:
            raise RuntimeError("snapshot store unavailable")
        if await self.find_snapshot(contact_id, version) is not None:
            raise RuntimeError(f"duplicate snapshot {contact_id} v{version}")
        snapshot = new_contact_version(contact_id, version, fields.as_dict(), taken_at)
        self.snapshots.append(snapshot)
        return snapshot

    async def find_snapshot(self, contact_id: uuid.UUID, version: int) -> ContactVersion | None:
        for snapshot in self.snapshots:
            if snapshot.contact_id == contact_id and snapshot.version == version:
                return snapshot
        return None

    async def find_latest_snapshot_before(self, contact_id: uuid.UUID, timestamp: datetime) -> ContactVersion | None:
        eligible = [s for s in self.snapshots if s.contact_id == contact_id and s.created_at <= timestamp]
        return max(eligible, key=lambda s: s.version, default=None)

    async def list_for_contact(self, contact_id: uuid.UUID) -> list[ContactVersion]:
        found = [s for s in self.snapshots if s.contact_id == contact_id]
        return sorted(found, key=lambda s: s.version, reverse=True)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def contact_repo() -> InMemoryContactRepository:
    return InMemoryContactRepository()


@pytest.fixture()
def version_repo() -> InMemoryVersionRepository:
    return InMemoryVersionRepository()


@pytest.fixture()
def version_service(
    contact_repo: InMemoryContactRepository,
    version_repo: InMemoryVersionRepository,
    clock: FakeClock,
) -> VersionService:
    """VersionService wired to the in-memory stores and the fake clock."""
    return VersionService(contact_repo=contact_repo, version_repo=version_repo, clock=clock)
