"""Tests for core business logic services.

Tests ContactService, ContactGroupService, DisplaySettingsService, and
ContactImportService. Contact flows run against the in-memory repositories;
group and settings flows use mock repositories.
"""

import uuid
from datetime import UTC, datetime
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock

import pytest

from contact_vault.api.schemas import (
    ContactCreateRequest,
    ContactGroupCreateRequest,
    ContactGroupUpdateRequest,
    ContactUpdate,
    DisplaySettingsUpdate,
)
from contact_vault.core.services import (
    DEFAULT_DISPLAY_SETTINGS,
    ContactGroupService,
    ContactImportService,
    ContactService,
    DisplaySettingsService,
)
from contact_vault.errors import NotFoundError, RecordNotFoundError, ValidationError
from contact_vault.versioning.service import VersionService
from tests.conftest import FakeClock, InMemoryContactRepository, make_contact


def make_fake_group(name: str = "Clients") -> SimpleNamespace:
    """Create a fake ContactGroup ORM object for tests."""
    now = datetime.now(UTC)
    return SimpleNamespace(
        id=uuid.uuid4(),
        name=name,
        description=None,
        color="#007AFF",
        created_at=now,
        updated_at=now,
    )


class FakeUploadRepository:
    """Records every progress update made during an import."""

    def __init__(self) -> None:
        self.progress: list[tuple[int, str | None]] = []

    async def create(self, filename: str, total_contacts: int) -> SimpleNamespace:
        return SimpleNamespace(
            id=uuid.uuid4(),
            filename=filename,
            total_contacts=total_contacts,
            processed_contacts=0,
            status="processing",
            created_at=datetime.now(UTC),
        )

    async def update_progress(self, upload: Any, processed_contacts: int, status: str | None = None) -> Any:
        self.progress.append((processed_contacts, status))
        upload.processed_contacts = processed_contacts
        if status is not None:
            upload.status = status
        return upload

    async def list_recent(self, limit: int = 50) -> list[Any]:
        return []


# ---------------------------------------------------------------------------
# ContactService tests
# ---------------------------------------------------------------------------


class TestContactService:
    """Tests for ContactService — search and versioned lifecycle."""

    @pytest.fixture()
    def service(self, contact_repo: InMemoryContactRepository, version_service: VersionService) -> ContactService:
        return ContactService(contact_repo=contact_repo, version_service=version_service)

    @pytest.mark.asyncio()
    async def test_search_filters_sorts_and_paginates(
        self,
        service: ContactService,
        contact_repo: InMemoryContactRepository,
    ) -> None:
        contact_repo.put(
            make_contact(name="Carol Acme", email="carol@acme.com"),
            make_contact(name="Alice Acme", email="alice@acme.com"),
            make_contact(name="Bob Acme", email="bob@acme.com"),
            make_contact(name="Dave Other", email="dave@other.org"),
            make_contact(name="Eve Acme", is_active=False),
        )

        result = await service.search_contacts(search="acme", page=1, limit=2)

        assert [c.name for c in result.contacts] == ["Alice Acme", "Bob Acme"]
        assert result.pagination.total == 3
        assert result.pagination.pages == 2

    @pytest.mark.asyncio()
    async def test_search_with_operators(
        self,
        service: ContactService,
        contact_repo: InMemoryContactRepository,
    ) -> None:
        contact_repo.put(
            make_contact(name="John Smith", notes="Acme"),
            make_contact(name="John Brown", notes="Acme"),
        )

        result = await service.search_contacts(search="John AND Acme NOT Smith")

        assert [c.name for c in result.contacts] == ["John Brown"]

    @pytest.mark.asyncio()
    async def test_matching_ids_respects_group(
        self,
        service: ContactService,
        contact_repo: InMemoryContactRepository,
    ) -> None:
        inside = make_contact(name="Jane")
        outside = make_contact(name="Jane Other")
        contact_repo.put(inside, outside)
        group_id = uuid.uuid4()
        contact_repo.members[group_id] = {inside.id}

        assert await service.matching_ids("jane", group_id=group_id) == [inside.id]

    @pytest.mark.asyncio()
    async def test_create_contact_starts_at_version_one(self, service: ContactService) -> None:
        result = await service.create_contact(ContactCreateRequest(name="Alice", email="alice@example.com"))

        assert result.version == 1
        assert result.is_active is True

    @pytest.mark.asyncio()
    async def test_update_changes_only_set_fields(
        self,
        service: ContactService,
        contact_repo: InMemoryContactRepository,
    ) -> None:
        contact = make_contact(name="Alice", phone="123")
        contact_repo.put(contact)

        result = await service.update_contact(contact.id, ContactUpdate.model_validate({"phone": None}))

        assert result.version == 2
        assert result.name == "Alice"
        assert result.phone is None

    @pytest.mark.asyncio()
    async def test_get_contact_includes_history(
        self,
        service: ContactService,
        contact_repo: InMemoryContactRepository,
        clock: FakeClock,
    ) -> None:
        contact = make_contact(name="Alice")
        contact_repo.put(contact)
        clock.advance(minutes=5)
        await service.update_contact(contact.id, ContactUpdate(name="Alicia"))

        detail = await service.get_contact(contact.id)

        assert detail.version == 2
        assert [(v.version, v.name) for v in detail.versions] == [(1, "Alice")]

    @pytest.mark.asyncio()
    async def test_soft_delete_and_reactivate_do_not_version(
        self,
        service: ContactService,
        contact_repo: InMemoryContactRepository,
    ) -> None:
        contact = make_contact(name="Alice")
        contact_repo.put(contact)

        deleted = await service.delete_contact(contact.id)
        assert deleted.is_active is False
        assert (await service.search_contacts("alice")).pagination.total == 0

        reactivated = await service.reactivate_contact(contact.id)
        assert reactivated.is_active is True
        assert reactivated.version == 1

    @pytest.mark.asyncio()
    async def test_get_unknown_contact_raises(self, service: ContactService) -> None:
        with pytest.raises(RecordNotFoundError):
            await service.get_contact(uuid.uuid4())


# ---------------------------------------------------------------------------
# ContactGroupService tests
# ---------------------------------------------------------------------------


class TestContactGroupService:
    @pytest.mark.asyncio()
    async def test_list_groups_attaches_member_counts(self) -> None:
        clients, vendors = make_fake_group("Clients"), make_fake_group("Vendors")
        group_repo = AsyncMock()
        group_repo.list_all.return_value = [clients, vendors]
        group_repo.member_counts.return_value = {clients.id: 3}

        result = await ContactGroupService(group_repo).list_groups()

        assert [(g.name, g.member_count) for g in result] == [("Clients", 3), ("Vendors", 0)]

    @pytest.mark.asyncio()
    async def test_create_group(self) -> None:
        group_repo = AsyncMock()
        group_repo.create.return_value = make_fake_group("Friends")

        result = await ContactGroupService(group_repo).create_group(ContactGroupCreateRequest(name="Friends"))

        assert result.name == "Friends"
        group_repo.create.assert_called_once_with("Friends", None, "#007AFF")

    @pytest.mark.asyncio()
    async def test_update_passes_only_set_fields(self) -> None:
        group = make_fake_group()
        group_repo = AsyncMock()
        group_repo.update.return_value = group
        group_repo.member_counts.return_value = {}

        await ContactGroupService(group_repo).update_group(group.id, ContactGroupUpdateRequest(color="#FF0000"))

        group_repo.update.assert_called_once_with(group.id, {"color": "#FF0000"})

    @pytest.mark.asyncio()
    async def test_update_rejects_clearing_name(self) -> None:
        group_repo = AsyncMock()

        with pytest.raises(ValidationError):
            await ContactGroupService(group_repo).update_group(
                uuid.uuid4(), ContactGroupUpdateRequest.model_validate({"name": None})
            )
        group_repo.update.assert_not_called()

    @pytest.mark.asyncio()
    async def test_update_rejects_null_color(self) -> None:
        group_repo = AsyncMock()

        with pytest.raises(ValidationError) as exc_info:
            await ContactGroupService(group_repo).update_group(
                uuid.uuid4(), ContactGroupUpdateRequest.model_validate({"color": None})
            )
        assert exc_info.value.field == "color"
        group_repo.update.assert_not_called()

    @pytest.mark.asyncio()
    async def test_missing_group_propagates_not_found(self) -> None:
        group_repo = AsyncMock()
        group_repo.get_by_id.side_effect = NotFoundError(resource="ContactGroup", resource_id="x")

        with pytest.raises(NotFoundError):
            await ContactGroupService(group_repo).get_group(uuid.uuid4())


# ---------------------------------------------------------------------------
# DisplaySettingsService tests
# ---------------------------------------------------------------------------


class TestDisplaySettingsService:
    @pytest.mark.asyncio()
    async def test_first_read_initializes_defaults(self) -> None:
        settings_repo = AsyncMock()
        settings_repo.get.return_value = None
        settings_repo.create.side_effect = lambda key, values: SimpleNamespace(user_key=key, **values)

        result = await DisplaySettingsService(settings_repo, user_key="shared").get_settings()

        assert result.user_key == "shared"
        assert result.items_per_page == DEFAULT_DISPLAY_SETTINGS["items_per_page"]
        settings_repo.create.assert_called_once()

    @pytest.mark.asyncio()
    async def test_update_writes_only_set_fields(self) -> None:
        existing = SimpleNamespace(user_key="default", **DEFAULT_DISPLAY_SETTINGS)
        settings_repo = AsyncMock()
        settings_repo.get.return_value = existing

        def _apply(settings: Any, values: dict[str, Any]) -> Any:
            for key, value in values.items():
                setattr(settings, key, value)
            return settings

        settings_repo.update.side_effect = _apply

        result = await DisplaySettingsService(settings_repo).update_settings(
            DisplaySettingsUpdate(terse_display=True, sort_order="desc")
        )

        settings_repo.update.assert_called_once_with(existing, {"terse_display": True, "sort_order": "desc"})
        assert result.terse_display is True
        assert result.show_email is True

    @pytest.mark.asyncio()
    async def test_update_before_first_read_creates_merged_record(self) -> None:
        settings_repo = AsyncMock()
        settings_repo.get.return_value = None
        settings_repo.create.side_effect = lambda key, values: SimpleNamespace(user_key=key, **values)

        result = await DisplaySettingsService(settings_repo).update_settings(DisplaySettingsUpdate(items_per_page=50))

        assert result.items_per_page == 50
        assert result.sort_by == "name"


# ---------------------------------------------------------------------------
# ContactImportService tests
# ---------------------------------------------------------------------------


class TestContactImportService:
    @pytest.mark.asyncio()
    async def test_import_creates_contacts_and_tracks_progress(
        self,
        contact_repo: InMemoryContactRepository,
    ) -> None:
        upload_repo = FakeUploadRepository()
        service = ContactImportService(contact_repo, upload_repo, batch_size=2)
        content = "Name,Email,Company\nAlice,alice@example.com,Acme\nBob,,Initech\nCarol,carol@example.com,\n"

        upload = await service.import_csv("people.csv", content)

        assert upload.total_contacts == 3
        assert upload.processed_contacts == 3
        assert upload.status == "completed"
        assert upload_repo.progress == [(2, None), (3, None), (3, "completed")]
        bob = next(c for c in contact_repo.contacts.values() if c.name == "Bob")
        assert bob.email is None
        assert bob.upload_id == upload.id
        assert bob.version == 1

    @pytest.mark.asyncio()
    async def test_failed_import_rolls_back_contacts_and_keeps_failed_upload(
        self,
        contact_repo: InMemoryContactRepository,
    ) -> None:
        upload_repo = FakeUploadRepository()
        create = contact_repo.create
        calls = 0

        async def create_then_collide(fields: Any, upload_id: uuid.UUID | None = None) -> Any:
            nonlocal calls
            calls += 1
            if calls == 2:
                raise RuntimeError("duplicate key value violates unique constraint")
            return await create(fields, upload_id=upload_id)

        contact_repo.create = create_then_collide  # type: ignore[method-assign]
        service = ContactImportService(contact_repo, upload_repo, batch_size=1)

        upload = await service.import_csv("people.csv", "name\nAlice\nBob\nCarol\n")

        assert (upload.status, upload.processed_contacts, upload.total_contacts) == ("failed", 0, 3)
        assert upload_repo.progress == [(1, None), (0, "failed")]
        assert contact_repo.contacts == {}
        assert contact_repo.savepoints == 1

    @pytest.mark.asyncio()
    async def test_csv_without_known_columns_is_rejected(self, contact_repo: InMemoryContactRepository) -> None:
        service = ContactImportService(contact_repo, FakeUploadRepository())

        with pytest.raises(ValidationError):
            await service.import_csv("bad.csv", "first,last\nA,B\n")
