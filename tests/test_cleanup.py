"""Tests for data cleanup helpers and CleanupService.

Helpers are tested as pure functions. CleanupService runs against the
in-memory repositories so versioning side effects can be checked.
"""

from datetime import timedelta

import pytest

from contact_vault.core.cleanup import (
    CleanupService,
    clean_address,
    clean_email,
    clean_name,
    clean_phone,
    fill_missing_name_and_email,
    name_from_email,
    placeholder_email,
)
from contact_vault.errors import ValidationError
from contact_vault.versioning.service import VersionService
from tests.conftest import T0, InMemoryContactRepository, InMemoryVersionRepository, make_contact


class TestHelpers:
    def test_clean_address_decodes_escapes_and_dedupes_lines(self) -> None:
        raw = "1 Main St0D=0A0D=0ASpringfield:::1 Main St:::IL 62701\n\n"
        assert clean_address(raw) == "1 Main St\nSpringfield\nIL 62701"

    def test_name_from_email(self) -> None:
        assert name_from_email("john.doe-smith_jr@example.com") == "John Doe Smith Jr"

    def test_placeholder_email(self) -> None:
        assert placeholder_email("John  Doe") == "john.doe@example.com"

    @pytest.mark.parametrize(
        ("name", "email", "expected"),
        [
            (None, "jane.roe@example.com", ("Jane Roe", "jane.roe@example.com")),
            ("Jane Roe", "", ("Jane Roe", "jane.roe@example.com")),
            (None, None, ("Unknown Contact", None)),
            ("", "", ("Unknown Contact", None)),
        ],
    )
    def test_fill_missing_name_and_email(
        self,
        name: str | None,
        email: str | None,
        expected: tuple[str, str | None],
    ) -> None:
        assert fill_missing_name_and_email(name, email) == expected

    def test_clean_phone_strips_disallowed_characters(self) -> None:
        assert clean_phone(" +1 (555)\t123-4567 ext.9 ") == "+1 (555) 123-4567 9"

    def test_clean_name_and_email(self) -> None:
        assert clean_name("  Jane   Q\nRoe ") == "Jane Q Roe"
        assert clean_email("  Jane@Example.COM ") == "jane@example.com"


class TestCleanupService:
    @pytest.fixture()
    def service(self, contact_repo: InMemoryContactRepository, version_service: VersionService) -> CleanupService:
        return CleanupService(contact_repo=contact_repo, version_service=version_service)

    @pytest.mark.asyncio()
    async def test_unknown_action_is_rejected(self, service: CleanupService) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await service.run("everything")
        assert exc_info.value.field == "action"

    @pytest.mark.asyncio()
    async def test_address_cleanup_is_versioned(
        self,
        service: CleanupService,
        contact_repo: InMemoryContactRepository,
        version_repo: InMemoryVersionRepository,
    ) -> None:
        messy = make_contact(name="A", address="Line 10D=0ALine 2")
        contact_repo.put(messy, make_contact(name="B", address="Tidy"))

        report = await service.run("address-cleanup")

        assert (report.action, report.cleaned, report.errors) == ("address-cleanup", 1, 0)
        assert messy.address == "Line 1\nLine 2"
        assert messy.version == 2
        assert version_repo.snapshots[0].address == "Line 10D=0ALine 2"

    @pytest.mark.asyncio()
    async def test_empty_fields_fills_name_and_email(
        self,
        service: CleanupService,
        contact_repo: InMemoryContactRepository,
    ) -> None:
        no_name = make_contact(email="mary.major@example.com")
        no_email = make_contact(name="Richard Roe", email="")
        contact_repo.put(no_name, no_email)

        report = await service.run("empty-fields")

        assert report.cleaned == 2
        assert no_name.name == "Mary Major"
        assert no_email.email == "richard.roe@example.com"

    @pytest.mark.asyncio()
    async def test_duplicates_keeps_oldest(
        self,
        service: CleanupService,
        contact_repo: InMemoryContactRepository,
    ) -> None:
        oldest = make_contact(name="First", email="dup@example.com")
        newer = make_contact(name="Second", email=" DUP@example.com ", created_at=T0 + timedelta(days=1))
        other = make_contact(name="Other", email="other@example.com")
        contact_repo.put(newer, oldest, other)

        report = await service.run("duplicates")

        assert report.cleaned == 1
        assert oldest.is_active is True
        assert newer.is_active is False
        assert newer.version == 1
        assert other.is_active is True

    @pytest.mark.asyncio()
    async def test_general_normalises_and_skips_clean_contacts(
        self,
        service: CleanupService,
        contact_repo: InMemoryContactRepository,
        version_repo: InMemoryVersionRepository,
    ) -> None:
        messy = make_contact(name=" Jane  Roe ", email="Jane@Example.com", phone="555.123.4567")
        clean = make_contact(name="John Doe", email="john@example.com", phone="555-0000")
        contact_repo.put(messy, clean)

        report = await service.run("general")

        assert report.cleaned == 1
        assert (messy.name, messy.email, messy.phone) == ("Jane Roe", "jane@example.com", "5551234567")
        assert messy.version == 2
        assert clean.version == 1
        assert len(version_repo.snapshots) == 1

    @pytest.mark.asyncio()
    async def test_failure_on_one_contact_is_reported(
        self,
        service: CleanupService,
        contact_repo: InMemoryContactRepository,
    ) -> None:
        broken = make_contact(name="Broken", address="A0D=0AB")
        fine = make_contact(name="Fine", address="C0D=0AD")
        contact_repo.put(broken, fine)
        contact_repo.fail_on.add(broken.id)

        report = await service.run("address-cleanup")

        assert (report.cleaned, report.errors) == (1, 1)
        assert fine.address == "C\nD"
        assert any(str(broken.id) in line for line in report.details)
