"""Data cleanup routines for imported contacts.

Actions:
- address-cleanup — decode ``0D=0A`` escapes and ``:::`` separators in addresses
- empty-fields    — fill a missing name from the e-mail and vice versa
- duplicates      — soft-delete all but the oldest contact per e-mail address
- general         — all of the above plus phone, name, and e-mail normalisation

Field edits go through VersionService.record_mutation and are therefore
versioned like any user edit. A contact whose values would not change is
skipped and creates no version. Per-contact failures are counted and
reported without aborting the run.
"""

import re
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field

from contact_vault.api.schemas import CleanupReportResponse
from contact_vault.core.interfaces import IContactRepository
from contact_vault.core.models import Contact
from contact_vault.errors import ValidationError
from contact_vault.observability import get_logger
from contact_vault.versioning.service import VersionService

logger = get_logger(__name__)

ADDRESS_ESCAPE = "0D=0A"

_NEWLINES_RE = re.compile(r"\n+")
_WHITESPACE_RE = re.compile(r"\s+")
_EMAIL_LOCAL_SPLIT_RE = re.compile(r"[._-]")
_PHONE_DISALLOWED_RE = re.compile(r"[^\d+\-()\s]")


def clean_address(address: str) -> str:
    """Turn escaped line breaks into newlines and drop duplicate lines."""
    cleaned = address.replace(ADDRESS_ESCAPE, "\n").replace(":::", "\n")
    cleaned = _NEWLINES_RE.sub("\n", cleaned).strip()
    return "\n".join(dict.fromkeys(cleaned.split("\n")))


def name_from_email(email: str) -> str:
    """``john.doe@example.com`` → ``John Doe``."""
    local_part = email.split("@")[0]
    return " ".join(part[:1].upper() + part[1:].lower() for part in _EMAIL_LOCAL_SPLIT_RE.split(local_part))


def placeholder_email(name: str) -> str:
    """``John Doe`` → ``john.doe@example.com``."""
    return f"{_WHITESPACE_RE.sub('.', name.lower())}@example.com"


def fill_missing_name_and_email(name: str | None, email: str | None) -> tuple[str, str | None]:
    """Derive whichever of name and e-mail is missing from the other.

    Returns:
        Tuple of (name, email). The name falls back to ``Unknown Contact``.
    """
    if not name and email:
        name = name_from_email(email)
    if not email and name:
        email = placeholder_email(name)
    return name or "Unknown Contact", email or None


def clean_phone(phone: str) -> str:
    return _WHITESPACE_RE.sub(" ", _PHONE_DISALLOWED_RE.sub("", phone)).strip()


def clean_name(name: str) -> str:
    return _WHITESPACE_RE.sub(" ", name).strip()


def clean_email(email: str) -> str:
    return email.lower().strip()


@dataclass
class CleanupReport:
    """Mutable tally for one cleanup run."""

    cleaned: int = 0
    errors: int = 0
    details: list[str] = field(default_factory=list)

    def merge(self, other: "CleanupReport") -> None:
        self.cleaned += other.cleaned
        self.errors += other.errors
        self.details.extend(other.details)


class CleanupService:
    """Runs cleanup actions over the contact store.

    Args:
        contact_repo: Record store for contacts.
        version_service: Used for every field edit so cleanups are versioned.
    """

    def __init__(self, contact_repo: IContactRepository, version_service: VersionService) -> None:
        self._contact_repo = contact_repo
        self._version_service = version_service
        self._actions: dict[str, Callable[[], Awaitable[CleanupReport]]] = {
            "address-cleanup": self.cleanup_addresses,
            "empty-fields": self.cleanup_empty_fields,
            "duplicates": self.cleanup_duplicates,
            "general": self.general_cleanup,
        }

    async def run(self, action: str) -> CleanupReportResponse:
        """Run one named cleanup action.

        Args:
            action: address-cleanup | empty-fields | duplicates | general.

        Returns:
            The aggregated report.

        Raises:
            ValidationError: If the action name is unknown.
        """
        handler = self._actions.get(action)
        if handler is None:
            raise ValidationError(message=f"Invalid cleanup action: {action}", field="action")

        logger.info("Cleanup started", action=action)
        report = await handler()
        logger.info("Cleanup finished", action=action, cleaned=report.cleaned, errors=report.errors)
        return CleanupReportResponse(
            action=action,  # type: ignore[arg-type]
            cleaned=report.cleaned,
            errors=report.errors,
            details=report.details,
        )

    async def _apply(self, report: CleanupReport, contact: Contact, changes: Mapping[str, str | None], label: str) -> None:
        contact_id = contact.id
        changes = {key: value for key, value in changes.items() if getattr(contact, key) != value}
        if not changes:
            return
        try:
            async with self._contact_repo.savepoint():
                await self._version_service.record_mutation(contact, changes, reason=f"cleanup:{label}")
        except Exception as exc:
            report.errors += 1
            report.details.append(f"Error cleaning contact {contact_id}: {exc}")
            logger.warning("Cleanup failed for contact", contact_id=str(contact_id), action=label, error=str(exc))
            return
        report.cleaned += 1
        report.details.append(f"{label} for contact {contact_id}")

    async def cleanup_addresses(self) -> CleanupReport:
        report = CleanupReport()
        for contact in await self._contact_repo.list_with_address_containing(ADDRESS_ESCAPE):
            if contact.address is not None:
                await self._apply(report, contact, {"address": clean_address(contact.address)}, "Cleaned address")
        return report

    async def cleanup_empty_fields(self) -> CleanupReport:
        report = CleanupReport()
        for contact in await self._contact_repo.list_with_null_or_blank(("name", "email")):
            name, email = fill_missing_name_and_email(contact.name, contact.email)
            await self._apply(report, contact, {"name": name, "email": email}, "Cleaned empty fields")
        return report

    async def cleanup_duplicates(self) -> CleanupReport:
        """Keep the oldest contact per normalised e-mail and soft-delete the rest."""
        report = CleanupReport()
        seen: set[str] = set()
        for contact in await self._contact_repo.list_with_email_oldest_first():
            email = clean_email(contact.email or "")
            if not email:
                continue
            if email not in seen:
                seen.add(email)
                continue
            contact_id = contact.id
            try:
                async with self._contact_repo.savepoint():
                    await self._contact_repo.set_active(contact_id, False)
            except Exception as exc:
                report.errors += 1
                report.details.append(f"Error removing duplicate {contact_id}: {exc}")
                continue
            report.cleaned += 1
            report.details.append(f"Removed duplicate contact {contact_id} (email: {email})")
        return report

    async def general_cleanup(self) -> CleanupReport:
        report = CleanupReport()
        report.merge(await self.cleanup_addresses())
        report.merge(await self.cleanup_empty_fields())
        report.merge(await self.cleanup_duplicates())

        for contact in await self._contact_repo.list_active():
            changes: dict[str, str | None] = {}
            if contact.phone:
                changes["phone"] = clean_phone(contact.phone)
            if contact.name:
                changes["name"] = clean_name(contact.name)
            if contact.email:
                changes["email"] = clean_email(contact.email)
            await self._apply(report, contact, changes, "General cleanup")
        return report
