"""The fixed set of searchable, versioned contact fields.

ContactFields is the value object copied into every version snapshot and
compared by bulk restore to decide whether a contact actually changes.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

SEARCHABLE_FIELDS: tuple[str, ...] = ("name", "email", "phone", "address", "notes")


@dataclass(frozen=True)
class ContactFields:
    """Immutable copy of a contact's versioned text attributes."""

    name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    notes: str | None = None

    @classmethod
    def from_record(cls, record: Any) -> ContactFields:
        """Copy the searchable attributes off any object exposing them.

        Works for Contact and ContactVersion rows alike.
        """
        return cls(**{field: getattr(record, field, None) for field in SEARCHABLE_FIELDS})

    def as_dict(self) -> dict[str, str | None]:
        return asdict(self)
