"""SQLAlchemy ORM models for contact-vault.

All tables use the `cv_` prefix and extend VaultModel for the UUID id and
created_at/updated_at columns.

Models:
- Contact             — the live, searchable contact record with a version counter
- ContactVersion      — append-only snapshot of a contact's fields at a prior version
- ContactUpload       — one CSV import run
- ContactGroup        — user-defined group of contacts
- ContactGroupMember  — contact ↔ group membership
- DisplaySettings     — keyed singleton of list display preferences

ContactVersion rows are written only through ContactVersionRepository and are
never updated or deleted.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from contact_vault.database import VaultModel, utcnow


class Contact(VaultModel):
    """A contact with versioned text attributes.

    Every field mutation first snapshots the current values into a
    ContactVersion and then increments `version`. Soft delete only flips
    `is_active` and does not create a version.

    Attributes:
        name: Display name.
        email: Primary e-mail address.
        phone: Primary phone number.
        address: Postal address, may span several lines.
        notes: Free-text notes.
        version: Monotonically increasing version, starts at 1.
        is_active: False once the contact has been soft-deleted.
        upload_id: CSV upload that created this contact, if any.
    """

    __tablename__ = "cv_contacts"

    name: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True, index=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        comment="Incremented by exactly 1 on every field mutation, never reused",
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        index=True,
        comment="Soft-delete flag",
    )
    upload_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("cv_contact_uploads.id", ondelete="SET NULL"),
        nullable=True,
    )


class ContactVersion(VaultModel):
    """Immutable snapshot of a contact's fields at a given version.

    `created_at` is the moment the snapshot was taken, i.e. immediately
    before the mutation that produced `version + 1`.

    Attributes:
        contact_id: Owning contact.
        version: The version number these values represent.
    """

    __tablename__ = "cv_contact_versions"
    __table_args__ = (UniqueConstraint("contact_id", "version", name="uq_cv_contact_versions_contact_version"),)

    contact_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("cv_contacts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)


class ContactUpload(VaultModel):
    """A CSV import run and its progress.

    Attributes:
        filename: Name the file was uploaded under.
        total_contacts: Number of data rows in the file.
        processed_contacts: Rows imported so far, advanced per batch.
        status: processing | completed | failed.
    """

    __tablename__ = "cv_contact_uploads"

    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    total_contacts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_contacts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="processing")


class ContactGroup(VaultModel):
    """A named group of contacts."""

    __tablename__ = "cv_contact_groups"

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    color: Mapped[str] = mapped_column(String(16), nullable=False, default="#007AFF")


class ContactGroupMember(VaultModel):
    """Membership of one contact in one group."""

    __tablename__ = "cv_contact_group_members"
    __table_args__ = (UniqueConstraint("contact_id", "group_id", name="uq_cv_group_members_pair"),)

    contact_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("cv_contacts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    group_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("cv_contact_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )


class DisplaySettings(VaultModel):
    """List display preferences, one row per user key.

    The application uses a single shared key (settings.settings_user_key);
    the row is created with defaults the first time it is read.
    """

    __tablename__ = "cv_display_settings"

    user_key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    show_name: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    show_email: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    show_phone: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    show_address: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    show_notes: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    terse_display: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    items_per_page: Mapped[int] = mapped_column(Integer, nullable=False, default=20)
    sort_by: Mapped[str] = mapped_column(String(32), nullable=False, default="name")
    sort_order: Mapped[str] = mapped_column(String(4), nullable=False, default="asc")


def new_contact_version(
    contact_id: uuid.UUID,
    version: int,
    fields: dict[str, str | None],
    taken_at: datetime | None = None,
) -> ContactVersion:
    """Build a transient ContactVersion row.

    Args:
        contact_id: Owning contact.
        version: Version number the values represent.
        fields: Mapping of searchable field name to value.
        taken_at: Snapshot timestamp, defaults to now.

    Returns:
        An unsaved ContactVersion.
    """
    stamp = taken_at or utcnow()
    return ContactVersion(
        id=uuid.uuid4(),
        contact_id=contact_id,
        version=version,
        created_at=stamp,
        updated_at=stamp,
        **fields,
    )
