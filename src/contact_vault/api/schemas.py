"""Pydantic request and response schemas for the contact-vault API.

All API inputs and outputs use Pydantic models, never raw dicts.
Schemas are grouped by resource type.

Resources:
- Contact          — search, create, typed partial update
- ContactVersion   — version history and restore
- ContactGroup     — groups and membership
- DisplaySettings  — shared list display preferences
- ContactUpload    — CSV import runs
- Cleanup          — data cleanup reports
"""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

SortField = Literal["name", "email", "phone", "address", "notes", "created_at", "updated_at"]
SortOrder = Literal["asc", "desc"]
CleanupAction = Literal["address-cleanup", "empty-fields", "duplicates", "general"]


# ---------------------------------------------------------------------------
# Contact schemas
# ---------------------------------------------------------------------------


class ContactCreateRequest(BaseModel):
    """Request body for creating a contact. Every field is optional."""

    name: str | None = Field(default=None, max_length=255, description="Display name")
    email: str | None = Field(default=None, max_length=320, description="Primary e-mail address")
    phone: str | None = Field(default=None, max_length=64, description="Primary phone number")
    address: str | None = Field(default=None, description="Postal address")
    notes: str | None = Field(default=None, description="Free-text notes")


class ContactUpdate(BaseModel):
    """Typed partial update of a contact's versioned fields.

    Only fields present in the request body are changed; sending an explicit
    null clears the field. Any other key in the body is ignored.
    """

    name: str | None = Field(default=None, max_length=255)
    email: str | None = Field(default=None, max_length=320)
    phone: str | None = Field(default=None, max_length=64)
    address: str | None = None
    notes: str | None = None

    def changes(self) -> dict[str, str | None]:
        """Return only the fields the caller set."""
        return self.model_dump(exclude_unset=True)


class ContactResponse(BaseModel):
    """Response schema for a contact."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID = Field(description="Contact UUID")
    name: str | None = Field(description="Display name")
    email: str | None = Field(description="Primary e-mail address")
    phone: str | None = Field(description="Primary phone number")
    address: str | None = Field(description="Postal address")
    notes: str | None = Field(description="Free-text notes")
    version: int = Field(description="Current version number, starts at 1")
    is_active: bool = Field(description="False once soft-deleted")
    upload_id: uuid.UUID | None = Field(description="CSV upload that created this contact")
    created_at: datetime = Field(description="Creation timestamp (UTC)")
    updated_at: datetime = Field(description="Last modification timestamp (UTC)")


class ContactVersionResponse(BaseModel):
    """Response schema for a historical snapshot."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID = Field(description="Snapshot UUID")
    contact_id: uuid.UUID = Field(description="Owning contact UUID")
    version: int = Field(description="Version number these values represent")
    name: str | None
    email: str | None
    phone: str | None
    address: str | None
    notes: str | None
    created_at: datetime = Field(description="When the snapshot was taken (UTC)")


class ContactDetailResponse(ContactResponse):
    """A contact together with its version history, newest first."""

    versions: list[ContactVersionResponse] = Field(default_factory=list)


class PaginationInfo(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class ContactListResponse(BaseModel):
    """One page of search results."""

    contacts: list[ContactResponse]
    pagination: PaginationInfo


class ContactIdsRequest(BaseModel):
    """Request body for fetching every matching contact ID."""

    search: str = Field(default="", description="Search query, same syntax as GET /contacts")
    group_id: uuid.UUID | None = Field(default=None, description="Restrict to a group's members")


class ContactIdsResponse(BaseModel):
    contact_ids: list[uuid.UUID]


# ---------------------------------------------------------------------------
# Restore schemas
# ---------------------------------------------------------------------------


class RestoreVersionRequest(BaseModel):
    """Request body for restoring one contact to a prior version."""

    contact_id: uuid.UUID = Field(description="Contact to restore")
    version: int = Field(ge=1, description="Version whose values to bring back")


class RestoreDateRequest(BaseModel):
    """Request body for restoring every active contact to a point in time."""

    date: datetime = Field(description="Target point in time (UTC if no offset is given)")


class RestoreDateResponse(BaseModel):
    restored: int = Field(description="Number of contacts whose values changed")


# ---------------------------------------------------------------------------
# Group schemas
# ---------------------------------------------------------------------------


class ContactGroupCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255, description="Group name")
    description: str | None = Field(default=None, description="Optional description")
    color: str = Field(default="#007AFF", max_length=16, description="Display colour")


class ContactGroupUpdateRequest(BaseModel):
    """Typed partial update of a group. Only set fields are changed."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    color: str | None = Field(default=None, max_length=16)


class ContactGroupResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: str | None
    color: str
    member_count: int = Field(default=0, description="Number of contacts in the group")
    created_at: datetime
    updated_at: datetime


class GroupMembersRequest(BaseModel):
    contact_ids: list[uuid.UUID] = Field(description="Contacts to add or remove")


class GroupMembersResponse(BaseModel):
    group_id: uuid.UUID
    affected: int = Field(description="Number of memberships added or removed")


# ---------------------------------------------------------------------------
# Display settings schemas
# ---------------------------------------------------------------------------


class DisplaySettingsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_key: str
    show_name: bool
    show_email: bool
    show_phone: bool
    show_address: bool
    show_notes: bool
    terse_display: bool
    items_per_page: int
    sort_by: str
    sort_order: str


class DisplaySettingsUpdate(BaseModel):
    """Typed partial update of display settings. Only set fields are written."""

    show_name: bool | None = None
    show_email: bool | None = None
    show_phone: bool | None = None
    show_address: bool | None = None
    show_notes: bool | None = None
    terse_display: bool | None = None
    items_per_page: int | None = Field(default=None, ge=1, le=500)
    sort_by: SortField | None = None
    sort_order: SortOrder | None = None

    def changes(self) -> dict[str, object]:
        return self.model_dump(exclude_unset=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Upload and cleanup schemas
# ---------------------------------------------------------------------------


class ContactUploadResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    filename: str
    total_contacts: int
    processed_contacts: int
    status: str
    created_at: datetime


class CleanupReportResponse(BaseModel):
    action: CleanupAction
    cleaned: int = Field(description="Contacts changed or soft-deleted")
    errors: int = Field(description="Contacts that failed to clean")
    details: list[str] = Field(default_factory=list, description="One line per contact touched")
