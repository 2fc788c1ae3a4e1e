"""API router for contact-vault.

All endpoints are registered here and included in main.py under the /api/v1
prefix. Routes are thin — all business logic lives in the service layer.

Endpoints:
- GET/POST        /contacts                   — search, create
- POST            /contacts/ids               — IDs of every matching contact
- GET/PUT/DELETE  /contacts/{id}              — read with history, versioned update, soft delete
- POST            /contacts/{id}/reactivate   — undo soft delete
- GET             /contacts/{id}/versions     — version history
- POST            /restore/version            — restore one contact to a version
- POST            /restore/date               — restore all contacts to a date
- GET/POST        /groups                     — list, create groups
- GET/PUT/DELETE  /groups/{id}                — read, update, delete a group
- POST/DELETE     /groups/{id}/contacts       — add, remove members
- GET/PUT         /settings/display           — display settings
- GET/POST        /uploads                    — CSV import history, CSV import
- POST            /cleanup/{action}           — data cleanup
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from contact_vault.adapters.repositories import (
    ContactGroupRepository,
    ContactRepository,
    ContactUploadRepository,
    DisplaySettingsRepository,
)
from contact_vault.api.schemas import (
    CleanupReportResponse,
    ContactCreateRequest,
    ContactDetailResponse,
    ContactGroupCreateRequest,
    ContactGroupResponse,
    ContactGroupUpdateRequest,
    ContactIdsRequest,
    ContactIdsResponse,
    ContactListResponse,
    ContactResponse,
    ContactUpdate,
    ContactUploadResponse,
    ContactVersionResponse,
    DisplaySettingsResponse,
    DisplaySettingsUpdate,
    GroupMembersRequest,
    GroupMembersResponse,
    RestoreDateRequest,
    RestoreDateResponse,
    RestoreVersionRequest,
    SortField,
    SortOrder,
)
from contact_vault.core.cleanup import CleanupService
from contact_vault.core.services import (
    ContactGroupService,
    ContactImportService,
    ContactService,
    DisplaySettingsService,
)
from contact_vault.database import get_db_session
from contact_vault.errors import ValidationError
from contact_vault.observability import get_logger
from contact_vault.settings import Settings
from contact_vault.versioning import ContactVersionRepository, VersionService

logger = get_logger(__name__)

router = APIRouter(tags=["contacts"])


# ---------------------------------------------------------------------------
# Dependency factories: wire repositories and services together
# ---------------------------------------------------------------------------


def get_settings(request: Request) -> Settings:
    """Return the settings stored on app state at startup, or load them."""
    settings = getattr(request.app.state, "settings", None)
    return settings if settings is not None else Settings()


def get_version_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> VersionService:
    """Construct VersionService over the request session.

    Args:
        session: Primary DB session.

    Returns:
        Fully wired VersionService instance.
    """
    return VersionService(
        contact_repo=ContactRepository(session),
        version_repo=ContactVersionRepository(session),
    )


def get_contact_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
    version_service: Annotated[VersionService, Depends(get_version_service)],
) -> ContactService:
    """Construct ContactService with injected repositories.

    Args:
        session: Primary DB session.
        version_service: VersionService sharing the same session.

    Returns:
        Fully wired ContactService instance.
    """
    return ContactService(contact_repo=ContactRepository(session), version_service=version_service)


def get_group_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> ContactGroupService:
    return ContactGroupService(group_repo=ContactGroupRepository(session))


def get_display_settings_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> DisplaySettingsService:
    return DisplaySettingsService(
        settings_repo=DisplaySettingsRepository(session),
        user_key=settings.settings_user_key,
    )


def get_import_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> ContactImportService:
    return ContactImportService(
        contact_repo=ContactRepository(session),
        upload_repo=ContactUploadRepository(session),
        batch_size=settings.import_batch_size,
    )


def get_cleanup_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
    version_service: Annotated[VersionService, Depends(get_version_service)],
) -> CleanupService:
    return CleanupService(contact_repo=ContactRepository(session), version_service=version_service)


# ---------------------------------------------------------------------------
# Contact endpoints
# ---------------------------------------------------------------------------


@router.get("/contacts", response_model=ContactListResponse)
async def search_contacts(
    service: Annotated[ContactService, Depends(get_contact_service)],
    settings: Annotated[Settings, Depends(get_settings)],
    search: str = Query(default="", description="Free-text query with AND/OR/NOT, quotes, or 'empty <field>'"),
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1, le=200, description="Page size"),
    sort_by: SortField = Query(default="name"),
    sort_order: SortOrder = Query(default="asc"),
    group_id: uuid.UUID | None = Query(default=None, description="Restrict to a group's members"),
) -> ContactListResponse:
    """Search active contacts.

    Args:
        service: Injected ContactService.
        settings: Service settings, for page size defaults and bounds.
        search: Raw search string.
        page: Page number.
        limit: Records per page.
        sort_by: Sort column.
        sort_order: asc or desc.
        group_id: Optional group filter.

    Returns:
        One page of contacts with pagination metadata.
    """
    page_size = min(limit or settings.default_page_size, settings.max_page_size)
    return await service.search_contacts(
        search=search,
        page=page,
        limit=page_size,
        sort_by=sort_by,
        sort_order=sort_order,
        group_id=group_id,
    )


@router.post("/contacts", response_model=ContactResponse, status_code=201)
async def create_contact(
    request: ContactCreateRequest,
    service: Annotated[ContactService, Depends(get_contact_service)],
) -> ContactResponse:
    """Create a contact at version 1."""
    return await service.create_contact(request)


@router.post("/contacts/ids", response_model=ContactIdsResponse)
async def matching_contact_ids(
    request: ContactIdsRequest,
    service: Annotated[ContactService, Depends(get_contact_service)],
) -> ContactIdsResponse:
    """Return the IDs of every active contact matching a search, unpaginated."""
    ids = await service.matching_ids(search=request.search, group_id=request.group_id)
    return ContactIdsResponse(contact_ids=ids)


@router.get("/contacts/{contact_id}", response_model=ContactDetailResponse)
async def get_contact(
    contact_id: uuid.UUID,
    service: Annotated[ContactService, Depends(get_contact_service)],
) -> ContactDetailResponse:
    """Get a contact with its version history.

    Args:
        contact_id: The contact UUID.
        service: Injected ContactService.

    Returns:
        The contact and its snapshots, newest first.
    """
    return await service.get_contact(contact_id)


@router.put("/contacts/{contact_id}", response_model=ContactResponse)
async def update_contact(
    contact_id: uuid.UUID,
    request: ContactUpdate,
    service: Annotated[ContactService, Depends(get_contact_service)],
) -> ContactResponse:
    """Update a contact's fields as a new version.

    The previous values are snapshotted before the change is applied.

    Args:
        contact_id: The contact UUID.
        request: Fields to change; unset fields are left alone.
        service: Injected ContactService.

    Returns:
        The updated contact.
    """
    logger.info("PUT /contacts/{id}", contact_id=str(contact_id), fields=sorted(request.changes()))
    return await service.update_contact(contact_id, request)


@router.delete("/contacts/{contact_id}", response_model=ContactResponse)
async def delete_contact(
    contact_id: uuid.UUID,
    service: Annotated[ContactService, Depends(get_contact_service)],
) -> ContactResponse:
    """Soft-delete a contact. Its history is kept."""
    return await service.delete_contact(contact_id)


@router.post("/contacts/{contact_id}/reactivate", response_model=ContactResponse)
async def reactivate_contact(
    contact_id: uuid.UUID,
    service: Annotated[ContactService, Depends(get_contact_service)],
) -> ContactResponse:
    return await service.reactivate_contact(contact_id)


@router.get("/contacts/{contact_id}/versions", response_model=list[ContactVersionResponse])
async def list_contact_versions(
    contact_id: uuid.UUID,
    service: Annotated[ContactService, Depends(get_contact_service)],
) -> list[ContactVersionResponse]:
    return await service.list_versions(contact_id)


# ---------------------------------------------------------------------------
# Restore endpoints
# ---------------------------------------------------------------------------


@router.post("/restore/version", response_model=ContactResponse)
async def restore_contact_version(
    request: RestoreVersionRequest,
    service: Annotated[ContactService, Depends(get_contact_service)],
) -> ContactResponse:
    """Restore one contact to the values of an earlier version.

    The restore is recorded as a new version; the counter never goes back.

    Args:
        request: Contact and target version.
        service: Injected ContactService.

    Returns:
        The restored contact.
    """
    logger.info("POST /restore/version", contact_id=str(request.contact_id), version=request.version)
    return await service.restore_to_version(request.contact_id, request.version)


@router.post("/restore/date", response_model=RestoreDateResponse)
async def restore_contacts_to_date(
    request: RestoreDateRequest,
    service: Annotated[ContactService, Depends(get_contact_service)],
) -> RestoreDateResponse:
    """Restore every active contact to its state at a point in time.

    Args:
        request: Target date.
        service: Injected ContactService.

    Returns:
        Number of contacts whose values changed.
    """
    logger.info("POST /restore/date", date=request.date.isoformat())
    restored = await service.restore_all_to_date(request.date)
    return RestoreDateResponse(restored=restored)


# ---------------------------------------------------------------------------
# Group endpoints
# ---------------------------------------------------------------------------


@router.get("/groups", response_model=list[ContactGroupResponse])
async def list_groups(
    service: Annotated[ContactGroupService, Depends(get_group_service)],
) -> list[ContactGroupResponse]:
    return await service.list_groups()


@router.post("/groups", response_model=ContactGroupResponse, status_code=201)
async def create_group(
    request: ContactGroupCreateRequest,
    service: Annotated[ContactGroupService, Depends(get_group_service)],
) -> ContactGroupResponse:
    return await service.create_group(request)


@router.get("/groups/{group_id}", response_model=ContactGroupResponse)
async def get_group(
    group_id: uuid.UUID,
    service: Annotated[ContactGroupService, Depends(get_group_service)],
) -> ContactGroupResponse:
    return await service.get_group(group_id)


@router.put("/groups/{group_id}", response_model=ContactGroupResponse)
async def update_group(
    group_id: uuid.UUID,
    request: ContactGroupUpdateRequest,
    service: Annotated[ContactGroupService, Depends(get_group_service)],
) -> ContactGroupResponse:
    return await service.update_group(group_id, request)


@router.delete("/groups/{group_id}", status_code=204)
async def delete_group(
    group_id: uuid.UUID,
    service: Annotated[ContactGroupService, Depends(get_group_service)],
) -> None:
    """Delete a group and its memberships. Contacts are untouched."""
    await service.delete_group(group_id)


@router.post("/groups/{group_id}/contacts", response_model=GroupMembersResponse)
async def add_group_members(
    group_id: uuid.UUID,
    request: GroupMembersRequest,
    service: Annotated[ContactGroupService, Depends(get_group_service)],
) -> GroupMembersResponse:
    added = await service.add_members(group_id, request.contact_ids)
    return GroupMembersResponse(group_id=group_id, affected=added)


@router.delete("/groups/{group_id}/contacts", response_model=GroupMembersResponse)
async def remove_group_members(
    group_id: uuid.UUID,
    request: GroupMembersRequest,
    service: Annotated[ContactGroupService, Depends(get_group_service)],
) -> GroupMembersResponse:
    removed = await service.remove_members(group_id, request.contact_ids)
    return GroupMembersResponse(group_id=group_id, affected=removed)


# ---------------------------------------------------------------------------
# Display settings endpoints
# ---------------------------------------------------------------------------


@router.get("/settings/display", response_model=DisplaySettingsResponse)
async def get_display_settings(
    service: Annotated[DisplaySettingsService, Depends(get_display_settings_service)],
) -> DisplaySettingsResponse:
    """Load display settings, creating the defaults on first access."""
    return await service.get_settings()


@router.put("/settings/display", response_model=DisplaySettingsResponse)
async def update_display_settings(
    request: DisplaySettingsUpdate,
    service: Annotated[DisplaySettingsService, Depends(get_display_settings_service)],
) -> DisplaySettingsResponse:
    return await service.update_settings(request)


# ---------------------------------------------------------------------------
# Upload and cleanup endpoints
# ---------------------------------------------------------------------------


@router.post("/uploads", response_model=ContactUploadResponse, status_code=201)
async def upload_contacts_csv(
    request: Request,
    service: Annotated[ContactImportService, Depends(get_import_service)],
    filename: str = Query(default="upload.csv", min_length=1, max_length=255),
) -> ContactUploadResponse:
    """Import contacts from a CSV document sent as the request body.

    Args:
        request: The raw request; its body is the UTF-8 CSV document.
        service: Injected ContactImportService.
        filename: Name to record for the upload.

    Returns:
        The upload record, at status `completed`, or `failed` with no contacts kept.

    Raises:
        ValidationError: If the body is not UTF-8 or not a usable CSV.
    """
    body = await request.body()
    try:
        content = body.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ValidationError(message="CSV body must be UTF-8 encoded", field="file") from exc

    logger.info("POST /uploads", filename=filename, size=len(body))
    return await service.import_csv(filename, content)


@router.get("/uploads", response_model=list[ContactUploadResponse])
async def list_uploads(
    service: Annotated[ContactImportService, Depends(get_import_service)],
    limit: int = Query(default=50, ge=1, le=200),
) -> list[ContactUploadResponse]:
    return await service.list_uploads(limit)


@router.post("/cleanup/{action}", response_model=CleanupReportResponse)
async def run_cleanup(
    action: str,
    service: Annotated[CleanupService, Depends(get_cleanup_service)],
) -> CleanupReportResponse:
    """Run a data cleanup action.

    Args:
        action: One of the CleanupAction names.
        service: Injected CleanupService.

    Returns:
        Counts and per-contact details of the run.
    """
    logger.info("POST /cleanup/{action}", action=action)
    return await service.run(action)
