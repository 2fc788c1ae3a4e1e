"""Core business logic services for contact-vault.

Service classes:
- ContactService: search, create, versioned update, soft delete, restore
- ContactGroupService: group lifecycle and membership
- DisplaySettingsService: keyed display-settings singleton with load-or-initialize
- ContactImportService: CSV import into contacts with upload progress tracking

All services are async-first. They accept injected repositories through their
constructors and contain no framework code. Field mutations of contacts are
always delegated to VersionService so that every edit is snapshotted first.
"""

import math
import uuid
from datetime import datetime

from contact_vault.api.schemas import (
    ContactCreateRequest,
    ContactDetailResponse,
    ContactGroupCreateRequest,
    ContactGroupResponse,
    ContactGroupUpdateRequest,
    ContactListResponse,
    ContactResponse,
    ContactUpdate,
    ContactUploadResponse,
    ContactVersionResponse,
    DisplaySettingsResponse,
    DisplaySettingsUpdate,
    PaginationInfo,
)
from contact_vault.core.csv_import import parse_contacts_csv
from contact_vault.core.fields import ContactFields
from contact_vault.core.interfaces import (
    IContactGroupRepository,
    IContactRepository,
    IContactUploadRepository,
    IDisplaySettingsRepository,
)
from contact_vault.core.models import Contact, ContactGroup
from contact_vault.errors import ValidationError
from contact_vault.observability import get_logger
from contact_vault.search.compiler import compile_query
from contact_vault.versioning.service import VersionService

logger = get_logger(__name__)

DEFAULT_DISPLAY_SETTINGS: dict[str, object] = {
    "show_name": True,
    "show_email": True,
    "show_phone": True,
    "show_address": True,
    "show_notes": False,
    "terse_display": False,
    "items_per_page": 20,
    "sort_by": "name",
    "sort_order": "asc",
}


class ContactService:
    """Contact search and lifecycle.

    Args:
        contact_repo: Record store for contacts.
        version_service: Snapshot-before-mutate and restore operations.
    """

    def __init__(self, contact_repo: IContactRepository, version_service: VersionService) -> None:
        """Initialize ContactService with injected dependencies.

        Args:
            contact_repo: Repository implementing IContactRepository.
            version_service: VersionService sharing the same session.
        """
        self._contact_repo = contact_repo
        self._version_service = version_service

    async def search_contacts(
        self,
        search: str = "",
        page: int = 1,
        limit: int = 20,
        sort_by: str = "name",
        sort_order: str = "asc",
        group_id: uuid.UUID | None = None,
    ) -> ContactListResponse:
        """Search active contacts with the free-text query syntax.

        Args:
            search: Raw search string (AND/OR/NOT, quotes, ``empty <field>``).
            page: Page number (1-indexed).
            limit: Page size.
            sort_by: Sort column.
            sort_order: asc or desc.
            group_id: Optional group filter.

        Returns:
            One page of contacts plus pagination metadata.
        """
        predicate = compile_query(search)
        logger.debug("Compiled search", search=search, predicate=repr(predicate))

        contacts, total = await self._contact_repo.find(
            predicate,
            sort_by=sort_by,
            sort_order=sort_order,
            page=page,
            page_size=limit,
            group_id=group_id,
        )
        return ContactListResponse(
            contacts=[_contact_to_response(c) for c in contacts],
            pagination=PaginationInfo(page=page, limit=limit, total=total, pages=math.ceil(total / limit)),
        )

    async def matching_ids(self, search: str = "", group_id: uuid.UUID | None = None) -> list[uuid.UUID]:
        """Return the IDs of every active contact matching a search."""
        ids = await self._contact_repo.find_ids(compile_query(search), group_id=group_id)
        logger.info("Resolved contact IDs for search", search=search, count=len(ids))
        return ids

    async def create_contact(self, request: ContactCreateRequest) -> ContactResponse:
        """Create a contact at version 1. No snapshot is taken on creation."""
        contact = await self._contact_repo.create(ContactFields(**request.model_dump()))
        logger.info("Contact created", contact_id=str(contact.id))
        return _contact_to_response(contact)

    async def get_contact(self, contact_id: uuid.UUID) -> ContactDetailResponse:
        """Get a contact and its version history.

        Raises:
            RecordNotFoundError: If the contact does not exist.
        """
        contact = await self._contact_repo.get_by_id(contact_id)
        versions = await self._version_service.list_versions(contact_id)
        return ContactDetailResponse(
            **_contact_to_response(contact).model_dump(),
            versions=[ContactVersionResponse.model_validate(v) for v in versions],
        )

    async def list_versions(self, contact_id: uuid.UUID) -> list[ContactVersionResponse]:
        versions = await self._version_service.list_versions(contact_id)
        return [ContactVersionResponse.model_validate(v) for v in versions]

    async def update_contact(self, contact_id: uuid.UUID, update: ContactUpdate) -> ContactResponse:
        """Apply a typed partial update as a new version.

        Args:
            contact_id: The contact UUID.
            update: Fields to change.

        Returns:
            The updated contact.

        Raises:
            RecordNotFoundError: If the contact does not exist.
        """
        contact = await self._contact_repo.get_by_id(contact_id)
        updated = await self._version_service.record_mutation(contact, update.changes(), reason="update")
        return _contact_to_response(updated)

    async def delete_contact(self, contact_id: uuid.UUID) -> ContactResponse:
        """Soft-delete a contact."""
        return _contact_to_response(await self._contact_repo.set_active(contact_id, False))

    async def reactivate_contact(self, contact_id: uuid.UUID) -> ContactResponse:
        """Undo a soft delete."""
        return _contact_to_response(await self._contact_repo.set_active(contact_id, True))

    async def restore_to_version(self, contact_id: uuid.UUID, version: int) -> ContactResponse:
        """Restore one contact to a prior version.

        Raises:
            RecordNotFoundError: If the contact does not exist.
            VersionNotFoundError: If the version has no snapshot.
        """
        return _contact_to_response(await self._version_service.restore_to_version(contact_id, version))

    async def restore_all_to_date(self, target_date: datetime) -> int:
        """Restore every active contact to its state at a date. Returns the change count."""
        return await self._version_service.restore_all_to_date(target_date)


class ContactGroupService:
    """Contact group lifecycle and membership.

    Args:
        group_repo: Repository implementing IContactGroupRepository.
    """

    def __init__(self, group_repo: IContactGroupRepository) -> None:
        self._group_repo = group_repo

    async def create_group(self, request: ContactGroupCreateRequest) -> ContactGroupResponse:
        group = await self._group_repo.create(request.name, request.description, request.color)
        return _group_to_response(group, 0)

    async def list_groups(self) -> list[ContactGroupResponse]:
        groups = await self._group_repo.list_all()
        counts = await self._group_repo.member_counts()
        return [_group_to_response(g, counts.get(g.id, 0)) for g in groups]

    async def get_group(self, group_id: uuid.UUID) -> ContactGroupResponse:
        group = await self._group_repo.get_by_id(group_id)
        counts = await self._group_repo.member_counts()
        return _group_to_response(group, counts.get(group_id, 0))

    async def update_group(self, group_id: uuid.UUID, request: ContactGroupUpdateRequest) -> ContactGroupResponse:
        """Update only the fields set in the request.

        Raises:
            NotFoundError: If the group does not exist.
            ValidationError: If the request explicitly clears the name or color.
        """
        changes = request.model_dump(exclude_unset=True)
        if "name" in changes and not changes["name"]:
            raise ValidationError(message="Group name is required", field="name")
        if "color" in changes and changes["color"] is None:
            raise ValidationError(message="Group color cannot be null", field="color")
        group = await self._group_repo.update(group_id, changes)
        counts = await self._group_repo.member_counts()
        return _group_to_response(group, counts.get(group_id, 0))

    async def delete_group(self, group_id: uuid.UUID) -> None:
        await self._group_repo.delete(group_id)

    async def add_members(self, group_id: uuid.UUID, contact_ids: list[uuid.UUID]) -> int:
        added = await self._group_repo.add_members(group_id, contact_ids)
        logger.info("Contacts added to group", group_id=str(group_id), count=added)
        return added

    async def remove_members(self, group_id: uuid.UUID, contact_ids: list[uuid.UUID]) -> int:
        removed = await self._group_repo.remove_members(group_id, contact_ids)
        logger.info("Contacts removed from group", group_id=str(group_id), count=removed)
        return removed


class DisplaySettingsService:
    """Keyed singleton of display preferences.

    The record for a key is created with DEFAULT_DISPLAY_SETTINGS the first
    time it is read or written; there is no ambient global settings state.

    Args:
        settings_repo: Repository implementing IDisplaySettingsRepository.
        user_key: Key of the settings record this service manages.
    """

    def __init__(self, settings_repo: IDisplaySettingsRepository, user_key: str = "default") -> None:
        self._settings_repo = settings_repo
        self._user_key = user_key

    async def get_settings(self) -> DisplaySettingsResponse:
        """Load the settings, initializing them with defaults on first access."""
        settings = await self._settings_repo.get(self._user_key)
        if settings is None:
            logger.info("Initializing default display settings", user_key=self._user_key)
            settings = await self._settings_repo.create(self._user_key, dict(DEFAULT_DISPLAY_SETTINGS))
        return DisplaySettingsResponse.model_validate(settings)

    async def update_settings(self, update: DisplaySettingsUpdate) -> DisplaySettingsResponse:
        """Upsert the fields set in `update`."""
        changes = update.changes()
        settings = await self._settings_repo.get(self._user_key)
        if settings is None:
            settings = await self._settings_repo.create(self._user_key, {**DEFAULT_DISPLAY_SETTINGS, **changes})
        else:
            settings = await self._settings_repo.update(settings, changes)
        logger.info("Display settings updated", user_key=self._user_key, fields=sorted(changes))
        return DisplaySettingsResponse.model_validate(settings)


class ContactImportService:
    """CSV import of contacts.

    Args:
        contact_repo: Record store for contacts.
        upload_repo: Repository implementing IContactUploadRepository.
        batch_size: Rows created between progress updates.
    """

    def __init__(
        self,
        contact_repo: IContactRepository,
        upload_repo: IContactUploadRepository,
        batch_size: int = 100,
    ) -> None:
        self._contact_repo = contact_repo
        self._upload_repo = upload_repo
        self._batch_size = batch_size

    async def import_csv(self, filename: str, content: str) -> ContactUploadResponse:
        """Parse a CSV document and create one contact per data row.

        Args:
            filename: Name the file was uploaded under.
            content: Decoded CSV text with a header row.

        Contacts are inserted inside a savepoint. If any insert fails, none of
        the file's contacts are kept and the upload is recorded as ``failed``
        with zero processed contacts.

        Returns:
            The upload record, with status ``completed`` or ``failed``.

        Raises:
            ValidationError: If the CSV cannot be parsed.
        """
        rows = parse_contacts_csv(content)
        upload = await self._upload_repo.create(filename, len(rows))
        logger.info("CSV import started", upload_id=str(upload.id), filename=filename, rows=len(rows))

        processed = 0
        try:
            async with self._contact_repo.savepoint():
                for start in range(0, len(rows), self._batch_size):
                    batch = rows[start : start + self._batch_size]
                    for fields in batch:
                        await self._contact_repo.create(fields, upload_id=upload.id)
                    processed += len(batch)
                    await self._upload_repo.update_progress(upload, processed)
        except Exception:
            logger.exception("CSV import failed", upload_id=str(upload.id), processed=processed)
            upload = await self._upload_repo.update_progress(upload, 0, status="failed")
            return ContactUploadResponse.model_validate(upload)

        upload = await self._upload_repo.update_progress(upload, processed, status="completed")
        logger.info("CSV import completed", upload_id=str(upload.id), processed=processed)
        return ContactUploadResponse.model_validate(upload)

    async def list_uploads(self, limit: int = 50) -> list[ContactUploadResponse]:
        uploads = await self._upload_repo.list_recent(limit)
        return [ContactUploadResponse.model_validate(u) for u in uploads]


# ---------------------------------------------------------------------------
# Private response mappers: ORM model → Pydantic response schema
# ---------------------------------------------------------------------------


def _contact_to_response(contact: Contact) -> ContactResponse:
    """Convert a Contact ORM model to a response schema.

    Args:
        contact: The Contact ORM instance.

    Returns:
        ContactResponse Pydantic model.
    """
    return ContactResponse(
        id=contact.id,
        name=contact.name,
        email=contact.email,
        phone=contact.phone,
        address=contact.address,
        notes=contact.notes,
        version=contact.version,
        is_active=contact.is_active,
        upload_id=contact.upload_id,
        created_at=contact.created_at,
        updated_at=contact.updated_at,
    )


def _group_to_response(group: ContactGroup, member_count: int) -> ContactGroupResponse:
    return ContactGroupResponse(
        id=group.id,
        name=group.name,
        description=group.description,
        color=group.color,
        member_count=member_count,
        created_at=group.created_at,
        updated_at=group.updated_at,
    )
