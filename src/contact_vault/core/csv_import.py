"""CSV-to-contact field mapping.

A column populates a contact field when its header, stripped and lower-cased,
equals the field name. Other columns are ignored and blank cells become null.
"""

import csv
import io

from contact_vault.core.fields import SEARCHABLE_FIELDS, ContactFields
from contact_vault.errors import ValidationError


def parse_contacts_csv(content: str) -> list[ContactFields]:
    """Parse CSV text with a header row into contact field values.

    Rows in which every mapped cell is blank are skipped.

    Args:
        content: Decoded CSV document.

    Returns:
        One ContactFields per non-empty data row, in file order.

    Raises:
        ValidationError: If the document is not valid CSV or has no header
            matching a contact field.
    """
    reader = csv.DictReader(io.StringIO(content.lstrip("\ufeff")))
    try:
        headers = reader.fieldnames or []
        column_for_field = {
            header.strip().lower(): header
            for header in headers
            if header and header.strip().lower() in SEARCHABLE_FIELDS
        }
        if not column_for_field:
            raise ValidationError(
                message=f"CSV header must contain at least one of: {', '.join(SEARCHABLE_FIELDS)}",
                field="file",
            )

        contacts: list[ContactFields] = []
        for row in reader:
            values = {field: _cell(row.get(column)) for field, column in column_for_field.items()}
            if any(value is not None for value in values.values()):
                contacts.append(ContactFields(**values))
    except csv.Error as exc:
        raise ValidationError(message=f"CSV parsing failed: {exc}", field="file") from exc
    return contacts


def _cell(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None
