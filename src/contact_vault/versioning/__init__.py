"""Contact version history — append-only snapshots and restore.

Every field mutation snapshots the prior values first; restores create a new
version whose content equals an older one, for one contact or the whole
dataset at a point in time.
"""

from contact_vault.versioning.repository import ContactVersionRepository
from contact_vault.versioning.service import VersionService

__all__ = [
    "ContactVersionRepository",
    "VersionService",
]
