"""Access control gate for owner-scoped operations."""
import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from filevault.errors import NotFound, Unauthorized
from filevault.models.file_record import FileRecord
from filevault.security import Identity

logger = logging.getLogger(__name__)


def authorize_owner(record: FileRecord, identity: Identity) -> FileRecord:
    """Raise Unauthorized unless ``identity`` owns ``record``."""
    if record.owner_id != identity.owner_id:
        logger.warning("Owner check failed for file %s (caller %s)", record.id, identity.owner_id)
        raise Unauthorized()
    return record


async def load_owned_record(db: AsyncSession, file_id: UUID, identity: Identity) -> FileRecord:
    """Fetch a record and pass it through the owner gate."""
    record = await db.get(FileRecord, file_id)
    if record is None:
        raise NotFound()
    return authorize_owner(record, identity)
