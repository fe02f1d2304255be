"""Owner-side record queries and deletion."""
import logging

from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession

from filevault.errors import StorageError
from filevault.models.file_record import FileRecord
from filevault.services.file_storage import file_storage

logger = logging.getLogger(__name__)


async def list_owner_files(db: AsyncSession, owner_id: str) -> list[FileRecord]:
    result = await db.execute(
        select(FileRecord)
        .where(FileRecord.owner_id == owner_id)
        .order_by(desc(FileRecord.created_at))
    )
    return list(result.scalars().all())


async def delete_file(db: AsyncSession, record: FileRecord) -> None:
    """Remove the record, then its ciphertext."""
    file_id, storage_location = record.id, record.storage_location
    await db.delete(record)
    await db.commit()
    try:
        await file_storage.delete(storage_location)
    except OSError as e:
        logger.error("File %s deleted but its ciphertext could not be removed: %s", file_id, e)
        raise StorageError("File record removed, stored bytes could not be deleted") from e
    logger.info("Deleted file %s", file_id)
