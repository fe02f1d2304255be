"""Upload pipeline: plaintext stream in, ciphertext on disk plus a FileRecord out.

Order of events for one upload:

    1. stream plaintext -> encrypt -> <final>.part
    2. INSERT the record (flushed, not committed)
    3. rename <final>.part -> <final>
    4. COMMIT

If anything fails before the commit lands, the transaction is rolled back
and whatever file was written is removed, so no record ever points at
missing or partial ciphertext and no ciphertext is left unreferenced.
"""
import logging
from typing import AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from filevault.errors import StorageError, ValidationError
from filevault.models.file_record import MAX_OWNER_ID_LENGTH, FileRecord
from filevault.services.crypto_stream import (
    ByteCounter,
    encrypt_chunks,
    generate_key_material,
    write_file,
)
from filevault.services.file_storage import file_storage

logger = logging.getLogger(__name__)


async def ingest(
    db: AsyncSession,
    owner_id: str,
    original_name: str,
    plaintext: AsyncIterator[bytes],
) -> FileRecord:
    """Encrypt ``plaintext`` to storage and create its record."""
    if not original_name or not original_name.strip():
        raise ValidationError("File name is required")
    if len(owner_id) > MAX_OWNER_ID_LENGTH:
        raise ValidationError("Owner id is too long")

    key, iv = generate_key_material()
    final_path, partial_path = file_storage.allocate(original_name)
    counter = ByteCounter()
    committed = False

    try:
        await write_file(encrypt_chunks(counter.tap(plaintext), key, iv), partial_path)

        record = FileRecord(
            owner_id=owner_id,
            original_name=original_name,
            storage_location=final_path,
            size_bytes=counter.count,
            encryption_key=key.hex(),
            iv=iv.hex(),
        )
        db.add(record)
        await db.flush()

        await file_storage.publish(partial_path, final_path)
        await db.commit()
        committed = True
    except (OSError, SQLAlchemyError) as e:
        logger.error("Upload of %r for owner %s failed: %s", original_name, owner_id, e)
        raise StorageError("Could not store encrypted file") from e
    finally:
        if not committed:
            await db.rollback()
            for path in (partial_path, final_path):
                if await file_storage.discard(path):
                    logger.info("Removed unpublished ciphertext %s after failed upload", path)

    await db.refresh(record)
    logger.info("Stored encrypted file %s for owner %s (%d bytes)", record.id, owner_id, record.size_bytes)
    return record
