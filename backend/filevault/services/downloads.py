"""Download pipeline: a FileRecord in, a plaintext byte stream out."""
import logging
from typing import AsyncIterator

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from filevault.config import settings
from filevault.errors import Expired, NotFound, ciphertext_missing
from filevault.models.file_record import FileRecord
from filevault.services.crypto_stream import decrypt_chunks, read_file
from filevault.services.file_storage import file_storage
from filevault.services.share_links import is_expired

logger = logging.getLogger(__name__)


async def resolve_share_token(db: AsyncSession, token: str) -> FileRecord:
    """Public path: the token is the only credential."""
    result = await db.execute(select(FileRecord).where(FileRecord.share_token == token))
    record = result.scalar_one_or_none()
    if record is None:
        raise NotFound("File not found or invalid link")
    if is_expired(record):
        logger.info("Expired share link used for file %s", record.id)
        raise Expired()
    return record


async def open_plaintext(record: FileRecord, chunk_size: int | None = None) -> AsyncIterator[bytes]:
    """Stream the decrypted contents of ``record``.

    The existence check happens here, before any bytes go out, so a missing
    file is still reportable as a clean 404.
    """
    if not await file_storage.exists(record.storage_location):
        logger.error("Ciphertext for file %s is missing from storage", record.id)
        raise ciphertext_missing()
    key = bytes.fromhex(record.encryption_key)
    iv = bytes.fromhex(record.iv)
    source = read_file(record.storage_location, chunk_size or settings.STREAM_CHUNK_SIZE)
    return decrypt_chunks(source, key, iv)
