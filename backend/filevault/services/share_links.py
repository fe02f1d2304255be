"""Share link lifecycle.

A record is either unshared (no token) or shared (token + expiry). Issuing
always mints a new token, so re-issuing invalidates the previous link at
once. Expiry is never swept; it is checked when the link is used.
"""
import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from filevault.config import settings
from filevault.models.file_record import FileRecord
from filevault.services import clock

logger = logging.getLogger(__name__)

SHARE_TTL = timedelta(hours=24)
TOKEN_BYTES = 32  # 64 hex chars


def new_share_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


def share_url(token: str) -> str:
    return f"{settings.PUBLIC_BASE_URL.rstrip('/')}/api/files/download/shared/{token}"


def is_expired(record: FileRecord, at: Optional[datetime] = None) -> bool:
    """True once ``at`` (default: now) is past the share expiry."""
    if record.share_expires_at is None:
        return True
    at = at or clock.now()
    return at > clock.as_utc(record.share_expires_at)


async def issue_share_link(db: AsyncSession, record: FileRecord) -> FileRecord:
    """Shared or not, the record ends up shared with a brand new token."""
    record.share_token = new_share_token()
    record.share_expires_at = clock.now() + SHARE_TTL
    await db.commit()
    await db.refresh(record)
    logger.info("Issued share link for file %s, expires %s", record.id, record.share_expires_at)
    return record


async def revoke_share_link(db: AsyncSession, record: FileRecord) -> FileRecord:
    """Back to unshared. Revoking an unshared record is a no-op."""
    if record.share_token is None:
        return record
    record.share_token = None
    record.share_expires_at = None
    await db.commit()
    await db.refresh(record)
    logger.info("Revoked share link for file %s", record.id)
    return record
