"""File request/response schemas."""
import uuid
from typing import Optional
from datetime import datetime
from filevault.schemas.base import CamelModel, CamelORMModel


class FileSummary(CamelORMModel):
    """A record as listed to its owner; key material is left out."""
    id: uuid.UUID
    owner_id: str
    original_name: str
    size_bytes: int
    share_token: Optional[str] = None
    share_expires_at: Optional[datetime] = None
    created_at: datetime


class FileRecordResponse(FileSummary):
    """Full record returned once, at upload time, key and IV included (hex)."""
    encryption_key: str
    iv: str


class ShareLinkResponse(CamelModel):
    share_url: str
    share_token: str
    expires_at: datetime
