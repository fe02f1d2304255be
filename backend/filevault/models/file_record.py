"""FileRecord model - metadata and key material for one encrypted file.

The ciphertext itself lives on disk at ``storage_location``; the record is the
authoritative index, the filename is not.
"""
import uuid
from datetime import datetime
from sqlalchemy import String, BigInteger, DateTime, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from filevault.models.base import Base, TimestampMixin


MAX_OWNER_ID_LENGTH = 100


class FileRecord(Base, TimestampMixin):
    __tablename__ = "files"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[str] = mapped_column(String(MAX_OWNER_ID_LENGTH), nullable=False, index=True)
    original_name: Mapped[str] = mapped_column(Text, nullable=False)
    storage_location: Mapped[str] = mapped_column(String(1000), nullable=False, unique=True)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Hex encoded: 32-byte AES-256 key, 16-byte CBC IV
    encryption_key: Mapped[str] = mapped_column(String(64), nullable=False)
    iv: Mapped[str] = mapped_column(String(32), nullable=False)

    # Both set or both null
    share_token: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True, index=True)
    share_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def is_shared(self) -> bool:
        return self.share_token is not None
