"""Ciphertext storage on the local filesystem.

Files are written under a ``.part`` name and only renamed to their final
name once the owning record has been inserted, so a final-named file always
has complete ciphertext behind it.
"""
import logging
import re
import time
import uuid
from pathlib import Path

import aiofiles.os

from filevault.config import settings

logger = logging.getLogger(__name__)

ENCRYPTED_SUFFIX = ".enc"
PARTIAL_SUFFIX = ".part"
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def _safe_component(original_name: str) -> str:
    """Filesystem-safe rendering of an uploader-supplied name (display only)."""
    name = _UNSAFE_CHARS.sub("_", Path(original_name).name).strip("._")
    return name[:100] or "file"


class FileStorageService:
    """Handles ciphertext placement, publish and removal on local disk."""

    def __init__(self, base_path: str | None = None):
        self.base_path = Path(base_path or settings.FILE_STORAGE_PATH)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def allocate(self, original_name: str) -> tuple[str, str]:
        """Pick a fresh (final_path, partial_path) pair for a new upload.

        The name carries a millisecond timestamp and the original name for
        operators; the random fragment keeps it unique.
        """
        filename = (
            f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-"
            f"{_safe_component(original_name)}{ENCRYPTED_SUFFIX}"
        )
        final_path = self.base_path / filename
        return str(final_path), str(final_path) + PARTIAL_SUFFIX

    async def publish(self, partial_path: str, final_path: str) -> None:
        """Atomically move a completed write to its final name."""
        await aiofiles.os.replace(partial_path, final_path)

    async def exists(self, storage_path: str) -> bool:
        return await aiofiles.os.path.isfile(storage_path)

    async def discard(self, storage_path: str) -> bool:
        """Remove a file if present. Returns whether something was removed."""
        try:
            await aiofiles.os.remove(storage_path)
        except FileNotFoundError:
            return False
        return True

    async def delete(self, storage_path: str) -> None:
        """Delete file from storage."""
        if not await self.discard(storage_path):
            logger.warning("Ciphertext already missing at delete time: %s", storage_path)


file_storage = FileStorageService()
