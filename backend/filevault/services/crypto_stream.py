"""Streaming AES-256-CBC stages.

An upload is ``read_upload -> ByteCounter.tap -> encrypt_chunks -> write_file``
and a download is ``read_file -> decrypt_chunks -> HTTP response``. Each stage
is an async generator pulled by the next one, so a source never reads ahead of
its consumer and only about one chunk per stage is held in memory whatever the
file size. Closing the last stage (e.g. the client went away) closes every
stage behind it, which releases file handles and cipher contexts.
"""
import asyncio
import logging
import os
from contextlib import aclosing
from typing import AsyncIterator, Protocol

import aiofiles
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from filevault.errors import StorageError

logger = logging.getLogger(__name__)

KEY_BYTES = 32
IV_BYTES = 16
BLOCK_BITS = algorithms.AES.block_size  # 128


class _AsyncReadable(Protocol):
    async def read(self, size: int = -1) -> bytes: ...


def generate_key_material() -> tuple[bytes, bytes]:
    """Fresh (key, iv) from the OS CSPRNG. Never reuse across files."""
    return os.urandom(KEY_BYTES), os.urandom(IV_BYTES)


def _cipher(key: bytes, iv: bytes) -> Cipher:
    if len(key) != KEY_BYTES:
        raise ValueError("AES-256 key must be 32 bytes")
    if len(iv) != IV_BYTES:
        raise ValueError("CBC IV must be 16 bytes")
    return Cipher(algorithms.AES(key), modes.CBC(iv))


async def read_upload(upload: _AsyncReadable, chunk_size: int) -> AsyncIterator[bytes]:
    """Source stage over an uploaded (spooled) plaintext file."""
    while True:
        chunk = await upload.read(chunk_size)
        if not chunk:
            break
        yield chunk


async def read_file(path: str, chunk_size: int) -> AsyncIterator[bytes]:
    """Source stage over a file on disk."""
    async with aiofiles.open(path, "rb") as f:
        while True:
            chunk = await f.read(chunk_size)
            if not chunk:
                break
            yield chunk


class ByteCounter:
    """Pass-through stage that counts bytes flowing by."""

    def __init__(self):
        self.count = 0

    async def tap(self, chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        async with aclosing(chunks):
            async for chunk in chunks:
                self.count += len(chunk)
                yield chunk


async def encrypt_chunks(chunks: AsyncIterator[bytes], key: bytes, iv: bytes) -> AsyncIterator[bytes]:
    """PKCS7-pad and encrypt. Always emits at least one block, even for empty input."""
    padder = padding.PKCS7(BLOCK_BITS).padder()
    encryptor = _cipher(key, iv).encryptor()
    async with aclosing(chunks):
        async for chunk in chunks:
            out = encryptor.update(padder.update(chunk))
            if out:
                yield out
    yield encryptor.update(padder.finalize()) + encryptor.finalize()


async def decrypt_chunks(chunks: AsyncIterator[bytes], key: bytes, iv: bytes) -> AsyncIterator[bytes]:
    """Decrypt and strip PKCS7 padding.

    The unpadder holds back the last block until the stream ends, so output
    lags input by at most one block.
    """
    unpadder = padding.PKCS7(BLOCK_BITS).unpadder()
    decryptor = _cipher(key, iv).decryptor()
    async with aclosing(chunks):
        async for chunk in chunks:
            out = unpadder.update(decryptor.update(chunk))
            if out:
                yield out
    try:
        tail = unpadder.update(decryptor.finalize()) + unpadder.finalize()
    except ValueError as e:
        # Truncated file or wrong key material
        logger.error("Ciphertext failed to decrypt cleanly: %s", e)
        raise StorageError("Stored file is corrupt") from e
    if tail:
        yield tail


async def write_file(chunks: AsyncIterator[bytes], path: str) -> int:
    """Sink stage. Drains ``chunks`` into ``path`` and fsyncs it.

    Returns the number of bytes written; any stage failure surfaces here as
    the single error for the whole pipeline.
    """
    written = 0
    async with aclosing(chunks), aiofiles.open(path, "wb") as out:
        async for chunk in chunks:
            await out.write(chunk)
            written += len(chunk)
        await out.flush()
        await asyncio.to_thread(os.fsync, out.fileno())
    return written
