"""Files API routes."""
from urllib.parse import quote
from uuid import UUID

from fastapi import APIRouter, Depends, UploadFile, File as FastAPIFile
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from filevault.config import settings
from filevault.database import get_db
from filevault.schemas.common import DeleteResponse, ErrorResponse
from filevault.schemas.file import FileRecordResponse, FileSummary, ShareLinkResponse
from filevault.security import Identity, require_identity
from filevault.services.access import load_owned_record
from filevault.services.crypto_stream import read_upload
from filevault.services.downloads import open_plaintext, resolve_share_token
from filevault.services.records import delete_file, list_owner_files
from filevault.services.share_links import issue_share_link, revoke_share_link, share_url
from filevault.services.uploads import ingest

router = APIRouter(prefix="/api/files", tags=["files"])

_OWNER_ERRORS = {
    401: {"model": ErrorResponse, "description": "Unauthenticated"},
    403: {"model": ErrorResponse, "description": "Not the owner"},
    404: {"model": ErrorResponse, "description": "File not found"},
}


def _attachment(filename: str) -> str:
    """Content-Disposition for an arbitrary (possibly non-ASCII) filename."""
    fallback = filename.encode("ascii", "replace").decode("ascii").replace('"', "_").replace("\\", "_")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


def _plaintext_response(stream, filename: str) -> StreamingResponse:
    return StreamingResponse(
        stream,
        media_type="application/octet-stream",
        headers={"Content-Disposition": _attachment(filename)},
    )


@router.post("/upload", response_model=FileRecordResponse, status_code=201,
             responses={401: _OWNER_ERRORS[401], 500: {"model": ErrorResponse}})
async def upload_file(
    file: UploadFile = FastAPIFile(...),
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
):
    """Upload a file; it is encrypted on the way to disk."""
    try:
        record = await ingest(
            db,
            owner_id=identity.owner_id,
            original_name=file.filename or "",
            plaintext=read_upload(file, settings.STREAM_CHUNK_SIZE),
        )
    finally:
        # Drops the spooled plaintext temp file
        await file.close()
    return record


@router.get("", response_model=list[FileSummary], responses={401: _OWNER_ERRORS[401]})
async def list_files(
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
):
    """List the caller's files, newest first, without key material."""
    return await list_owner_files(db, identity.owner_id)


@router.get("/download/shared/{token}", responses={
    404: {"model": ErrorResponse}, 410: {"model": ErrorResponse, "description": "Link expired"},
})
async def download_shared_file(
    token: str,
    db: AsyncSession = Depends(get_db),
):
    """Download via a share link. No authentication; the token is the credential."""
    record = await resolve_share_token(db, token)
    return _plaintext_response(await open_plaintext(record), record.original_name)


@router.get("/download/{file_id}", responses=_OWNER_ERRORS)
async def download_file(
    file_id: UUID,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
):
    """Download and decrypt one of the caller's files."""
    record = await load_owned_record(db, file_id, identity)
    return _plaintext_response(await open_plaintext(record), record.original_name)


@router.post("/share/{file_id}", response_model=ShareLinkResponse, responses=_OWNER_ERRORS)
async def create_share_link(
    file_id: UUID,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
):
    """Issue a 24h public link, replacing any link issued before."""
    record = await load_owned_record(db, file_id, identity)
    record = await issue_share_link(db, record)
    return ShareLinkResponse(
        share_url=share_url(record.share_token),
        share_token=record.share_token,
        expires_at=record.share_expires_at,
    )


@router.delete("/share/{file_id}", response_model=FileSummary, responses=_OWNER_ERRORS)
async def delete_share_link(
    file_id: UUID,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
):
    """Revoke the current share link, if any."""
    record = await load_owned_record(db, file_id, identity)
    return await revoke_share_link(db, record)


@router.delete("/{file_id}", response_model=DeleteResponse, responses=_OWNER_ERRORS)
async def remove_file(
    file_id: UUID,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
):
    """Delete a file record and its ciphertext."""
    record = await load_owned_record(db, file_id, identity)
    await delete_file(db, record)
    return DeleteResponse(id=str(file_id))
