"""Shared Pydantic schemas."""
from filevault.schemas.base import CamelModel


class DeleteResponse(CamelModel):
    deleted: bool = True
    id: str = ""
    msg: str = "File deleted successfully"


class ErrorResponse(CamelModel):
    detail: str
    reason: str
