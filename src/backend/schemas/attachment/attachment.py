"""
Presigned upload schemas for customer attachments.
"""
from typing import Dict, List

from pydantic import Field, field_validator

from core.schema_base import HTTPSchemaModel


class UploadFileSpec(HTTPSchemaModel):
    """A file the client intends to upload."""

    file_name: str = Field(..., min_length=1, max_length=255)
    content_type: str = Field(..., min_length=1, max_length=100)

    @field_validator("file_name")
    @classmethod
    def reject_path_segments(cls, v: str) -> str:
        if "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError("file_name must not contain path separators")
        return v


class AttachmentUpload(HTTPSchemaModel):
    """POST policy for one file: the client posts ``fields`` plus the file to ``url``."""

    file_name: str
    key: str
    url: str
    fields: Dict[str, str]


class AttachmentUploadBatch(HTTPSchemaModel):
    """Uploads sharing one temporary batch id, confirmed together later."""

    batch_id: str
    uploads: List[AttachmentUpload]
