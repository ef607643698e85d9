"""Attachment schemas package."""
from .attachment import AttachmentUpload, AttachmentUploadBatch, UploadFileSpec

__all__ = ["AttachmentUpload", "AttachmentUploadBatch", "UploadFileSpec"]
