"""Validation of files uploaded with a message."""

import base64
from typing import List, Optional

from fastapi import UploadFile

from ..domain.exceptions import ValidationError
from ..domain.models import FileAttachment

MAX_FILES = 5
MAX_FILE_SIZE = 5 * 1024 * 1024

ALLOWED_TYPES = {
    "text/plain",
    "application/pdf",
    "text/html",
    "text/css",
    "application/javascript",
    "text/javascript",
    "application/typescript",
    "text/x-python",
    "text/markdown",
    "application/x-typescript",
}

ALLOWED_EXTENSIONS = {"txt", "pdf", "py", "tsx", "js", "ts", "jsx", "css", "html", "md"}


def is_allowed(filename: str, content_type: Optional[str]) -> bool:
    """Accept by declared media type or by file extension."""
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    return (content_type or "") in ALLOWED_TYPES or extension in ALLOWED_EXTENSIONS


async def read_attachments(files: Optional[List[UploadFile]]) -> List[FileAttachment]:
    """Read uploads into attachments, enforcing count, size and type limits."""
    files = [f for f in files or [] if f.filename]
    if len(files) > MAX_FILES:
        raise ValidationError(f"At most {MAX_FILES} files can be attached")

    attachments = []
    for upload in files:
        if not is_allowed(upload.filename, upload.content_type):
            raise ValidationError(f"Unsupported file type: {upload.filename}")
        data = await upload.read(MAX_FILE_SIZE + 1)
        if len(data) > MAX_FILE_SIZE:
            raise ValidationError(f"File too large: {upload.filename} (limit 5MB)")
        attachments.append(
            FileAttachment(
                name=upload.filename,
                type=upload.content_type or "application/octet-stream",
                content=base64.b64encode(data).decode("ascii"),
            )
        )
    return attachments
