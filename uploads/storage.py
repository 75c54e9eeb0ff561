"""
uploads/storage.py -- Validation and local-disk storage for uploaded files.

Security:
  The browser-supplied filename is never used to build a path. Stored files
  are named "<uuid-hex>.<ext>", where ext comes from the original name only
  after it passes a strict alphanumeric check.
  The MIME allow-list is checked against the declared content type; size is
  checked against the bytes actually read, not a client header.
"""

from __future__ import annotations

import logging
import re
import uuid
from pathlib import Path

from core.errors import ValidationError
from uploads.models import UploadedFile

logger = logging.getLogger("starterkit.uploads")

ALLOWED_MIME_TYPES: frozenset[str] = frozenset(
    {
        # Images
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        # Documents
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "text/plain",
        # Spreadsheets
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    }
)

_EXT_RE = re.compile(r"^[A-Za-z0-9]{1,10}$")


def file_extension(filename: str) -> str:
    """Return the lower-cased extension of filename, or "bin" when it has none usable."""
    _, dot, ext = filename.rpartition(".")
    if dot and _EXT_RE.match(ext):
        return ext.lower()
    return "bin"


def validate_upload(mime_type: str | None, size: int, max_size: int) -> None:
    """Raise ValidationError if the type is not allowed or the size is out of range."""
    if not mime_type or mime_type not in ALLOWED_MIME_TYPES:
        raise ValidationError(f"File type {mime_type or 'unknown'!s} is not allowed.")
    if size == 0:
        raise ValidationError("File is empty.")
    if size > max_size:
        raise ValidationError(f"File exceeds the maximum size of {max_size // (1024 * 1024)}MB.")


class LocalStorage:
    """Writes validated uploads under a single directory.

    Usage:
        storage = LocalStorage("./uploads", max_size=5 * 1024 * 1024)
        record = storage.save(data, "report.pdf", "application/pdf", uploaded_by=user.id)
    """

    def __init__(self, upload_dir: str, max_size: int) -> None:
        self.root = Path(upload_dir)
        self.max_size = max_size

    def save(self, data: bytes, original_name: str, mime_type: str | None, uploaded_by: str) -> UploadedFile:
        """Validate and write data. Returns the metadata record, not yet persisted."""
        validate_upload(mime_type, len(data), self.max_size)
        file_id = uuid.uuid4().hex
        name = f"{file_id}.{file_extension(original_name)}"
        self.root.mkdir(parents=True, exist_ok=True)
        path = self.root / name
        path.write_bytes(data)
        logger.info("Stored upload %s (%d bytes, %s)", name, len(data), mime_type)
        return UploadedFile(
            id=file_id,
            name=name,
            original_name=original_name,
            mime_type=mime_type,
            size=len(data),
            path=str(path),
            uploaded_by=uploaded_by,
        )

    def delete(self, record: UploadedFile) -> None:
        """Remove the bytes for record. Used to roll back when metadata insert fails."""
        Path(record.path).unlink(missing_ok=True)
