"""
uploads/models.py -- Metadata for stored files. The bytes live in uploads/storage.py.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class UploadedFile:
    """A file a user uploaded.

    name is the generated on-disk name ("<id>.<ext>"); original_name is what
    the browser sent and is never used to build a filesystem path.
    """

    name: str
    original_name: str
    mime_type: str
    size: int
    path: str
    uploaded_by: str
    id: str | None = None
    created_at: str | None = None
