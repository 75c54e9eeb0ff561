"""
uploads/store.py -- SQLAlchemy Core persistence for file metadata.

Repository + Data Mapper, same shape as auth/store.py. Only metadata lives in
the database; the bytes are written by uploads/storage.py.
"""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from db.schema import files, now_iso
from uploads.models import UploadedFile


class FileStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create(self, record: UploadedFile) -> UploadedFile:
        """Insert record (whose id the caller generated) and return it with created_at set."""
        record.created_at = now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                files.insert().values(
                    id=record.id,
                    name=record.name,
                    original_name=record.original_name,
                    mime_type=record.mime_type,
                    size=record.size,
                    path=record.path,
                    uploaded_by=record.uploaded_by,
                    created_at=record.created_at,
                )
            )
            conn.commit()
        return record

    def get(self, file_id: str) -> UploadedFile | None:
        with self.engine.connect() as conn:
            row = conn.execute(files.select().where(files.c.id == file_id)).fetchone()
        return _row_to_file(row) if row is not None else None

    def list_for_user(self, user_id: str, limit: int = 10, offset: int = 0) -> list[UploadedFile]:
        """Newest first."""
        stmt = (
            files.select()
            .where(files.c.uploaded_by == user_id)
            .order_by(files.c.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_file(r) for r in rows]

    def count_for_user(self, user_id: str) -> int:
        stmt = select(func.count()).select_from(files).where(files.c.uploaded_by == user_id)
        with self.engine.connect() as conn:
            return conn.execute(stmt).scalar() or 0


def _row_to_file(row) -> UploadedFile:
    return UploadedFile(
        id=row.id,
        name=row.name,
        original_name=row.original_name,
        mime_type=row.mime_type,
        size=row.size,
        path=row.path,
        uploaded_by=row.uploaded_by,
        created_at=row.created_at,
    )
