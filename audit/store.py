"""
audit/store.py -- Append-only persistence for audit log entries.

Pattern: Repository + Data Mapper. AuditStore is the repository;
_row_to_entry is the mapper.

Append-only invariant: this class exposes append() and read queries only.
There is deliberately no update or delete method, and no other module writes
to the audit_logs table.
"""

from __future__ import annotations

import json

from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from audit.models import AuditLogEntry
from db.schema import audit_logs, now_iso


class AuditStore:
    """Repository for AuditLogEntry.

    Usage:
        store = AuditStore(engine)
        entry_id = store.append(AuditLogEntry(action="USER_LOGIN", resource="user", user_id=uid))
        entries = store.list_entries(user_id=uid)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def append(self, entry: AuditLogEntry) -> int:
        """Insert an entry and return its id. created_at is always stamped here."""
        with self.engine.connect() as conn:
            result = conn.execute(
                audit_logs.insert().values(
                    user_id=entry.user_id,
                    action=entry.action,
                    resource=entry.resource,
                    resource_id=entry.resource_id,
                    ip_address=entry.ip_address,
                    user_agent=entry.user_agent,
                    details=json.dumps(entry.details or {}, default=str),
                    status=entry.status,
                    created_at=now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get(self, entry_id: int) -> AuditLogEntry | None:
        with self.engine.connect() as conn:
            row = conn.execute(audit_logs.select().where(audit_logs.c.id == entry_id)).fetchone()
        return _row_to_entry(row) if row is not None else None

    def list_entries(
        self,
        user_id: str | None = None,
        action: str | None = None,
        resource: str | None = None,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AuditLogEntry]:
        """Return matching entries, newest first."""
        stmt = _apply_filters(audit_logs.select(), user_id, action, resource, status)
        stmt = stmt.order_by(audit_logs.c.id.desc()).limit(limit).offset(offset)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_entry(r) for r in rows]

    def count(
        self,
        user_id: str | None = None,
        action: str | None = None,
        resource: str | None = None,
        status: str | None = None,
    ) -> int:
        stmt = _apply_filters(select(func.count()).select_from(audit_logs), user_id, action, resource, status)
        with self.engine.connect() as conn:
            return conn.execute(stmt).scalar() or 0


def _apply_filters(stmt, user_id, action, resource, status):
    if user_id is not None:
        stmt = stmt.where(audit_logs.c.user_id == user_id)
    if action is not None:
        stmt = stmt.where(audit_logs.c.action == action)
    if resource is not None:
        stmt = stmt.where(audit_logs.c.resource == resource)
    if status is not None:
        stmt = stmt.where(audit_logs.c.status == status)
    return stmt


def _row_to_entry(row) -> AuditLogEntry:
    return AuditLogEntry(
        id=row.id,
        user_id=row.user_id,
        action=row.action,
        resource=row.resource,
        resource_id=row.resource_id,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        details=json.loads(row.details) if row.details else {},
        status=row.status,
        created_at=row.created_at,
    )
