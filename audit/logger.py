"""
audit/logger.py -- The audit log entry point every component calls.

AuditLogger.record() does two things:
  1. Appends an AuditLogEntry through AuditStore (the durable trail).
  2. Emits an "[AUDIT] <action>" line on the starterkit.audit logger so the
     same event shows up in the process log stream.

Callers pass what they know; nothing here inspects or validates the action
verb. Any component may append -- ownership of the trail is process-wide.
"""

from __future__ import annotations

import logging

from audit.models import AuditLogEntry, ClientInfo
from audit.store import AuditStore
from gatekeeper.ratelimit import client_identity

logger = logging.getLogger("starterkit.audit")

SUCCESS = "success"
FAILURE = "failure"


class AuditLogger:
    def __init__(self, store: AuditStore) -> None:
        self.store = store

    def record(
        self,
        action: str,
        resource: str,
        *,
        user_id: str | None = None,
        resource_id: str | None = None,
        status: str = SUCCESS,
        details: dict | None = None,
        client: ClientInfo | None = None,
    ) -> AuditLogEntry:
        """Append one entry and return it with its id filled in."""
        entry = AuditLogEntry(
            action=action,
            resource=resource,
            status=status,
            user_id=user_id,
            resource_id=resource_id,
            ip_address=client.ip_address if client else None,
            user_agent=client.user_agent if client else None,
            details=details or {},
        )
        entry.id = self.store.append(entry)
        log = logger.info if status == SUCCESS else logger.warning
        log(
            "[AUDIT] %s resource=%s resource_id=%s user_id=%s status=%s",
            action,
            resource,
            resource_id,
            user_id,
            status,
        )
        return entry


def client_info(request) -> ClientInfo:
    """Build ClientInfo from a Starlette request (forwarded IP aware)."""
    ip = client_identity(request.headers)
    if ip == "unknown" and request.client is not None:
        ip = request.client.host
    return ClientInfo(ip_address=ip, user_agent=request.headers.get("user-agent"))
