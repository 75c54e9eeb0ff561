"""
tests/test_audit_store.py -- AuditStore / AuditLogger behaviour.

Covers:
  - Append-only surface: no update or delete methods exist
  - Entries round-trip details as JSON and get created_at stamped
  - Filters combine with AND; newest first; pagination via limit/offset
  - AuditLogger emits an [AUDIT] log line
"""

from __future__ import annotations

import logging

import pytest

from audit.logger import FAILURE, AuditLogger
from audit.models import ClientInfo
from audit.store import AuditStore
from conftest import make_stack


@pytest.fixture(scope="module")
def audit() -> AuditLogger:
    stack = make_stack("audit_store", seeded=False)
    yield stack.audit
    stack.engine.dispose()


class TestAppendOnly:
    def test_store_has_no_mutation_methods(self) -> None:
        public = {name for name in dir(AuditStore) if not name.startswith("_")}
        assert "append" in public
        assert not {n for n in public if n.startswith(("update", "delete", "remove", "clear", "purge"))}


class TestRecord:
    def test_record_persists_entry(self, audit: AuditLogger) -> None:
        entry = audit.record(
            "PROFILE_UPDATE",
            "user",
            resource_id="r-1",
            details={"fields": ["name"]},
            client=ClientInfo(ip_address="203.0.113.9", user_agent="pytest"),
        )
        stored = audit.store.get(entry.id)
        assert stored is not None
        assert stored.action == "PROFILE_UPDATE"
        assert stored.status == "success"
        assert stored.details == {"fields": ["name"]}
        assert stored.ip_address == "203.0.113.9"
        assert stored.created_at

    def test_record_logs_audit_line(self, audit: AuditLogger, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger="starterkit.audit"):
            audit.record("FILE_UPLOAD", "file")
        assert any("[AUDIT] FILE_UPLOAD" in r.getMessage() for r in caplog.records)

    def test_failure_logged_as_warning(self, audit: AuditLogger, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger="starterkit.audit"):
            audit.record("PASSWORD_CHANGE", "user", status=FAILURE)
        assert any(r.levelno == logging.WARNING for r in caplog.records)


class TestQueries:
    def test_filters_newest_first_and_pagination(self, audit: AuditLogger) -> None:
        for i in range(3):
            audit.record("FILTER_TEST", "thing", resource_id=str(i))
        audit.record("FILTER_TEST", "thing", resource_id="x", status=FAILURE)

        successes = audit.store.list_entries(action="FILTER_TEST", status="success")
        assert [e.resource_id for e in successes] == ["2", "1", "0"]
        assert audit.store.count(action="FILTER_TEST") == 4
        assert audit.store.count(action="FILTER_TEST", status="failure") == 1

        page2 = audit.store.list_entries(action="FILTER_TEST", limit=2, offset=2)
        assert [e.resource_id for e in page2] == ["1", "0"]
