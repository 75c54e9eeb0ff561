"""
tests/test_uploads.py -- LocalStorage validation and FileStore persistence.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from core.errors import ValidationError
from conftest import make_stack, make_user
from uploads.storage import LocalStorage, file_extension, validate_upload

MAX = 1024


class TestValidation:
    def test_allowed_type_passes(self) -> None:
        validate_upload("application/pdf", 10, MAX)

    @pytest.mark.parametrize("mime", ["application/x-msdownload", "text/html", None])
    def test_disallowed_type_rejected(self, mime) -> None:
        with pytest.raises(ValidationError):
            validate_upload(mime, 10, MAX)

    def test_oversize_rejected(self) -> None:
        with pytest.raises(ValidationError):
            validate_upload("text/plain", MAX + 1, MAX)

    def test_empty_rejected(self) -> None:
        with pytest.raises(ValidationError):
            validate_upload("text/plain", 0, MAX)

    @pytest.mark.parametrize(
        ("filename", "ext"),
        [("report.PDF", "pdf"), ("archive.tar.gz", "gz"), ("noext", "bin"), ("../../etc/passwd", "bin"), ("x.p/hp", "bin")],
    )
    def test_file_extension(self, filename: str, ext: str) -> None:
        assert file_extension(filename) == ext


class TestLocalStorage:
    def test_save_uses_generated_name(self, tmp_path: Path) -> None:
        storage = LocalStorage(str(tmp_path / "up"), MAX)
        record = storage.save(b"hello", "../../evil.txt", "text/plain", uploaded_by="u1")
        assert record.name == f"{record.id}.txt"
        assert Path(record.path).parent == tmp_path / "up"
        assert Path(record.path).read_bytes() == b"hello"
        assert record.original_name == "../../evil.txt"

    def test_rejected_upload_writes_nothing(self, tmp_path: Path) -> None:
        storage = LocalStorage(str(tmp_path / "up"), MAX)
        with pytest.raises(ValidationError):
            storage.save(b"x" * (MAX + 1), "big.txt", "text/plain", uploaded_by="u1")
        assert not (tmp_path / "up").exists()


class TestFileStore:
    def test_create_get_and_list(self, tmp_path: Path) -> None:
        stack = make_stack("file_store", seeded=False)
        owner = make_user(stack, "Owner", "owner@example.com")
        other = make_user(stack, "Other", "other@example.com")
        storage = LocalStorage(str(tmp_path), MAX)

        first = stack.file_store.create(storage.save(b"a", "a.txt", "text/plain", owner.id))
        stack.file_store.create(storage.save(b"b", "b.txt", "text/plain", owner.id))

        fetched = stack.file_store.get(first.id)
        assert fetched is not None
        assert fetched.size == 1
        assert fetched.created_at
        assert len(stack.file_store.list_for_user(owner.id)) == 2
        assert stack.file_store.count_for_user(owner.id) == 2
        assert stack.file_store.list_for_user(other.id) == []
        stack.engine.dispose()
