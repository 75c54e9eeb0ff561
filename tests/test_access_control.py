"""
tests/test_access_control.py -- AccessControl against a real (in-memory) database.

Covers:
  - Fail-closed: no roles, no permissions, every check denied
  - manage subsumes CRUD on the same resource only
  - Union of permissions across roles
  - Idempotent assign/grant: one row no matter how many calls
  - Unknown ids raise NotFoundError and leave a failure audit entry
  - Seed is idempotent and produces the documented role sets
"""

from __future__ import annotations

import itertools

import pytest
from sqlalchemy import delete

from core.errors import ForbiddenError, NotFoundError, ValidationError
from db.schema import users
from rbac.seed import PERMISSION_CATALOGUE, seed
from conftest import make_stack, make_user

_counter = itertools.count()


@pytest.fixture
def stack():
    """Fresh, unseeded database per test."""
    s = make_stack(f"access_{next(_counter)}", seeded=False)
    yield s
    s.engine.dispose()


class TestAuthorization:
    def test_user_without_roles_is_denied_everything(self, stack) -> None:
        user = make_user(stack, "Nobody", "nobody@example.com")
        assert stack.access.resolve_permissions(user.id) == set()
        assert not stack.access.authorize(user.id, "content", "read")

    def test_manage_grants_crud_on_same_resource(self, stack) -> None:
        access = stack.access
        user = make_user(stack, "Editor", "editor@example.com")
        role = access.create_role("editor")
        perm = access.create_permission("content", "manage")
        access.grant_permission(role.id, perm.id)
        access.assign_role(user.id, role.id)

        for action in ("create", "read", "update", "delete", "manage"):
            assert access.authorize(user.id, "content", action)
        assert not access.authorize(user.id, "users", "read")

    def test_permissions_union_across_roles(self, stack) -> None:
        access = stack.access
        user = make_user(stack, "Both", "both@example.com")
        reader = access.create_role("reader")
        uploader = access.create_role("uploader")
        access.grant_permission(reader.id, access.create_permission("content", "read").id)
        access.grant_permission(uploader.id, access.create_permission("files", "create").id)
        access.assign_role(user.id, reader.id)
        access.assign_role(user.id, uploader.id)

        names = {p.name for p in access.resolve_permissions(user.id)}
        assert names == {"content.read", "files.create"}

    def test_shared_permission_is_not_duplicated(self, stack) -> None:
        access = stack.access
        user = make_user(stack, "Dup", "dup@example.com")
        perm = access.create_permission("dashboard", "read")
        for name in ("a", "b"):
            role = access.create_role(name)
            access.grant_permission(role.id, perm.id)
            access.assign_role(user.id, role.id)
        assert len(access.store.permissions_for_user(user.id)) == 1

    def test_require_raises_forbidden(self, stack) -> None:
        user = make_user(stack, "Nobody", "nobody@example.com")
        with pytest.raises(ForbiddenError):
            stack.access.require(user.id, "audit", "read")


class TestMutations:
    def test_assign_role_twice_leaves_one_row(self, stack) -> None:
        access = stack.access
        user = make_user(stack, "Ada", "ada@example.com")
        role = access.create_role("member")
        first = access.assign_role(user.id, role.id)
        second = access.assign_role(user.id, role.id)

        assert access.store.count_role_assignments(user.id) == 1
        assert first.assigned_at == second.assigned_at

        entries = stack.audit.store.list_entries(action="ROLE_ASSIGN")
        assert [e.details["created"] for e in entries] == [False, True]  # newest first

    def test_grant_permission_twice_leaves_one_row(self, stack) -> None:
        access = stack.access
        role = access.create_role("member")
        perm = access.create_permission("content", "read")
        access.grant_permission(role.id, perm.id)
        access.grant_permission(role.id, perm.id)
        assert len(access.permissions_for_role(role.id)) == 1

    def test_assign_unknown_role_raises_and_audits_failure(self, stack) -> None:
        user = make_user(stack, "Ada", "ada@example.com")
        with pytest.raises(NotFoundError):
            stack.access.assign_role(user.id, "no-such-role", assigned_by=user.id)

        failures = stack.audit.store.list_entries(action="ROLE_ASSIGN", status="failure")
        assert len(failures) == 1
        assert failures[0].details["reason"] == "role not found"
        assert stack.access.store.count_role_assignments(user.id) == 0

    def test_assign_to_unknown_user_raises(self, stack) -> None:
        role = stack.access.create_role("member")
        with pytest.raises(NotFoundError):
            stack.access.assign_role("no-such-user", role.id)

    def test_grant_unknown_permission_raises(self, stack) -> None:
        role = stack.access.create_role("member")
        with pytest.raises(NotFoundError):
            stack.access.grant_permission(role.id, "no-such-permission")
        assert stack.audit.store.count(action="PERMISSION_GRANT", status="failure") == 1

    def test_duplicate_role_name_is_validation_error(self, stack) -> None:
        stack.access.create_role("member")
        with pytest.raises(ValidationError):
            stack.access.create_role("member")

    def test_malformed_permission_is_validation_error(self, stack) -> None:
        with pytest.raises(ValidationError):
            stack.access.create_permission("content", "publish")

    def test_deleting_user_cascades_role_assignments(self, stack) -> None:
        user = make_user(stack, "Gone", "gone@example.com")
        role = stack.access.create_role("member")
        stack.access.assign_role(user.id, role.id)
        with stack.engine.connect() as conn:
            conn.execute(delete(users).where(users.c.id == user.id))
            conn.commit()
        assert stack.access.store.count_role_assignments(user.id) == 0


class TestSeed:
    def test_seed_is_idempotent(self, stack) -> None:
        first = seed(stack.access)
        second = seed(stack.access)
        total = sum(len(actions) for actions in PERMISSION_CATALOGUE.values())

        assert first.permissions_created == total
        assert first.roles_created == 3
        assert second.permissions_created == 0
        assert second.roles_created == 0
        assert second.grants == 0
        assert second.roles == first.roles
        assert len(stack.access.list_permissions()) == total

    def test_seeded_role_sets(self, stack) -> None:
        report = seed(stack.access)
        access = stack.access

        admin = {p.name for p in access.permissions_for_role(report.roles["admin"])}
        assert len(admin) == len(access.list_permissions())

        moderator = {p.name for p in access.permissions_for_role(report.roles["moderator"])}
        assert moderator == {
            "content.manage",
            "users.read",
            "audit.read",
            "dashboard.read",
            "files.read",
            "settings.read",
        }

        user = {p.name for p in access.permissions_for_role(report.roles["user"])}
        assert user == {"content.read", "files.create", "files.read", "dashboard.read", "settings.read"}

    def test_moderator_can_delete_content_but_not_manage_roles(self, stack) -> None:
        report = seed(stack.access)
        mod = make_user(stack, "Mod", "mod@example.com")
        stack.access.assign_role(mod.id, report.roles["moderator"])
        assert stack.access.authorize(mod.id, "content", "delete")
        assert not stack.access.authorize(mod.id, "roles", "manage")

    def test_reseed_restores_descriptions_and_audits(self, stack) -> None:
        report = seed(stack.access)
        store = stack.access.store
        files_read = store.get_permission_by_name("files.read")
        store.update_role_description(report.roles["user"], "edited by hand")
        store.update_permission_description(files_read.id, "edited by hand")

        again = seed(stack.access)
        assert again.roles_updated == 1
        assert again.permissions_updated == 1
        assert store.get_role(report.roles["user"]).description == "Standard user access"
        assert store.get_permission(files_read.id).description == "View own files"

        audit = stack.audit.store
        role_update = audit.list_entries(action="ROLE_UPDATE")
        assert len(role_update) == 1
        assert role_update[0].resource_id == report.roles["user"]
        assert role_update[0].details == {"name": "user", "description": "Standard user access"}
        perm_update = audit.list_entries(action="PERMISSION_UPDATE")
        assert [e.resource_id for e in perm_update] == [files_read.id]

    def test_unchanged_reseed_writes_no_updates(self, stack) -> None:
        seed(stack.access)
        seed(stack.access)
        assert stack.audit.store.count(action="ROLE_UPDATE") == 0
        assert stack.audit.store.count(action="PERMISSION_UPDATE") == 0


class TestUpdates:
    def test_update_role_description(self, stack) -> None:
        role = stack.access.create_role("editor", "Edits")
        updated = stack.access.update_role(role.id, "Edits content", actor_id=None)
        assert updated.description == "Edits content"
        assert stack.audit.store.list_entries(action="ROLE_UPDATE")[0].status == "success"

    def test_update_unknown_role(self, stack) -> None:
        with pytest.raises(NotFoundError):
            stack.access.update_role("missing", "x")
        failure = stack.audit.store.list_entries(action="ROLE_UPDATE", status="failure")[0]
        assert failure.details["reason"] == "role not found"

    def test_update_unknown_permission(self, stack) -> None:
        with pytest.raises(NotFoundError):
            stack.access.update_permission("missing", "x")
        assert stack.audit.store.count(action="PERMISSION_UPDATE", status="failure") == 1
