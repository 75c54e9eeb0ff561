#!/usr/bin/env python3
"""
Starter kit management CLI.

Runs against the same database, stores and audit log as the web app. Every
change made here shows up in the audit trail with no acting user.

Usage:
  python main.py seed
  python main.py create-user --name "Ada Lovelace" --email ada@example.com
  python main.py create-user --name Admin --email admin@example.com --role admin
  python main.py assign-role ada@example.com moderator
  python main.py list-roles

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the database (default sqlite:///starterkit.db)
  SECRET_KEY    Required unless DEBUG=true (see core/config.py)
"""

import argparse
import getpass
import sys

from sqlalchemy.exc import IntegrityError

from audit.logger import AuditLogger
from audit.store import AuditStore
from auth.models import User
from auth.store import UserStore
from auth.tokens import check_password_strength, hash_password
from core.config import get_settings
from core.errors import AppError
from db.schema import create_db_engine
from rbac.seed import DEFAULT_ROLE, seed
from rbac.service import AccessControl
from rbac.store import RBACStore


def _build(db_url: str) -> tuple[UserStore, AccessControl]:
    engine = create_db_engine(db_url)
    audit = AuditLogger(AuditStore(engine))
    return UserStore(engine), AccessControl(RBACStore(engine), audit)


def cmd_seed(users: UserStore, access: AccessControl, args: argparse.Namespace) -> int:
    report = seed(access)
    print(f"  Permissions: {report.permissions_created} created, {report.permissions_updated} updated")
    print(f"  Roles:       {report.roles_created} created, {report.roles_updated} updated")
    print(f"  Grants:      {report.grants} new")
    return 0


def cmd_create_user(users: UserStore, access: AccessControl, args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("Password: ")
    try:
        check_password_strength(password)
    except ValueError as e:
        print(f"  [!] {e}")
        return 1

    role = access.get_role_by_name(args.role)
    if role is None:
        print(f"  [!] Role '{args.role}' does not exist. Run 'python main.py seed' first.")
        return 1

    try:
        user_id = users.create_user(User(name=args.name, email=args.email, hashed_password=hash_password(password)))
    except IntegrityError:
        print(f"  [!] A user with email '{args.email}' already exists.")
        return 1
    access.assign_role(user_id, role.id)
    print(f"  Created {args.email} ({user_id}) with role {role.name}")
    return 0


def cmd_assign_role(users: UserStore, access: AccessControl, args: argparse.Namespace) -> int:
    user = users.get_by_email(args.email)
    if user is None:
        print(f"  [!] No user with email '{args.email}'.")
        return 1
    role = access.get_role_by_name(args.role)
    if role is None:
        print(f"  [!] Role '{args.role}' does not exist.")
        return 1
    access.assign_role(user.id, role.id)
    print(f"  {user.email} now has role {role.name}")
    return 0


def cmd_list_roles(users: UserStore, access: AccessControl, args: argparse.Namespace) -> int:
    roles = access.list_roles()
    if not roles:
        print("  No roles defined. Run 'python main.py seed'.")
        return 0
    for role in roles:
        names = sorted(p.name for p in access.permissions_for_role(role.id))
        print(f"  {role.name:<12} {role.description or ''}")
        print(f"  {'':<12} {', '.join(names) if names else '(no permissions)'}")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Starter kit management: seed roles, create users, assign roles.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--database-url", help="Override DATABASE_URL for this run")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("seed", help="Create or refresh the baseline roles and permissions")

    create = sub.add_parser("create-user", help="Create a password user")
    create.add_argument("--name", required=True)
    create.add_argument("--email", required=True)
    create.add_argument("--password", help="Prompted for when omitted")
    create.add_argument("--role", default=DEFAULT_ROLE, help=f"Role to assign (default: {DEFAULT_ROLE})")

    assign = sub.add_parser("assign-role", help="Give an existing user a role")
    assign.add_argument("email")
    assign.add_argument("role")

    sub.add_parser("list-roles", help="Show roles and their permissions")

    args = parser.parse_args()
    users, access = _build(args.database_url or get_settings().database_url)

    handlers = {
        "seed": cmd_seed,
        "create-user": cmd_create_user,
        "assign-role": cmd_assign_role,
        "list-roles": cmd_list_roles,
    }
    try:
        code = handlers[args.command](users, access, args)
    except AppError as e:
        print(f"  [!] {e.message}")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
