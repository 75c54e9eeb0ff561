"""
db/schema.py -- SQLAlchemy Core schema and engine factory for the starter kit.

Uses SQLAlchemy Core (not ORM) so the dataclasses in auth/models.py,
rbac/models.py, audit/models.py and uploads/models.py remain the authoritative
domain representation. Every store (UserStore, RBACStore, AuditStore,
FileStore) shares this one MetaData because the tables reference each other:
user_roles points at users and roles, audit_logs and files point at users.

Ownership:
  users own sessions, accounts, user_roles, files and audit_logs rows
  (ON DELETE CASCADE). roles and permissions are shared reference data.

Join-table invariants (one row per pair) are composite primary keys, so
concurrent assignments collapse to one row via upsert() below instead of an
application-level lock.

Security: all queries elsewhere use bound parameters. No f-strings in SQL.

Usage:
    engine = create_db_engine("sqlite:///starterkit.db")
    store = RBACStore(engine)
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Connection, Engine

metadata = MetaData()

# ---------------------------------------------------------------------------
# Subjects and authentication
# ---------------------------------------------------------------------------

users = Table(
    "users",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("email_verified", Integer, nullable=False, server_default="0"),
    Column("image", String(255)),
    Column("hashed_password", String(255)),  # NULL for OAuth-only users
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

sessions = Table(
    "sessions",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("user_id", String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("ip_address", String(45)),
    Column("user_agent", Text),
    Column("created_at", String(32), nullable=False),
    Index("session_user_idx", "user_id"),
)

accounts = Table(
    "accounts",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("account_id", String(255), nullable=False),  # provider's stable subject
    Column("provider_id", String(50), nullable=False),  # "credential", "github", "google"
    Column("user_id", String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    UniqueConstraint("provider_id", "account_id", name="uq_account_provider_subject"),
)

# ---------------------------------------------------------------------------
# Access control
# ---------------------------------------------------------------------------

roles = Table(
    "roles",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("name", String(100), nullable=False, unique=True),
    Column("description", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

permissions = Table(
    "permissions",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("name", String(100), nullable=False, unique=True),  # "<resource>.<action>"
    Column("description", Text),
    Column("resource", String(100), nullable=False),
    Column("action", String(20), nullable=False),  # create|read|update|delete|manage
    Column("created_at", String(32), nullable=False),
    Index("permission_resource_idx", "resource"),
)

role_permissions = Table(
    "role_permissions",
    metadata,
    Column("role_id", String(64), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
    Column("permission_id", String(64), ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False),
    Column("created_at", String(32), nullable=False),
    PrimaryKeyConstraint("role_id", "permission_id", name="pk_role_permission"),
)

user_roles = Table(
    "user_roles",
    metadata,
    Column("user_id", String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("role_id", String(64), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
    Column("assigned_at", String(32), nullable=False),
    Column("assigned_by", String(64), ForeignKey("users.id", ondelete="SET NULL")),
    PrimaryKeyConstraint("user_id", "role_id", name="pk_user_role"),
)

# ---------------------------------------------------------------------------
# Audit trail and uploads
# ---------------------------------------------------------------------------

audit_logs = Table(
    "audit_logs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(64), ForeignKey("users.id", ondelete="CASCADE")),  # NULL = system action
    Column("action", String(100), nullable=False),
    Column("resource", String(100), nullable=False),
    Column("resource_id", String(255)),
    Column("ip_address", String(45)),
    Column("user_agent", Text),
    Column("details", Text),  # JSON object serialized as text
    Column("status", String(10), nullable=False, server_default="success"),
    Column("created_at", String(32), nullable=False),
    Index("audit_user_idx", "user_id"),
    Index("audit_action_idx", "action"),
    Index("audit_resource_idx", "resource", "resource_id"),
    Index("audit_created_idx", "created_at"),
)

files = Table(
    "files",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("original_name", String(255), nullable=False),
    Column("mime_type", String(100), nullable=False),
    Column("size", Integer, nullable=False),
    Column("path", String(500), nullable=False),
    Column("uploaded_by", String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("created_at", String(32), nullable=False),
    Index("file_uploader_idx", "uploaded_by"),
    Index("file_created_idx", "created_at"),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL and foreign-key enforcement on every new SQLite connection.

    SQLite PRAGMAs are per-connection and are not inherited from the pool.
    foreign_keys=ON is what makes the ON DELETE CASCADE clauses above work.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(db_url: str) -> Engine:
    """Create an engine for db_url and make sure every table exists."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _sqlite_pragmas)
    metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def insert_ignore(conn: Connection, table: Table, values: dict, conflict_columns: list[str]) -> bool:
    """INSERT a row, doing nothing if it collides on conflict_columns.

    Returns True if a new row was written. Dialect-specific because "upsert"
    has no portable SQL spelling; SQLite and PostgreSQL share ON CONFLICT,
    MySQL uses INSERT IGNORE.
    """
    dialect = conn.dialect.name
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert as dialect_insert
    elif dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as dialect_insert
    elif dialect in ("mysql", "mariadb"):
        result = conn.execute(table.insert().prefix_with("IGNORE").values(**values))
        return result.rowcount > 0
    else:
        raise ValueError(f"insert_ignore does not support dialect {dialect!r}")

    stmt = dialect_insert(table).values(**values).on_conflict_do_nothing(index_elements=conflict_columns)
    result = conn.execute(stmt)
    return result.rowcount > 0
