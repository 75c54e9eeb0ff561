"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user,
_row_to_session and _row_to_account are the mappers. Route and dependency code
never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Emails are stored lower-cased so lookups are case-insensitive without a
  functional index.

Tables live in db/schema.py because roles, audit entries and files all
reference users.

Layer rule: no imports from api/, web/, rbac/, uploads/, or gatekeeper/.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from auth.models import Account, Session, User
from db.schema import accounts, now_iso, sessions, users


def _new_id() -> str:
    return uuid.uuid4().hex


class UserStore:
    """Repository for User, Session and Account entities.

    Usage:
        store = UserStore(engine)
        uid = store.create_user(User(name="Ada", email="ada@example.com", hashed_password=hash_password("...")))
        user = store.get_by_email("ada@example.com")
    """

    # Columns update_user() accepts. Checked before any SQL is built.
    _MUTABLE_FIELDS: set = {"name", "image", "email_verified", "hashed_password"}

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(users)).scalar()
        return (result or 0) > 0

    def create_user(self, user: User) -> str:
        """Insert a new user and return its id.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        user_id = user.id or _new_id()
        ts = now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                users.insert().values(
                    id=user_id,
                    name=user.name,
                    email=user.email.strip().lower(),
                    email_verified=1 if user.email_verified else 0,
                    image=user.image,
                    hashed_password=user.hashed_password,
                    created_at=ts,
                    updated_at=ts,
                )
            )
            conn.commit()
        return user_id

    def get_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.email == email.strip().lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self, limit: int = 10, offset: int = 0) -> list[User]:
        with self.engine.connect() as conn:
            rows = conn.execute(users.select().order_by(users.c.created_at.desc()).limit(limit).offset(offset)).fetchall()
        return [_row_to_user(r) for r in rows]

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(users)).scalar() or 0

    def update_user(self, user_id: str, **fields) -> bool:
        """Update mutable fields on a user. Returns False if user_id was not found.

        Unknown field names raise ValueError rather than being ignored.
        """
        unknown = set(fields) - self._MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if "email_verified" in fields:
            fields["email_verified"] = 1 if fields["email_verified"] else 0
        with self.engine.connect() as conn:
            result = conn.execute(users.update().where(users.c.id == user_id).values(**fields, updated_at=now_iso()))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, user_id: str, expires_at: datetime, ip_address: str | None, user_agent: str | None) -> Session:
        session = Session(
            id=_new_id(),
            user_id=user_id,
            expires_at=expires_at.isoformat(),
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=now_iso(),
        )
        with self.engine.connect() as conn:
            conn.execute(
                sessions.insert().values(
                    id=session.id,
                    user_id=session.user_id,
                    expires_at=session.expires_at,
                    ip_address=session.ip_address,
                    user_agent=session.user_agent,
                    created_at=session.created_at,
                )
            )
            conn.commit()
        return session

    def get_session(self, session_id: str) -> Session | None:
        with self.engine.connect() as conn:
            row = conn.execute(sessions.select().where(sessions.c.id == session_id)).fetchone()
        return _row_to_session(row) if row is not None else None

    def delete_session(self, session_id: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(sessions.delete().where(sessions.c.id == session_id))
            conn.commit()
        return result.rowcount > 0

    def delete_user_sessions(self, user_id: str, keep: str | None = None) -> int:
        """Revoke every session of a user, optionally keeping one (the caller's)."""
        stmt = sessions.delete().where(sessions.c.user_id == user_id)
        if keep is not None:
            stmt = stmt.where(sessions.c.id != keep)
        with self.engine.connect() as conn:
            result = conn.execute(stmt)
            conn.commit()
        return result.rowcount

    def purge_expired_sessions(self) -> int:
        """Delete sessions whose expiry has passed. Returns rows removed.

        expires_at values are all written as UTC isoformat() strings, so
        lexical comparison orders them correctly.
        """
        with self.engine.connect() as conn:
            result = conn.execute(sessions.delete().where(sessions.c.expires_at < now_iso()))
            conn.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def link_account(self, user_id: str, provider_id: str, account_id: str) -> str:
        """Attach a provider identity to a user. Raises IntegrityError if already linked."""
        acc_id = _new_id()
        ts = now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                accounts.insert().values(
                    id=acc_id,
                    account_id=account_id,
                    provider_id=provider_id,
                    user_id=user_id,
                    created_at=ts,
                    updated_at=ts,
                )
            )
            conn.commit()
        return acc_id

    def get_account(self, provider_id: str, account_id: str) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                accounts.select().where((accounts.c.provider_id == provider_id) & (accounts.c.account_id == account_id))
            ).fetchone()
        return _row_to_account(row) if row is not None else None

    def list_accounts(self, user_id: str) -> list[Account]:
        with self.engine.connect() as conn:
            rows = conn.execute(accounts.select().where(accounts.c.user_id == user_id)).fetchall()
        return [_row_to_account(r) for r in rows]

    def ping(self) -> bool:
        """Cheap connectivity probe for the health endpoint."""
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        email_verified=bool(row.email_verified),
        image=row.image,
        hashed_password=row.hashed_password,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        user_id=row.user_id,
        expires_at=row.expires_at,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        created_at=row.created_at,
    )


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        user_id=row.user_id,
        provider_id=row.provider_id,
        account_id=row.account_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
