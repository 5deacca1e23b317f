"""
auth/store.py -- SQLAlchemy Core persistence layer for user identities.

Pattern: Repository + Data Mapper (same as reports/store.py).
UserStore is the repository; _row_to_identity is the mapper.
Route, resolver and credential code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  UNIQUE(email) is enforced in SQL. CredentialManager.signup() checks for an
  existing email before inserting, but the check and the insert are separate
  statements, so two concurrent signups can both pass the check. The unique
  index is what actually stops the second one; insert() reports that case as
  DuplicateIdentity.

Error mapping:
  IntegrityError on email   -> DuplicateIdentity
  missing row on update/del -> IdentityNotFound
  other SQLAlchemyError     -> StoreUnavailable (logged, never swallowed)

Layer rule: no imports from api/ or reports/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import Identity
from core.config import get_settings
from core.errors import DuplicateIdentity, IdentityNotFound, StoreUnavailable

logger = logging.getLogger("carvalue.auth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password", Text, nullable=False),  # "<salt>.<hash>", never plaintext
    Column("admin", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for Identity records.

    Usage:
        store = UserStore()
        user = store.insert("a@example.com", hash_password("secret"))
        store.find_by_email("a@example.com")   # -> [user]
        store.find_by_id(user.id)              # -> user
        store.close()
    """

    # Columns update() may touch. Validated before any SQL is built so that
    # keyword names from callers can never become arbitrary column names.
    _UPDATABLE: frozenset[str] = frozenset({"email", "password", "admin"})

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        """Open a connection, translating driver and pool failures into StoreUnavailable.

        IntegrityError is handled by the callers before it reaches here.
        """
        try:
            with self.engine.connect() as conn:
                yield conn
        except SQLAlchemyError as exc:
            logger.error("User store unavailable: %s", exc)
            raise StoreUnavailable() from exc

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        with self._connect() as conn:
            result = conn.execute(text("SELECT COUNT(*) FROM users")).scalar()
        return (result or 0) > 0

    def find_by_email(self, email: str) -> list[Identity]:
        """Return every user whose email matches exactly (case-sensitive).

        At most one row can match because of the unique index, but callers get
        a list so "not found" is an empty result rather than a special value.
        """
        with self._connect() as conn:
            rows = conn.execute(_users.select().where(_users.c.email == email).order_by(_users.c.id)).fetchall()
        return [_row_to_identity(r) for r in rows]

    def find_by_id(self, user_id: int | None) -> Identity | None:
        """Look up a user by primary key. Returns None if not found.

        A None or 0 id returns None without querying: an empty session must
        never match a row.
        """
        if not user_id:
            return None
        with self._connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_identity(row) if row is not None else None

    def list_users(self) -> list[Identity]:
        """Return all users ordered by email. Admin-only operation."""
        with self._connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.email)).fetchall()
        return [_row_to_identity(r) for r in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, email: str, password: str, admin: bool = False) -> Identity:
        """Insert a new user and return the stored record, including its id.

        Raises DuplicateIdentity if the email is already registered.
        """
        created_at = _now_iso()
        with self._connect() as conn:
            try:
                result = conn.execute(
                    _users.insert().values(
                        email=email,
                        password=password,
                        admin=1 if admin else 0,
                        created_at=created_at,
                    )
                )
                conn.commit()
            except IntegrityError as exc:
                conn.rollback()
                raise DuplicateIdentity() from exc
        user_id = result.inserted_primary_key[0]
        logger.info("Inserted user id=%d", user_id)
        return Identity(id=user_id, email=email, password=password, admin=admin, created_at=created_at)

    def update(self, user_id: int, **fields) -> Identity:
        """Update mutable fields on an existing user and return the new record.

        Accepted fields: email, password, admin. Unknown keys raise ValueError.
        Raises IdentityNotFound if user_id does not exist, DuplicateIdentity if
        the new email belongs to someone else.
        """
        unknown = set(fields) - self._UPDATABLE
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)!r}")
        if "admin" in fields:
            fields["admin"] = 1 if fields["admin"] else 0
        if fields:
            with self._connect() as conn:
                try:
                    result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
                    conn.commit()
                except IntegrityError as exc:
                    conn.rollback()
                    raise DuplicateIdentity() from exc
            if result.rowcount == 0:
                raise IdentityNotFound()
            logger.info("Updated user id=%d fields=%s", user_id, sorted(fields))
        user = self.find_by_id(user_id)
        if user is None:
            raise IdentityNotFound()
        return user

    def delete(self, user_id: int) -> None:
        """Permanently delete a user. Raises IdentityNotFound if absent.

        Sessions that still carry this id keep working as "signed in but
        unresolved" -- see auth/predicates.py.
        """
        with self._connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        if result.rowcount == 0:
            raise IdentityNotFound()
        logger.info("Removed user id=%d", user_id)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_identity(row) -> Identity:
    return Identity(
        id=row.id,
        email=row.email,
        password=row.password,
        admin=bool(row.admin),
        created_at=row.created_at,
    )
