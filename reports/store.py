"""
reports/store.py -- SQLAlchemy Core persistence layer for valuation reports.

Pattern: Repository + Data Mapper, same as auth/store.py. Reports keep only
the owner's user_id; ReportStore hydrates Report.user through the UserStore
it was given, so callers always see the owner as an Identity (or None if the
owner has been deleted).

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = ReportStore(users=user_store)
    report = store.create(Report(price=9000, ..., user=owner))
    store.set_approved(report.id, True)
    store.close()
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Float, Integer, MetaData, String, Table, create_engine, event
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from auth.store import UserStore
from core.config import get_settings
from core.errors import ReportNotFound, StoreUnavailable
from reports.models import Report

logger = logging.getLogger("carvalue.reports")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_reports = Table(
    "reports",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("price", Integer, nullable=False),
    Column("make", String(100), nullable=False),
    Column("model", String(100), nullable=False),
    Column("year", Integer, nullable=False),
    Column("mileage", Integer, nullable=False),
    Column("lng", Float, nullable=False),
    Column("lat", Float, nullable=False),
    Column("approved", Boolean, nullable=False, server_default="0"),
    Column("user_id", Integer),  # owner; not a FK because users live in their own store
    Column("created_at", String(32), nullable=False),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ReportStore:
    """Repository for Report entities."""

    def __init__(self, db_url: str | None = None, users: UserStore | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)
        self.users = users

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        try:
            with self.engine.connect() as conn:
                yield conn
        except SQLAlchemyError as exc:
            logger.error("Report store unavailable: %s", exc)
            raise StoreUnavailable() from exc

    def create(self, report: Report) -> Report:
        """Insert a report owned by report.user and return it with id set."""
        created_at = _now_iso()
        with self._connect() as conn:
            result = conn.execute(
                _reports.insert().values(
                    price=report.price,
                    make=report.make,
                    model=report.model,
                    year=report.year,
                    mileage=report.mileage,
                    lng=report.lng,
                    lat=report.lat,
                    approved=report.approved,
                    user_id=report.user.id if report.user is not None else None,
                    created_at=created_at,
                )
            )
            conn.commit()
        report.id = result.inserted_primary_key[0]
        report.created_at = created_at
        logger.info("Created report id=%d", report.id)
        return report

    def get_by_id(self, report_id: int) -> Report | None:
        with self._connect() as conn:
            row = conn.execute(_reports.select().where(_reports.c.id == report_id)).fetchone()
        return self._row_to_report(row) if row is not None else None

    def set_approved(self, report_id: int, approved: bool) -> Report:
        """Approve or un-approve a report. Raises ReportNotFound if absent."""
        with self._connect() as conn:
            result = conn.execute(_reports.update().where(_reports.c.id == report_id).values(approved=approved))
            conn.commit()
        if result.rowcount == 0:
            raise ReportNotFound()
        logger.info("Report id=%d approved=%s", report_id, approved)
        report = self.get_by_id(report_id)
        if report is None:
            raise ReportNotFound()
        return report

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Row mapper
    # ------------------------------------------------------------------

    def _row_to_report(self, row) -> Report:
        owner = self.users.find_by_id(row.user_id) if self.users is not None else None
        return Report(
            id=row.id,
            price=row.price,
            make=row.make,
            model=row.model,
            year=row.year,
            mileage=row.mileage,
            lng=row.lng,
            lat=row.lat,
            approved=bool(row.approved),
            user=owner,
            created_at=row.created_at,
        )
