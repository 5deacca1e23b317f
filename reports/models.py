"""
reports/models.py -- Domain dataclass for vehicle valuation reports.

A report is one observed sale: what the car was, where, and what it sold for.
Reports start unapproved; only an admin can approve one.

user is the full owning Identity, hydrated by ReportStore. It must never be
serialized as-is (it carries the password encoding) -- api.shapes.REPORT_SHAPE
flattens it to user_id.
"""

from __future__ import annotations

from dataclasses import dataclass

from auth.models import Identity


@dataclass
class Report:
    price: int
    make: str
    model: str
    year: int
    mileage: int
    lng: float
    lat: float
    id: int | None = None
    approved: bool = False
    user: Identity | None = None
    created_at: str | None = None
