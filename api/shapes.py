"""
api/shapes.py -- Allow-list filtering for everything a route returns.

A Shape is an ordered list of output field names, each optionally paired
with a derivation function. filter_shape() builds a brand-new dict holding
exactly those names, in that order, and nothing else. Every other attribute
on the record is dropped -- including the password encoding and the admin
flag -- whether or not the shape's author remembered it exists.

    USER_SHAPE = Shape("id", "email")
    filter_shape(USER_SHAPE, identity)        -> {"id": 1, "email": "a@x.com"}
    filter_shape(USER_SHAPE, [u1, u2])        -> [{...}, {...}]

Derivations receive the whole record. REPORT_SHAPE uses one to emit the
owner's id as user_id without exposing the owner record itself.

Records may be dataclasses / plain objects (attribute access) or mappings
(key access). Inputs are never mutated.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Field:
    """One allowed output field. source, if given, computes the value from the record."""

    name: str
    source: Callable[[Any], Any] | None = None


class Shape:
    """An ordered, immutable allow-list of output fields."""

    def __init__(self, *fields: Field | str) -> None:
        normalized = tuple(f if isinstance(f, Field) else Field(f) for f in fields)
        names = [f.name for f in normalized]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate shape fields: {duplicates!r}")
        self.fields = normalized

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    def __repr__(self) -> str:
        return f"Shape{self.names!r}"


def _read(record: Any, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def _filter_one(shape: Shape, record: Any) -> dict[str, Any] | None:
    if record is None:
        return None
    out: dict[str, Any] = {}
    for field in shape.fields:
        out[field.name] = field.source(record) if field.source is not None else _read(record, field.name)
    return out


def filter_shape(shape: Shape, record: Any) -> Any:
    """Restrict record (or each element of a list/tuple of records) to shape."""
    if isinstance(record, (list, tuple)):
        return [_filter_one(shape, item) for item in record]
    return _filter_one(shape, record)


# ---------------------------------------------------------------------------
# Declared response shapes
# ---------------------------------------------------------------------------


def owner_id(report: Any) -> int | None:
    # None when the owner has been deleted.
    return _read(_read(report, "user"), "id")


USER_SHAPE = Shape("id", "email")

REPORT_SHAPE = Shape(
    "id",
    "price",
    "year",
    "lng",
    "lat",
    "make",
    "model",
    "mileage",
    "approved",
    Field("user_id", source=owner_id),
)
