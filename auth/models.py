"""
auth/models.py -- Domain dataclass for the stored user identity.

Pattern: Data class (pure data container, zero logic). The store owns
persistence, auth/credentials.py owns the signup/signin rules, and
api/shapes.py decides which fields ever leave the process.

Layer rule: no imports from api/ or reports/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Identity:
    """A registered CarValue user.

    email is the unique handle users sign in with.

    password is never the plaintext: it holds the "<salt>.<hash>" encoding
    produced by auth.passwords.hash_password(). Routes must never return an
    Identity directly -- filter it through api.shapes.USER_SHAPE.

    id is None before the record is written to the database.
    """

    email: str
    password: str
    id: int | None = None
    admin: bool = False
    created_at: str | None = None
