"""
auth/context.py -- Turns a decoded session into a request-scoped identity.

resolve_identity() is the first stage of every request pipeline:

    session -> resolve_identity() -> RequestContext -> predicates -> handler

The RequestContext it returns is an ordinary immutable value. It is passed
explicitly to the access predicates and to the handler; nothing is stashed
on the request object or in a global. Because a predicate can only be called
with a RequestContext, it cannot run before resolution has finished.

Absence is a normal result, not an error:
  - no user id in the session        -> identity_ref=None, identity=None
  - user id that no longer resolves  -> identity_ref=<id>, identity=None

StoreUnavailable is NOT swallowed. A database outage fails the request; it
must not silently downgrade every user to "signed out".

Layer rule: no imports from api/ or reports/.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from auth.models import Identity
from auth.store import UserStore

logger = logging.getLogger("carvalue.auth")

# The only session key the identity pipeline reads or writes.
SESSION_IDENTITY_KEY = "user_id"


@dataclass(frozen=True)
class RequestContext:
    """Identity attached to a single request.

    identity_ref is the raw user id found in the session at resolution time.
    identity is the stored record it resolved to, or None.
    """

    identity_ref: int | None = None
    identity: Identity | None = None


ANONYMOUS = RequestContext()


def read_identity_ref(session: Mapping[str, Any] | None) -> int | None:
    """Return the user id stored in the session, or None.

    Anything that is not a positive int (missing key, None, strings, bools)
    is treated as "no reference". The session cookie is signed, so odd values
    only appear from older cookie formats, never from a client forging one.
    """
    if not session:
        return None
    value = session.get(SESSION_IDENTITY_KEY)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return None
    return value


def resolve_identity(session: Mapping[str, Any] | None, store: UserStore) -> RequestContext:
    """Load the user referenced by the session, once.

    Performs at most one store lookup. Never mutates the session or the user
    record.
    """
    identity_ref = read_identity_ref(session)
    if identity_ref is None:
        return ANONYMOUS

    identity = store.find_by_id(identity_ref)
    if identity is None:
        logger.debug("Session references missing user id=%d", identity_ref)
    return RequestContext(identity_ref=identity_ref, identity=identity)
