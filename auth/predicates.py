"""
auth/predicates.py -- The two access gates.

Both predicates are pure functions of a RequestContext: no I/O, no logging,
no side effects. check() turns a false predicate into the matching error so
the request is rejected before the handler runs.

Signed in vs. resolved:
  is_authenticated() by default only asks whether the session carried a user
  id. A session for a user that has since been deleted still passes, even
  though resolve_identity() found no record and is_admin() fails for it.
  Handlers behind require_user therefore must accept ctx.identity being None.
  Setting AUTH_REQUIRES_RESOLVED_IDENTITY=true closes that gap by also
  requiring the record to resolve.
"""

from __future__ import annotations

from collections.abc import Callable

from auth.context import RequestContext
from core.errors import Unauthorized


def is_authenticated(ctx: RequestContext, require_resolved: bool = False) -> bool:
    if ctx.identity_ref is None:
        return False
    if require_resolved:
        return ctx.identity is not None
    return True


def is_admin(ctx: RequestContext) -> bool:
    """True only for a resolved user whose admin flag is set."""
    return ctx.identity is not None and ctx.identity.admin


def check(ctx: RequestContext, predicate: Callable[[RequestContext], bool], error: Unauthorized) -> RequestContext:
    """Return ctx unchanged if predicate(ctx) holds, otherwise raise error."""
    if not predicate(ctx):
        raise error
    return ctx
