"""
auth/dependencies.py -- FastAPI Depends() helpers that run the identity pipeline.

Each dependency takes the previous stage's result as an argument, so the
order is fixed by the call graph rather than by middleware registration:

    request_context(request)      resolve_identity() over request.session
        -> require_user(ctx)      is_authenticated gate, 401
        -> require_admin(ctx)     is_admin gate, 403
        -> route handler          receives the same RequestContext

FastAPI caches a dependency's result for the duration of one request, so a
route that depends on both require_admin and request_context still performs
exactly one store lookup.

request_context is a plain def: FastAPI runs it in the threadpool, which
keeps the blocking SQLAlchemy call off the event loop.

Layer rule: auth/dependencies.py may import from fastapi (Depends/Request)
because it is part of the FastAPI dependency injection system. No imports
from api/ or reports/.
"""

from __future__ import annotations

from fastapi import Depends, Request

from auth.context import RequestContext, resolve_identity
from auth.predicates import check, is_admin, is_authenticated
from auth.store import UserStore
from core.config import get_settings
from core.errors import Forbidden, Unauthorized


def request_context(request: Request) -> RequestContext:
    """Resolve the signed-in user for this request. Never raises for absence."""
    user_store: UserStore = request.app.state.user_store
    return resolve_identity(request.session, user_store)


def require_user(ctx: RequestContext = Depends(request_context)) -> RequestContext:
    """Require a signed-in session. Raises Unauthorized (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(ctx: RequestContext = Depends(require_user)): ...
    """
    require_resolved = get_settings().auth_requires_resolved_identity
    return check(ctx, lambda c: is_authenticated(c, require_resolved=require_resolved), Unauthorized())


def require_admin(ctx: RequestContext = Depends(request_context)) -> RequestContext:
    """Require a resolved admin user. Raises Forbidden (403) otherwise."""
    return check(ctx, is_admin, Forbidden())
