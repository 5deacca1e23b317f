"""
api/routes/v1/auth.py -- Signup, signin, session and user management endpoints.

Routes:
  POST   /api/v1/auth/signup            -- create account; signs the new user in
  POST   /api/v1/auth/signin            -- password signin; writes user id to session
  POST   /api/v1/auth/signout           -- clears the session's user id
  GET    /api/v1/auth/whoami            -- current user (requires signed-in session)
  GET    /api/v1/auth/users             -- list users, optional ?email= (admin only)
  GET    /api/v1/auth/users/{id}        -- one user (admin only)
  PATCH  /api/v1/auth/users/{id}        -- change email / password / admin flag (admin only)
  DELETE /api/v1/auth/users/{id}        -- remove user (admin only)

Every user payload leaves through filter_shape(USER_SHAPE, ...): id and email,
nothing else. The password encoding and admin flag are never serialized.

Security:
  POST /signup and /signin are rate-limited per client IP (SIGNIN_RATE_LIMIT).
  CredentialManager.signin() runs scrypt on unknown emails too, so timing does
  not reveal which emails exist. The error codes do (user_not_found vs
  bad_password); clients of this API rely on the distinction.
  Cache-Control: no-store on signup/signin responses.
"""

import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import CredentialsRequest, UserPatch
from api.shapes import USER_SHAPE, filter_shape
from auth.context import SESSION_IDENTITY_KEY, RequestContext
from auth.credentials import CredentialManager
from auth.dependencies import require_admin, require_user
from auth.store import UserStore
from core.config import get_settings
from core.errors import IdentityNotFound

logger = logging.getLogger("carvalue.api.auth")

_settings = get_settings()

# Auth policy:
# - POST   /auth/signup, /auth/signin:  public -- these create the session
# - POST   /auth/signout:               public -- clearing a session needs no prior auth
# - GET    /auth/whoami:                requires signed-in session (require_user)
# - *      /auth/users...:              requires admin (require_admin)
router = APIRouter()


def _credentials(request: Request) -> CredentialManager:
    return CredentialManager(request.app.state.user_store, new_users_are_admins=_settings.new_users_are_admins)


def _signed_in(request: Request, user, status_code: int) -> JSONResponse:
    request.session[SESSION_IDENTITY_KEY] = user.id
    resp = JSONResponse(status_code=status_code, content=filter_shape(USER_SHAPE, user))
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/signup", status_code=201)
@limiter.limit(_settings.signin_rate_limit)
def signup(request: Request, body: CredentialsRequest) -> JSONResponse:
    """Create an account and sign it in. 409 email_in_use if the email is taken."""
    user = _credentials(request).signup(body.email, body.password)
    return _signed_in(request, user, status_code=201)


@router.post("/auth/signin")
@limiter.limit(_settings.signin_rate_limit)
def signin(request: Request, body: CredentialsRequest) -> JSONResponse:
    """Verify email and password; on success the session carries the user id."""
    user = _credentials(request).signin(body.email, body.password)
    return _signed_in(request, user, status_code=200)


@router.post("/auth/signout")
async def signout(request: Request) -> dict:
    request.session.pop(SESSION_IDENTITY_KEY, None)
    return {"message": "Signed out."}


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/whoami")
async def whoami(ctx: RequestContext = Depends(require_user)) -> dict | None:
    """Return the signed-in user.

    A session whose user has been deleted still passes require_user unless
    AUTH_REQUIRES_RESOLVED_IDENTITY is set; in that case the body is null.
    """
    return filter_shape(USER_SHAPE, ctx.identity)


# ---------------------------------------------------------------------------
# User management (admin only)
# ---------------------------------------------------------------------------


@router.get("/auth/users")
def list_users(
    request: Request,
    email: str | None = None,
    ctx: RequestContext = Depends(require_admin),
) -> list:
    user_store: UserStore = request.app.state.user_store
    users = user_store.find_by_email(email) if email else user_store.list_users()
    return filter_shape(USER_SHAPE, users)


@router.get("/auth/users/{user_id}")
def get_user(request: Request, user_id: int, ctx: RequestContext = Depends(require_admin)) -> dict:
    user_store: UserStore = request.app.state.user_store
    user = user_store.find_by_id(user_id)
    if user is None:
        raise IdentityNotFound()
    return filter_shape(USER_SHAPE, user)


@router.patch("/auth/users/{user_id}")
def update_user(
    request: Request,
    user_id: int,
    body: UserPatch,
    ctx: RequestContext = Depends(require_admin),
) -> dict:
    """Update a user. A new password is salted and hashed like at signup."""
    user_store: UserStore = request.app.state.user_store
    fields = body.model_dump(exclude_none=True, exclude={"password"})
    user = user_store.update(user_id, **fields)
    if body.password is not None:
        user = _credentials(request).change_password(user_id, body.password)
    logger.info("Admin id=%s updated user id=%d", ctx.identity_ref, user_id)
    return filter_shape(USER_SHAPE, user)


@router.delete("/auth/users/{user_id}", status_code=204)
def delete_user(request: Request, user_id: int, ctx: RequestContext = Depends(require_admin)) -> Response:
    user_store: UserStore = request.app.state.user_store
    user_store.delete(user_id)
    logger.info("Admin id=%s removed user id=%d", ctx.identity_ref, user_id)
    return Response(status_code=204)
