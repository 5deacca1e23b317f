"""
API request and error models for CarValue REST endpoints.

These Pydantic v2 models validate what comes IN. What goes OUT is decided by
api/shapes.py: route handlers return filter_shape(...) dicts so that domain
dataclasses (which carry the password encoding) never reach a client.

Separation of concerns: auth/ and reports/ dataclasses = domain truth;
api/ models = input contract.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Deliberately loose: one "@", something on both sides, a dot in the domain.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# ---------------------------------------------------------------------------
# Auth request models
# ---------------------------------------------------------------------------


class CredentialsRequest(BaseModel):
    """Request body for POST /api/v1/auth/signup and /signin."""

    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class UserPatch(BaseModel):
    """Request body for PATCH /api/v1/auth/users/{id}. All fields optional."""

    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=255)
    password: Optional[str] = Field(default=None, min_length=1, max_length=255)
    admin: Optional[bool] = None


# ---------------------------------------------------------------------------
# Report request models
# ---------------------------------------------------------------------------


class ReportCreate(BaseModel):
    """Request body for POST /api/v1/reports."""

    model_config = ConfigDict(str_strip_whitespace=True)

    make: str = Field(min_length=1, max_length=100)
    model: str = Field(min_length=1, max_length=100)
    year: int = Field(ge=1930, le=2050)
    mileage: int = Field(ge=0, le=1_000_000)
    lng: float = Field(ge=-180, le=180)
    lat: float = Field(ge=-90, le=90)
    price: int = Field(ge=0, le=1_000_000)


class ReportApproval(BaseModel):
    """Request body for PATCH /api/v1/reports/{id}."""

    approved: bool


# ---------------------------------------------------------------------------
# Error envelope and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
