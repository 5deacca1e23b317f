"""
api/routes/v1/reports.py -- Vehicle valuation report endpoints.

Routes:
  POST  /api/v1/reports          -- submit a report owned by the caller (signed in)
  GET   /api/v1/reports/{id}     -- read one report (signed in)
  PATCH /api/v1/reports/{id}     -- approve / un-approve (admin only)

Responses go through REPORT_SHAPE: the owning user is flattened to user_id,
so the owner's email, password encoding and admin flag never leave.
"""

from fastapi import APIRouter, Depends, Request

from api.models import ReportApproval, ReportCreate
from api.shapes import REPORT_SHAPE, filter_shape
from auth.context import RequestContext
from auth.dependencies import require_admin, require_user
from core.errors import ReportNotFound, Unauthorized
from reports.models import Report
from reports.store import ReportStore

router = APIRouter()


@router.post("/reports", status_code=201)
def create_report(
    request: Request,
    body: ReportCreate,
    ctx: RequestContext = Depends(require_user),
) -> dict:
    """Create a report owned by the signed-in user.

    Owning a report needs a real user record, so a session whose user has been
    deleted is rejected here even though it passed require_user.
    """
    if ctx.identity is None:
        raise Unauthorized()
    report_store: ReportStore = request.app.state.report_store
    report = report_store.create(Report(**body.model_dump(), user=ctx.identity))
    return filter_shape(REPORT_SHAPE, report)


@router.get("/reports/{report_id}")
def get_report(request: Request, report_id: int, ctx: RequestContext = Depends(require_user)) -> dict:
    report_store: ReportStore = request.app.state.report_store
    report = report_store.get_by_id(report_id)
    if report is None:
        raise ReportNotFound()
    return filter_shape(REPORT_SHAPE, report)


@router.patch("/reports/{report_id}")
def approve_report(
    request: Request,
    report_id: int,
    body: ReportApproval,
    ctx: RequestContext = Depends(require_admin),
) -> dict:
    report_store: ReportStore = request.app.state.report_store
    report = report_store.set_approved(report_id, body.approved)
    return filter_shape(REPORT_SHAPE, report)
