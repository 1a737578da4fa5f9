"""Approval workflow router.

Endpoints:
    GET   /api/approvals/check/{action_type}  Does this action need approval?
    POST  /api/approvals                      Submit a proposed change
    GET   /api/approvals/mine                 Caller's own submissions
    GET   /api/approvals                      All actions (admin)
    GET   /api/approvals/stats                Dashboard statistics (admin)
    POST  /api/approvals/expire               Run the expiry sweep now (admin)
    GET   /api/approvals/{id}                 One action (owner or admin)
    POST  /api/approvals/{id}/review          Approve or reject (admin)
    POST  /api/approvals/{id}/execute         Retry a failed execution (admin)
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import get_current_user, require_admin
from app.database import get_db
from app.middleware.exceptions import PermissionDeniedError
from app.models.pending_action import ActionPriority
from app.models.staff_user import StaffRole, StaffUser
from app.schemas.approval import (
    ApprovalCheckOut,
    ApprovalStatsOut,
    ExpireSweepOut,
    PendingActionOut,
    ReviewRequest,
    SubmitActionRequest,
)
from app.schemas.common import ApiResponse, PaginatedResponse
from app.services.action_registry import ActionType
from app.services.approval_policy import check_approval_required
from app.services.approval_review import retry_execution, review_action
from app.services.approval_stats import get_approval_stats
from app.services.approval_submission import submit_action
from app.services.pending_actions import (
    expire_overdue,
    get_pending_action,
    list_all,
    list_for_requester,
)

router = APIRouter()


def _split_statuses(status: list[str] | None) -> list[str] | None:
    """Accept both ?status=a&status=b and ?status=a,b."""
    if not status:
        return None
    return [s.strip() for value in status for s in value.split(",") if s.strip()]


@router.get("/check/{action_type}", response_model=ApiResponse[ApprovalCheckOut])
async def check_approval(
    action_type: ActionType,
    db: AsyncSession = Depends(get_db),
    user: StaffUser = Depends(get_current_user),
):
    """Whether the caller's submission of this action type will need review."""
    required = await check_approval_required(db, action_type, user.role.value)
    return ApiResponse(data=ApprovalCheckOut(action_type=action_type.value, required=required))


@router.post("", response_model=ApiResponse[PendingActionOut], status_code=201)
async def submit(
    body: SubmitActionRequest,
    db: AsyncSession = Depends(get_db),
    user: StaffUser = Depends(get_current_user),
):
    """Submit a change; it is applied immediately when policy does not gate it."""
    outcome = await submit_action(db, body, user)
    return ApiResponse(
        data=PendingActionOut.from_action(outcome.action),
        message=outcome.message,
        executed=outcome.executed,
    )


@router.get("/mine", response_model=ApiResponse[list[PendingActionOut]])
async def list_mine(
    status: list[str] | None = Query(None),
    updated_since: datetime | None = None,
    db: AsyncSession = Depends(get_db),
    user: StaffUser = Depends(get_current_user),
):
    """The caller's own submissions, newest first."""
    actions = await list_for_requester(
        db, user.id, _split_statuses(status), updated_since=updated_since
    )
    return ApiResponse(data=[PendingActionOut.from_action(a) for a in actions])


@router.get("", response_model=ApiResponse[PaginatedResponse[PendingActionOut]])
async def list_actions(
    status: list[str] | None = Query(None),
    action_type: ActionType | None = None,
    priority: ActionPriority | None = None,
    requested_by_id: str | None = None,
    updated_since: datetime | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _admin: StaffUser = Depends(require_admin),
):
    """All pending actions with filters, sorting and pagination."""
    items, total = await list_all(
        db,
        statuses=_split_statuses(status),
        action_type=action_type.value if action_type else None,
        priority=priority.value if priority else None,
        requested_by_id=requested_by_id,
        updated_since=updated_since,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=limit,
        offset=offset,
    )
    return ApiResponse(data=PaginatedResponse(
        items=[PendingActionOut.from_action(a) for a in items],
        total=total,
        limit=limit,
        offset=offset,
    ))


@router.get("/stats", response_model=ApiResponse[ApprovalStatsOut])
async def stats(
    db: AsyncSession = Depends(get_db),
    _admin: StaffUser = Depends(require_admin),
):
    return ApiResponse(data=await get_approval_stats(db))


@router.post("/expire", response_model=ApiResponse[ExpireSweepOut])
async def expire_now(
    db: AsyncSession = Depends(get_db),
    _admin: StaffUser = Depends(require_admin),
):
    """Run the expiry sweep immediately instead of waiting for the scheduler."""
    expired = await expire_overdue(db)
    return ApiResponse(data=ExpireSweepOut(expired=expired), message=f"Expired {expired} action(s)")


@router.get("/{action_id}", response_model=ApiResponse[PendingActionOut])
async def get_action(
    action_id: str,
    db: AsyncSession = Depends(get_db),
    user: StaffUser = Depends(get_current_user),
):
    action = await get_pending_action(db, action_id)
    if user.role != StaffRole.ADMIN and action.requested_by_id != user.id:
        raise PermissionDeniedError("You can only view your own submissions")
    return ApiResponse(data=PendingActionOut.from_action(action))


@router.post("/{action_id}/review", response_model=ApiResponse[PendingActionOut])
async def review(
    action_id: str,
    body: ReviewRequest,
    db: AsyncSession = Depends(get_db),
    admin: StaffUser = Depends(require_admin),
):
    """Approve (and execute) or reject a pending action."""
    outcome = await review_action(db, action_id, admin, body)
    return ApiResponse(
        data=PendingActionOut.from_action(outcome.action),
        message=outcome.message,
        executed=outcome.executed,
    )


@router.post("/{action_id}/execute", response_model=ApiResponse[PendingActionOut])
async def execute(
    action_id: str,
    db: AsyncSession = Depends(get_db),
    admin: StaffUser = Depends(require_admin),
):
    """Retry execution of an approved action whose first attempt failed."""
    outcome = await retry_execution(db, action_id, admin)
    return ApiResponse(
        data=PendingActionOut.from_action(outcome.action),
        message=outcome.message,
        executed=outcome.executed,
    )
