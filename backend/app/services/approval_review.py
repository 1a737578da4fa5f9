"""Review processor: admin approve/reject decisions.

The pending → approved/rejected transition is a single conditional UPDATE
committed on its own.  Exactly one concurrent reviewer can win it; every
other caller gets a ConflictError.  Approval then hands off to the action
executor outside that transaction, so a failed execution never undoes the
approval and the action stays retryable via `retry_execution`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import ConflictError, ValidationError
from app.models.pending_action import ActionStatus, PendingAction
from app.models.staff_user import StaffUser
from app.schemas.approval import ReviewDecision, ReviewRequest
from app.services.action_executor import execute_action
from app.services.pending_actions import (
    get_pending_action,
    mark_expired,
    transition_from_pending,
)
from app.utils.activity import log_activity
from app.utils.clock import utcnow

logger = logging.getLogger("memoria.review")


@dataclass
class ReviewOutcome:
    action: PendingAction
    executed: bool
    message: str
    execution_error: str | None = None


async def _raise_conflict(db: AsyncSession, action_id: str, now) -> None:
    current = await get_pending_action(db, action_id)
    if current.is_overdue(now):
        if await mark_expired(db, action_id, now):
            await log_activity(
                db, None,
                action="action_expired",
                entity_type="pending_action",
                entity_id=action_id,
                entity_code=current.action_type,
                summary=f"Expired unreviewed {current.action_type}",
            )
        await db.commit()
        raise ConflictError(
            "Pending action has expired",
            current_status=ActionStatus.EXPIRED.value,
            error_code=ConflictError.ALREADY_EXPIRED,
        )
    status = current.status
    # Release the write lock taken by the failed UPDATE
    await db.rollback()
    if status == ActionStatus.EXPIRED.value:
        raise ConflictError(
            "Pending action has expired",
            current_status=status,
            error_code=ConflictError.ALREADY_EXPIRED,
        )
    raise ConflictError(
        f"Pending action has already been {status}",
        current_status=status,
    )


async def review_action(
    db: AsyncSession,
    action_id: str,
    admin: StaffUser,
    decision: ReviewRequest,
) -> ReviewOutcome:
    """Apply an admin decision to a pending action.

    Raises:
        ValidationError if rejecting without a reason.
        NotFoundError if the action does not exist.
        ConflictError if the action is no longer pending (or has expired).
    """
    rejecting = decision.action == ReviewDecision.REJECT
    if rejecting and not (decision.rejection_reason or "").strip():
        raise ValidationError(
            "A rejection reason is required",
            errors=[{"field": "rejection_reason", "message": "required when rejecting"}],
        )

    action = await get_pending_action(db, action_id)
    action_type = action.action_type
    now = utcnow()
    to_status = ActionStatus.REJECTED if rejecting else ActionStatus.APPROVED

    won = await transition_from_pending(
        db,
        action_id,
        to_status=to_status.value,
        reviewer_id=admin.id,
        reviewer_username=admin.username,
        admin_notes=decision.admin_notes,
        rejection_reason=decision.rejection_reason if rejecting else None,
        now=now,
    )
    if not won:
        await _raise_conflict(db, action_id, now)

    await log_activity(
        db, admin,
        action=f"action_{to_status.value}",
        entity_type="pending_action",
        entity_id=action_id,
        entity_code=action_type,
        summary=f"{to_status.value.capitalize()} {action_type} from {action.requested_by_username}",
        details={"rejection_reason": decision.rejection_reason} if rejecting else None,
    )
    await db.commit()
    logger.info("Pending action %s %s by %s", action_id, to_status.value, admin.username)

    if rejecting:
        return ReviewOutcome(
            action=await get_pending_action(db, action_id),
            executed=False,
            message="Action rejected",
        )

    execution = await execute_action(db, action_id)
    return ReviewOutcome(
        action=await get_pending_action(db, action_id),
        executed=execution.executed,
        message="Action approved and executed" if execution.executed else execution.message,
        execution_error=execution.error,
    )


async def retry_execution(
    db: AsyncSession,
    action_id: str,
    admin: StaffUser,
) -> ReviewOutcome:
    """Re-run the executor for an approved action whose execution failed.

    Already-executed actions are a successful no-op.

    Raises:
        NotFoundError if the action does not exist.
        ConflictError if the action is not approved.
    """
    action = await get_pending_action(db, action_id)
    if action.status != ActionStatus.APPROVED.value:
        raise ConflictError(
            f"Only approved actions can be executed (status: {action.effective_status()})",
            current_status=action.effective_status(),
            error_code=ConflictError.INVALID_STATUS,
        )
    if action.is_executed:
        return ReviewOutcome(action=action, executed=True, message="Action was already executed")

    logger.info("Retrying execution of %s for %s", action_id, admin.username)
    execution = await execute_action(db, action_id)
    return ReviewOutcome(
        action=await get_pending_action(db, action_id),
        executed=execution.executed,
        message=execution.message,
        execution_error=execution.error,
    )
