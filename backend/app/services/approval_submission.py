"""Submission service: turns an employee's proposed change into a PendingAction.

    outcome = await submit_action(db, request, employee)
    outcome.action.status      # "pending", or "approved" on the fast path
    outcome.executed           # True only on a successful fast path

Action types that policy does not gate take the fast path: the record is
written as approved by ``system`` and executed immediately, so the audit
history is the same for gated and ungated changes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.middleware.exceptions import NotFoundError, ValidationError
from app.models.pending_action import (
    SYSTEM_REVIEWER_ID,
    ActionStatus,
    PendingAction,
)
from app.models.staff_user import StaffUser
from app.schemas.approval import SubmitActionRequest
from app.services.action_executor import execute_action
from app.services.action_registry import (
    ActionType,
    TargetEntity,
    get_action_spec,
    validate_change_data,
)
from app.services.approval_policy import load_policy_or_fail_closed
from app.services.entity_targets import load_target, snapshot
from app.services.pending_actions import get_pending_action
from app.utils.activity import log_activity
from app.utils.clock import utcnow

logger = logging.getLogger("memoria.submission")


@dataclass
class SubmissionOutcome:
    action: PendingAction
    requires_approval: bool
    executed: bool
    message: str


def _related_ids(request: SubmitActionRequest, target_entity: TargetEntity, change_data: dict) -> dict:
    related = {
        "related_client_id": request.related_client_id,
        "related_lot_id": request.related_lot_id,
        "related_payment_id": request.related_payment_id,
    }
    if request.target_id:
        key = {
            TargetEntity.CLIENT: "related_client_id",
            TargetEntity.LOT: "related_lot_id",
            TargetEntity.PAYMENT: "related_payment_id",
        }.get(target_entity)
        if key and not related[key]:
            related[key] = request.target_id
    if not related["related_lot_id"] and change_data.get("lot_id"):
        related["related_lot_id"] = change_data["lot_id"]
    return related


async def submit_action(
    db: AsyncSession,
    request: SubmitActionRequest,
    requester: StaffUser,
) -> SubmissionOutcome:
    """Validate, snapshot, gate and persist a proposed change.

    Raises:
        ValidationError for malformed requests, or a burial on an occupied lot.
        NotFoundError if the target (or, for burials, the lot) is missing.
    """
    change_data = validate_change_data(
        request.action_type, request.change_data, request.target_id, request.target_entity
    )
    spec = get_action_spec(request.action_type)

    previous_data = None
    if request.target_id:
        # Row lock keeps the snapshot consistent with what the admin will see
        target = await load_target(db, spec.target_entity, request.target_id, lock=True)
        if target is None and spec.target_entity != TargetEntity.WEBSITE:
            raise NotFoundError(spec.target_entity.value.capitalize(), request.target_id)
        previous_data = snapshot(target, change_data.keys())

    if spec.action_type == ActionType.BURIAL_CREATE:
        lot = await load_target(db, TargetEntity.LOT, change_data["lot_id"])
        if lot is None:
            raise NotFoundError("Lot", change_data["lot_id"])
        # Re-checked at execution, the lot may fill up while the request waits
        if lot.status == "Occupied":
            raise ValidationError(
                f"Lot {lot.lot_number} is already occupied",
                errors=[{"field": "change_data.lot_id", "message": "lot is already occupied"}],
            )

    policy = await load_policy_or_fail_closed(db)
    role = requester.role.value if requester.role else None
    if policy is None:
        requires_approval = True
    else:
        requires_approval = policy.is_approval_required(spec.action_type, role)
    expires_in = (
        policy.expiration_for(spec.action_type)
        if policy else timedelta(days=settings.approval_expiration_days)
    )

    now = utcnow()
    action = PendingAction(
        action_type=spec.action_type.value,
        target_entity=spec.target_entity.value,
        target_id=request.target_id,
        change_data=change_data,
        previous_data=previous_data,
        priority=request.priority.value,
        category=request.category,
        notes=request.notes,
        requested_by_id=requester.id,
        requested_by_username=requester.username,
        requested_by_name=requester.full_name,
        created_at=now,
        updated_at=now,
        expires_at=now + expires_in,
        **_related_ids(request, spec.target_entity, change_data),
    )
    if not requires_approval:
        action.status = ActionStatus.APPROVED.value
        action.reviewed_by_id = SYSTEM_REVIEWER_ID
        action.reviewed_by_username = SYSTEM_REVIEWER_ID
        action.reviewed_at = now
    db.add(action)
    await db.flush()

    await log_activity(
        db, requester,
        action="action_submitted" if requires_approval else "action_auto_approved",
        entity_type="pending_action",
        entity_id=action.id,
        entity_code=action.action_type,
        summary=f"Submitted {action.action_type}"
        + (f" for {action.target_entity} {action.target_id}" if action.target_id else ""),
        details={"priority": action.priority, "requires_approval": requires_approval},
    )
    await db.commit()
    action_id = action.id

    logger.info(
        "Pending action %s submitted by %s (%s, approval %s)",
        action_id, requester.username, action.action_type,
        "required" if requires_approval else "not required",
    )

    if requires_approval:
        return SubmissionOutcome(
            action=action,
            requires_approval=True,
            executed=False,
            message="Action submitted for approval",
        )

    execution = await execute_action(db, action_id)
    action = await get_pending_action(db, action_id)
    return SubmissionOutcome(
        action=action,
        requires_approval=False,
        executed=execution.executed,
        message=execution.message,
    )
