"""Pydantic schemas for the approval workflow API."""

import enum
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from app.models.pending_action import ActionPriority, PendingAction
from app.services.action_registry import ActionType, TargetEntity


class ReviewDecision(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"


# ── Requests ─────────────────────────────────────────────────


class SubmitActionRequest(BaseModel):
    action_type: ActionType
    target_entity: TargetEntity
    target_id: str | None = Field(None, max_length=36)
    # Shape is checked per action type by the registry
    change_data: dict[str, Any]
    notes: str | None = None
    priority: ActionPriority = ActionPriority.NORMAL
    category: str | None = Field(None, max_length=100)
    related_client_id: str | None = None
    related_lot_id: str | None = None
    related_payment_id: str | None = None


class ReviewRequest(BaseModel):
    action: ReviewDecision
    admin_notes: str | None = None
    rejection_reason: str | None = None


class ApprovalConfigUpdate(BaseModel):
    requires_approval: bool
    exempt_roles: list[str] = Field(default_factory=list)
    expiration_days: int | None = Field(None, ge=1, le=365)
    description: str | None = None
    is_active: bool = True


# ── Responses ────────────────────────────────────────────────


class Actor(BaseModel):
    id: str
    username: str
    name: str | None = None


class PendingActionOut(BaseModel):
    id: str
    action_type: str
    target_entity: str
    target_id: str | None
    change_data: dict
    previous_data: dict | None
    status: str
    priority: str
    category: str | None
    notes: str | None
    related_client_id: str | None
    related_lot_id: str | None
    related_payment_id: str | None
    requested_by: Actor
    reviewed_by: Actor | None
    reviewed_at: datetime | None
    admin_notes: str | None
    rejection_reason: str | None
    is_executed: bool
    executed_at: datetime | None
    execution_result: dict | None
    execution_error: str | None
    execution_attempts: int
    created_at: datetime
    updated_at: datetime
    expires_at: datetime | None

    @classmethod
    def from_action(cls, action: PendingAction, now: datetime | None = None) -> "PendingActionOut":
        """Serialize with the effective (lazily expired) status."""
        reviewed_by = None
        if action.reviewed_by_id:
            reviewed_by = Actor(
                id=action.reviewed_by_id,
                username=action.reviewed_by_username or action.reviewed_by_id,
            )
        return cls(
            id=action.id,
            action_type=action.action_type,
            target_entity=action.target_entity,
            target_id=action.target_id,
            change_data=action.change_data,
            previous_data=action.previous_data,
            status=action.effective_status(now),
            priority=action.priority,
            category=action.category,
            notes=action.notes,
            related_client_id=action.related_client_id,
            related_lot_id=action.related_lot_id,
            related_payment_id=action.related_payment_id,
            requested_by=Actor(
                id=action.requested_by_id,
                username=action.requested_by_username,
                name=action.requested_by_name,
            ),
            reviewed_by=reviewed_by,
            reviewed_at=action.reviewed_at,
            admin_notes=action.admin_notes,
            rejection_reason=action.rejection_reason,
            is_executed=action.is_executed,
            executed_at=action.executed_at,
            execution_result=action.execution_result,
            execution_error=action.execution_error,
            execution_attempts=action.execution_attempts,
            created_at=action.created_at,
            updated_at=action.updated_at,
            expires_at=action.expires_at,
        )


class ApprovalCheckOut(BaseModel):
    action_type: str
    required: bool


class ExpireSweepOut(BaseModel):
    expired: int


class ActionTypeBreakdown(BaseModel):
    action_type: str
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    expired: int = 0


class PriorityBreakdown(BaseModel):
    priority: str
    pending: int
    avg_wait_hours: float


class EmployeeBreakdown(BaseModel):
    requested_by: Actor
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    avg_review_hours: float = 0


class ApprovalStatsOut(BaseModel):
    pending_count: int
    approved_today: int
    rejected_today: int
    expired_today: int
    approval_rate: float
    rejection_rate: float
    avg_approval_time_hours: float
    by_action_type: list[ActionTypeBreakdown] = []
    by_priority: list[PriorityBreakdown] = []
    by_employee: list[EmployeeBreakdown] = []


class ApprovalConfigOut(BaseModel):
    action_type: str
    requires_approval: bool
    exempt_roles: list[str]
    expiration_days: int
    description: str | None
    is_active: bool
    # False when the row comes from built-in defaults (no override stored)
    is_override: bool
    updated_by: str | None = None
    updated_at: datetime | None = None
