"""PendingAction: an employee-proposed mutation and its review lifecycle.

Rows are never deleted; the table is the audit history of every change
that went through the approval workflow, including fast-path actions that
policy let through without a human review.

Lifecycle:
    pending ──(admin)──▶ approved ──(executor)──▶ is_executed = true
       │    ──(admin)──▶ rejected
       └────(expiry)───▶ expired
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, Index, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.utils.clock import utcnow

SYSTEM_REVIEWER_ID = "system"


class ActionStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


TERMINAL_STATUSES = frozenset(
    {ActionStatus.APPROVED, ActionStatus.REJECTED, ActionStatus.EXPIRED}
)


class ActionPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


# Listing order for sort_by=priority (most urgent first when descending)
PRIORITY_RANK = {
    ActionPriority.LOW.value: 0,
    ActionPriority.NORMAL.value: 1,
    ActionPriority.HIGH.value: 2,
    ActionPriority.URGENT.value: 3,
}


class PendingAction(Base):
    __tablename__ = "pending_actions"
    __table_args__ = (
        Index("ix_pending_actions_status_expires", "status", "expires_at"),
        Index("ix_pending_actions_requester_created", "requested_by_id", "created_at"),
        CheckConstraint(
            "is_executed = false OR status = 'approved'",
            name="ck_pending_actions_executed_only_if_approved",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # ── What ───────────────────────────────────────────────────
    action_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    target_entity: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(36))
    change_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    previous_data: Mapped[dict | None] = mapped_column(JSON)

    # ── Request metadata ───────────────────────────────────────
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ActionStatus.PENDING.value
    )
    priority: Mapped[str] = mapped_column(
        String(10), nullable=False, default=ActionPriority.NORMAL.value
    )
    category: Mapped[str | None] = mapped_column(String(100))
    notes: Mapped[str | None] = mapped_column(Text)

    related_client_id: Mapped[str | None] = mapped_column(String(36), index=True)
    related_lot_id: Mapped[str | None] = mapped_column(String(36), index=True)
    related_payment_id: Mapped[str | None] = mapped_column(String(36))

    # ── Who asked ──────────────────────────────────────────────
    requested_by_id: Mapped[str] = mapped_column(String(36), nullable=False)
    requested_by_username: Mapped[str] = mapped_column(String(100), nullable=False)
    requested_by_name: Mapped[str | None] = mapped_column(String(255))

    # ── Review (written exactly once) ──────────────────────────
    reviewed_by_id: Mapped[str | None] = mapped_column(String(36))
    reviewed_by_username: Mapped[str | None] = mapped_column(String(100))
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime, index=True)
    admin_notes: Mapped[str | None] = mapped_column(Text)
    rejection_reason: Mapped[str | None] = mapped_column(Text)

    # ── Execution ──────────────────────────────────────────────
    is_executed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    executed_at: Mapped[datetime | None] = mapped_column(DateTime)
    execution_result: Mapped[dict | None] = mapped_column(JSON)
    execution_error: Mapped[str | None] = mapped_column(Text)
    execution_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # ── Timestamps ─────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )
    expires_at: Mapped[datetime | None] = mapped_column(DateTime)

    def is_overdue(self, now: datetime | None = None) -> bool:
        """True when still stored as pending but past its expiry instant."""
        if self.status != ActionStatus.PENDING.value or self.expires_at is None:
            return False
        return self.expires_at <= (now or utcnow())

    def effective_status(self, now: datetime | None = None) -> str:
        """Status as observed externally (lazy expiry)."""
        if self.is_overdue(now):
            return ActionStatus.EXPIRED.value
        return self.status
