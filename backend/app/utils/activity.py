"""Lightweight helper for recording activity log entries.

Usage:
    await log_activity(
        db, admin, action="action_approved", entity_type="pending_action",
        entity_id=action.id, entity_code=action.action_type,
        summary="Approved payment_update for payment P1",
    )

Pass ``user=None`` for entries written by the service itself (fast-path
approvals, the expiry sweep); they are attributed to ``system``.

The row is added to the current session and committed with the
enclosing transaction; no extra flush is performed.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.activity_log import ActivityLog
from app.models.pending_action import SYSTEM_REVIEWER_ID
from app.models.staff_user import StaffUser


async def log_activity(
    db: AsyncSession,
    user: StaffUser | None,
    *,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    entity_code: str | None = None,
    summary: str | None = None,
    details: dict | None = None,
) -> None:
    """Append an activity log entry to the current DB session."""
    entry = ActivityLog(
        user_id=user.id if user else SYSTEM_REVIEWER_ID,
        user_name=user.full_name if user else SYSTEM_REVIEWER_ID,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        entity_code=entity_code,
        summary=summary,
        details=details,
    )
    db.add(entry)
