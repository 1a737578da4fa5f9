"""Pending action store: queries and guarded state transitions.

Every status change is a conditional UPDATE that only matches a row still
in the expected state, so two writers racing on the same action can never
both succeed.  Functions here never commit; the calling service owns the
transaction, except `expire_overdue`, which is a unit of work on its own.

Expiry is lazy: a pending row whose `expires_at` has passed is reported
and filtered as `expired` even before the sweep rewrites it.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import NotFoundError, ValidationError
from app.models.pending_action import (
    PRIORITY_RANK,
    ActionStatus,
    PendingAction,
)
from app.utils.activity import log_activity
from app.utils.clock import utcnow

logger = logging.getLogger("memoria.pending_actions")

SORTABLE_FIELDS = ("created_at", "priority", "expires_at", "status", "action_type")
MAX_PAGE_SIZE = 200


# ── Effective-status predicates ──────────────────────────────


def _not_expired(now: datetime):
    return or_(PendingAction.expires_at.is_(None), PendingAction.expires_at > now)


def effective_status_clause(status: str, now: datetime):
    """SQL predicate matching rows whose *effective* status is `status`."""
    if status == ActionStatus.PENDING.value:
        return and_(PendingAction.status == status, _not_expired(now))
    if status == ActionStatus.EXPIRED.value:
        return or_(
            PendingAction.status == status,
            and_(
                PendingAction.status == ActionStatus.PENDING.value,
                PendingAction.expires_at <= now,
            ),
        )
    return PendingAction.status == status


def _status_filter(statuses: list[str] | None, now: datetime):
    if not statuses:
        return None
    valid = {s.value for s in ActionStatus}
    unknown = [s for s in statuses if s not in valid]
    if unknown:
        raise ValidationError(
            "Invalid status filter",
            errors=[{"field": "status", "message": f"unknown status: {s}"} for s in unknown],
        )
    return or_(*(effective_status_clause(s, now) for s in statuses))


# ── Reads ────────────────────────────────────────────────────


async def get_pending_action(db: AsyncSession, action_id: str) -> PendingAction:
    # Guarded UPDATEs bypass the identity map, so always reload the row
    result = await db.execute(
        select(PendingAction)
        .where(PendingAction.id == action_id)
        .execution_options(populate_existing=True)
    )
    action = result.scalar_one_or_none()
    if not action:
        raise NotFoundError("Pending action", action_id)
    return action


async def list_for_requester(
    db: AsyncSession,
    requester_id: str,
    statuses: list[str] | None = None,
    updated_since: datetime | None = None,
    now: datetime | None = None,
) -> list[PendingAction]:
    """An employee's own submissions, newest first."""
    now = now or utcnow()
    stmt = select(PendingAction).where(PendingAction.requested_by_id == requester_id)
    clause = _status_filter(statuses, now)
    if clause is not None:
        stmt = stmt.where(clause)
    if updated_since is not None:
        stmt = stmt.where(PendingAction.updated_at >= updated_since)
    result = await db.execute(stmt.order_by(PendingAction.created_at.desc()))
    return list(result.scalars().all())


async def list_all(
    db: AsyncSession,
    *,
    statuses: list[str] | None = None,
    action_type: str | None = None,
    priority: str | None = None,
    requested_by_id: str | None = None,
    updated_since: datetime | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    limit: int = 50,
    offset: int = 0,
    now: datetime | None = None,
) -> tuple[list[PendingAction], int]:
    """Admin listing with filters, sorting and pagination.

    Returns (items, total) where total ignores limit/offset.
    """
    if sort_by not in SORTABLE_FIELDS:
        raise ValidationError(
            "Invalid sort field",
            errors=[{"field": "sort_by", "message": "must be one of: " + ", ".join(SORTABLE_FIELDS)}],
        )
    if sort_order not in ("asc", "desc"):
        raise ValidationError(
            "Invalid sort order",
            errors=[{"field": "sort_order", "message": "must be 'asc' or 'desc'"}],
        )
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    offset = max(0, offset)
    now = now or utcnow()

    filters = []
    clause = _status_filter(statuses, now)
    if clause is not None:
        filters.append(clause)
    if action_type:
        filters.append(PendingAction.action_type == action_type)
    if priority:
        filters.append(PendingAction.priority == priority)
    if requested_by_id:
        filters.append(PendingAction.requested_by_id == requested_by_id)
    if updated_since is not None:
        filters.append(PendingAction.updated_at >= updated_since)

    total = (
        await db.execute(select(func.count(PendingAction.id)).where(*filters))
    ).scalar() or 0

    if sort_by == "priority":
        sort_col = case(PRIORITY_RANK, value=PendingAction.priority, else_=1)
    else:
        sort_col = getattr(PendingAction, sort_by)
    order = sort_col.desc() if sort_order == "desc" else sort_col.asc()

    result = await db.execute(
        select(PendingAction)
        .where(*filters)
        .order_by(order, PendingAction.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total


# ── Guarded transitions ──────────────────────────────────────


async def transition_from_pending(
    db: AsyncSession,
    action_id: str,
    *,
    to_status: str,
    reviewer_id: str,
    reviewer_username: str,
    admin_notes: str | None = None,
    rejection_reason: str | None = None,
    now: datetime | None = None,
) -> bool:
    """pending → approved/rejected, only while still pending and unexpired.

    Returns True if this call won the transition.
    """
    now = now or utcnow()
    result = await db.execute(
        update(PendingAction)
        .where(
            PendingAction.id == action_id,
            PendingAction.status == ActionStatus.PENDING.value,
            _not_expired(now),
        )
        .values(
            status=to_status,
            reviewed_by_id=reviewer_id,
            reviewed_by_username=reviewer_username,
            reviewed_at=now,
            admin_notes=admin_notes,
            rejection_reason=rejection_reason,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def mark_expired(db: AsyncSession, action_id: str, now: datetime | None = None) -> bool:
    """pending → expired for a single overdue action."""
    now = now or utcnow()
    result = await db.execute(
        update(PendingAction)
        .where(
            PendingAction.id == action_id,
            PendingAction.status == ActionStatus.PENDING.value,
            PendingAction.expires_at <= now,
        )
        .values(status=ActionStatus.EXPIRED.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def expire_overdue(db: AsyncSession, now: datetime | None = None) -> int:
    """Sweep: write `expired` for every overdue pending action and commit.

    Rows reviewed between the select and the update are skipped by the
    status guard.  Returns the number of rows expired.
    """
    now = now or utcnow()
    result = await db.execute(
        select(PendingAction.id, PendingAction.action_type).where(
            PendingAction.status == ActionStatus.PENDING.value,
            PendingAction.expires_at <= now,
        )
    )
    overdue = result.all()

    expired = 0
    for action_id, action_type in overdue:
        if await mark_expired(db, action_id, now):
            expired += 1
            await log_activity(
                db, None,
                action="action_expired",
                entity_type="pending_action",
                entity_id=action_id,
                entity_code=action_type,
                summary=f"Expired unreviewed {action_type}",
            )
    await db.commit()

    if expired:
        logger.info("Expired %d overdue pending actions", expired)
    return expired
