"""Approval dashboard statistics.

Read-only and recomputed on every call.  "Today" is the UTC calendar day.
Fast-path approvals (reviewer ``system``) are audit records, not reviews,
so they are left out of the review counts, rates and timings.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta

from sqlalchemy import and_, case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.pending_action import (
    SYSTEM_REVIEWER_ID,
    ActionStatus,
    PendingAction,
)
from app.schemas.approval import (
    ActionTypeBreakdown,
    Actor,
    ApprovalStatsOut,
    EmployeeBreakdown,
    PriorityBreakdown,
)
from app.services.pending_actions import effective_status_clause
from app.utils.clock import day_window, hours_between, utcnow

EMPLOYEE_WINDOW_DAYS = 30


def _pct(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


def _mean(values: list[float]) -> float:
    return round(sum(values) / len(values), 2) if values else 0.0


def _effective_status_expr(now: datetime):
    return case(
        (
            and_(
                PendingAction.status == ActionStatus.PENDING.value,
                PendingAction.expires_at <= now,
            ),
            ActionStatus.EXPIRED.value,
        ),
        else_=PendingAction.status,
    )


async def _by_action_type(db: AsyncSession, now: datetime) -> list[ActionTypeBreakdown]:
    overdue = func.sum(case((PendingAction.expires_at <= now, 1), else_=0))
    result = await db.execute(
        select(
            PendingAction.action_type,
            PendingAction.status,
            func.count(PendingAction.id),
            overdue,
        ).group_by(PendingAction.action_type, PendingAction.status)
    )
    counts: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
    for action_type, status, count, overdue_count in result.all():
        if status == ActionStatus.PENDING.value:
            # Lazily expired rows still stored as pending
            counts[action_type][ActionStatus.EXPIRED.value] += overdue_count or 0
            count -= overdue_count or 0
        counts[action_type][status] += count
    return [
        ActionTypeBreakdown(action_type=action_type, **by_status)
        for action_type, by_status in sorted(counts.items())
    ]


async def _by_priority(db: AsyncSession, now: datetime) -> list[PriorityBreakdown]:
    result = await db.execute(
        select(PendingAction.priority, PendingAction.created_at).where(
            effective_status_clause(ActionStatus.PENDING.value, now)
        )
    )
    waits: dict[str, list[float]] = defaultdict(list)
    for priority, created_at in result.all():
        waits[priority].append(hours_between(created_at, now))
    return [
        PriorityBreakdown(priority=p, pending=len(w), avg_wait_hours=_mean(w))
        for p, w in sorted(waits.items())
    ]


async def _by_employee(db: AsyncSession, now: datetime) -> list[EmployeeBreakdown]:
    status_expr = _effective_status_expr(now)
    result = await db.execute(
        select(
            PendingAction.requested_by_id,
            PendingAction.requested_by_username,
            PendingAction.requested_by_name,
            status_expr,
            PendingAction.reviewed_by_id,
            PendingAction.created_at,
            PendingAction.reviewed_at,
        ).where(PendingAction.created_at >= now - timedelta(days=EMPLOYEE_WINDOW_DAYS))
    )

    rows: dict[str, EmployeeBreakdown] = {}
    review_hours: dict[str, list[float]] = defaultdict(list)
    for req_id, username, name, status, reviewer, created_at, reviewed_at in result.all():
        entry = rows.get(req_id)
        if entry is None:
            entry = rows[req_id] = EmployeeBreakdown(
                requested_by=Actor(id=req_id, username=username, name=name)
            )
        if status == ActionStatus.PENDING.value:
            entry.pending += 1
        elif reviewer and reviewer != SYSTEM_REVIEWER_ID:
            if status == ActionStatus.APPROVED.value:
                entry.approved += 1
            elif status == ActionStatus.REJECTED.value:
                entry.rejected += 1
            if reviewed_at is not None:
                review_hours[req_id].append(hours_between(created_at, reviewed_at))

    for req_id, entry in rows.items():
        entry.avg_review_hours = _mean(review_hours[req_id])
    return sorted(rows.values(), key=lambda e: e.requested_by.username)


async def get_approval_stats(db: AsyncSession, now: datetime | None = None) -> ApprovalStatsOut:
    now = now or utcnow()
    start, end = day_window(now)

    pending_count = (
        await db.execute(
            select(func.count(PendingAction.id)).where(
                effective_status_clause(ActionStatus.PENDING.value, now)
            )
        )
    ).scalar() or 0

    result = await db.execute(
        select(PendingAction.status, PendingAction.created_at, PendingAction.reviewed_at).where(
            PendingAction.reviewed_at >= start,
            PendingAction.reviewed_at < end,
            PendingAction.reviewed_by_id != SYSTEM_REVIEWER_ID,
            PendingAction.status.in_(
                [ActionStatus.APPROVED.value, ActionStatus.REJECTED.value]
            ),
        )
    )
    reviewed = result.all()
    approved = sum(1 for r in reviewed if r.status == ActionStatus.APPROVED.value)
    rejected = len(reviewed) - approved
    durations = [hours_between(r.created_at, r.reviewed_at) for r in reviewed]

    expired_today = (
        await db.execute(
            select(func.count(PendingAction.id)).where(
                effective_status_clause(ActionStatus.EXPIRED.value, now),
                PendingAction.expires_at >= start,
                PendingAction.expires_at < end,
            )
        )
    ).scalar() or 0

    approval_rate = _pct(approved, approved + rejected)
    return ApprovalStatsOut(
        pending_count=pending_count,
        approved_today=approved,
        rejected_today=rejected,
        expired_today=expired_today,
        approval_rate=approval_rate,
        rejection_rate=round(100 - approval_rate, 2) if reviewed else 0.0,
        avg_approval_time_hours=_mean(durations),
        by_action_type=await _by_action_type(db, now),
        by_priority=await _by_priority(db, now),
        by_employee=await _by_employee(db, now),
    )
