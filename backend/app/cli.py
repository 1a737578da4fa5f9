"""Management CLI for approval workflow operations.

Usage:
    python -m app.cli expire-actions      # Expire overdue pending actions now
    python -m app.cli retry-executions    # Re-run failed executions of approved actions
    python -m app.cli show-policy         # Print the effective approval policy
"""

import asyncio
import sys

from sqlalchemy import select

from app.database import async_session
from app.models.pending_action import ActionStatus, PendingAction
from app.services.action_executor import execute_action
from app.services.approval_policy import list_policy_config
from app.services.pending_actions import expire_overdue


async def expire_actions():
    async with async_session() as db:
        expired = await expire_overdue(db)
    print(f"Expired {expired} action(s)")


async def retry_executions():
    """Retry every approved action that has not been executed yet."""
    async with async_session() as db:
        result = await db.execute(
            select(PendingAction.id, PendingAction.action_type)
            .where(
                PendingAction.status == ActionStatus.APPROVED.value,
                PendingAction.is_executed == False,  # noqa: E712
            )
            .order_by(PendingAction.reviewed_at)
        )
        pending = result.all()
        if not pending:
            print("No approved actions awaiting execution.")
            return

        failed = 0
        for action_id, action_type in pending:
            outcome = await execute_action(db, action_id)
            if outcome.executed:
                print(f"  OK      {action_id} ({action_type})")
            else:
                failed += 1
                print(f"  FAILED  {action_id} ({action_type}): {outcome.error}")
    print(f"\n{len(pending) - failed} executed, {failed} failed")


async def show_policy():
    async with async_session() as db:
        rows = await list_policy_config(db)
    for row in rows:
        required = "required" if row["requires_approval"] else "not required"
        exempt = ", ".join(row["exempt_roles"]) or "-"
        source = "override" if row["is_override"] else "default"
        print(
            f"  {row['action_type']:<16} {required:<13} exempt: {exempt:<16} "
            f"expires: {row['expiration_days']}d  ({source})"
        )


COMMANDS = {
    "expire-actions": expire_actions,
    "retry-executions": retry_executions,
    "show-policy": show_policy,
}


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    if cmd in COMMANDS:
        asyncio.run(COMMANDS[cmd]())
    else:
        print("Usage: python -m app.cli [" + "|".join(COMMANDS) + "]")
