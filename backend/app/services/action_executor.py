"""Action executor: applies an approved action's change_data to its target.

Each action type has one async handler registered with ``@handler(...)``.
A handler mutates the session and returns nothing; the executor then
flips ``is_executed`` with a guarded UPDATE and commits both in one
transaction:

    UPDATE pending_actions SET is_executed = true
    WHERE id = :id AND status = 'approved' AND is_executed = false

If the guard matches nothing another worker already executed the action,
so the handler's writes are rolled back and the call is a no-op.  A failed
handler rolls back as well and the failure is recorded on the action in a
separate commit so the action stays retryable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import ConflictError, ExecutionError, MemoriaException
from app.models.burial import Burial
from app.models.client import Client
from app.models.lot import Lot
from app.models.pending_action import ActionStatus, PendingAction
from app.models.site_content import SiteContent
from app.services.action_registry import ActionType, TargetEntity, get_action_spec
from app.services.entity_targets import entity_snapshot, load_target
from app.services.pending_actions import get_pending_action
from app.utils.activity import log_activity
from app.utils.clock import utcnow

logger = logging.getLogger("memoria.executor")

Handler = Callable[[AsyncSession, PendingAction, BaseModel], Awaitable[object]]

_HANDLERS: dict[ActionType, Handler] = {}


def handler(action_type: ActionType):
    """Register the executor routine for an action type."""

    def decorator(func: Handler) -> Handler:
        _HANDLERS[action_type] = func
        return func

    return decorator


@dataclass
class ExecutionOutcome:
    executed: bool
    message: str
    result: dict | None = None
    error: str | None = None
    already_executed: bool = False


# ── Handlers ─────────────────────────────────────────────────


async def _require_target(db: AsyncSession, action: PendingAction, entity: TargetEntity):
    target = await load_target(db, entity, action.target_id, lock=True)
    if target is None:
        raise ExecutionError(f"{entity.value} {action.target_id} no longer exists")
    return target


def _apply(target, payload: BaseModel) -> None:
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(target, field, value)


@handler(ActionType.CLIENT_CREATE)
async def create_client(db, action, payload):
    client = Client(**payload.model_dump(), join_date=utcnow().date())
    db.add(client)
    await db.flush()
    return client


@handler(ActionType.CLIENT_UPDATE)
async def update_client(db, action, payload):
    client = await _require_target(db, action, TargetEntity.CLIENT)
    _apply(client, payload)
    return client


@handler(ActionType.LOT_CREATE)
async def create_lot(db, action, payload):
    lot = Lot(**payload.model_dump())
    db.add(lot)
    await db.flush()
    return lot


@handler(ActionType.LOT_UPDATE)
async def update_lot(db, action, payload):
    lot = await _require_target(db, action, TargetEntity.LOT)
    owner_id = payload.model_dump(exclude_unset=True).get("owner_id")
    if owner_id and await load_target(db, TargetEntity.CLIENT, owner_id) is None:
        raise ExecutionError(f"client {owner_id} no longer exists")
    _apply(lot, payload)
    return lot


@handler(ActionType.PAYMENT_UPDATE)
async def update_payment(db, action, payload):
    payment = await _require_target(db, action, TargetEntity.PAYMENT)
    _apply(payment, payload)
    return payment


@handler(ActionType.BURIAL_CREATE)
async def create_burial(db, action, payload):
    lot = await load_target(db, TargetEntity.LOT, payload.lot_id, lock=True)
    if lot is None:
        raise ExecutionError(f"lot {payload.lot_id} no longer exists")
    if lot.status == "Occupied":
        raise ExecutionError(f"lot {lot.lot_number} is already occupied")

    burial = Burial(**payload.model_dump())
    db.add(burial)
    lot.status = "Occupied"
    lot.occupant_name = payload.deceased_name
    lot.date_occupied = payload.burial_date
    await db.flush()
    return burial


@handler(ActionType.BURIAL_UPDATE)
async def update_burial(db, action, payload):
    burial = await _require_target(db, action, TargetEntity.BURIAL)
    _apply(burial, payload)
    changes = payload.model_dump(exclude_unset=True)
    if "deceased_name" in changes:
        lot = await load_target(db, TargetEntity.LOT, burial.lot_id, lock=True)
        if lot is not None:
            lot.occupant_name = changes["deceased_name"]
    return burial


@handler(ActionType.CONTENT_UPDATE)
async def update_content(db, action, payload):
    section = await load_target(db, TargetEntity.WEBSITE, action.target_id, lock=True)
    if section is None:
        section = SiteContent(section=action.target_id, content={})
        db.add(section)
    # Reassign so the JSON column is marked dirty
    section.content = {**(section.content or {}), **payload.model_dump(exclude_unset=True)}
    section.updated_by = action.requested_by_id
    await db.flush()
    return section


# ── Executor ─────────────────────────────────────────────────


def _failure_summary(exc: Exception) -> str:
    """Short, user-facing reason; driver errors stay in the log only."""
    if isinstance(exc, MemoriaException):
        return exc.message
    if isinstance(exc, PydanticValidationError):
        fields = sorted({".".join(str(p) for p in e["loc"]) or "change_data" for e in exc.errors()})
        return f"stored change_data is no longer valid ({', '.join(fields)})"
    if isinstance(exc, IntegrityError):
        return "database rejected the change (constraint violation)"
    return "database error while applying the change"


async def _record_failure(db: AsyncSession, action_id: str, error: str) -> None:
    await db.execute(
        update(PendingAction)
        .where(PendingAction.id == action_id, PendingAction.is_executed == False)  # noqa: E712
        .values(
            execution_error=error,
            execution_attempts=PendingAction.execution_attempts + 1,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    await log_activity(
        db, None,
        action="action_execution_failed",
        entity_type="pending_action",
        entity_id=action_id,
        summary=error,
    )
    await db.commit()


async def execute_action(db: AsyncSession, action_id: str) -> ExecutionOutcome:
    """Apply an approved action exactly once.

    Never raises for handler failures; they come back as an outcome with
    ``executed=False``.

    Raises:
        NotFoundError if the action does not exist.
        ConflictError if the action is not approved.
    """
    action = await get_pending_action(db, action_id)
    if action.is_executed:
        return ExecutionOutcome(
            executed=True,
            message="Action was already executed",
            result=action.execution_result,
            already_executed=True,
        )
    if action.status != ActionStatus.APPROVED.value:
        raise ConflictError(
            f"Only approved actions can be executed (status: {action.status})",
            current_status=action.effective_status(),
            error_code=ConflictError.INVALID_STATUS,
        )

    action_type = action.action_type
    spec = get_action_spec(action_type)
    try:
        payload = spec.parse(action.change_data, action.target_id)
        entity = await _HANDLERS[spec.action_type](db, action, payload)
        result = entity_snapshot(entity)

        now = utcnow()
        guard = await db.execute(
            update(PendingAction)
            .where(
                PendingAction.id == action_id,
                PendingAction.status == ActionStatus.APPROVED.value,
                PendingAction.is_executed == False,  # noqa: E712
            )
            .values(
                is_executed=True,
                executed_at=now,
                execution_result=result,
                execution_error=None,
                execution_attempts=PendingAction.execution_attempts + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if guard.rowcount != 1:
            await db.rollback()
            logger.info("Action %s was executed concurrently; skipping", action_id)
            return ExecutionOutcome(
                executed=True,
                message="Action was already executed",
                already_executed=True,
            )

        await log_activity(
            db, None,
            action="action_executed",
            entity_type="pending_action",
            entity_id=action_id,
            entity_code=action_type,
            summary=f"Applied {action_type}",
        )
        await db.commit()
    except (MemoriaException, PydanticValidationError, SQLAlchemyError) as exc:
        await db.rollback()
        error = _failure_summary(exc)
        logger.warning(
            "Execution of %s (%s) failed: %s", action_id, action_type, error,
            exc_info=not isinstance(exc, MemoriaException),
        )
        await _record_failure(db, action_id, error)
        return ExecutionOutcome(
            executed=False,
            message=f"Action approved but execution failed: {error}",
            error=error,
        )

    logger.info("Executed %s %s", action_type, action_id)
    return ExecutionOutcome(executed=True, message="Action executed", result=result)
