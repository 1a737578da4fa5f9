"""Approval policy configuration router (admin only).

Endpoints:
    GET  /api/approval-config                 Effective rule per action type
    PUT  /api/approval-config/{action_type}   Create or replace an override
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import require_admin
from app.database import get_db
from app.models.staff_user import StaffUser
from app.schemas.approval import ApprovalConfigOut, ApprovalConfigUpdate
from app.schemas.common import ApiResponse
from app.services.action_registry import ActionType
from app.services.approval_policy import (
    invalidate_policy_cache,
    list_policy_config,
    upsert_policy_config,
)
from app.utils.activity import log_activity

router = APIRouter()


@router.get("", response_model=ApiResponse[list[ApprovalConfigOut]])
async def list_config(
    db: AsyncSession = Depends(get_db),
    _admin: StaffUser = Depends(require_admin),
):
    rows = await list_policy_config(db)
    return ApiResponse(data=[ApprovalConfigOut(**row) for row in rows])


@router.put("/{action_type}", response_model=ApiResponse[ApprovalConfigOut])
async def upsert_config(
    action_type: ActionType,
    body: ApprovalConfigUpdate,
    db: AsyncSession = Depends(get_db),
    admin: StaffUser = Depends(require_admin),
):
    """Override whether an action type needs approval, and for whom."""
    config = await upsert_policy_config(
        db,
        action_type.value,
        updated_by=admin.id,
        **body.model_dump(),
    )
    await log_activity(
        db, admin,
        action="policy_updated",
        entity_type="approval_config",
        entity_id=config.id,
        entity_code=config.action_type,
        summary=f"Set {config.action_type} requires_approval={config.requires_approval}",
        details=body.model_dump(),
    )
    await db.commit()
    await invalidate_policy_cache()

    rows = await list_policy_config(db)
    row = next(r for r in rows if r["action_type"] == action_type.value)
    return ApiResponse(data=ApprovalConfigOut(**row), message="Approval policy updated")
