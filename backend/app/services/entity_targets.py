"""Loading and snapshotting the entities that pending actions mutate."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.burial import Burial
from app.models.client import Client
from app.models.lot import Lot
from app.models.payment import Payment
from app.models.site_content import SiteContent
from app.services.action_registry import TargetEntity

TARGET_MODELS = {
    TargetEntity.CLIENT: Client,
    TargetEntity.LOT: Lot,
    TargetEntity.PAYMENT: Payment,
    TargetEntity.BURIAL: Burial,
    TargetEntity.WEBSITE: SiteContent,
}


def json_value(value):
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


async def load_target(
    db: AsyncSession,
    target_entity: TargetEntity,
    target_id: str,
    *,
    lock: bool = False,
):
    """Fetch the target row, optionally with SELECT ... FOR UPDATE.

    Returns None when the row does not exist.
    """
    model = TARGET_MODELS[TargetEntity(target_entity)]
    pk = model.section if model is SiteContent else model.id
    stmt = select(model).where(pk == target_id)
    if lock:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


def snapshot(entity, fields) -> dict:
    """JSON-safe values of `fields` on an entity (or a site content section)."""
    if isinstance(entity, SiteContent):
        content = entity.content or {}
        return {f: content.get(f) for f in fields}
    if entity is None:
        return {f: None for f in fields}
    return {f: json_value(getattr(entity, f)) for f in fields}


def entity_snapshot(entity) -> dict:
    """Every column of a row, JSON-safe; stored as the execution result."""
    if isinstance(entity, SiteContent):
        return {"section": entity.section, "content": dict(entity.content or {})}
    return {
        col.key: json_value(getattr(entity, col.key))
        for col in entity.__table__.columns
    }
