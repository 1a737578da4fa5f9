"""Approval policy engine.

Answers "does this action type need approval right now?".

The answer is computed from an immutable `ApprovalPolicy` snapshot:
registry defaults overlaid with active `approval_workflow_config` rows.
Evaluating a snapshot is a pure dictionary lookup, so callers may ask as
often as they like; loading the snapshot is one small query, cached in
Redis for a few seconds and invalidated whenever an admin edits the config.

Failure mode: if the snapshot cannot be loaded or a rule is malformed the
engine fails closed and reports approval as required.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.middleware.exceptions import PolicyError, ValidationError
from app.models.approval_config import ApprovalConfig
from app.models.staff_user import StaffRole
from app.services.action_registry import ACTION_REGISTRY, get_action_spec
from app.utils.cache import cached, invalidate_cache

logger = logging.getLogger("memoria.policy")

POLICY_CACHE_PREFIX = "policy"


@dataclass(frozen=True)
class PolicyRule:
    requires_approval: bool
    exempt_roles: frozenset[str]
    expiration_days: int


@dataclass(frozen=True)
class ApprovalPolicy:
    rules: dict[str, PolicyRule]

    def is_approval_required(self, action_type: str, requester_role: str | None = None) -> bool:
        rule = self.rules.get(str(getattr(action_type, "value", action_type)))
        if rule is None:
            return True
        if not rule.requires_approval:
            return False
        if requester_role is not None and requester_role in rule.exempt_roles:
            return False
        return True

    def expiration_for(self, action_type: str) -> timedelta:
        rule = self.rules.get(str(getattr(action_type, "value", action_type)))
        days = rule.expiration_days if rule else settings.approval_expiration_days
        return timedelta(days=days)


def default_policy() -> ApprovalPolicy:
    """Policy from the registry alone (no runtime overrides)."""
    return ApprovalPolicy(rules={
        action_type.value: PolicyRule(
            requires_approval=spec.requires_approval_default,
            exempt_roles=frozenset(),
            expiration_days=settings.approval_expiration_days,
        )
        for action_type, spec in ACTION_REGISTRY.items()
    })


def build_policy(rows: list[dict]) -> ApprovalPolicy:
    """Overlay config rows (as dicts) on the registry defaults.

    Raises:
        PolicyError if a row is malformed.
    """
    rules = dict(default_policy().rules)
    for row in rows:
        if not row.get("is_active", True):
            continue
        action_type = row.get("action_type")
        if action_type not in rules:
            # Config for an action type this build doesn't know; ignore it
            logger.warning("Ignoring approval config for unknown action type %s", action_type)
            continue

        requires = row.get("requires_approval")
        if not isinstance(requires, bool):
            raise PolicyError(f"requires_approval for {action_type} is not a boolean")
        exempt = row.get("exempt_roles") or []
        if not isinstance(exempt, list):
            raise PolicyError(f"exempt_roles for {action_type} is not a list")
        days = row.get("expiration_days")
        if days is None:
            days = settings.approval_expiration_days
        if not isinstance(days, int) or days < 1:
            raise PolicyError(f"expiration_days for {action_type} must be a positive integer")

        rules[action_type] = PolicyRule(
            requires_approval=requires,
            exempt_roles=frozenset(str(r) for r in exempt),
            expiration_days=days,
        )
    return ApprovalPolicy(rules=rules)


@cached(
    ttl=settings.policy_cache_ttl_seconds,
    prefix=POLICY_CACHE_PREFIX,
    enabled=lambda: settings.policy_cache_enabled,
)
async def _load_config_rows(db: AsyncSession) -> list[dict]:
    result = await db.execute(select(ApprovalConfig).order_by(ApprovalConfig.action_type))
    return [
        {
            "action_type": c.action_type,
            "requires_approval": c.requires_approval,
            "exempt_roles": c.exempt_roles,
            "expiration_days": c.expiration_days,
            "is_active": c.is_active,
        }
        for c in result.scalars().all()
    ]


async def load_policy(db: AsyncSession) -> ApprovalPolicy:
    """Load the current policy snapshot.

    Raises:
        PolicyError if the configuration cannot be read or is malformed.
    """
    try:
        rows = await _load_config_rows(db)
    except SQLAlchemyError as exc:
        raise PolicyError(f"Failed to load approval configuration: {exc}") from exc
    return build_policy(rows)


async def load_policy_or_fail_closed(db: AsyncSession) -> ApprovalPolicy | None:
    """Like load_policy, but returns None (meaning "require everything") on failure."""
    try:
        return await load_policy(db)
    except PolicyError as exc:
        logger.error("Policy lookup failed, requiring approval: %s", exc.message)
        return None


async def check_approval_required(
    db: AsyncSession,
    action_type: str,
    requester_role: str | None = None,
) -> bool:
    policy = await load_policy_or_fail_closed(db)
    if policy is None:
        return True
    return policy.is_approval_required(action_type, requester_role)


async def invalidate_policy_cache() -> None:
    if settings.policy_cache_enabled:
        await invalidate_cache(f"{POLICY_CACHE_PREFIX}:*")


# ── Admin configuration ──────────────────────────────────────


async def list_policy_config(db: AsyncSession) -> list[dict]:
    """Effective rule per action type, marking which ones are stored overrides."""
    result = await db.execute(select(ApprovalConfig))
    stored = {c.action_type: c for c in result.scalars().all()}

    rows = []
    for action_type, spec in ACTION_REGISTRY.items():
        config = stored.get(action_type.value)
        if config is None:
            rows.append({
                "action_type": action_type.value,
                "requires_approval": spec.requires_approval_default,
                "exempt_roles": [],
                "expiration_days": settings.approval_expiration_days,
                "description": spec.description,
                "is_active": True,
                "is_override": False,
            })
            continue
        rows.append({
            "action_type": config.action_type,
            "requires_approval": config.requires_approval,
            "exempt_roles": list(config.exempt_roles or []),
            "expiration_days": config.expiration_days or settings.approval_expiration_days,
            "description": config.description or spec.description,
            "is_active": config.is_active,
            "is_override": True,
            "updated_by": config.updated_by,
            "updated_at": config.updated_at,
        })
    return rows


async def upsert_policy_config(
    db: AsyncSession,
    action_type: str,
    *,
    requires_approval: bool,
    exempt_roles: list[str],
    expiration_days: int | None,
    description: str | None,
    is_active: bool,
    updated_by: str,
) -> ApprovalConfig:
    """Create or replace the override for one action type (caller commits)."""
    get_action_spec(action_type)
    unknown_roles = sorted(set(exempt_roles) - {r.value for r in StaffRole})
    if unknown_roles:
        raise ValidationError(
            "Invalid exempt roles",
            errors=[{"field": "exempt_roles", "message": f"unknown role: {r}"} for r in unknown_roles],
        )

    result = await db.execute(
        select(ApprovalConfig).where(ApprovalConfig.action_type == action_type)
    )
    config = result.scalar_one_or_none()
    if config is None:
        config = ApprovalConfig(action_type=action_type)
        db.add(config)

    config.requires_approval = requires_approval
    config.exempt_roles = sorted(set(exempt_roles))
    config.expiration_days = expiration_days
    config.description = description
    config.is_active = is_active
    config.updated_by = updated_by
    await db.flush()

    logger.info(
        "Approval policy for %s set to requires_approval=%s by %s",
        action_type, requires_approval, updated_by,
    )
    return config
