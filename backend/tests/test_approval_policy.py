"""Tests for the approval policy engine and its Redis cache."""

import fnmatch
from datetime import timedelta

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.exc import OperationalError

from app.config import settings
from app.middleware.exceptions import PolicyError
from app.models.approval_config import ApprovalConfig
from app.services import approval_policy
from app.services.approval_policy import (
    build_policy,
    check_approval_required,
    default_policy,
    invalidate_policy_cache,
    list_policy_config,
    load_policy,
)
from app.utils import cache


def _row(**overrides) -> dict:
    row = {
        "action_type": "payment_update",
        "requires_approval": True,
        "exempt_roles": [],
        "expiration_days": None,
        "is_active": True,
    }
    row.update(overrides)
    return row


class FakeRedis:
    """Minimal in-memory stand-in for the redis.asyncio client."""

    def __init__(self):
        self.store: dict[str, str] = {}

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = value

    async def scan_iter(self, match="*"):
        for key in list(self.store):
            if fnmatch.fnmatch(key, match):
                yield key

    async def delete(self, *keys):
        for key in keys:
            self.store.pop(key, None)


class BrokenRedis:
    async def get(self, key):
        raise RedisConnectionError("redis is down")

    async def setex(self, key, ttl, value):
        raise RedisConnectionError("redis is down")


@pytest.mark.unit
class TestPolicySnapshot:

    def test_defaults_require_approval_for_everything(self):
        policy = default_policy()
        for action_type in policy.rules:
            assert policy.is_approval_required(action_type) is True

    def test_unknown_action_type_requires_approval(self):
        assert default_policy().is_approval_required("lot_delete") is True

    def test_override_disables_approval(self):
        policy = build_policy([_row(requires_approval=False)])
        assert policy.is_approval_required("payment_update") is False
        assert policy.is_approval_required("client_update") is True

    def test_exempt_roles(self):
        policy = build_policy([_row(exempt_roles=["admin"])])
        assert policy.is_approval_required("payment_update", "admin") is False
        assert policy.is_approval_required("payment_update", "employee") is True
        assert policy.is_approval_required("payment_update") is True

    def test_inactive_rows_are_ignored(self):
        policy = build_policy([_row(requires_approval=False, is_active=False)])
        assert policy.is_approval_required("payment_update") is True

    def test_rows_for_unknown_types_are_ignored(self):
        policy = build_policy([_row(action_type="map_create", requires_approval=False)])
        assert "map_create" not in policy.rules

    def test_expiration(self):
        policy = build_policy([_row(expiration_days=2)])
        assert policy.expiration_for("payment_update") == timedelta(days=2)
        assert policy.expiration_for("client_update") == timedelta(
            days=settings.approval_expiration_days
        )

    @pytest.mark.parametrize("bad", [
        {"requires_approval": "no"},
        {"exempt_roles": "admin"},
        {"expiration_days": 0},
    ])
    def test_malformed_rows_raise(self, bad):
        with pytest.raises(PolicyError):
            build_policy([_row(**bad)])


@pytest.mark.asyncio
class TestPolicyLookup:

    async def test_config_rows_are_applied(self, db_session):
        db_session.add(ApprovalConfig(action_type="payment_update", requires_approval=False))
        await db_session.commit()

        assert await check_approval_required(db_session, "payment_update") is False
        assert await check_approval_required(db_session, "client_update") is True

    async def test_fails_closed_when_config_cannot_be_read(self, db_session, monkeypatch):
        db_session.add(ApprovalConfig(action_type="payment_update", requires_approval=False))
        await db_session.commit()

        async def _broken(db):
            raise OperationalError("SELECT", {}, Exception("connection reset"))

        monkeypatch.setattr(approval_policy, "_load_config_rows", _broken)

        with pytest.raises(PolicyError):
            await load_policy(db_session)
        assert await check_approval_required(db_session, "payment_update") is True

    async def test_fails_closed_on_malformed_config(self, db_session):
        db_session.add(ApprovalConfig(
            action_type="payment_update", requires_approval=False, expiration_days=-3,
        ))
        await db_session.commit()

        assert await check_approval_required(db_session, "payment_update") is True

    async def test_list_marks_overrides(self, db_session):
        db_session.add(ApprovalConfig(
            action_type="lot_update", requires_approval=False, exempt_roles=["admin"],
        ))
        await db_session.commit()

        rows = {r["action_type"]: r for r in await list_policy_config(db_session)}
        assert len(rows) == 8
        assert rows["lot_update"]["is_override"] is True
        assert rows["lot_update"]["requires_approval"] is False
        assert rows["client_update"]["is_override"] is False


@pytest.mark.asyncio
class TestPolicyCache:

    async def test_snapshot_is_cached_until_invalidated(self, db_session, monkeypatch):
        fake = FakeRedis()

        async def _get_redis():
            return fake

        monkeypatch.setattr(settings, "policy_cache_enabled", True)
        monkeypatch.setattr(cache, "get_redis", _get_redis)

        assert await check_approval_required(db_session, "payment_update") is True
        assert fake.store

        db_session.add(ApprovalConfig(action_type="payment_update", requires_approval=False))
        await db_session.commit()

        # Still served from the cached snapshot
        assert await check_approval_required(db_session, "payment_update") is True

        await invalidate_policy_cache()
        assert not fake.store
        assert await check_approval_required(db_session, "payment_update") is False

    async def test_redis_outage_falls_back_to_database(self, db_session, monkeypatch):
        async def _get_redis():
            return BrokenRedis()

        monkeypatch.setattr(settings, "policy_cache_enabled", True)
        monkeypatch.setattr(cache, "get_redis", _get_redis)

        db_session.add(ApprovalConfig(action_type="payment_update", requires_approval=False))
        await db_session.commit()

        assert await check_approval_required(db_session, "payment_update") is False
