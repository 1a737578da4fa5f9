"""HTTP-level tests for the approval and approval-config routers."""

from datetime import timedelta

import pytest

from app.auth.jwt import create_access_token

PAYMENT_COMPLETED = {
    "action_type": "payment_update",
    "target_entity": "payment",
    "target_id": "P1",
    "change_data": {"status": "Completed"},
}


def auth_headers_for(user) -> dict:
    token = create_access_token(user_id=user.id, role=user.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.mark.integration
@pytest.mark.asyncio
class TestHealth:

    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"


@pytest.mark.integration
@pytest.mark.asyncio
class TestSubmitEndpoints:

    async def test_requires_token(self, client):
        resp = await client.post("/api/approvals", json=PAYMENT_COMPLETED)
        assert resp.status_code == 401

    async def test_expired_token_is_rejected(self, client, employee, entities):
        token = create_access_token(
            user_id=employee.id, role=employee.role.value, expires_delta=timedelta(minutes=-1),
        )
        resp = await client.post(
            "/api/approvals", json=PAYMENT_COMPLETED, headers={"Authorization": f"Bearer {token}"},
        )
        assert resp.status_code == 401

    async def test_no_route_issues_tokens(self, client):
        from app.main import app

        paths = {route.path for route in app.routes}
        assert not any("token" in p or "login" in p for p in paths)

    async def test_submit_returns_pending_action(self, client, employee_headers, entities):
        resp = await client.post("/api/approvals", json=PAYMENT_COMPLETED, headers=employee_headers)

        assert resp.status_code == 201
        body = resp.json()
        assert body["success"] is True
        assert body["executed"] is False
        assert body["data"]["status"] == "pending"
        assert body["data"]["previous_data"] == {"status": "Pending"}
        assert body["data"]["requested_by"]["username"] == "emp_carla"
        assert body["data"]["reviewed_by"] is None

    async def test_invalid_change_data(self, client, employee_headers, entities):
        payload = {**PAYMENT_COMPLETED, "change_data": {"status": "Refunded"}}
        resp = await client.post("/api/approvals", json=payload, headers=employee_headers)

        assert resp.status_code == 422
        error = resp.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert any(e["field"] == "change_data.status" for e in error["details"]["errors"])

    async def test_unknown_action_type(self, client, employee_headers):
        payload = {**PAYMENT_COMPLETED, "action_type": "payment_delete"}
        resp = await client.post("/api/approvals", json=payload, headers=employee_headers)

        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_missing_target(self, client, employee_headers, entities):
        payload = {**PAYMENT_COMPLETED, "target_id": "P404"}
        resp = await client.post("/api/approvals", json=payload, headers=employee_headers)

        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"

    async def test_check_follows_policy_updates(self, client, employee_headers, admin_headers):
        resp = await client.get("/api/approvals/check/payment_update", headers=employee_headers)
        assert resp.json()["data"] == {"action_type": "payment_update", "required": True}

        resp = await client.put(
            "/api/approval-config/payment_update",
            json={"requires_approval": False},
            headers=admin_headers,
        )
        assert resp.status_code == 200

        resp = await client.get("/api/approvals/check/payment_update", headers=employee_headers)
        assert resp.json()["data"]["required"] is False

    async def test_fast_path_over_http(self, client, employee_headers, admin_headers, entities):
        await client.put(
            "/api/approval-config/payment_update",
            json={"requires_approval": False},
            headers=admin_headers,
        )

        resp = await client.post("/api/approvals", json=PAYMENT_COMPLETED, headers=employee_headers)

        body = resp.json()
        assert resp.status_code == 201
        assert body["executed"] is True
        assert body["data"]["status"] == "approved"
        assert body["data"]["reviewed_by"]["id"] == "system"

    async def test_mine_lists_only_own_actions(
        self, client, employee, other_employee, employee_headers, entities, make_action,
    ):
        own = await make_action(employee)
        await make_action(other_employee)
        await make_action(employee, status="rejected", rejection_reason="duplicate")

        resp = await client.get("/api/approvals/mine?status=pending", headers=employee_headers)

        assert resp.status_code == 200
        assert [a["id"] for a in resp.json()["data"]] == [own.id]

    async def test_cannot_view_others_action(
        self, client, other_employee, employee_headers, entities, make_action,
    ):
        theirs = await make_action(other_employee)
        resp = await client.get(f"/api/approvals/{theirs.id}", headers=employee_headers)

        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "PERMISSION_DENIED"


@pytest.mark.integration
@pytest.mark.asyncio
class TestAdminEndpoints:

    async def test_employee_cannot_list_all(self, client, employee_headers):
        resp = await client.get("/api/approvals", headers=employee_headers)
        assert resp.status_code == 403

    async def test_list_sorted_by_priority(self, client, admin_headers, employee, entities, make_action):
        await make_action(employee, priority="low")
        urgent = await make_action(employee, priority="urgent")
        await make_action(employee, priority="normal")

        resp = await client.get(
            "/api/approvals?status=pending&sort_by=priority&sort_order=desc&limit=2",
            headers=admin_headers,
        )

        page = resp.json()["data"]
        assert page["total"] == 3
        assert page["limit"] == 2
        assert [a["priority"] for a in page["items"]] == ["urgent", "normal"]
        assert page["items"][0]["id"] == urgent.id

    async def test_invalid_sort_field(self, client, admin_headers):
        resp = await client.get("/api/approvals?sort_by=change_data", headers=admin_headers)
        assert resp.status_code == 422

    async def test_review_then_conflict(self, client, admin, second_admin, employee, entities, make_action):
        action = await make_action(employee)

        resp = await client.post(
            f"/api/approvals/{action.id}/review",
            json={"action": "approve", "admin_notes": "ok"},
            headers=auth_headers_for(admin),
        )
        body = resp.json()
        assert resp.status_code == 200
        assert body["executed"] is True
        assert body["message"] == "Action approved and executed"
        assert body["data"]["reviewed_by"]["username"] == "admin_ana"

        resp = await client.post(
            f"/api/approvals/{action.id}/review",
            json={"action": "reject", "rejection_reason": "changed my mind"},
            headers=auth_headers_for(second_admin),
        )
        assert resp.status_code == 409
        error = resp.json()["error"]
        assert error["code"] == "ALREADY_REVIEWED"
        assert error["details"] == {"status": "approved"}

    async def test_reject_without_reason(self, client, admin_headers, employee, entities, make_action):
        action = await make_action(employee)

        resp = await client.post(
            f"/api/approvals/{action.id}/review",
            json={"action": "reject"},
            headers=admin_headers,
        )

        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_employee_cannot_review(self, client, employee_headers, employee, entities, make_action):
        action = await make_action(employee)
        resp = await client.post(
            f"/api/approvals/{action.id}/review",
            json={"action": "approve"},
            headers=employee_headers,
        )
        assert resp.status_code == 403

    async def test_stats(self, client, admin_headers, employee, entities, make_action):
        await make_action(employee)

        resp = await client.get("/api/approvals/stats", headers=admin_headers)

        data = resp.json()["data"]
        assert data["pending_count"] == 1
        assert data["approval_rate"] == 0.0

    async def test_expire_sweep(self, client, admin_headers, employee, entities, make_action):
        from datetime import timedelta

        from app.utils.clock import utcnow

        now = utcnow()
        await make_action(employee, created_at=now - timedelta(days=8), expires_at=now - timedelta(hours=1))
        await make_action(employee)

        resp = await client.post("/api/approvals/expire", headers=admin_headers)
        assert resp.json()["data"] == {"expired": 1}

        resp = await client.post("/api/approvals/expire", headers=admin_headers)
        assert resp.json()["data"] == {"expired": 0}


@pytest.mark.integration
@pytest.mark.asyncio
class TestApprovalConfigEndpoints:

    async def test_list_has_every_action_type(self, client, admin_headers):
        resp = await client.get("/api/approval-config", headers=admin_headers)

        rows = resp.json()["data"]
        assert len(rows) == 8
        assert all(r["requires_approval"] and not r["is_override"] for r in rows)

    async def test_upsert_returns_override(self, client, admin, admin_headers):
        resp = await client.put(
            "/api/approval-config/lot_update",
            json={"requires_approval": True, "exempt_roles": ["admin"], "expiration_days": 3},
            headers=admin_headers,
        )

        row = resp.json()["data"]
        assert row["is_override"] is True
        assert row["exempt_roles"] == ["admin"]
        assert row["expiration_days"] == 3
        assert row["updated_by"] == admin.id

    async def test_unknown_role(self, client, admin_headers):
        resp = await client.put(
            "/api/approval-config/lot_update",
            json={"requires_approval": True, "exempt_roles": ["janitor"]},
            headers=admin_headers,
        )
        assert resp.status_code == 422

    async def test_employee_forbidden(self, client, employee_headers):
        resp = await client.get("/api/approval-config", headers=employee_headers)
        assert resp.status_code == 403
