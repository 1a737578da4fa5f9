"""Tests for submitting pending actions (gated and fast path)."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from app.middleware.exceptions import NotFoundError, PolicyError, ValidationError
from app.models.activity_log import ActivityLog
from app.models.approval_config import ApprovalConfig
from app.models.client import Client
from app.models.lot import Lot
from app.models.payment import Payment
from app.models.pending_action import PendingAction
from app.schemas.approval import SubmitActionRequest
from app.services import approval_policy
from app.services.approval_submission import submit_action


def _request(**fields) -> SubmitActionRequest:
    return SubmitActionRequest(**fields)


def _payment_completed(**extra) -> SubmitActionRequest:
    return _request(
        action_type="payment_update",
        target_entity="payment",
        target_id="P1",
        change_data={"status": "Completed"},
        **extra,
    )


@pytest.mark.asyncio
class TestGatedSubmission:

    async def test_payment_update_is_held_for_review(self, service_db, employee, entities, fetch):
        outcome = await submit_action(service_db, _payment_completed(), employee)

        action = outcome.action
        assert outcome.requires_approval is True
        assert outcome.executed is False
        assert action.status == "pending"
        assert action.previous_data == {"status": "Pending"}
        assert action.change_data == {"status": "Completed"}
        assert action.requested_by_id == employee.id
        assert action.requested_by_username == "emp_carla"
        assert action.related_payment_id == "P1"
        assert action.is_executed is False
        assert action.reviewed_by_id is None
        assert action.expires_at - action.created_at == timedelta(days=7)

        # Nothing applied yet
        payment = await fetch(Payment, "P1")
        assert payment.status == "Pending"

    async def test_previous_data_mirrors_changed_fields(self, service_db, employee, entities):
        outcome = await submit_action(
            service_db,
            _request(
                action_type="client_update",
                target_entity="client",
                target_id="C1",
                change_data={"phone": "555-9999", "notes": "Moved abroad"},
            ),
            employee,
        )
        action = outcome.action
        assert set(action.previous_data) == set(action.change_data)
        assert action.previous_data == {"phone": "555-0101", "notes": None}

    async def test_create_has_no_previous_data(self, service_db, employee):
        outcome = await submit_action(
            service_db,
            _request(
                action_type="client_create",
                target_entity="client",
                change_data={"name": "Ana Lim", "email": "ana@example.com"},
                priority="high",
                category="registrations",
            ),
            employee,
        )
        action = outcome.action
        assert action.target_id is None
        assert action.previous_data is None
        assert action.priority == "high"
        assert action.category == "registrations"
        assert action.change_data["status"] == "Active"

    async def test_content_update_for_new_section(self, service_db, employee, entities):
        outcome = await submit_action(
            service_db,
            _request(
                action_type="content_update",
                target_entity="website",
                target_id="about",
                change_data={"title": "Our History"},
            ),
            employee,
        )
        assert outcome.action.previous_data == {"title": None}

    async def test_content_update_snapshots_current_section(self, service_db, employee, entities):
        outcome = await submit_action(
            service_db,
            _request(
                action_type="content_update",
                target_entity="website",
                target_id="hero",
                change_data={"title": "A Place of Peace"},
            ),
            employee,
        )
        assert outcome.action.previous_data == {"title": "Peaceful Rest"}

    async def test_missing_target(self, service_db, employee, entities):
        with pytest.raises(NotFoundError):
            await submit_action(
                service_db,
                _request(
                    action_type="payment_update",
                    target_entity="payment",
                    target_id="P404",
                    change_data={"status": "Completed"},
                ),
                employee,
            )

    async def test_burial_for_missing_lot(self, service_db, employee, entities):
        with pytest.raises(NotFoundError):
            await submit_action(
                service_db,
                _request(
                    action_type="burial_create",
                    target_entity="burial",
                    change_data={
                        "lot_id": "L404",
                        "deceased_name": "Pedro Cruz",
                        "burial_date": "2026-10-20",
                    },
                ),
                employee,
            )

    async def test_burial_on_occupied_lot(self, service_db, db_session, employee, entities):
        with pytest.raises(ValidationError) as exc:
            await submit_action(
                service_db,
                _request(
                    action_type="burial_create",
                    target_entity="burial",
                    change_data={
                        "lot_id": "L2",
                        "deceased_name": "Pedro Cruz",
                        "burial_date": "2026-10-20",
                    },
                ),
                employee,
            )

        assert [e["field"] for e in exc.value.errors] == ["change_data.lot_id"]
        assert (await db_session.execute(select(PendingAction))).scalars().all() == []

    async def test_null_for_required_column(self, service_db, db_session, employee, entities, fetch):
        with pytest.raises(ValidationError) as exc:
            await submit_action(
                service_db,
                _request(
                    action_type="client_update",
                    target_entity="client",
                    target_id="C1",
                    change_data={"name": None},
                ),
                employee,
            )

        assert [e["field"] for e in exc.value.errors] == ["change_data.name"]
        assert (await db_session.execute(select(PendingAction))).scalars().all() == []
        assert (await fetch(Client, "C1")).name == "Maria Santos"

    async def test_invalid_change_data(self, service_db, employee, entities):
        with pytest.raises(ValidationError):
            await submit_action(
                service_db,
                _request(
                    action_type="payment_update",
                    target_entity="payment",
                    target_id="P1",
                    change_data={"amount": -5},
                ),
                employee,
            )

    async def test_policy_failure_requires_approval(
        self, service_db, db_session, employee, entities, monkeypatch, fetch,
    ):
        db_session.add(ApprovalConfig(action_type="payment_update", requires_approval=False))
        await db_session.commit()

        async def _broken(db):
            raise PolicyError("config store unavailable")

        monkeypatch.setattr(approval_policy, "load_policy", _broken)

        outcome = await submit_action(service_db, _payment_completed(), employee)
        assert outcome.action.status == "pending"
        assert (await fetch(Payment, "P1")).status == "Pending"

    async def test_submission_is_logged(self, service_db, db_session, employee, entities):
        outcome = await submit_action(service_db, _payment_completed(), employee)

        result = await db_session.execute(
            select(ActivityLog).where(ActivityLog.entity_id == outcome.action.id)
        )
        entries = result.scalars().all()
        assert [e.action for e in entries] == ["action_submitted"]
        assert entries[0].user_id == employee.id


@pytest.mark.asyncio
class TestFastPath:

    async def test_ungated_action_is_approved_and_executed(
        self, service_db, db_session, employee, entities, fetch,
    ):
        db_session.add(ApprovalConfig(action_type="payment_update", requires_approval=False))
        await db_session.commit()

        outcome = await submit_action(service_db, _payment_completed(), employee)

        action = outcome.action
        assert outcome.requires_approval is False
        assert outcome.executed is True
        assert action.status == "approved"
        assert action.is_executed is True
        assert action.executed_at is not None
        assert action.reviewed_by_id == "system"
        assert action.previous_data == {"status": "Pending"}
        assert (await fetch(Payment, "P1")).status == "Completed"

    async def test_exempt_role_takes_fast_path(
        self, service_db, db_session, admin, employee, entities, fetch,
    ):
        db_session.add(ApprovalConfig(
            action_type="client_create", requires_approval=True, exempt_roles=["admin"],
        ))
        await db_session.commit()

        request = _request(
            action_type="client_create",
            target_entity="client",
            change_data={"name": "Rosa Diaz", "email": "rosa@example.com"},
        )
        by_employee = await submit_action(service_db, request, employee)
        by_admin = await submit_action(service_db, request, admin)

        assert by_employee.action.status == "pending"
        assert by_admin.action.status == "approved"
        assert by_admin.executed is True

        client_id = by_admin.action.execution_result["id"]
        created = await fetch(Client, client_id)
        assert created.name == "Rosa Diaz"
        assert created.join_date is not None

    async def test_fast_path_failure_stays_retryable(
        self, service_db, db_session, employee, entities, fetch,
    ):
        db_session.add(ApprovalConfig(action_type="lot_update", requires_approval=False))
        await db_session.commit()

        outcome = await submit_action(
            service_db,
            _request(
                action_type="lot_update",
                target_entity="lot",
                target_id="L1",
                change_data={"owner_id": "C404", "status": "Reserved"},
            ),
            employee,
        )

        action = outcome.action
        assert outcome.executed is False
        assert "execution failed" in outcome.message
        assert action.status == "approved"
        assert action.is_executed is False
        assert action.execution_attempts == 1
        assert "client C404 no longer exists" in action.execution_error
        assert action.related_lot_id == "L1"
        lot = await fetch(Lot, "L1")
        assert (lot.owner_id, lot.status) == ("C1", "Available")
