"""Initial schema: staff, entity stores, approval workflow, activity log.

Revision ID: 0001
Revises:
Create Date: 2026-10-18
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # ── Staff ────────────────────────────────────────────────
    op.create_table(
        "staff_users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("username", sa.String(100), nullable=False, unique=True),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255)),
        sa.Column("role", sa.Enum("ADMIN", "EMPLOYEE", name="staffrole")),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_staff_users_username", "staff_users", ["username"])

    # ── Entity stores ────────────────────────────────────────
    op.create_table(
        "clients",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50)),
        sa.Column("address", sa.Text()),
        sa.Column("emergency_contact", sa.String(255)),
        sa.Column("emergency_phone", sa.String(50)),
        sa.Column("notes", sa.Text()),
        sa.Column("status", sa.String(20), server_default="Active"),
        sa.Column("join_date", sa.Date()),
        *_timestamps(),
    )
    op.create_index("ix_clients_email", "clients", ["email"])

    op.create_table(
        "lots",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("lot_number", sa.String(50), nullable=False, unique=True),
        sa.Column("section", sa.String(100), nullable=False),
        sa.Column("lot_type", sa.String(20), server_default="Standard"),
        sa.Column("status", sa.String(20), server_default="Available"),
        sa.Column("price", sa.Float(), server_default="0"),
        sa.Column("dimensions", sa.String(100)),
        sa.Column("description", sa.Text()),
        sa.Column("owner_id", sa.String(36), sa.ForeignKey("clients.id")),
        sa.Column("occupant_name", sa.String(255)),
        sa.Column("date_occupied", sa.Date()),
        *_timestamps(),
    )
    op.create_index("ix_lots_status", "lots", ["status"])

    op.create_table(
        "payments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("client_id", sa.String(36), sa.ForeignKey("clients.id"), nullable=False),
        sa.Column("lot_id", sa.String(36), sa.ForeignKey("lots.id")),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("payment_type", sa.String(30), server_default="Installment"),
        sa.Column("status", sa.String(20), server_default="Pending"),
        sa.Column("method", sa.String(50)),
        sa.Column("reference", sa.String(100)),
        sa.Column("payment_date", sa.Date()),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
    )
    op.create_index("ix_payments_client_id", "payments", ["client_id"])
    op.create_index("ix_payments_status", "payments", ["status"])

    op.create_table(
        "burials",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("lot_id", sa.String(36), sa.ForeignKey("lots.id"), nullable=False),
        sa.Column("deceased_name", sa.String(255), nullable=False),
        sa.Column("age", sa.Integer()),
        sa.Column("burial_date", sa.Date(), nullable=False),
        sa.Column("burial_time", sa.String(10)),
        sa.Column("family_name", sa.String(255)),
        sa.Column("cause_of_death", sa.String(255)),
        sa.Column("funeral_home", sa.String(255)),
        sa.Column("attendees", sa.Integer(), server_default="0"),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
    )
    op.create_index("ix_burials_lot_id", "burials", ["lot_id"])

    op.create_table(
        "site_content",
        sa.Column("section", sa.String(50), primary_key=True),
        sa.Column("content", sa.JSON()),
        sa.Column("updated_by", sa.String(36)),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    # ── Approval workflow ────────────────────────────────────
    op.create_table(
        "approval_workflow_config",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("action_type", sa.String(50), nullable=False, unique=True),
        sa.Column("requires_approval", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("exempt_roles", sa.JSON()),
        sa.Column("expiration_days", sa.Integer()),
        sa.Column("description", sa.Text()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("updated_by", sa.String(36)),
        *_timestamps(),
    )

    op.create_table(
        "pending_actions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_entity", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(36)),
        sa.Column("change_data", sa.JSON(), nullable=False),
        sa.Column("previous_data", sa.JSON()),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("priority", sa.String(10), nullable=False, server_default="normal"),
        sa.Column("category", sa.String(100)),
        sa.Column("notes", sa.Text()),
        sa.Column("related_client_id", sa.String(36)),
        sa.Column("related_lot_id", sa.String(36)),
        sa.Column("related_payment_id", sa.String(36)),
        sa.Column("requested_by_id", sa.String(36), nullable=False),
        sa.Column("requested_by_username", sa.String(100), nullable=False),
        sa.Column("requested_by_name", sa.String(255)),
        sa.Column("reviewed_by_id", sa.String(36)),
        sa.Column("reviewed_by_username", sa.String(100)),
        sa.Column("reviewed_at", sa.DateTime()),
        sa.Column("admin_notes", sa.Text()),
        sa.Column("rejection_reason", sa.Text()),
        sa.Column("is_executed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("executed_at", sa.DateTime()),
        sa.Column("execution_result", sa.JSON()),
        sa.Column("execution_error", sa.Text()),
        sa.Column("execution_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("expires_at", sa.DateTime()),
        # is_executed is only ever set on approved rows
        sa.CheckConstraint(
            "is_executed = false OR status = 'approved'",
            name="ck_pending_actions_executed_only_if_approved",
        ),
    )
    op.create_index("ix_pending_actions_action_type", "pending_actions", ["action_type"])
    op.create_index("ix_pending_actions_created_at", "pending_actions", ["created_at"])
    op.create_index("ix_pending_actions_reviewed_at", "pending_actions", ["reviewed_at"])
    op.create_index("ix_pending_actions_related_client_id", "pending_actions", ["related_client_id"])
    op.create_index("ix_pending_actions_related_lot_id", "pending_actions", ["related_lot_id"])
    op.create_index(
        "ix_pending_actions_status_expires", "pending_actions", ["status", "expires_at"]
    )
    op.create_index(
        "ix_pending_actions_requester_created",
        "pending_actions",
        ["requested_by_id", "created_at"],
    )

    # ── Audit ────────────────────────────────────────────────
    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("user_name", sa.String(200), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(36)),
        sa.Column("entity_code", sa.String(100)),
        sa.Column("summary", sa.Text()),
        sa.Column("details", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_user_id", "activity_logs", ["user_id"])
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"])
    op.create_index("ix_activity_logs_entity_type", "activity_logs", ["entity_type"])
    op.create_index("ix_activity_logs_created_at", "activity_logs", ["created_at"])


def downgrade() -> None:
    op.drop_table("activity_logs")
    op.drop_table("pending_actions")
    op.drop_table("approval_workflow_config")
    op.drop_table("site_content")
    op.drop_table("burials")
    op.drop_table("payments")
    op.drop_table("lots")
    op.drop_table("clients")
    op.drop_table("staff_users")
    sa.Enum(name="staffrole").drop(op.get_bind(), checkfirst=True)
