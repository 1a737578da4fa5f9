"""Aggregate model imports for Alembic auto-detection."""

# Staff / audit
from app.models.staff_user import StaffUser, StaffRole  # noqa: F401
from app.models.activity_log import ActivityLog  # noqa: F401

# Entities mutated by approved actions
from app.models.client import Client  # noqa: F401
from app.models.lot import Lot  # noqa: F401
from app.models.payment import Payment  # noqa: F401
from app.models.burial import Burial  # noqa: F401
from app.models.site_content import SiteContent  # noqa: F401

# Approval workflow
from app.models.approval_config import ApprovalConfig  # noqa: F401
from app.models.pending_action import PendingAction  # noqa: F401
