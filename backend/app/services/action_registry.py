"""Action schema registry.

One `ActionSpec` per action type: which entity it targets, whether it
creates or updates, which payload model validates its change_data, and
whether it needs approval when no runtime policy overrides it.

    spec = get_action_spec("payment_update")
    clean = validate_change_data("payment_update", {"status": "Completed"}, "P1")
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from app.middleware.exceptions import ValidationError
from app.schemas.action_payloads import (
    CONTENT_SECTION_PAYLOADS,
    BurialCreateData,
    BurialUpdateData,
    ClientCreateData,
    ClientUpdateData,
    LotCreateData,
    LotUpdateData,
    PaymentUpdateData,
)


class ActionType(str, enum.Enum):
    CLIENT_CREATE = "client_create"
    CLIENT_UPDATE = "client_update"
    LOT_CREATE = "lot_create"
    LOT_UPDATE = "lot_update"
    PAYMENT_UPDATE = "payment_update"
    BURIAL_CREATE = "burial_create"
    BURIAL_UPDATE = "burial_update"
    CONTENT_UPDATE = "content_update"


class TargetEntity(str, enum.Enum):
    CLIENT = "client"
    LOT = "lot"
    PAYMENT = "payment"
    BURIAL = "burial"
    WEBSITE = "website"


@dataclass(frozen=True)
class ActionSpec:
    action_type: ActionType
    target_entity: TargetEntity
    is_create: bool
    payload: type[BaseModel] | None = None
    # Keyed by target_id; used instead of `payload` when set
    section_payloads: dict[str, type[BaseModel]] = field(default_factory=dict)
    requires_approval_default: bool = True
    description: str = ""

    def payload_for(self, target_id: str | None) -> type[BaseModel]:
        if self.section_payloads:
            model = self.section_payloads.get(target_id or "")
            if model is None:
                raise ValidationError(
                    f"Unknown {self.target_entity.value} section: {target_id}",
                    errors=[{
                        "field": "target_id",
                        "message": "must be one of: " + ", ".join(sorted(self.section_payloads)),
                    }],
                )
            return model
        return self.payload

    def parse(self, change_data: dict, target_id: str | None) -> BaseModel:
        """Rebuild the typed payload from stored change_data."""
        return self.payload_for(target_id).model_validate(change_data)


ACTION_REGISTRY: dict[ActionType, ActionSpec] = {
    spec.action_type: spec
    for spec in (
        ActionSpec(
            ActionType.CLIENT_CREATE, TargetEntity.CLIENT, True, ClientCreateData,
            description="Register a new client account",
        ),
        ActionSpec(
            ActionType.CLIENT_UPDATE, TargetEntity.CLIENT, False, ClientUpdateData,
            description="Edit client contact details or status",
        ),
        ActionSpec(
            ActionType.LOT_CREATE, TargetEntity.LOT, True, LotCreateData,
            description="Add a new lot to a section",
        ),
        ActionSpec(
            ActionType.LOT_UPDATE, TargetEntity.LOT, False, LotUpdateData,
            description="Change lot pricing, status or ownership",
        ),
        ActionSpec(
            ActionType.PAYMENT_UPDATE, TargetEntity.PAYMENT, False, PaymentUpdateData,
            description="Change payment status or amount",
        ),
        ActionSpec(
            ActionType.BURIAL_CREATE, TargetEntity.BURIAL, True, BurialCreateData,
            description="Record a burial and mark its lot occupied",
        ),
        ActionSpec(
            ActionType.BURIAL_UPDATE, TargetEntity.BURIAL, False, BurialUpdateData,
            description="Correct a burial record",
        ),
        ActionSpec(
            ActionType.CONTENT_UPDATE, TargetEntity.WEBSITE, False,
            section_payloads=dict(CONTENT_SECTION_PAYLOADS),
            description="Publish public website content changes",
        ),
    )
}


def get_action_spec(action_type: str) -> ActionSpec:
    try:
        return ACTION_REGISTRY[ActionType(action_type)]
    except ValueError:
        raise ValidationError(
            f"Unknown action type: {action_type}",
            errors=[{
                "field": "action_type",
                "message": "must be one of: " + ", ".join(t.value for t in ActionType),
            }],
        )


def _format_errors(exc: PydanticValidationError) -> list[dict]:
    errors = []
    for error in exc.errors():
        loc = ".".join(str(part) for part in error["loc"])
        errors.append({
            "field": f"change_data.{loc}" if loc else "change_data",
            "message": error["msg"],
        })
    return errors


def validate_change_data(
    action_type: str,
    change_data: dict,
    target_id: str | None,
    target_entity: str | None = None,
) -> dict:
    """Validate a submission's shape and return normalized change_data.

    Normalized means JSON-safe (dates as ISO strings) and, for updates,
    only the fields the submitter actually set.

    Raises:
        ValidationError listing every missing/invalid field.
    """
    spec = get_action_spec(action_type)
    errors: list[dict] = []

    if target_entity is not None and target_entity != spec.target_entity.value:
        errors.append({
            "field": "target_entity",
            "message": f"{spec.action_type.value} targets '{spec.target_entity.value}'",
        })
    if spec.is_create and target_id:
        errors.append({"field": "target_id", "message": "must be omitted for create actions"})
    if not spec.is_create and not target_id:
        errors.append({"field": "target_id", "message": "required for update actions"})
    if not isinstance(change_data, dict):
        errors.append({"field": "change_data", "message": "must be an object"})
    if errors:
        raise ValidationError("Invalid pending action request", errors=errors)

    model = spec.payload_for(target_id)
    try:
        payload = model.model_validate(change_data)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"Invalid change_data for {spec.action_type.value}",
            errors=_format_errors(exc),
        )

    return payload.model_dump(mode="json", exclude_unset=not spec.is_create)
