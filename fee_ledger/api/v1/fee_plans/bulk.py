"""Bulk class plan command: replace every roster student's plan items with one template."""

from enum import Enum
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from fastapi import status

from fee_ledger.core.exceptions import ServiceError, ValidationError

from .editor import EditorItem, validate_items

EMPTY_TEMPLATE_MESSAGE = "Add at least one component to apply."
EMPTY_ROSTER_MESSAGE = "No students in this class. Nothing to apply."


class BulkCommandState(str, Enum):
    PROPOSED = "proposed"
    CONFIRMED = "confirmed"
    APPLIED = "applied"
    REVERTED = "reverted"


_TRANSITIONS = {
    (BulkCommandState.PROPOSED, "confirm"): BulkCommandState.CONFIRMED,
    (BulkCommandState.PROPOSED, "revert"): BulkCommandState.REVERTED,
    (BulkCommandState.CONFIRMED, "apply"): BulkCommandState.APPLIED,
    (BulkCommandState.CONFIRMED, "revert"): BulkCommandState.REVERTED,
}


def next_state(state: BulkCommandState, event: str) -> BulkCommandState:
    try:
        return _TRANSITIONS[(state, event)]
    except KeyError:
        raise ServiceError(
            f"Cannot {event} a {state.value} class plan",
            status.HTTP_409_CONFLICT,
        )


def validate_template(items: Sequence[EditorItem]) -> None:
    if not items:
        raise ValidationError(EMPTY_TEMPLATE_MESSAGE)
    validate_items(items)
    if any(i.amount_minor_units < 0 for i in items):
        raise ValidationError("Amount cannot be negative")


def confirmation_message(student_count: int, class_name: str) -> str:
    return (
        f"This will replace existing fee plans for all {student_count} students "
        f"in {class_name}. Continue?"
    )


class BulkPlanCommand:
    """
    PROPOSED -> CONFIRMED -> APPLIED, or REVERTED from either of the first two.
    The command holds no database state; reverting only moves the state, the caller's
    transaction rollback undoes any writes.
    """

    def __init__(
        self,
        class_instance_id: UUID,
        class_name: str,
        student_ids: Sequence[UUID],
        template: Sequence[EditorItem],
    ) -> None:
        validate_template(template)
        self.class_instance_id = class_instance_id
        self.class_name = class_name
        self.student_ids = list(dict.fromkeys(student_ids))
        self.template = [EditorItem(**i.model_dump()) for i in template]
        self.state = BulkCommandState.PROPOSED
        self.plan_ids: List[UUID] = []

    @property
    def student_count(self) -> int:
        return len(self.student_ids)

    @property
    def confirmation_message(self) -> str:
        return confirmation_message(self.student_count, self.class_name)

    def confirm(self, confirm_student_count: Optional[int]) -> None:
        if confirm_student_count != self.student_count:
            raise ServiceError(self.confirmation_message, status.HTTP_409_CONFLICT)
        self.state = next_state(self.state, "confirm")

    def item_rows(self, plan_ids: Sequence[UUID]) -> List[Dict]:
        """Cross product of plan ids and template items, ready for a batched insert."""
        return [
            {
                "plan_id": plan_id,
                "component_type_id": item.component_type_id,
                "amount_minor_units": item.amount_minor_units,
            }
            for plan_id in plan_ids
            for item in self.template
        ]

    def mark_applied(self, plan_ids: Sequence[UUID]) -> None:
        self.state = next_state(self.state, "apply")
        self.plan_ids = list(plan_ids)

    def revert(self) -> None:
        self.state = next_state(self.state, "revert")
        self.plan_ids = []
