"""In-memory editing session for one student's fee plan.

A session walks CLOSED -> LOADING -> EDITING -> SAVING -> CLOSED; a failed save drops
back to EDITING with the rows untouched. Nothing here touches the database: the service
loads the stored rows, replays the submitted ones with replace_items() and persists
whatever begin_save() hands back.
"""

from enum import Enum
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from fastapi import status
from pydantic import BaseModel

from fee_ledger.core.exceptions import ServiceError, ValidationError
from fee_ledger.core.money import MAX_MINOR_UNITS

DUPLICATE_COMPONENT_MESSAGE = "This component is already added."
MISSING_COMPONENT_MESSAGE = "Please select a component for all items"


class PlanEditorState(str, Enum):
    CLOSED = "closed"
    LOADING = "loading"
    EDITING = "editing"
    SAVING = "saving"


class DuplicateComponentError(ValidationError):
    def __init__(self) -> None:
        super().__init__(DUPLICATE_COMPONENT_MESSAGE)


class EditorStateError(ServiceError):
    def __init__(self, action: str, state: PlanEditorState) -> None:
        super().__init__(
            f"Cannot {action} while the plan editor is {state.value}",
            status.HTTP_409_CONFLICT,
        )


class EditorItem(BaseModel):
    component_type_id: Optional[UUID] = None
    amount_minor_units: int = 0


class PlanDiff(BaseModel):
    """Writes needed to turn the stored item set into the edited one."""

    to_delete: List[UUID]
    to_upsert: List[EditorItem]


def diff_plan_items(existing_ids: Iterable[UUID], new_items: Iterable[EditorItem]) -> PlanDiff:
    new_items = list(new_items)
    keep = {i.component_type_id for i in new_items}
    to_delete = [cid for cid in dict.fromkeys(existing_ids) if cid not in keep]
    return PlanDiff(to_delete=to_delete, to_upsert=new_items)


def find_duplicate_component(items: Iterable[EditorItem]) -> Optional[UUID]:
    seen = set()
    for item in items:
        if item.component_type_id is None:
            continue
        if item.component_type_id in seen:
            return item.component_type_id
        seen.add(item.component_type_id)
    return None


def validate_items(items: Iterable[EditorItem]) -> None:
    """Every row names a component and no component appears twice."""
    items = list(items)
    if any(i.component_type_id is None for i in items):
        raise ValidationError(MISSING_COMPONENT_MESSAGE)
    if find_duplicate_component(items) is not None:
        raise DuplicateComponentError()


class PlanEditor:
    def __init__(self, default_amounts: Optional[Dict[UUID, Optional[int]]] = None) -> None:
        # component_type_id -> catalog default, used to pre-fill a row's amount
        self.default_amounts = default_amounts or {}
        self.state = PlanEditorState.CLOSED
        self.items: List[EditorItem] = []

    def _require(self, action: str, *states: PlanEditorState) -> None:
        if self.state not in states:
            raise EditorStateError(action, self.state)

    def _check_index(self, index: int) -> None:
        if index < 0 or index >= len(self.items):
            raise ValidationError("Item not found")

    def open(self) -> None:
        self._require("open", PlanEditorState.CLOSED)
        self.state = PlanEditorState.LOADING
        self.items = []

    def load(self, items: Iterable[EditorItem]) -> List[EditorItem]:
        self._require("load items", PlanEditorState.LOADING)
        self.items = [EditorItem(**i.model_dump()) for i in items]
        if not self.items:
            self.items.append(EditorItem())
        self.state = PlanEditorState.EDITING
        return self.items

    def add_item(self, component_type_id: Optional[UUID] = None) -> EditorItem:
        self._require("add an item", PlanEditorState.EDITING)
        self.items.append(EditorItem())
        if component_type_id is not None:
            try:
                self.set_component(len(self.items) - 1, component_type_id)
            except DuplicateComponentError:
                self.items.pop()
                raise
        return self.items[-1]

    def set_component(self, index: int, component_type_id: UUID) -> EditorItem:
        self._require("change a component", PlanEditorState.EDITING)
        self._check_index(index)
        for i, item in enumerate(self.items):
            if i != index and item.component_type_id == component_type_id:
                raise DuplicateComponentError()
        item = self.items[index]
        item.component_type_id = component_type_id
        default = self.default_amounts.get(component_type_id)
        if default is not None:
            item.amount_minor_units = default
        return item

    def set_amount(self, index: int, amount_minor_units: int) -> EditorItem:
        self._require("change an amount", PlanEditorState.EDITING)
        self._check_index(index)
        if amount_minor_units < 0:
            raise ValidationError("Amount cannot be negative")
        if amount_minor_units > MAX_MINOR_UNITS:
            raise ValidationError("Amount is too large")
        self.items[index].amount_minor_units = amount_minor_units
        return self.items[index]

    def remove_item(self, index: int) -> None:
        # Removing the last row is allowed and leaves an empty plan.
        self._require("remove an item", PlanEditorState.EDITING)
        self._check_index(index)
        del self.items[index]

    def replace_items(self, items: Iterable[EditorItem]) -> List[EditorItem]:
        """Swap every row for the given ones, row by row, with the same checks as manual edits."""
        self._require("edit items", PlanEditorState.EDITING)
        while self.items:
            self.remove_item(len(self.items) - 1)
        for item in items:
            self.add_item(item.component_type_id)
            self.set_amount(len(self.items) - 1, item.amount_minor_units)
        return self.items

    def begin_save(self) -> List[EditorItem]:
        self._require("save", PlanEditorState.EDITING)
        validate_items(self.items)
        self.state = PlanEditorState.SAVING
        return [EditorItem(**i.model_dump()) for i in self.items]

    def finish_save(self) -> None:
        self._require("finish saving", PlanEditorState.SAVING)
        self.state = PlanEditorState.CLOSED
        self.items = []

    def fail_save(self) -> None:
        self._require("abandon a save", PlanEditorState.SAVING)
        self.state = PlanEditorState.EDITING