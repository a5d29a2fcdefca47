"""Assignment engine events consumed by the notification dispatcher."""

from typing import Protocol

from pydantic import BaseModel

from orderflow.models.service_models import WorkItemStatusView


class ReassignedEvent(BaseModel):
    """An order moved to the next driver."""

    work_item_id: str
    owner_id: str
    reassignment_count: int
    view: WorkItemStatusView


class ExhaustedEvent(BaseModel):
    """An order ran out of drivers and timed out."""

    work_item_id: str
    owner_id: str
    view: WorkItemStatusView


class AcceptedEvent(BaseModel):
    """A driver accepted the order; no further events follow for it."""

    work_item_id: str
    owner_id: str


AssignmentEvent = ReassignedEvent | ExhaustedEvent | AcceptedEvent


class AssignmentEventListener(Protocol):
    """Receives engine events; implementations must return without awaiting delivery."""

    def on_reassigned(
        self, *, work_item_id: str, owner_id: str, reassignment_count: int, view: WorkItemStatusView
    ) -> None: ...

    def on_exhausted(self, *, work_item_id: str, owner_id: str, view: WorkItemStatusView) -> None: ...

    def on_accepted(self, *, work_item_id: str, owner_id: str) -> None: ...
