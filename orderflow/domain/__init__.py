"""Domain models and DTOs."""

from orderflow.domain.create_models import ChatQueryCreate, OfferCreate, OfferResponseCreate, WorkItemCreate
from orderflow.domain.events import AcceptedEvent, AssignmentEventListener, ExhaustedEvent, ReassignedEvent
from orderflow.domain.work_item import (
    Assignment,
    AssignmentState,
    ReassignmentEvent,
    ReassignmentReason,
    WorkItem,
    WorkItemStatus,
)


__all__ = [
    "AcceptedEvent",
    "Assignment",
    "AssignmentEventListener",
    "AssignmentState",
    "ChatQueryCreate",
    "ExhaustedEvent",
    "OfferCreate",
    "OfferResponseCreate",
    "ReassignedEvent",
    "ReassignmentEvent",
    "ReassignmentReason",
    "WorkItem",
    "WorkItemCreate",
    "WorkItemStatus",
]
