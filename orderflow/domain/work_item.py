"""Order (work item) domain models and enums."""

import secrets
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, computed_field


def generate_id() -> str:
    """Generate a 24-character hex identifier."""
    return secrets.token_hex(12)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


class WorkItemStatus(StrEnum):
    """Order lifecycle status."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    COMPLETED = "completed"
    TIMED_OUT = "timeout"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {
        WorkItemStatus.ACCEPTED,
        WorkItemStatus.COMPLETED,
        WorkItemStatus.TIMED_OUT,
        WorkItemStatus.CANCELLED,
    }
)


class AssignmentState(StrEnum):
    """Response state of a single driver offer."""

    OFFERED = "offered"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    TIMED_OUT = "timed_out"


class ReassignmentReason(StrEnum):
    """Why an order moved to another driver."""

    TIMEOUT = "TIMEOUT"
    REJECTION = "REJECTION"


class Assignment(BaseModel):
    """One offer of an order to one driver."""

    id: str = Field(default_factory=generate_id, description="Unique assignment ID")
    candidate_id: str = Field(..., description="Driver the order was offered to")
    offered_at: datetime = Field(default_factory=utc_now, description="When the offer was made")
    response_state: AssignmentState = Field(default=AssignmentState.OFFERED, description="Offer outcome")
    responded_at: datetime | None = Field(default=None, description="When the offer was closed")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def response_latency_seconds(self) -> float | None:
        """Seconds between offer and response, None while the offer is open."""
        if self.responded_at is None:
            return None
        return (self.responded_at - self.offered_at).total_seconds()


class ReassignmentEvent(BaseModel):
    """Audit record of an order moving from one driver to the next."""

    id: str = Field(default_factory=generate_id, description="Unique reassignment event ID")
    previous_candidate_id: str = Field(..., description="Driver the order was taken from")
    new_candidate_id: str = Field(..., description="Driver the order was offered to next")
    reason: ReassignmentReason = Field(..., description="Why the order was reassigned")
    occurred_at: datetime = Field(default_factory=utc_now, description="When the reassignment happened")


class WorkItem(BaseModel):
    """Order snapshot as persisted by the store."""

    id: str = Field(default_factory=generate_id, description="Unique order ID")
    owner_id: str = Field(..., description="Customer who placed the order")
    payload: dict[str, Any] = Field(default_factory=dict, description="Order details (items, address, amount)")
    status: WorkItemStatus = Field(default=WorkItemStatus.PENDING, description="Current order status")
    current_candidate_id: str | None = Field(default=None, description="Driver holding the open offer")
    assignment_history: list[Assignment] = Field(default_factory=list, description="Every offer, in order")
    reassignment_log: list[ReassignmentEvent] = Field(default_factory=list, description="Every reassignment")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    timed_out_at: datetime | None = Field(default=None, description="When all drivers were exhausted")
    offer_timeout_seconds: float = Field(default=15.0, gt=0, description="Deadline per offer, fixed at creation")
    max_attempts: int = Field(default=5, ge=1, description="Maximum drivers tried, fixed at creation")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def reassignment_count(self) -> int:
        """Number of offers beyond the first."""
        return max(0, len(self.assignment_history) - 1)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def tried_candidate_ids(self) -> list[str]:
        return [assignment.candidate_id for assignment in self.assignment_history]

    @property
    def open_assignment(self) -> Assignment | None:
        """The single assignment still waiting for a response, if any."""
        return next(
            (a for a in self.assignment_history if a.response_state == AssignmentState.OFFERED),
            None,
        )

    def latest_assignment_for(self, candidate_id: str) -> Assignment | None:
        return next(
            (a for a in reversed(self.assignment_history) if a.candidate_id == candidate_id),
            None,
        )
