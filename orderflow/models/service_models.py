"""Pydantic models for service layer return types.

These models provide type safety at service boundaries, turning order
snapshots into the views handed to the HTTP layer and the notification path.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel

from orderflow.domain.work_item import ReassignmentEvent, WorkItem, WorkItemStatus


class WorkItemStatusView(BaseModel):
    """Order status with reassignment history."""

    order_id: str
    owner_id: str
    status: WorkItemStatus
    current_candidate_id: str | None
    reassignment_count: int
    reassignment_log: list[ReassignmentEvent]
    created_at: datetime
    updated_at: datetime
    timed_out_at: datetime | None
    offer_timeout_seconds: float
    payload: dict[str, Any]

    @classmethod
    def from_work_item(cls, item: WorkItem) -> "WorkItemStatusView":
        return cls(
            order_id=item.id,
            owner_id=item.owner_id,
            status=item.status,
            current_candidate_id=item.current_candidate_id,
            reassignment_count=item.reassignment_count,
            reassignment_log=list(item.reassignment_log),
            created_at=item.created_at,
            updated_at=item.updated_at,
            timed_out_at=item.timed_out_at,
            offer_timeout_seconds=item.offer_timeout_seconds,
            payload=dict(item.payload),
        )


class RenderedMessage(BaseModel):
    """Customer-facing text produced by the message service."""

    text: str
    used_fallback: bool = False
    error: str | None = None


class NotificationResult(BaseModel):
    """Result of a customer notification attempt."""

    order_id: str
    owner_id: str
    kind: str
    success: bool
    skipped: bool = False
    limited: bool = False
    message: str | None = None
    used_fallback: bool = False
    error: str | None = None
    sent_at: datetime | None = None
    response_time_ms: float | None = None


class ChatReply(BaseModel):
    """Reply to a customer chat query about an order."""

    success: bool
    order_id: str
    customer_id: str
    query_type: str | None = None
    response: str | None = None
    used_fallback: bool = False
    error: str | None = None
    timestamp: datetime | None = None
    response_time_ms: float | None = None
