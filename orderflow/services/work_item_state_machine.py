"""Pure state transition functions for the order assignment lifecycle.

Every function mutates an in-memory WorkItem snapshot and raises
InvalidStateError when its guard fails. Locking, persistence and timers are
the assignment engine's concern.
"""

import logging
from datetime import datetime

from orderflow.core.errors import InvalidStateError, ResponseOutcome
from orderflow.domain.work_item import (
    Assignment,
    AssignmentState,
    ReassignmentEvent,
    ReassignmentReason,
    WorkItem,
    WorkItemStatus,
)


logger = logging.getLogger(__name__)


def open_offer(item: WorkItem, *, candidate_id: str, now: datetime) -> Assignment:
    """Append an open offer for candidate_id and make it the current candidate."""
    if item.status != WorkItemStatus.PENDING:
        msg = f"Cannot assign: order {item.id} has status {item.status}"
        raise InvalidStateError(item.id, msg)

    open_assignment = item.open_assignment
    if open_assignment is not None:
        msg = f"Cannot assign: order {item.id} already has an open offer to {open_assignment.candidate_id}"
        raise InvalidStateError(item.id, msg)

    if len(item.assignment_history) >= item.max_attempts:
        msg = f"Cannot assign: order {item.id} reached the limit of {item.max_attempts} attempts"
        raise InvalidStateError(item.id, msg)

    assignment = Assignment(candidate_id=candidate_id, offered_at=now)
    item.assignment_history.append(assignment)
    item.current_candidate_id = candidate_id
    item.updated_at = now
    return assignment


def check_response(item: WorkItem, *, candidate_id: str) -> ResponseOutcome:
    """Decide whether a driver response can be applied to the order.

    Stale responses (wrong driver, or an offer that is already closed) are
    reported as benign outcomes rather than errors.
    """
    if item.status in {WorkItemStatus.TIMED_OUT, WorkItemStatus.COMPLETED, WorkItemStatus.CANCELLED}:
        msg = f"Cannot respond: order {item.id} has status {item.status}"
        raise InvalidStateError(item.id, msg)

    if item.current_candidate_id != candidate_id:
        return ResponseOutcome.NOT_CURRENT_CANDIDATE

    assignment = item.latest_assignment_for(candidate_id)
    if assignment is None or assignment.response_state != AssignmentState.OFFERED:
        return ResponseOutcome.ALREADY_RESPONDED

    return ResponseOutcome.APPLIED


def record_response(item: WorkItem, *, candidate_id: str, accepted: bool, now: datetime) -> Assignment:
    """Close the candidate's open offer as accepted or rejected."""
    assignment = item.latest_assignment_for(candidate_id)
    if assignment is None or assignment.response_state != AssignmentState.OFFERED:
        msg = f"No open offer for driver {candidate_id} on order {item.id}"
        raise InvalidStateError(item.id, msg)

    assignment.response_state = AssignmentState.ACCEPTED if accepted else AssignmentState.REJECTED
    assignment.responded_at = now
    if accepted:
        item.status = WorkItemStatus.ACCEPTED
    item.updated_at = now
    return assignment


def expire_offer(item: WorkItem, *, candidate_id: str, now: datetime) -> Assignment | None:
    """Mark the candidate's offer as timed out.

    Returns None when there is nothing to expire: the order left PENDING, or a
    response already closed the offer. That makes a late timer a no-op.
    """
    if item.status != WorkItemStatus.PENDING or item.current_candidate_id != candidate_id:
        return None

    assignment = item.latest_assignment_for(candidate_id)
    if assignment is None or assignment.response_state != AssignmentState.OFFERED:
        return None

    assignment.response_state = AssignmentState.TIMED_OUT
    assignment.responded_at = now
    item.updated_at = now
    return assignment


def attempts_exhausted(item: WorkItem) -> bool:
    """True when no further driver may be tried for this order."""
    return len(item.assignment_history) >= item.max_attempts


def record_reassignment(
    item: WorkItem,
    *,
    previous_candidate_id: str,
    new_candidate_id: str,
    reason: ReassignmentReason,
    now: datetime,
) -> ReassignmentEvent:
    """Log the reassignment and open an offer for the next driver."""
    event = ReassignmentEvent(
        previous_candidate_id=previous_candidate_id,
        new_candidate_id=new_candidate_id,
        reason=reason,
        occurred_at=now,
    )
    open_offer(item, candidate_id=new_candidate_id, now=now)
    item.reassignment_log.append(event)
    return event


def mark_timed_out(item: WorkItem, *, now: datetime) -> None:
    """Transition a pending order to TIMED_OUT after all drivers were tried."""
    if item.status != WorkItemStatus.PENDING:
        msg = f"Cannot time out: order {item.id} has status {item.status}"
        raise InvalidStateError(item.id, msg)

    item.status = WorkItemStatus.TIMED_OUT
    item.timed_out_at = now
    item.current_candidate_id = None
    item.updated_at = now
    logger.warning("Order %s timed out after %d attempts", item.id, len(item.assignment_history))
