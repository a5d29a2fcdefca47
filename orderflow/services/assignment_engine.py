"""Assignment engine: offers orders to drivers and reassigns them on timeout or rejection.

Every read-mutate-write cycle on an order runs under that order's lock, and
deadline timers are armed or disarmed inside the same critical section after
the snapshot is persisted. A timer that fires while a response holds the lock
therefore observes the response's result and does nothing. Exactly one of
accept, reject or timeout wins per offer.

Events for the notification dispatcher are collected during a transition and
published after the lock is released; the listener only schedules work and
never blocks the engine.
"""

import logging
from typing import Any

from orderflow.core.config import constants, settings
from orderflow.core.errors import ResponseOutcome, StoreUnavailableError, WorkItemNotFoundError
from orderflow.core.keyed_lock import KeyedLock
from orderflow.core.logging import span
from orderflow.core.store import WorkItemStore
from orderflow.core.timers import DeadlineTimers
from orderflow.domain.events import (
    AcceptedEvent,
    AssignmentEvent,
    AssignmentEventListener,
    ExhaustedEvent,
    ReassignedEvent,
)
from orderflow.domain.work_item import ReassignmentReason, WorkItem, utc_now
from orderflow.models.service_models import WorkItemStatusView
from orderflow.services import work_item_state_machine as state_machine
from orderflow.services.candidate_provider import CandidateProvider


logger = logging.getLogger(__name__)


class AssignmentEngine:
    """Owns the PENDING -> {ACCEPTED, TIMED_OUT} state machine for every order."""

    def __init__(
        self,
        *,
        store: WorkItemStore,
        candidate_provider: CandidateProvider,
        timers: DeadlineTimers | None = None,
        listener: AssignmentEventListener | None = None,
        offer_timeout_seconds: float | None = None,
        max_attempts: int | None = None,
    ) -> None:
        self._store = store
        self._candidate_provider = candidate_provider
        self._timers = timers or DeadlineTimers()
        self._listener = listener
        self._locks = KeyedLock()
        self._deadline_retries: dict[str, int] = {}
        self.offer_timeout_seconds = offer_timeout_seconds or settings.offer_timeout_seconds
        self.max_attempts = max_attempts or settings.max_assignment_attempts

        logger.info(
            "AssignmentEngine initialized with timeout: %ss, max attempts: %d",
            self.offer_timeout_seconds,
            self.max_attempts,
        )

    @property
    def store(self) -> WorkItemStore:
        return self._store

    @property
    def timers(self) -> DeadlineTimers:
        return self._timers

    def start(self) -> None:
        self._timers.start()

    def shutdown(self) -> None:
        """Disarm every outstanding deadline timer."""
        self._timers.shutdown()
        self._deadline_retries.clear()

    async def create_work_item(self, *, owner_id: str, payload: dict[str, Any] | None = None) -> WorkItem:
        """Create a PENDING order with an empty assignment history."""
        with span("assignment_engine.create_work_item", owner_id=owner_id):
            item = WorkItem(
                owner_id=owner_id,
                payload=payload or {},
                offer_timeout_seconds=self.offer_timeout_seconds,
                max_attempts=self.max_attempts,
            )
            await self._store.put(item)
            logger.info("New order created: %s", item.id, extra={"owner_id": owner_id})
            return item

    async def get_work_item(self, work_item_id: str) -> WorkItem:
        return await self._store.get(work_item_id)

    async def get_status(self, work_item_id: str) -> WorkItemStatusView:
        """Order status including the reassignment history."""
        item = await self._store.get(work_item_id)
        return WorkItemStatusView.from_work_item(item)

    async def offer(self, work_item_id: str, candidate_id: str) -> WorkItem:
        """Offer a PENDING order to a driver and arm the response deadline.

        Raises:
            WorkItemNotFoundError: If the order does not exist
            InvalidStateError: If the order is not PENDING, already has an open offer,
                or reached its attempt limit
        """
        with span("assignment_engine.offer", work_item_id=work_item_id, candidate_id=candidate_id):
            async with self._locks.hold(work_item_id):
                item = await self._store.get(work_item_id)
                state_machine.open_offer(item, candidate_id=candidate_id, now=utc_now())
                await self._store.put(item)
                self._arm(item, candidate_id)

            logger.info("Order %s assigned to driver %s", work_item_id, candidate_id)
            return item

    async def respond_to_offer(self, work_item_id: str, candidate_id: str, *, accepted: bool) -> WorkItem:
        """Apply a driver's accept/reject to the open offer.

        Responses from a driver that does not hold the offer, or duplicate and
        late responses, leave the order untouched and return its snapshot.

        Raises:
            WorkItemNotFoundError: If the order does not exist
            InvalidStateError: If the order already timed out, completed or was cancelled
        """
        with span("assignment_engine.respond_to_offer", work_item_id=work_item_id, candidate_id=candidate_id):
            events: list[AssignmentEvent] = []
            async with self._locks.hold(work_item_id):
                item = await self._store.get(work_item_id)
                outcome = state_machine.check_response(item, candidate_id=candidate_id)
                if outcome != ResponseOutcome.APPLIED:
                    logger.info(
                        "Ignoring stale response from driver %s for order %s",
                        candidate_id,
                        work_item_id,
                        extra={"outcome": outcome.value, "current_candidate_id": item.current_candidate_id},
                    )
                    return item

                state_machine.record_response(item, candidate_id=candidate_id, accepted=accepted, now=utc_now())
                if accepted:
                    events.append(AcceptedEvent(work_item_id=item.id, owner_id=item.owner_id))
                else:
                    await self._reassign(item, candidate_id, ReassignmentReason.REJECTION, events)
                await self._store.put(item)
                self._sync_timer(item)
                self._deadline_retries.pop(work_item_id, None)

            logger.info("Driver %s %s order %s", candidate_id, "accepted" if accepted else "rejected", work_item_id)
            self._publish(events)
            return item

    async def on_offer_deadline_elapsed(self, work_item_id: str, candidate_id: str) -> None:
        """Timer callback: expire the offer if it is still open, then reassign."""
        with span("assignment_engine.on_offer_deadline_elapsed", work_item_id=work_item_id, candidate_id=candidate_id):
            events: list[AssignmentEvent] = []
            try:
                async with self._locks.hold(work_item_id):
                    item = await self._store.get(work_item_id)
                    expired = state_machine.expire_offer(item, candidate_id=candidate_id, now=utc_now())
                    if expired is None:
                        logger.debug(
                            "No reassignment needed for order %s: driver %s already responded",
                            work_item_id,
                            candidate_id,
                        )
                        return

                    await self._reassign(item, candidate_id, ReassignmentReason.TIMEOUT, events)
                    await self._store.put(item)
                    self._sync_timer(item)
                    self._deadline_retries.pop(work_item_id, None)
            except WorkItemNotFoundError:
                logger.warning("Deadline fired for unknown order %s", work_item_id)
                return
            except StoreUnavailableError:
                self._retry_deadline(work_item_id, candidate_id)
                return
            except Exception:
                # Nothing was persisted; the offer is still open and needs a live deadline
                logger.exception("Auto-reassignment error for order %s", work_item_id)
                self._retry_deadline(work_item_id, candidate_id)
                return

            self._publish(events)

    async def _reassign(
        self,
        item: WorkItem,
        previous_candidate_id: str,
        reason: ReassignmentReason,
        events: list[AssignmentEvent],
    ) -> None:
        """Offer the order to the next untried driver, or time it out when none is left."""
        now = utc_now()
        next_candidate = None
        if not state_machine.attempts_exhausted(item):
            next_candidate = await self._candidate_provider.next_candidate(item.id, item.tried_candidate_ids)

        if next_candidate is None:
            logger.warning(
                "No more drivers available for order %s after %d reassignments",
                item.id,
                item.reassignment_count,
            )
            state_machine.mark_timed_out(item, now=now)
            events.append(
                ExhaustedEvent(
                    work_item_id=item.id,
                    owner_id=item.owner_id,
                    view=WorkItemStatusView.from_work_item(item),
                )
            )
            return

        state_machine.record_reassignment(
            item,
            previous_candidate_id=previous_candidate_id,
            new_candidate_id=next_candidate,
            reason=reason,
            now=now,
        )
        logger.info(
            "Order %s reassigned from driver %s to %s",
            item.id,
            previous_candidate_id,
            next_candidate,
            extra={"reason": reason.value, "reassignment_count": item.reassignment_count},
        )
        events.append(
            ReassignedEvent(
                work_item_id=item.id,
                owner_id=item.owner_id,
                reassignment_count=item.reassignment_count,
                view=WorkItemStatusView.from_work_item(item),
            )
        )

    def _arm(self, item: WorkItem, candidate_id: str) -> None:
        self._timers.arm(item.id, candidate_id, item.offer_timeout_seconds, self.on_offer_deadline_elapsed)

    def _sync_timer(self, item: WorkItem) -> None:
        """Make the armed timer match the persisted snapshot."""
        open_assignment = item.open_assignment
        if not item.is_terminal and open_assignment is not None:
            self._arm(item, open_assignment.candidate_id)
        else:
            self._timers.disarm(item.id)

    def _retry_deadline(self, work_item_id: str, candidate_id: str) -> None:
        attempts = self._deadline_retries.get(work_item_id, 0) + 1
        if attempts > constants.DEADLINE_MAX_RETRIES:
            self._deadline_retries.pop(work_item_id, None)
            logger.critical(
                "Giving up on deadline for order %s",
                work_item_id,
                extra={"candidate_id": candidate_id, "attempts": attempts - 1},
            )
            return

        self._deadline_retries[work_item_id] = attempts
        logger.error(
            "Could not expire offer for order %s; retrying deadline",
            work_item_id,
            extra={"candidate_id": candidate_id, "attempt": attempts},
        )
        self._timers.arm(
            work_item_id,
            candidate_id,
            constants.DEADLINE_RETRY_DELAY_SECONDS,
            self.on_offer_deadline_elapsed,
        )

    def _publish(self, events: list[AssignmentEvent]) -> None:
        if self._listener is None:
            return
        for event in events:
            try:
                if isinstance(event, ReassignedEvent):
                    self._listener.on_reassigned(
                        work_item_id=event.work_item_id,
                        owner_id=event.owner_id,
                        reassignment_count=event.reassignment_count,
                        view=event.view,
                    )
                elif isinstance(event, AcceptedEvent):
                    self._listener.on_accepted(work_item_id=event.work_item_id, owner_id=event.owner_id)
                else:
                    self._listener.on_exhausted(
                        work_item_id=event.work_item_id,
                        owner_id=event.owner_id,
                        view=event.view,
                    )
            except Exception:
                logger.exception("Failed to hand off %s for order %s", type(event).__name__, event.work_item_id)
