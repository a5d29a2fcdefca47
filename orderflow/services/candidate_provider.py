"""Driver discovery for reassignment."""

import logging
from collections.abc import Sequence
from typing import Protocol

from orderflow.core.config import settings


logger = logging.getLogger(__name__)


class CandidateProvider(Protocol):
    """Yields the next driver not yet tried for an order."""

    async def next_candidate(self, work_item_id: str, tried_candidate_ids: Sequence[str]) -> str | None:
        """Return the next untried driver ID, or None when none is available."""
        ...


class StaticPoolCandidateProvider:
    """Ordered driver pool minus the drivers already tried for the order."""

    def __init__(self, pool: Sequence[str] | None = None) -> None:
        self._pool = list(pool if pool is not None else settings.candidate_pool)

    async def next_candidate(self, work_item_id: str, tried_candidate_ids: Sequence[str]) -> str | None:
        tried = set(tried_candidate_ids)
        candidate = next((driver_id for driver_id in self._pool if driver_id not in tried), None)
        if candidate is None:
            logger.info("No untried drivers left for order %s (%d tried)", work_item_id, len(tried))
        return candidate
