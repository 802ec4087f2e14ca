"""
In-process single-flight guard: one active run per owner
"""

from contextlib import asynccontextmanager
from typing import List, Set

from core.exceptions import RunInProgressError
import logging

logger = logging.getLogger(__name__)


class SingleFlightGuard:
    """
    Refuse a second concurrent run for the same owner.

    Check-and-claim happens without an await in between, so it is atomic on
    the event loop. Independent owners never block each other.
    """

    def __init__(self):
        self._active: Set[str] = set()

    @asynccontextmanager
    async def hold(self, owner_id: str):
        if owner_id in self._active:
            raise RunInProgressError(
                "A run is already in progress for this owner",
                context={"owner_id": owner_id}
            )
        self._active.add(owner_id)
        logger.debug(f"Run guard acquired for {owner_id}")
        try:
            yield
        finally:
            self._active.discard(owner_id)
            logger.debug(f"Run guard released for {owner_id}")

    def is_running(self, owner_id: str) -> bool:
        return owner_id in self._active

    @property
    def active(self) -> List[str]:
        return sorted(self._active)


# Shared by the API and the scheduler
run_guard = SingleFlightGuard()
