"""
Abstract base classes for work-unit sources and batch extractors
"""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional, Union

from schemas.run import ExtractionResult, UnitResult
from schemas.work_unit import WorkUnit
import logging

logger = logging.getLogger(__name__)


# Per-unit callback handed to the coordinator; sync or async
ProcessUnit = Callable[[WorkUnit], Union[UnitResult, Awaitable[UnitResult]]]


class WorkUnitSource(ABC):
    """
    Abstract base class for everything that feeds work units to a run.

    Responsibilities:
    - Produce every unit of one owner's run
    - Keep the order deterministic across invocations, so a resumed run
      walks the same sequence as the interrupted one
    """

    # Recorded in the checkpoint so a resume can rebuild the same source
    kind: str = "custom"

    def __init__(self, owner_id: str):
        self.owner_id = owner_id

    @property
    def location(self) -> Optional[str]:
        """Where the units come from (file path, ...); None for the database"""
        return None

    @abstractmethod
    async def list_units(self) -> List[WorkUnit]:
        """
        Return all work units of the run, in processing order.

        Returns:
            List of WorkUnit, unique by unit_id
        """
        pass

    async def get_unit(self, unit_id: str) -> WorkUnit:
        """Look up a single unit (used by reconciliation)"""
        for unit in await self.list_units():
            if unit.unit_id == unit_id:
                return unit
        raise KeyError(unit_id)


class BatchExtractor(ABC):
    """
    Contract for the domain adapter.

    extract() must be a pure function of the unit: no state shared across
    units and no I/O, so extracting the same unit twice after a crash yields
    the same records and the dedup layer can absorb the repeat.
    """

    name: str = "extractor"

    @abstractmethod
    def extract(self, unit: WorkUnit) -> ExtractionResult:
        """
        Transform one work unit into zero or more derived records.

        Returns:
            ExtractionResult with records, status (success, partial or
            failed) and diagnostic detail
        """
        pass
