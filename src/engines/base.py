"""
Engine Adapter Contract

One adapter per answer engine. Given a keyword and the brand it is tracked
for, an adapter answers one question: did the engine surface the brand?

Adapters:
- return an EngineResult or raise EngineAdapterError
- are called concurrently, and must not share mutable state between calls
- are bounded by the orchestrator's timeout, not their own
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional
from uuid import UUID

from src.database.repository import KeywordInfo


@dataclass(frozen=True)
class BrandContext:
    """What an engine's answer is checked against."""

    project_id: UUID
    domain: str
    brand_name: Optional[str] = None

    @property
    def needles(self) -> List[str]:
        """Lowercase strings whose mention counts as presence."""
        values = [self.brand_name, self.domain]
        return [v.strip().lower() for v in values if v and v.strip()]


@dataclass
class EngineResult:
    """
    An engine's answer, before the orchestrator stamps identity and time.

    position is set iff presence; citations_count is 0 when absent.
    """

    presence: bool
    position: Optional[int] = None
    answer_snippet: str = ""
    citations_count: int = 0
    observed_urls: List[str] = field(default_factory=list)


class EngineAdapter(ABC):
    """Base class for answer engine adapters."""

    @abstractmethod
    async def run(self, keyword: KeywordInfo, brand: BrandContext) -> EngineResult:
        """
        Ask the engine about a keyword.

        Raises:
            EngineAdapterError: The engine could not be queried
        """
