"""
Simulation Adapter

Offline stand-in for a real answer engine. Draws presence from a fixed
probability and, when present, a position in [1, 3], 1-5 citations and a
short list of observed URLs that may or may not include the tracked domain.
"""

import asyncio
import logging
import random
from typing import Optional, Sequence

from src.database.repository import KeywordInfo
from src.engines.base import BrandContext, EngineAdapter, EngineResult

logger = logging.getLogger(__name__)

# Third-party sites a simulated answer may cite alongside (or instead of) the brand
DEFAULT_URL_POOL = (
    "wikipedia.org",
    "reddit.com",
    "g2.com",
    "capterra.com",
    "techradar.com",
    "forbes.com",
)


class SimulationAdapter(EngineAdapter):
    """
    Randomized adapter for demos and tests.

    Usage:
        adapter = SimulationAdapter("Gemini", presence_probability=0.7)
        result = await adapter.run(keyword, brand)

    Passing seed makes results reproducible per (seed, keyword). Every call
    builds its own random generator, so concurrent calls never interfere.
    """

    def __init__(
        self,
        display_name: str,
        presence_probability: float = 0.7,
        citation_probability: float = 0.5,
        seed: Optional[int] = None,
        latency: float = 0.0,
        url_pool: Sequence[str] = DEFAULT_URL_POOL,
    ):
        if not 0.0 <= presence_probability <= 1.0:
            raise ValueError(f"presence_probability must be within [0, 1], got {presence_probability}")
        if not 0.0 <= citation_probability <= 1.0:
            raise ValueError(f"citation_probability must be within [0, 1], got {citation_probability}")

        self.display_name = display_name
        self.presence_probability = presence_probability
        self.citation_probability = citation_probability
        self.seed = seed
        self.latency = latency
        self.url_pool = tuple(url_pool)

    def _rng(self, keyword: KeywordInfo) -> random.Random:
        if self.seed is None:
            return random.Random()
        return random.Random(f"{self.seed}:{self.display_name}:{keyword.id}")

    async def run(self, keyword: KeywordInfo, brand: BrandContext) -> EngineResult:
        if self.latency:
            await asyncio.sleep(self.latency)

        rng = self._rng(keyword)
        snippet = f'Simulated check for "{keyword.text}" on {self.display_name}...'

        if rng.random() >= self.presence_probability:
            return EngineResult(presence=False, answer_snippet=snippet)

        others = rng.sample(self.url_pool, k=min(len(self.url_pool), rng.randint(1, 2)))
        urls = list(others)
        if rng.random() < self.citation_probability:
            urls.insert(rng.randint(0, len(urls)), brand.domain)

        return EngineResult(
            presence=True,
            position=rng.randint(1, 3),
            answer_snippet=snippet,
            citations_count=rng.randint(1, 5),
            observed_urls=urls,
        )
