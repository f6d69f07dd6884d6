"""
Engine Registry

Open registry of answer engines. The orchestrator, aggregator and
recommendation engine only ever see engine ids from here, so adding an
engine never touches them.

Engines come from:
1. build_registry(settings): the configured defaults (Gemini, Perplexity, ChatGPT)
2. The "visibility.engines" entry-point group, for engines shipped in other packages
"""

import logging
from dataclasses import dataclass
from importlib.metadata import entry_points
from typing import Dict, Iterator, List, Optional

from src.engines.base import EngineAdapter
from src.engines.perplexity import PerplexityAdapter
from src.engines.simulation import SimulationAdapter
from src.utils.config import Settings, get_settings

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "visibility.engines"

# Display names for the engines the product ships with
KNOWN_ENGINES = {
    "gemini": "Gemini",
    "perplexity": "Perplexity",
    "chatgpt": "ChatGPT",
}


@dataclass(frozen=True)
class EngineSpec:
    """A registered engine."""
    engine_id: str
    display_name: str
    adapter: EngineAdapter


class EngineRegistry:
    """
    Ordered mapping of engine id -> EngineSpec.

    Usage:
        registry = EngineRegistry()
        registry.register("gemini", "Gemini", SimulationAdapter("Gemini"))
        for spec in registry:
            ...
    """

    def __init__(self):
        self._engines: Dict[str, EngineSpec] = {}

    def register(self, engine_id: str, display_name: str, adapter: EngineAdapter) -> EngineSpec:
        """Register an engine. Ids are unique."""
        engine_id = engine_id.strip().lower()
        if not engine_id:
            raise ValueError("Engine id must not be empty")
        if engine_id in self._engines:
            raise ValueError(f"Engine '{engine_id}' is already registered")
        if not isinstance(adapter, EngineAdapter):
            raise TypeError(f"Adapter for '{engine_id}' must be an EngineAdapter, got {type(adapter).__name__}")

        spec = EngineSpec(engine_id=engine_id, display_name=display_name, adapter=adapter)
        self._engines[engine_id] = spec
        logger.debug(f"Registered engine {engine_id} ({type(adapter).__name__})")
        return spec

    def get(self, engine_id: str) -> Optional[EngineSpec]:
        return self._engines.get(engine_id)

    def display_name(self, engine_id: str) -> str:
        """Display name for an engine id; the id itself for unregistered engines."""
        spec = self._engines.get(engine_id)
        if spec:
            return spec.display_name
        return KNOWN_ENGINES.get(engine_id, engine_id)

    @property
    def engine_ids(self) -> List[str]:
        return list(self._engines)

    def __iter__(self) -> Iterator[EngineSpec]:
        return iter(list(self._engines.values()))

    def __len__(self) -> int:
        return len(self._engines)

    def __contains__(self, engine_id: str) -> bool:
        return engine_id in self._engines

    def discover(self, group: str = ENTRY_POINT_GROUP) -> int:
        """
        Register engines advertised through entry points.

        Each entry point must load to a callable returning
        (engine_id, display_name, adapter). Broken plugins are logged and skipped.

        Returns:
            Number of engines registered
        """
        count = 0
        for ep in entry_points(group=group):
            try:
                engine_id, display_name, adapter = ep.load()()
                self.register(engine_id, display_name, adapter)
                count += 1
            except Exception as e:
                logger.error(f"Failed to load engine plugin '{ep.name}': {e}")
        if count:
            logger.info(f"Discovered {count} engine plugin(s) from '{group}'")
        return count


def build_registry(settings: Optional[Settings] = None, discover: bool = True) -> EngineRegistry:
    """
    Build the registry for the configured engines.

    Perplexity uses the live adapter when PERPLEXITY_API_KEY is set; every
    other engine is simulated.
    """
    settings = settings or get_settings()
    registry = EngineRegistry()

    for engine_id in settings.engine_ids:
        display_name = KNOWN_ENGINES.get(engine_id, engine_id.title())

        if engine_id == PerplexityAdapter.ENGINE_ID and settings.PERPLEXITY_API_KEY:
            adapter = PerplexityAdapter(
                api_key=settings.PERPLEXITY_API_KEY,
                model=settings.PERPLEXITY_MODEL,
            )
        else:
            adapter = SimulationAdapter(
                display_name,
                presence_probability=settings.SIMULATION_PRESENCE_PROBABILITY,
            )
        registry.register(engine_id, display_name, adapter)

    if discover:
        registry.discover()

    logger.info(f"Engine registry ready: {', '.join(registry.engine_ids) or 'no engines'}")
    return registry
