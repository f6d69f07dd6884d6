"""
Answer engine adapters and the registry that wires them in.

Usage:
    from src.engines import build_registry

    registry = build_registry()
    for spec in registry:
        result = await spec.adapter.run(keyword, brand)
"""

from .base import BrandContext, EngineAdapter, EngineResult
from .perplexity import PerplexityAdapter
from .registry import (
    ENTRY_POINT_GROUP,
    KNOWN_ENGINES,
    EngineRegistry,
    EngineSpec,
    build_registry,
)
from .simulation import SimulationAdapter

__all__ = [
    "BrandContext",
    "EngineAdapter",
    "EngineResult",
    "EngineRegistry",
    "EngineSpec",
    "ENTRY_POINT_GROUP",
    "KNOWN_ENGINES",
    "build_registry",
    "PerplexityAdapter",
    "SimulationAdapter",
]
