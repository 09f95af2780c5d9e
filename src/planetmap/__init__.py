"""Deterministic procedural planet maps.

Derives height, climate, biome and hydrology for any tile of a wrapping
planet grid, with persisted permanent/temporary tile overrides and
full-planet hydrology bakes.
"""

from .config import EngineConfig, HydrologyConfig, PlanetConfig, load_config
from .deltas import DeltaRecord
from .engine import PlanetMap, RoomData
from .exceptions import (
    DeltaPersistenceError,
    InvalidPlanetConfigError,
    PlanetMapError,
    PlanetNotFoundError,
)
from .hydrology import HydrologyInfo
from .registry import Planet, planet_hash
from .types import Biome, ClimateZone, FlowEnd, WaterKind

__all__ = [
    "Biome",
    "ClimateZone",
    "DeltaPersistenceError",
    "DeltaRecord",
    "EngineConfig",
    "FlowEnd",
    "HydrologyConfig",
    "HydrologyInfo",
    "InvalidPlanetConfigError",
    "Planet",
    "PlanetConfig",
    "PlanetMap",
    "PlanetMapError",
    "PlanetNotFoundError",
    "RoomData",
    "WaterKind",
    "load_config",
    "planet_hash",
]
