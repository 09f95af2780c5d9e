"""Shared test fixtures for planetmap tests."""

from pathlib import Path

import numpy as np
import pytest
import structlog

from planetmap.cache import CacheManager
from planetmap.config import EngineConfig, PlanetConfig
from planetmap.engine import PlanetMap
from planetmap.registry import Planet, PlanetRegistry
from planetmap.types import ValueKind


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo any structlog configuration a test (e.g. the CLI) applied."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def caches() -> CacheManager:
    return CacheManager()


@pytest.fixture
def small_planet() -> Planet:
    """24x12 planet with default climate parameters."""
    registry = PlanetRegistry()
    return registry.register("small", PlanetConfig(width=24, height=12, seed=7))


@pytest.fixture
def engine_config(tmp_path: Path) -> EngineConfig:
    """Engine config with one small planet and tmp save/export dirs."""
    return EngineConfig(
        save_dir=str(tmp_path / "saves"),
        export_dir=str(tmp_path / "exports"),
        default_planet="small",
        planets={
            "small": PlanetConfig(
                width=24,
                height=12,
                seed=7,
                noise_scale=0.08,
                moisture_influence_radius=4,
            ),
        },
    )


@pytest.fixture
def engine(engine_config: EngineConfig) -> PlanetMap:
    return PlanetMap(engine_config)


@pytest.fixture
def earthlike_engine(tmp_path: Path) -> PlanetMap:
    """Engine with the canonical 200x100 "earthlike" planet."""
    config = EngineConfig(
        save_dir=str(tmp_path / "saves"),
        export_dir=str(tmp_path / "exports"),
        planets={
            "earthlike": PlanetConfig(width=200, height=100, seed=42, sea_level=0.5),
        },
    )
    return PlanetMap(config)


@pytest.fixture
def install_heights():
    """Callable replacing a planet's procedural heights with a synthetic grid."""

    def install(engine: PlanetMap, name: str, heights) -> Planet:
        planet = engine.registry.require(name)
        grid = np.asarray(heights, dtype=np.float64)
        engine.terrain.store_grid(planet, ValueKind.HEIGHT, grid)
        return planet

    return install


@pytest.fixture
def synthetic_engine(tmp_path: Path) -> PlanetMap:
    """Engine with an empty 8x8 planet "flat", for injecting synthetic heights."""
    config = EngineConfig(
        save_dir=str(tmp_path / "saves"),
        export_dir=str(tmp_path / "exports"),
        planets={"flat": PlanetConfig(width=8, height=8, seed=1, sea_level=0.5)},
    )
    return PlanetMap(config)
