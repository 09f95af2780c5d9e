"""PlanetMap: the query surface over planets, terrain, hydrology and deltas."""

import threading
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

from .bake import BakeManager
from .cache import CacheManager
from .classification import classify_biome
from .config import EngineConfig, PlanetConfig, load_config
from .deltas import DeltaInput, DeltaLayer, DeltaRecord
from .exceptions import PlanetNotFoundError
from .fields import TerrainField
from .hydrology import HydrologyInfo, HydrologySolver
from .persistence import DeltaStore
from .registry import Planet, PlanetRegistry
from .types import ClimateZone

logger = structlog.get_logger()


class RoomData(BaseModel):
    """Everything known about one tile, as handed to room adapters."""

    model_config = ConfigDict(frozen=True)

    planet: str
    x: int = Field(description="Wrapped x coordinate")
    y: int = Field(description="Wrapped y coordinate")
    height: float
    temperature: float
    moisture: float
    slope: float
    climate_zone: ClimateZone
    biome: str
    hydrology: HydrologyInfo
    permanent: DeltaRecord | None = None
    temporary: DeltaRecord | None = None


class PlanetMap:
    """Engine context: registry, caches, delta layer and solvers.

    Instances share nothing, so several engines can coexist (e.g. per test).
    Queries, mutations, registration and bakes take a per-planet lock, so
    values computed on a cache miss never outlive a concurrent purge.

    Args:
        config: Engine configuration. Planets in ``config.planets`` are
            registered on construction.
        save_dir: Override for ``config.save_dir``.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        save_dir: Path | str | None = None,
    ):
        self.config = config or EngineConfig()
        self.caches = CacheManager()
        self.registry = PlanetRegistry()
        self.store = DeltaStore(save_dir if save_dir is not None else self.config.save_dir)
        self.deltas = DeltaLayer(self.store, self.caches)
        self.terrain = TerrainField(self.caches, self.deltas)
        self.hydrology = HydrologySolver(self.caches, self.terrain, self.config.hydrology)
        self.baker = BakeManager(
            self.caches, self.terrain, self.hydrology, self.config.export_dir
        )

        self._locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

        for name, planet_config in self.config.planets.items():
            self.add_planet(name, planet_config)

    @classmethod
    def from_config_file(
        cls, config_path: Path | str, save_dir: Path | str | None = None
    ) -> "PlanetMap":
        """Create an engine from a TOML config file."""
        return cls(load_config(Path(config_path)), save_dir=save_dir)

    def _lock(self, planet_hash: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(planet_hash)
            if lock is None:
                lock = self._locks[planet_hash] = threading.RLock()
            return lock

    def _planet(self, name: str) -> Planet:
        return self.registry.require(name)

    # Registry

    def add_planet(self, name: str, config: PlanetConfig | dict[str, Any]) -> str:
        """Register (or replace) a planet and load its stored deltas.

        Derived state of both the replaced and the new planet hash is
        purged.

        Returns:
            The planet hash.

        Raises:
            InvalidPlanetConfigError: If the config is invalid.
        """
        previous = self.registry.get(name)
        planet = self.registry.register(name, config)

        if previous is not None and previous.planet_hash != planet.planet_hash:
            with self._lock(previous.planet_hash):
                self.caches.purge(previous.planet_hash)
                self.deltas.forget(previous.planet_hash)

        with self._lock(planet.planet_hash):
            self.caches.purge(planet.planet_hash)
            self.deltas.load(planet)
        return planet.planet_hash

    def get_planet(self, name: str) -> Planet | None:
        return self.registry.get(name)

    def list_planets(self) -> set[str]:
        return self.registry.names()

    def resolve_planet(self, name: str | None, fallback: bool = True) -> Planet:
        """Look up a planet, optionally falling back to the default planet.

        Raises:
            PlanetNotFoundError: If neither the planet nor the fallback exists.
        """
        planet = self.registry.get(name) if name else None
        if planet is None and fallback and self.config.default_planet:
            planet = self.registry.get(self.config.default_planet)
            if planet is not None:
                logger.debug("planet_fallback", requested=name, planet=planet.name)
        if planet is None:
            raise PlanetNotFoundError(name or "")
        return planet

    # Terrain

    def get_height(self, planet: str, x: int, y: int) -> float:
        p = self._planet(planet)
        with self._lock(p.planet_hash):
            return self.terrain.height(p, x, y)

    def get_temperature(self, planet: str, x: int, y: int) -> float:
        p = self._planet(planet)
        with self._lock(p.planet_hash):
            return self.terrain.temperature(p, x, y)

    def get_moisture(self, planet: str, x: int, y: int) -> float:
        p = self._planet(planet)
        with self._lock(p.planet_hash):
            return self.terrain.moisture(p, x, y)

    def get_slope(self, planet: str, x: int, y: int) -> float:
        p = self._planet(planet)
        with self._lock(p.planet_hash):
            return self.terrain.slope(p, x, y)

    def get_climate_zone(self, planet: str, x: int, y: int) -> ClimateZone:
        return self.terrain.climate_zone(self._planet(planet), x, y)

    def get_biome(self, planet: str, x: int, y: int) -> str:
        """Biome label; a permanent delta biome wins over procedural rules."""
        p = self._planet(planet)
        with self._lock(p.planet_hash):
            return self._biome(p, *p.wrap(x, y))

    def _biome(self, planet: Planet, x: int, y: int) -> str:
        record = self.deltas.get_permanent(planet, x, y)
        if record is not None and record.biome:
            return record.biome

        return classify_biome(
            height=self.terrain.height(planet, x, y),
            moisture=self.terrain.moisture(planet, x, y),
            temperature=self.terrain.temperature(planet, x, y),
            climate=self.terrain.climate_zone(planet, x, y),
            water=self.hydrology.water(planet, x, y),
            sea_level=planet.config.sea_level,
        )

    # Hydrology

    def get_hydrology(self, planet: str, x: int, y: int) -> HydrologyInfo:
        p = self._planet(planet)
        with self._lock(p.planet_hash):
            return self.hydrology.hydrology(p, x, y)

    def get_room_data(self, planet: str, x: int, y: int) -> RoomData:
        """All derived values and delta records of a tile."""
        p = self._planet(planet)
        x, y = p.wrap(x, y)
        with self._lock(p.planet_hash):
            return RoomData(
                planet=p.name,
                x=x,
                y=y,
                height=self.terrain.height(p, x, y),
                temperature=self.terrain.temperature(p, x, y),
                moisture=self.terrain.moisture(p, x, y),
                slope=self.terrain.slope(p, x, y),
                climate_zone=self.terrain.climate_zone(p, x, y),
                biome=self._biome(p, x, y),
                hydrology=self.hydrology.hydrology(p, x, y),
                permanent=self.deltas.get_permanent(p, x, y),
                temporary=self.deltas.get_temporary(p, x, y),
            )

    # Deltas

    def set_permanent_delta(self, planet: str, x: int, y: int, record: DeltaInput) -> bool:
        """Set a permanent delta. Returns True if it was persisted."""
        p = self._planet(planet)
        with self._lock(p.planet_hash):
            return self.deltas.set_permanent(p, x, y, record)

    def remove_permanent_delta(self, planet: str, x: int, y: int) -> bool:
        p = self._planet(planet)
        with self._lock(p.planet_hash):
            return self.deltas.remove_permanent(p, x, y)

    def set_temporary_delta(self, planet: str, x: int, y: int, record: DeltaInput) -> bool:
        p = self._planet(planet)
        with self._lock(p.planet_hash):
            return self.deltas.set_temporary(p, x, y, record)

    def remove_temporary_delta(self, planet: str, x: int, y: int) -> bool:
        p = self._planet(planet)
        with self._lock(p.planet_hash):
            return self.deltas.remove_temporary(p, x, y)

    def query_permanent_delta(self, planet: str, x: int, y: int) -> DeltaRecord | None:
        return self.deltas.get_permanent(self._planet(planet), x, y)

    def query_temporary_delta(self, planet: str, x: int, y: int) -> DeltaRecord | None:
        return self.deltas.get_temporary(self._planet(planet), x, y)

    # Bake & admin

    def bake_hydrology(
        self,
        planet: str,
        export_to_file: bool = False,
        climate: bool = False,
        cancel: threading.Event | None = None,
    ) -> int:
        """Precompute hydrology for every tile. Returns tiles processed."""
        p = self._planet(planet)
        with self._lock(p.planet_hash):
            return self.baker.bake_hydrology(
                p, export_to_file=export_to_file, climate=climate, cancel=cancel
            )

    def export_water_mask(self, planet: str, filename: Path | str | None = None) -> Path | None:
        """Write the ASCII water mask. Returns the path, or None on failure."""
        p = self._planet(planet)
        with self._lock(p.planet_hash):
            return self.baker.export_water_mask(p, filename)

    def render_water_mask(self, planet: str) -> str:
        p = self._planet(planet)
        with self._lock(p.planet_hash):
            return self.baker.render_water_mask(p)

    def bake_and_save(self, planet: str) -> int:
        """Bake with export, then persist the planet's delta tiers."""
        p = self._planet(planet)
        with self._lock(p.planet_hash):
            count = self.baker.bake_hydrology(p, export_to_file=True)
            self.deltas.save(p)
        return count

    def clear_caches(self, planet: str | None = None) -> int:
        """Drop cached values for one planet, or for all planets if None.

        Returns:
            Number of entries removed (0 when clearing everything).
        """
        if planet is None:
            self.caches.clear()
            logger.info("caches_cleared")
            return 0
        p = self._planet(planet)
        with self._lock(p.planet_hash):
            removed = self.caches.purge(p.planet_hash)
        logger.info("planet_caches_purged", planet=p.name, reason="request", entries=removed)
        return removed

    def cache_stats(self, planet: str) -> dict[str, int]:
        return self.caches.stats(self._planet(planet).planet_hash)

    def describe_tile(self, planet: str, x: int, y: int) -> str:
        """Multi-line admin description of a tile."""
        d = self.get_room_data(planet, x, y)
        lines = [
            f"Tile {d.planet}:{d.x},{d.y}",
            f" Height: {d.height:.3f}  Temp: {d.temperature:.2f}C  Moist: {d.moisture:.3f}",
            f" Slope: {d.slope:.3f}  Climate: {d.climate_zone.value}",
            f" Biome: {d.biome}",
        ]
        if d.permanent is not None:
            lines.append(f" Permanent delta: {d.permanent.to_fields()}")
        if d.temporary is not None:
            lines.append(f" Temporary delta: {d.temporary.to_fields()}")
        hyd = d.hydrology
        water = hyd.water.value if hyd.water is not None else "none"
        lines.append(
            f" Hydrology: water={water} acc={hyd.accumulation} end={hyd.flow_end.value}"
        )
        return "\n".join(lines) + "\n"
