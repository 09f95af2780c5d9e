"""Terrain fields: height, temperature, moisture, slope and distance to sea.

Every field is a pure function of the planet config, the planet's permanent
height overrides and the wrapped tile coordinate. Values are memoized in the
``values`` cache table and never change once written; invalidation happens
by removing entries.

Fields can be computed one tile at a time (on-demand room queries) or for a
whole planet at once with numpy (bakes). Both paths perform the same float
operations in the same order, so primed values equal on-demand values.
"""

import math
from typing import TYPE_CHECKING

import numpy as np
import structlog
from numpy.typing import NDArray
from scipy import ndimage

from .cache import CacheKey, CacheManager
from .classification import climate_zone
from .noise import fractal_noise, fractal_noise_grid
from .registry import Planet
from .types import ORTHOGONAL_OFFSETS, ClimateZone, ValueKind

if TYPE_CHECKING:
    from .deltas import DeltaLayer

logger = structlog.get_logger()

# Moisture noise is decorrelated from height noise by a fixed seed offset
MOISTURE_SEED_OFFSET = 10000

# Max moisture boost right at the coast
SEA_MOISTURE_BOOST = 0.5

# Fraction of moisture lost at normalized height 1.0
ELEVATION_DRYING = 0.4

# Sea tiles keep 85% of their own temperature, 15% of base temperature
MARITIME_KEEP = 0.85
MARITIME_BLEND = 0.15

# Temperature factor for moisture: (t + 40) / 80, clamped
TEMP_FACTOR_OFFSET = 40.0
TEMP_FACTOR_SPAN = 80.0
TEMP_FACTOR_MIN = 0.1
TEMP_FACTOR_MAX = 1.5


def latitude_factor(lat: float) -> float:
    """Height multiplier for a latitude: 1.0 at the equator, 0.6 at the poles."""
    return 0.6 + 0.4 * math.cos(lat / 90.0 * math.pi / 2.0)


def sea_level_temperature(base_temp: float, lat: float) -> float:
    """Temperature at sea level before lapse and maritime adjustments."""
    return base_temp * (0.5 + 0.5 * math.cos(lat * math.pi / 180.0))


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return min(max(value, low), high)


class TerrainField:
    """Memoized per-tile terrain values.

    Args:
        caches: Shared cache tables.
        deltas: Delta layer consulted for permanent height overrides.
    """

    def __init__(self, caches: CacheManager, deltas: "DeltaLayer | None" = None):
        self.caches = caches
        self.deltas = deltas

    def height(self, planet: Planet, x: int, y: int) -> float:
        """Normalized height in [0, 1]."""
        x, y = planet.wrap(x, y)
        key = CacheKey(planet.planet_hash, ValueKind.HEIGHT, x, y)
        cached = self.caches.values.get(key)
        if cached is not None:
            return cached

        override = self._height_override(planet, x, y)
        if override is not None:
            value = _clamp(override)
        else:
            cfg = planet.config
            raw = fractal_noise(
                x,
                y,
                cfg.seed,
                cfg.noise_scale,
                cfg.height_octaves,
                cfg.persistence,
                cfg.lacunarity,
            )
            value = _clamp(raw * latitude_factor(planet.latitude(y)))

        self.caches.values.set(key, value)
        return value

    def temperature(self, planet: Planet, x: int, y: int) -> float:
        """Temperature in degrees C."""
        x, y = planet.wrap(x, y)
        key = CacheKey(planet.planet_hash, ValueKind.TEMPERATURE, x, y)
        cached = self.caches.values.get(key)
        if cached is not None:
            return cached

        cfg = planet.config
        h = self.height(planet, x, y)
        temp = sea_level_temperature(cfg.base_temp, planet.latitude(y))
        temp = temp - cfg.lapse_rate * (h * cfg.max_elevation_m / 1000.0)
        if h <= cfg.sea_level:
            temp = temp * MARITIME_KEEP + cfg.base_temp * MARITIME_BLEND

        self.caches.values.set(key, temp)
        return temp

    def moisture(self, planet: Planet, x: int, y: int) -> float:
        """Normalized moisture in [0, 1]."""
        x, y = planet.wrap(x, y)
        key = CacheKey(planet.planet_hash, ValueKind.MOISTURE, x, y)
        cached = self.caches.values.get(key)
        if cached is not None:
            return cached

        cfg = planet.config
        raw = fractal_noise(
            x,
            y,
            cfg.seed + MOISTURE_SEED_OFFSET,
            cfg.moisture_scale,
            cfg.moisture_octaves,
            cfg.persistence,
            cfg.lacunarity,
        )

        radius = cfg.moisture_influence_radius
        dist = self.distance_to_sea(planet, x, y)
        if dist <= radius:
            influence = 1.0 if radius == 0 else (radius - dist) / radius
            raw = raw + SEA_MOISTURE_BOOST * influence

        raw = raw * (1.0 - ELEVATION_DRYING * self.height(planet, x, y))

        temp_factor = (
            self.temperature(planet, x, y) + TEMP_FACTOR_OFFSET
        ) / TEMP_FACTOR_SPAN
        raw = raw * _clamp(temp_factor, TEMP_FACTOR_MIN, TEMP_FACTOR_MAX)

        value = _clamp(raw)
        self.caches.values.set(key, value)
        return value

    def distance_to_sea(self, planet: Planet, x: int, y: int) -> int:
        """Chebyshev distance to the nearest sea tile, capped at radius + 1.

        Rings are searched outward from the tile itself. Each ring scans its
        top and bottom rows, then its left and right columns.
        """
        x, y = planet.wrap(x, y)
        key = CacheKey(planet.planet_hash, ValueKind.SEA_DISTANCE, x, y)
        cached = self.caches.values.get(key)
        if cached is not None:
            return cached

        radius = planet.config.moisture_influence_radius
        result = radius + 1
        for r in range(radius + 1):
            if self._ring_has_sea(planet, x, y, r):
                result = r
                break

        self.caches.values.set(key, result)
        return result

    def _ring_has_sea(self, planet: Planet, sx: int, sy: int, r: int) -> bool:
        sea = planet.config.sea_level
        for dx in range(-r, r + 1):
            if self.height(planet, sx + dx, sy + r) <= sea:
                return True
            if self.height(planet, sx + dx, sy - r) <= sea:
                return True
        for dy in range(-r + 1, r):
            if self.height(planet, sx + r, sy + dy) <= sea:
                return True
            if self.height(planet, sx - r, sy + dy) <= sea:
                return True
        return False

    def slope(self, planet: Planet, x: int, y: int) -> float:
        """Max absolute height difference to the four orthogonal neighbours."""
        x, y = planet.wrap(x, y)
        key = CacheKey(planet.planet_hash, ValueKind.SLOPE, x, y)
        cached = self.caches.values.get(key)
        if cached is not None:
            return cached

        h = self.height(planet, x, y)
        value = max(
            abs(h - self.height(planet, x + dx, y + dy))
            for dx, dy in ORTHOGONAL_OFFSETS
        )
        self.caches.values.set(key, value)
        return value

    def climate_zone(self, planet: Planet, x: int, y: int) -> ClimateZone:
        """Latitude band of a tile. Not cached; it is a single comparison."""
        _, y = planet.wrap(x, y)
        return climate_zone(planet.latitude(y), planet.config.axial_tilt)

    def _height_override(self, planet: Planet, x: int, y: int) -> float | None:
        if self.deltas is None:
            return None
        record = self.deltas.get_permanent(planet, x, y)
        if record is None:
            return None
        return record.height

    # Whole-planet computation

    def height_grid(self, planet: Planet) -> NDArray[np.float64]:
        """Heights for every tile, shape (height, width), overrides applied."""
        cfg = planet.config
        raw = fractal_noise_grid(
            cfg.width,
            cfg.height,
            cfg.seed,
            cfg.noise_scale,
            cfg.height_octaves,
            cfg.persistence,
            cfg.lacunarity,
        )
        factors = np.array(
            [latitude_factor(planet.latitude(y)) for y in range(cfg.height)],
            dtype=np.float64,
        )
        heights = np.clip(raw * factors[:, np.newaxis], 0.0, 1.0)

        if self.deltas is not None:
            for (x, y), record in self.deltas.permanent_items(planet).items():
                if record.height is not None:
                    heights[y, x] = _clamp(record.height)
        return heights

    def temperature_grid(
        self, planet: Planet, heights: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        """Temperatures for every tile given the planet's height grid."""
        cfg = planet.config
        base_rows = np.array(
            [sea_level_temperature(cfg.base_temp, planet.latitude(y)) for y in range(cfg.height)],
            dtype=np.float64,
        )
        temps = base_rows[:, np.newaxis] - cfg.lapse_rate * (
            heights * cfg.max_elevation_m / 1000.0
        )
        maritime = temps * MARITIME_KEEP + cfg.base_temp * MARITIME_BLEND
        return np.where(heights <= cfg.sea_level, maritime, temps)

    def moisture_grid(
        self,
        planet: Planet,
        heights: NDArray[np.float64],
        temps: NDArray[np.float64],
        sea_distance: NDArray[np.int64],
    ) -> NDArray[np.float64]:
        """Moisture for every tile given the planet's other climate grids."""
        cfg = planet.config
        raw = fractal_noise_grid(
            cfg.width,
            cfg.height,
            cfg.seed + MOISTURE_SEED_OFFSET,
            cfg.moisture_scale,
            cfg.moisture_octaves,
            cfg.persistence,
            cfg.lacunarity,
        )

        radius = cfg.moisture_influence_radius
        if radius == 0:
            influence = np.ones_like(raw)
        else:
            influence = (radius - sea_distance) / radius
        raw = np.where(sea_distance <= radius, raw + SEA_MOISTURE_BOOST * influence, raw)

        raw = raw * (1.0 - ELEVATION_DRYING * heights)

        temp_factor = (temps + TEMP_FACTOR_OFFSET) / TEMP_FACTOR_SPAN
        raw = raw * np.clip(temp_factor, TEMP_FACTOR_MIN, TEMP_FACTOR_MAX)
        return np.clip(raw, 0.0, 1.0)

    def store_grid(self, planet: Planet, kind: ValueKind, grid: NDArray) -> int:
        """Write a full-planet grid of values into the values table.

        Args:
            planet: Planet the grid belongs to.
            kind: Value kind the grid holds.
            grid: Array of shape (height, width).

        Returns:
            Number of entries written.

        Raises:
            ValueError: If the grid shape does not match the planet.
        """
        if grid.shape != (planet.height, planet.width):
            raise ValueError(
                f"Grid shape {grid.shape} does not match planet "
                f"{planet.name} ({planet.height}, {planet.width})"
            )

        table = self.caches.values
        ph = planet.planet_hash
        for y, row in enumerate(grid.tolist()):
            for x, value in enumerate(row):
                table.set(CacheKey(ph, kind, x, y), value)
        return grid.size

    def prime(self, planet: Planet, climate: bool = False) -> NDArray[np.float64]:
        """Precompute and cache fields for every tile of a planet.

        Args:
            planet: Planet to prime.
            climate: Also prime temperature, distance to sea and moisture.

        Returns:
            The height grid.
        """
        heights = self.height_grid(planet)
        self.store_grid(planet, ValueKind.HEIGHT, heights)

        if climate:
            cfg = planet.config
            temps = self.temperature_grid(planet, heights)
            sea_distance = sea_distance_grid(
                heights <= cfg.sea_level, cfg.moisture_influence_radius
            )
            moisture = self.moisture_grid(planet, heights, temps, sea_distance)
            self.store_grid(planet, ValueKind.TEMPERATURE, temps)
            self.store_grid(planet, ValueKind.SEA_DISTANCE, sea_distance)
            self.store_grid(planet, ValueKind.MOISTURE, moisture)

        logger.debug(
            "terrain_primed",
            planet=planet.name,
            tiles=planet.tile_count,
            climate=climate,
        )
        return heights


def sea_distance_grid(sea_mask: NDArray[np.bool_], radius: int) -> NDArray[np.int64]:
    """Chessboard distance to the nearest sea tile on a wrapping grid.

    Args:
        sea_mask: Boolean mask where True = sea.
        radius: Search radius; distances beyond it become radius + 1.

    Returns:
        Integer distances, same shape as the mask.
    """
    cap = radius + 1
    if not sea_mask.any():
        return np.full(sea_mask.shape, cap, dtype=np.int64)

    # Pad by the radius so every offset within reach is visible
    padded = np.pad(~sea_mask, radius, mode="wrap")
    dist = ndimage.distance_transform_cdt(padded, metric="chessboard")
    h, w = sea_mask.shape
    dist = dist[radius : radius + h, radius : radius + w].astype(np.int64)
    return np.minimum(dist, cap)
