"""Full-planet hydrology bakes and ASCII water-mask export."""

import threading
import time
from collections import Counter
from pathlib import Path

import numpy as np
import structlog
from numpy.typing import NDArray

from .cache import CacheManager
from .fields import TerrainField
from .hydrology import HydrologySolver
from .persistence import write_text_atomic
from .registry import Planet
from .types import LAND_SYMBOL, WaterKind

logger = structlog.get_logger()


class BakeManager:
    """Precomputes hydrology for whole planets and exports water masks.

    Args:
        caches: Shared cache tables.
        terrain: Terrain field used to prime height and climate grids.
        hydrology: Hydrology solver populated by the bake.
        export_dir: Directory for default export file names.
    """

    def __init__(
        self,
        caches: CacheManager,
        terrain: TerrainField,
        hydrology: HydrologySolver,
        export_dir: Path | str = "exports",
    ):
        self.caches = caches
        self.terrain = terrain
        self.hydrology = hydrology
        self.export_dir = Path(export_dir)

    def bake_hydrology(
        self,
        planet: Planet,
        export_to_file: bool = False,
        climate: bool = False,
        cancel: threading.Event | None = None,
    ) -> int:
        """Compute flow end, accumulation and water for every tile.

        The planet's caches are purged first, then the height grid (and the
        climate grids if asked) is primed in bulk, then tiles are visited in
        row-major order.

        Args:
            planet: Planet to bake.
            export_to_file: Write the water mask to the default export path.
            climate: Also prime temperature, distance to sea and moisture.
            cancel: Event checked between tiles; when set the bake stops.

        Returns:
            Number of tiles processed. Less than the tile count if cancelled.
        """
        start = time.perf_counter()
        purged = self.caches.purge(planet.planet_hash)
        logger.info(
            "bake_started",
            planet=planet.name,
            width=planet.width,
            height=planet.height,
            purged=purged,
            climate=climate,
        )

        self.terrain.prime(planet, climate=climate)

        total = 0
        for y in range(planet.height):
            for x in range(planet.width):
                if cancel is not None and cancel.is_set():
                    logger.warning(
                        "bake_cancelled",
                        planet=planet.name,
                        tiles=total,
                        tile_count=planet.tile_count,
                    )
                    return total
                self.hydrology.flow_end(planet, x, y)
                self.hydrology.accumulation(planet, x, y)
                self.hydrology.water(planet, x, y)
                total += 1

        counts = self.water_counts(planet)
        logger.info(
            "bake_complete",
            planet=planet.name,
            tiles=total,
            ocean=counts[WaterKind.OCEAN],
            river=counts[WaterKind.RIVER],
            lake=counts[WaterKind.LAKE],
            elapsed_s=round(time.perf_counter() - start, 3),
        )

        if export_to_file:
            # A failed export leaves the bake itself valid
            self.export_water_mask(planet)
        return total

    def water_counts(self, planet: Planet) -> Counter:
        """Tiles per water kind among the planet's cached water entries."""
        return Counter(
            value for _, value in self.caches.water.items(planet.planet_hash) if value is not None
        )

    def water_mask_grid(self, planet: Planet) -> NDArray[np.uint8]:
        """Water mask as ASCII codes, shape (height, width)."""
        codes = {
            None: ord(LAND_SYMBOL),
            **{kind: ord(kind.symbol) for kind in WaterKind},
        }
        grid = np.empty((planet.height, planet.width), dtype=np.uint8)
        for y in range(planet.height):
            for x in range(planet.width):
                grid[y, x] = codes[self.hydrology.water(planet, x, y)]
        return grid

    def render_water_mask(self, planet: Planet) -> str:
        """Water mask as text: one line per row, top to bottom.

        ``~`` ocean, ``r`` river, ``l`` lake, ``.`` land.
        """
        grid = self.water_mask_grid(planet)
        return "".join(row.tobytes().decode("ascii") + "\n" for row in grid)

    def default_export_path(self, planet: Planet) -> Path:
        return self.export_dir / f"{planet.name}_water.txt"

    def export_water_mask(
        self, planet: Planet, filename: Path | str | None = None
    ) -> Path | None:
        """Write the water mask to a file.

        Args:
            planet: Planet to export.
            filename: Output path; defaults to ``<export_dir>/<planet>_water.txt``.

        Returns:
            The written path, or None if the file could not be written.
        """
        path = Path(filename) if filename is not None else self.default_export_path(planet)
        text = self.render_water_mask(planet)
        try:
            write_text_atomic(path, text)
        except OSError as e:
            logger.error("water_mask_export_failed", planet=planet.name, path=str(path), error=str(e))
            return None

        logger.info("water_mask_exported", planet=planet.name, path=str(path))
        return path
