"""Hydrology: flow direction, flow termination, accumulation and water mask.

Each land tile drains to the strictly lowest of its 8 wrapped neighbours,
scanned in NEIGHBOR_OFFSETS order so ties go to the earliest neighbour.
Tiles at or below sea level drain to the sea; land tiles with no lower
neighbour are pools. All results are memoized per planet and tile.
"""

from collections.abc import Iterator

import structlog
from pydantic import BaseModel, ConfigDict, Field

from .cache import CacheKey, CacheManager
from .config import HydrologyConfig
from .fields import TerrainField
from .registry import Planet
from .types import NEIGHBOR_OFFSETS, Coord, FlowEnd, ValueKind, WaterKind

logger = structlog.get_logger()

FlowTarget = Coord | FlowEnd


class HydrologyInfo(BaseModel):
    """Hydrology summary for one tile."""

    model_config = ConfigDict(frozen=True)

    water: WaterKind | None = Field(description="Water classification, None for land")
    accumulation: int = Field(description="Tiles draining through this tile, itself included")
    flow_end: FlowEnd = Field(description="Where this tile's water ends up")


class HydrologySolver:
    """Memoized hydrology queries over the terrain height field.

    Args:
        caches: Shared cache tables (flow, accumulation and water are used).
        terrain: Terrain field supplying heights.
        config: River and lake thresholds.
    """

    def __init__(
        self,
        caches: CacheManager,
        terrain: TerrainField,
        config: HydrologyConfig | None = None,
    ):
        self.caches = caches
        self.terrain = terrain
        self.config = config or HydrologyConfig()

    def flow_target(self, planet: Planet, x: int, y: int) -> FlowTarget:
        """Downhill neighbour of a tile, or FlowEnd.SEA / FlowEnd.POOL."""
        x, y = planet.wrap(x, y)
        key = CacheKey(planet.planet_hash, ValueKind.FLOW_TARGET, x, y)
        cached = self.caches.flow.get(key)
        if cached is not None:
            return cached

        h = self.terrain.height(planet, x, y)
        if h <= planet.config.sea_level:
            target: FlowTarget = FlowEnd.SEA
        else:
            best_h = h
            best = (x, y)
            for dx, dy in NEIGHBOR_OFFSETS:
                nx, ny = planet.wrap(x + dx, y + dy)
                nh = self.terrain.height(planet, nx, ny)
                if nh < best_h:
                    best_h = nh
                    best = (nx, ny)
            target = FlowEnd.POOL if best == (x, y) else best

        self.caches.flow.set(key, target)
        return target

    def flow_end(self, planet: Planet, x: int, y: int) -> FlowEnd:
        """Terminal state reached by following flow targets from a tile.

        The walk stops at the sea, at a pool, at a tile already visited in
        this walk (loop), at a tile whose end is already known, or after
        max_flow_steps steps (loop). Every tile on the walk is memoized with
        the result.
        """
        x, y = planet.wrap(x, y)
        ph = planet.planet_hash
        table = self.caches.flow
        cached = table.get(CacheKey(ph, ValueKind.FLOW_END, x, y))
        if cached is not None:
            return cached

        visited: dict[Coord, None] = {}
        current = (x, y)
        steps = 0
        while True:
            steps += 1
            if steps > self.config.max_flow_steps:
                logger.warning(
                    "flow_step_cap_reached",
                    planet=planet.name,
                    x=x,
                    y=y,
                    steps=self.config.max_flow_steps,
                )
                result = FlowEnd.LOOP
                break
            if current in visited:
                result = FlowEnd.LOOP
                break
            visited[current] = None

            target = self.flow_target(planet, *current)
            if isinstance(target, FlowEnd):
                result = target
                break
            known = table.get(CacheKey(ph, ValueKind.FLOW_END, *target))
            if known is not None:
                result = known
                break
            current = target

        for vx, vy in visited:
            table.set(CacheKey(ph, ValueKind.FLOW_END, vx, vy), result)
        return result

    def upstream(self, planet: Planet, x: int, y: int) -> list[Coord]:
        """Distinct wrapped neighbours whose flow target is this tile."""
        x, y = planet.wrap(x, y)
        found: list[Coord] = []
        for n in self._neighbors(planet, x, y):
            if self.flow_target(planet, *n) == (x, y):
                found.append(n)
        return found

    def accumulation(self, planet: Planet, x: int, y: int) -> int:
        """Number of tiles whose flow passes through this tile, itself included.

        Evaluated as an iterative post-order walk over the upstream tree. A
        tile reached again while still on the walk contributes nothing, so
        a malformed flow graph cannot recurse forever.
        """
        start = planet.wrap(x, y)
        ph = planet.planet_hash
        table = self.caches.accumulation
        cached = table.get(CacheKey(ph, ValueKind.ACCUMULATION, *start))
        if cached is not None:
            return cached

        totals: dict[Coord, int] = {start: 1}
        stack: list[tuple[Coord, Iterator[Coord]]] = [
            (start, iter(self.upstream(planet, *start)))
        ]
        result = 1
        while stack:
            coord, pending = stack[-1]
            descended = False
            for up in pending:
                known = table.get(CacheKey(ph, ValueKind.ACCUMULATION, *up))
                if known is not None:
                    totals[coord] += known
                    continue
                if up in totals:
                    continue
                totals[up] = 1
                stack.append((up, iter(self.upstream(planet, *up))))
                descended = True
                break
            if descended:
                continue

            stack.pop()
            result = totals.pop(coord)
            table.set(CacheKey(ph, ValueKind.ACCUMULATION, *coord), result)
            if stack:
                totals[stack[-1][0]] += result

        return result

    def water(self, planet: Planet, x: int, y: int) -> WaterKind | None:
        """Water classification of a tile; None means dry land."""
        x, y = planet.wrap(x, y)
        ph = planet.planet_hash
        key = CacheKey(ph, ValueKind.WATER, x, y)
        table = self.caches.water
        if key in table:
            return table.get(key)

        result: WaterKind | None = None
        if self.terrain.height(planet, x, y) <= planet.config.sea_level:
            result = WaterKind.OCEAN
        else:
            end = self.flow_end(planet, x, y)
            if end is FlowEnd.SEA:
                if self.accumulation(planet, x, y) >= self.config.river_threshold:
                    result = WaterKind.RIVER
            else:
                pool = self._find_pool(planet, x, y)
                if pool is not None:
                    table.set(CacheKey(ph, ValueKind.WATER, *pool), WaterKind.LAKE)
                    if pool == (x, y):
                        return WaterKind.LAKE
                if self.accumulation(planet, x, y) >= self.config.lake_threshold:
                    result = WaterKind.LAKE

        table.set(key, result)
        return result

    def hydrology(self, planet: Planet, x: int, y: int) -> HydrologyInfo:
        """Water, accumulation and flow end of a tile."""
        x, y = planet.wrap(x, y)
        return HydrologyInfo(
            water=self.water(planet, x, y),
            accumulation=self.accumulation(planet, x, y),
            flow_end=self.flow_end(planet, x, y),
        )

    def _find_pool(self, planet: Planet, x: int, y: int) -> Coord | None:
        """Follow flow targets from a tile to the pool it drains into."""
        current = (x, y)
        for _ in range(self.config.max_flow_steps):
            target = self.flow_target(planet, *current)
            if target is FlowEnd.POOL:
                return current
            if isinstance(target, FlowEnd):
                return None
            current = target
        return None

    def _neighbors(self, planet: Planet, x: int, y: int) -> list[Coord]:
        seen: dict[Coord, None] = {}
        for dx, dy in NEIGHBOR_OFFSETS:
            n = planet.wrap(x + dx, y + dy)
            if n != (x, y):
                seen[n] = None
        return list(seen)
