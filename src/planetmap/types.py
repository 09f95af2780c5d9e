"""Core types for the planet map engine."""

from enum import Enum

# Wrapped tile coordinate: (x, y)
Coord = tuple[int, int]

# Neighbour scan order used by the flow solver.
# Coordinate system: +X is East, +Y is South.
# Orthogonals first (W, E, N, S), then diagonals (NW, NE, SW, SE).
NEIGHBOR_OFFSETS: tuple[tuple[int, int], ...] = (
    (-1, 0),
    (1, 0),
    (0, -1),
    (0, 1),
    (-1, -1),
    (1, -1),
    (-1, 1),
    (1, 1),
)

# Orthogonal neighbours only, used for slope
ORTHOGONAL_OFFSETS: tuple[tuple[int, int], ...] = NEIGHBOR_OFFSETS[:4]


class ValueKind(str, Enum):
    """Kinds of memoized per-tile values."""

    HEIGHT = "height"
    TEMPERATURE = "temperature"
    MOISTURE = "moisture"
    SLOPE = "slope"
    SEA_DISTANCE = "sea_distance"
    FLOW_TARGET = "flow_target"
    FLOW_END = "flow_end"
    ACCUMULATION = "accumulation"
    WATER = "water"


class FlowEnd(str, Enum):
    """Terminal states of a flow path."""

    SEA = "sea"
    POOL = "pool"
    LOOP = "loop"


class WaterKind(str, Enum):
    """Water classification of a tile."""

    OCEAN = "ocean"
    RIVER = "river"
    LAKE = "lake"

    @property
    def symbol(self) -> str:
        """Character used in ASCII water-mask exports."""
        return _WATER_SYMBOLS[self]


# Land (no water) is rendered as "."
LAND_SYMBOL = "."

_WATER_SYMBOLS = {
    WaterKind.OCEAN: "~",
    WaterKind.RIVER: "r",
    WaterKind.LAKE: "l",
}


class DeltaTier(str, Enum):
    """Delta override tiers; values double as persisted file prefixes."""

    PERMANENT = "perma"
    TEMPORARY = "temp"


class ClimateZone(str, Enum):
    """Latitude band derived from axial tilt."""

    TROPICAL = "tropical"
    TEMPERATE = "temperate"
    POLAR = "polar"


class Biome(str, Enum):
    """Procedural biome labels."""

    DEEP_OCEAN = "deep_ocean"
    COASTAL_WATER = "coastal_water"
    RIVER = "river"
    LAKE = "lake"
    SNOW_PEAK = "snow_peak"
    ALPINE = "alpine"
    POLAR_ICE = "polar_ice"
    TUNDRA = "tundra"
    TAIGA = "taiga"
    TROPICAL_RAINFOREST = "tropical_rainforest"
    SAVANNA = "savanna"
    HOT_DESERT = "hot_desert"
    TEMPERATE_RAINFOREST = "temperate_rainforest"
    TEMPERATE_FOREST = "temperate_forest"
    GRASSLAND = "grassland"
    TEMPERATE_STEPPE = "temperate_steppe"
    UNKNOWN = "unknown"

    @property
    def aquatic(self) -> bool:
        """Whether this biome is open water."""
        return self in _AQUATIC_BIOMES


# Define sets for O(1) lookup
_AQUATIC_BIOMES = frozenset({
    Biome.DEEP_OCEAN,
    Biome.COASTAL_WATER,
    Biome.RIVER,
    Biome.LAKE,
})
