"""Biome classification from terrain, climate and water."""

import structlog

from .types import Biome, ClimateZone, WaterKind

logger = structlog.get_logger()

# Mountains
MOUNTAIN_HEIGHT = 0.78
SNOW_PEAK_TEMP = -8.0

# Cold biomes
POLAR_ICE_TEMP = -12.0
FREEZING_TEMP = 0.0
TUNDRA_MAX_MOISTURE = 0.25

# Relative depth below sea level beyond which water is deep ocean
DEEP_OCEAN_DEPTH = 0.5

# Moisture bands, checked highest first
TROPICAL_BANDS: tuple[tuple[float, Biome], ...] = (
    (0.75, Biome.TROPICAL_RAINFOREST),
    (0.45, Biome.SAVANNA),
)
TEMPERATE_BANDS: tuple[tuple[float, Biome], ...] = (
    (0.7, Biome.TEMPERATE_RAINFOREST),
    (0.45, Biome.TEMPERATE_FOREST),
    (0.25, Biome.GRASSLAND),
)


def climate_zone(latitude: float, axial_tilt: float) -> ClimateZone:
    """Latitude band for a latitude in degrees.

    Tropical within the tilt of the equator, polar within the tilt of a
    pole, temperate in between.
    """
    a = abs(latitude)
    if a <= axial_tilt:
        return ClimateZone.TROPICAL
    if a <= 90.0 - axial_tilt:
        return ClimateZone.TEMPERATE
    return ClimateZone.POLAR


def classify_biome(
    height: float,
    moisture: float,
    temperature: float,
    climate: ClimateZone,
    water: WaterKind | None,
    sea_level: float,
    override: str | None = None,
) -> str:
    """Classify a tile into a biome label.

    Rules are checked in order and the first match wins: permanent override,
    open water, river or lake, mountains, cold biomes, then moisture bands
    for the climate zone.

    Args:
        height: Normalized height.
        moisture: Normalized moisture.
        temperature: Temperature in degrees C.
        climate: Climate zone of the tile.
        water: Water classification, or None for dry land.
        sea_level: Planet sea level.
        override: Biome set by a permanent delta, if any.

    Returns:
        Biome label. Overrides are returned verbatim and need not be a
        known Biome value.
    """
    if override:
        return override

    if height <= sea_level:
        depth = (sea_level - height) / (sea_level if sea_level > 0 else 1.0)
        if depth > DEEP_OCEAN_DEPTH:
            return Biome.DEEP_OCEAN.value
        return Biome.COASTAL_WATER.value

    if water is WaterKind.RIVER:
        return Biome.RIVER.value
    if water is WaterKind.LAKE:
        return Biome.LAKE.value

    if height > MOUNTAIN_HEIGHT:
        if temperature < SNOW_PEAK_TEMP:
            return Biome.SNOW_PEAK.value
        return Biome.ALPINE.value

    if temperature <= POLAR_ICE_TEMP:
        return Biome.POLAR_ICE.value
    if temperature <= FREEZING_TEMP:
        if moisture < TUNDRA_MAX_MOISTURE:
            return Biome.TUNDRA.value
        return Biome.TAIGA.value

    if climate is ClimateZone.TROPICAL:
        return _moisture_band(moisture, TROPICAL_BANDS, Biome.HOT_DESERT)
    if climate is ClimateZone.TEMPERATE:
        return _moisture_band(moisture, TEMPERATE_BANDS, Biome.TEMPERATE_STEPPE)

    # Warm polar-zone land, reachable with low tilt or high base temperature
    logger.debug(
        "biome_unclassified",
        height=height,
        moisture=moisture,
        temperature=temperature,
        climate=climate.value,
    )
    return Biome.UNKNOWN.value


def _moisture_band(
    moisture: float, bands: tuple[tuple[float, Biome], ...], driest: Biome
) -> str:
    for threshold, biome in bands:
        if moisture > threshold:
            return biome.value
    return driest.value
