"""Planet and engine configuration models, loaded from TOML files."""

import tomllib
from pathlib import Path

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = structlog.get_logger()

# src/planetmap/config.py -> repository root
CONFIGS_DIR = Path(__file__).parent.parent.parent / "configs"


class PlanetConfig(BaseModel):
    """Generation parameters for a single planet.

    Width and height are required; everything else has a default.
    """

    model_config = ConfigDict(frozen=True)

    width: int = Field(gt=0, description="Grid width in tiles")
    height: int = Field(gt=0, description="Grid height in tiles")
    seed: int = Field(default=0, description="Determinism key for all noise")
    axial_tilt: float = Field(default=23.5, description="Axial tilt in degrees")
    sea_level: float = Field(
        default=0.5, ge=0.0, le=1.0, description="Normalized sea level height"
    )
    base_temp: float = Field(default=15.0, description="Equatorial sea-level temperature (C)")
    max_elevation_m: float = Field(
        default=8000.0, description="Elevation in meters at normalized height 1.0"
    )
    lapse_rate: float = Field(default=6.5, description="Temperature drop per km (C)")
    noise_scale: float = Field(default=0.008, description="Base frequency of height noise")
    moisture_scale: float = Field(
        default=0.02, description="Base frequency of moisture noise"
    )
    moisture_influence_radius: int = Field(
        default=20, ge=0, description="Search radius (tiles) for sea moisture boost"
    )
    height_octaves: int = Field(default=5, ge=1, description="Octaves for height noise")
    moisture_octaves: int = Field(
        default=4, ge=1, description="Octaves for moisture noise"
    )
    persistence: float = Field(default=0.5, description="Amplitude multiplier per octave")
    lacunarity: float = Field(default=2.0, description="Frequency multiplier per octave")


class HydrologyConfig(BaseModel):
    """River and lake classification thresholds."""

    river_threshold: int = Field(
        default=40, description="Min accumulation for a sea-draining river tile"
    )
    lake_threshold: int = Field(
        default=6, description="Min accumulation for a basin tile to become lake"
    )
    max_flow_steps: int = Field(
        default=10_000, description="Step cap when following flow targets"
    )


class EngineConfig(BaseModel):
    """Complete configuration for a planet map engine."""

    save_dir: str = Field(
        default="saves/planetmap", description="Directory for persisted deltas"
    )
    export_dir: str = Field(
        default="exports", description="Directory for ASCII water-mask exports"
    )
    default_planet: str | None = Field(
        default=None, description="Planet used when a lookup falls back"
    )
    hydrology: HydrologyConfig = Field(default_factory=HydrologyConfig)
    planets: dict[str, PlanetConfig] = Field(default_factory=dict)


def load_config(config_path: Path) -> EngineConfig:
    """Load engine configuration from a TOML file.

    The file may carry an ``[engine]`` table with the top-level engine
    settings, a ``[hydrology]`` table and one ``[planets.<name>]`` table per
    planet.

    Args:
        config_path: Path to the TOML config file.

    Returns:
        Parsed EngineConfig object.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        tomllib.TOMLDecodeError: If TOML is malformed.
    """
    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    engine = data.pop("engine", {})
    return EngineConfig.model_validate({**engine, **data})


def find_config(name: str) -> Path:
    """Resolve a config file from a path, a config name or a planet name.

    A value with a directory part or a ``.toml`` suffix is taken as a path.
    Otherwise ``configs/<name>.toml`` is tried, then the bundled config
    defining a planet called ``name``, so ``find_config("desertworld")``
    finds ``configs/planets.toml``.

    Raises:
        FileNotFoundError: If nothing matches.
    """
    path = Path(name)
    if path.suffix == ".toml" or len(path.parts) > 1:
        if path.is_file():
            return path
        raise FileNotFoundError(f"Config file not found: {name}")

    candidate = CONFIGS_DIR / f"{name}.toml"
    if candidate.is_file():
        return candidate

    bundled = list_configs()
    for config_name, planets in bundled.items():
        if name in planets:
            return CONFIGS_DIR / f"{config_name}.toml"

    raise FileNotFoundError(
        f"No config or planet named '{name}' in {CONFIGS_DIR} "
        f"(configs: {sorted(bundled)})"
    )


def list_configs() -> dict[str, list[str]]:
    """Bundled config names mapped to the planets each one defines.

    Files that fail to parse are listed with no planets.
    """
    if not CONFIGS_DIR.is_dir():
        return {}

    found: dict[str, list[str]] = {}
    for path in sorted(CONFIGS_DIR.glob("*.toml")):
        try:
            found[path.stem] = sorted(load_config(path).planets)
        except (tomllib.TOMLDecodeError, ValidationError) as e:
            logger.warning("config_unreadable", path=str(path), error=str(e))
            found[path.stem] = []
    return found
