"""Planet registry: named planet configurations and coordinate helpers."""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import structlog
from pydantic import ValidationError

from .config import PlanetConfig
from .exceptions import InvalidPlanetConfigError, PlanetNotFoundError
from .types import Coord

logger = structlog.get_logger()

# Names end up in export file names, so no path separators or dots
PLANET_NAME_PATTERN = re.compile(r"[A-Za-z0-9][A-Za-z0-9_-]*")

_FNV_OFFSET = 2166136261
_FNV_PRIME = 16777619


def planet_hash(name: str, seed: int) -> str:
    """Stable identifier for a planet, derived from its name and seed.

    32-bit FNV-1a over ``"<name>:<seed>"``, rendered as 8 hex digits.
    """
    h = _FNV_OFFSET
    for byte in f"{name}:{seed}".encode("utf-8"):
        h ^= byte
        h = (h * _FNV_PRIME) & 0xFFFFFFFF
    return f"{h:08x}"


def wrap(coord: int, extent: int) -> int:
    """Wrap a coordinate into [0, extent) using mathematical modulo."""
    return coord % extent


def latitude(y: int, height: int) -> float:
    """Latitude in degrees for a grid row, in range [-90, 90)."""
    return (y / height - 0.5) * 180.0


@dataclass(frozen=True)
class Planet:
    """A registered planet."""

    name: str
    config: PlanetConfig
    planet_hash: str

    @property
    def width(self) -> int:
        return self.config.width

    @property
    def height(self) -> int:
        return self.config.height

    @property
    def tile_count(self) -> int:
        """Number of tiles on the planet grid."""
        return self.config.width * self.config.height

    def wrap(self, x: int, y: int) -> Coord:
        """Normalize tile coordinates onto the planet grid."""
        return (x % self.config.width, y % self.config.height)

    def latitude(self, y: int) -> float:
        """Latitude in degrees for a (wrapped) row."""
        return latitude(y, self.config.height)


class PlanetRegistry:
    """Named planet configurations.

    The registry only stores planets; purging derived state on
    registration is the responsibility of the owning engine.
    """

    def __init__(self) -> None:
        self._planets: dict[str, Planet] = {}

    def register(
        self, name: str, config: PlanetConfig | Mapping[str, Any]
    ) -> Planet:
        """Register (or replace) a planet.

        Args:
            name: Planet name.
            config: PlanetConfig or a mapping of its fields.

        Returns:
            The registered Planet.

        Raises:
            InvalidPlanetConfigError: If the name is not a plain identifier,
                or the config is missing width/height or fails validation.
        """
        if not PLANET_NAME_PATTERN.fullmatch(name):
            raise InvalidPlanetConfigError(
                f"Invalid planet name {name!r}: use letters, digits, '_' and '-'"
            )

        if not isinstance(config, PlanetConfig):
            try:
                config = PlanetConfig.model_validate(dict(config))
            except ValidationError as e:
                raise InvalidPlanetConfigError(
                    f"Invalid config for planet '{name}': {e}"
                ) from e

        planet = Planet(
            name=name,
            config=config,
            planet_hash=planet_hash(name, config.seed),
        )
        self._planets[name] = planet

        logger.info(
            "planet_registered",
            planet=name,
            planet_hash=planet.planet_hash,
            width=config.width,
            height=config.height,
            seed=config.seed,
        )
        return planet

    def get(self, name: str) -> Planet | None:
        """Get a planet by name, or None if not registered."""
        return self._planets.get(name)

    def require(self, name: str) -> Planet:
        """Get a planet by name.

        Raises:
            PlanetNotFoundError: If no planet has this name.
        """
        planet = self._planets.get(name)
        if planet is None:
            raise PlanetNotFoundError(name)
        return planet

    def names(self) -> set[str]:
        """Names of all registered planets."""
        return set(self._planets)

    def __contains__(self, name: object) -> bool:
        return name in self._planets

    def __len__(self) -> int:
        return len(self._planets)
