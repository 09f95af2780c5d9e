"""Custom exceptions for the planet map engine."""


class PlanetMapError(Exception):
    """Base exception for planet map errors."""

    pass


class PlanetNotFoundError(PlanetMapError, KeyError):
    """Raised when a planet name is not registered."""

    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Planet not found: {self.name}"


class InvalidPlanetConfigError(PlanetMapError, ValueError):
    """Raised when a planet configuration fails validation."""

    pass


class DeltaPersistenceError(PlanetMapError):
    """Raised when delta tiers cannot be written to storage."""

    pass
