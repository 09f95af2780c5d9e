"""Permanent and temporary per-tile override records."""

from collections.abc import Mapping
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_core import PydanticSerializationError

from .cache import CacheManager
from .exceptions import DeltaPersistenceError
from .persistence import DeltaStore
from .registry import Planet
from .types import Coord, DeltaTier

logger = structlog.get_logger()


class DeltaRecord(BaseModel):
    """A per-tile override.

    Unknown fields are kept and persisted unchanged.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    biome: str | None = Field(default=None, description="Biome label override")
    height: float | None = Field(
        default=None, description="Normalized height override (terrain edit)"
    )
    data: dict[str, Any] = Field(default_factory=dict, description="Free-form payload")

    def to_fields(self) -> dict[str, Any]:
        """Fields to persist, defaults omitted."""
        return self.model_dump(mode="json", exclude_defaults=True)


DeltaInput = DeltaRecord | Mapping[str, Any]


def as_record(record: DeltaInput) -> DeltaRecord:
    """Coerce a mapping into a DeltaRecord that can be persisted.

    Raises:
        pydantic.ValidationError: If a known field has the wrong type.
        ValueError: If a field value cannot be serialized to JSON.
    """
    if not isinstance(record, DeltaRecord):
        record = DeltaRecord.model_validate(dict(record))
    try:
        record.to_fields()
    except PydanticSerializationError as e:
        raise ValueError(f"Delta record is not serializable: {e}") from e
    return record


class DeltaLayer:
    """In-memory delta tiers backed by a DeltaStore.

    Every mutation updates memory first, then writes both tiers of the
    planet. Permanent mutations also invalidate cached values: the whole
    planet when a height override is involved, otherwise the one tile.

    Args:
        store: Durable storage for the tiers.
        caches: Cache tables to invalidate on permanent changes.
    """

    def __init__(self, store: DeltaStore, caches: CacheManager):
        self.store = store
        self.caches = caches
        self._tiers: dict[DeltaTier, dict[str, dict[Coord, DeltaRecord]]] = {
            DeltaTier.PERMANENT: {},
            DeltaTier.TEMPORARY: {},
        }

    def _table(self, tier: DeltaTier, planet_hash: str) -> dict[Coord, DeltaRecord]:
        return self._tiers[tier].setdefault(planet_hash, {})

    # Queries

    def get_permanent(self, planet: Planet, x: int, y: int) -> DeltaRecord | None:
        """Permanent record for a tile, or None."""
        return self._get(DeltaTier.PERMANENT, planet, x, y)

    def get_temporary(self, planet: Planet, x: int, y: int) -> DeltaRecord | None:
        """Temporary record for a tile, or None."""
        return self._get(DeltaTier.TEMPORARY, planet, x, y)

    def _get(self, tier: DeltaTier, planet: Planet, x: int, y: int) -> DeltaRecord | None:
        table = self._tiers[tier].get(planet.planet_hash)
        if not table:
            return None
        return table.get(planet.wrap(x, y))

    def permanent_items(self, planet: Planet) -> dict[Coord, DeltaRecord]:
        """Copy of all permanent records of a planet."""
        return dict(self._tiers[DeltaTier.PERMANENT].get(planet.planet_hash, {}))

    def temporary_items(self, planet: Planet) -> dict[Coord, DeltaRecord]:
        """Copy of all temporary records of a planet."""
        return dict(self._tiers[DeltaTier.TEMPORARY].get(planet.planet_hash, {}))

    # Mutations

    def set_permanent(self, planet: Planet, x: int, y: int, record: DeltaInput) -> bool:
        """Set (replace) the permanent record of a tile.

        Returns:
            True if both tiers were persisted.
        """
        record = as_record(record)
        coord = planet.wrap(x, y)
        table = self._table(DeltaTier.PERMANENT, planet.planet_hash)
        previous = table.get(coord)
        table[coord] = record
        self._invalidate(planet, coord, previous, record)
        return self.save(planet)

    def remove_permanent(self, planet: Planet, x: int, y: int) -> bool:
        """Delete the permanent record of a tile, if any.

        Returns:
            True if both tiers were persisted.
        """
        coord = planet.wrap(x, y)
        previous = self._table(DeltaTier.PERMANENT, planet.planet_hash).pop(coord, None)
        if previous is not None:
            self._invalidate(planet, coord, previous, None)
        return self.save(planet)

    def set_temporary(self, planet: Planet, x: int, y: int, record: DeltaInput) -> bool:
        """Set (replace) the temporary record of a tile."""
        record = as_record(record)
        self._table(DeltaTier.TEMPORARY, planet.planet_hash)[planet.wrap(x, y)] = record
        return self.save(planet)

    def remove_temporary(self, planet: Planet, x: int, y: int) -> bool:
        """Delete the temporary record of a tile, if any."""
        self._table(DeltaTier.TEMPORARY, planet.planet_hash).pop(planet.wrap(x, y), None)
        return self.save(planet)

    def _invalidate(
        self,
        planet: Planet,
        coord: Coord,
        previous: DeltaRecord | None,
        current: DeltaRecord | None,
    ) -> None:
        ph = planet.planet_hash
        if any(r is not None and r.height is not None for r in (previous, current)):
            removed = self.caches.purge(ph)
            logger.info(
                "planet_caches_purged",
                planet=planet.name,
                reason="height_override",
                x=coord[0],
                y=coord[1],
                entries=removed,
            )
        else:
            self.caches.invalidate(ph, *coord)

    # Storage

    def save(self, planet: Planet) -> bool:
        """Persist both tiers of a planet.

        Returns:
            True on success. Failures are logged; memory is left as is.
        """
        ph = planet.planet_hash
        try:
            permanent = {
                c: r.to_fields() for c, r in self._table(DeltaTier.PERMANENT, ph).items()
            }
            temporary = {
                c: r.to_fields() for c, r in self._table(DeltaTier.TEMPORARY, ph).items()
            }
            self.store.save_tiers(ph, permanent, temporary)
        except (DeltaPersistenceError, PydanticSerializationError) as e:
            logger.error("delta_save_failed", planet=planet.name, planet_hash=ph, error=str(e))
            return False
        return True

    def load(self, planet: Planet) -> int:
        """Replace both in-memory tiers of a planet with stored content.

        Cached values of the planet are purged, since stored height
        overrides may differ from the ones in memory.

        Returns:
            Number of records loaded across both tiers.
        """
        ph = planet.planet_hash
        count = 0
        for tier in DeltaTier:
            records: dict[Coord, DeltaRecord] = {}
            for (x, y), fields in self.store.load(ph, tier).items():
                coord = planet.wrap(x, y)
                try:
                    records[coord] = DeltaRecord.model_validate(fields)
                except ValidationError as e:
                    logger.warning(
                        "delta_record_invalid",
                        planet=planet.name,
                        tier=tier.value,
                        x=x,
                        y=y,
                        error=str(e),
                    )
            self._tiers[tier][ph] = records
            count += len(records)

        self.caches.purge(ph)
        logger.info("deltas_loaded", planet=planet.name, planet_hash=ph, records=count)
        return count

    def forget(self, planet_hash: str) -> None:
        """Drop a planet's in-memory tiers. Stored files are untouched."""
        for tier in DeltaTier:
            self._tiers[tier].pop(planet_hash, None)
