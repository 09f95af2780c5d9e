"""Per-planet memoization tables for derived tile values."""

from collections.abc import Iterator
from typing import Generic, NamedTuple, TypeVar

from .types import ValueKind

V = TypeVar("V")


class CacheKey(NamedTuple):
    """Structured cache key: (planet_hash, kind, x, y)."""

    planet_hash: str
    kind: ValueKind
    x: int
    y: int


class MemoTable(Generic[V]):
    """Memo table partitioned by planet hash.

    Partitioning makes purging a single planet O(1) regardless of how many
    other planets are cached.
    """

    def __init__(self, name: str):
        self.name = name
        self._partitions: dict[str, dict[tuple[ValueKind, int, int], V]] = {}

    def get(self, key: CacheKey) -> V | None:
        """Return the cached value, or None if absent."""
        partition = self._partitions.get(key.planet_hash)
        if partition is None:
            return None
        return partition.get((key.kind, key.x, key.y))

    def set(self, key: CacheKey, value: V) -> None:
        """Store a value."""
        partition = self._partitions.setdefault(key.planet_hash, {})
        partition[(key.kind, key.x, key.y)] = value

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, CacheKey):
            return False
        partition = self._partitions.get(key.planet_hash)
        return partition is not None and (key.kind, key.x, key.y) in partition

    def discard(self, key: CacheKey) -> None:
        """Remove a value if present."""
        partition = self._partitions.get(key.planet_hash)
        if partition is not None:
            partition.pop((key.kind, key.x, key.y), None)

    def discard_tile(self, planet_hash: str, x: int, y: int) -> int:
        """Remove every kind of value cached for one tile.

        Returns:
            Number of entries removed.
        """
        partition = self._partitions.get(planet_hash)
        if not partition:
            return 0
        doomed = [k for k in partition if k[1] == x and k[2] == y]
        for k in doomed:
            del partition[k]
        return len(doomed)

    def purge(self, planet_hash: str) -> int:
        """Remove all values for a planet.

        Returns:
            Number of entries removed.
        """
        partition = self._partitions.pop(planet_hash, None)
        return len(partition) if partition else 0

    def clear(self) -> None:
        """Remove all values for all planets."""
        self._partitions.clear()

    def count(self, planet_hash: str, kind: ValueKind | None = None) -> int:
        """Number of entries cached for a planet (optionally of one kind)."""
        partition = self._partitions.get(planet_hash)
        if not partition:
            return 0
        if kind is None:
            return len(partition)
        return sum(1 for k in partition if k[0] == kind)

    def items(self, planet_hash: str) -> Iterator[tuple[CacheKey, V]]:
        """Iterate cached entries for a planet."""
        partition = self._partitions.get(planet_hash, {})
        for (kind, x, y), value in list(partition.items()):
            yield CacheKey(planet_hash, kind, x, y), value

    def __len__(self) -> int:
        return sum(len(p) for p in self._partitions.values())


class CacheManager:
    """The four memo tables shared by the terrain and hydrology layers.

    - values: height, temperature, moisture, slope, distance-to-sea
    - flow: flow targets and flow ends
    - accumulation: upstream accumulation counts
    - water: water-mask classification
    """

    def __init__(self) -> None:
        self.values: MemoTable[float | int] = MemoTable("values")
        self.flow: MemoTable[object] = MemoTable("flow")
        self.accumulation: MemoTable[int] = MemoTable("accumulation")
        self.water: MemoTable[object] = MemoTable("water")

    @property
    def tables(self) -> tuple[MemoTable, ...]:
        return (self.values, self.flow, self.accumulation, self.water)

    def purge(self, planet_hash: str) -> int:
        """Remove every cached entry for a planet from all tables."""
        return sum(table.purge(planet_hash) for table in self.tables)

    def invalidate(self, planet_hash: str, x: int, y: int) -> int:
        """Remove every cached entry for one tile from all tables."""
        return sum(table.discard_tile(planet_hash, x, y) for table in self.tables)

    def clear(self) -> None:
        """Remove every cached entry for every planet."""
        for table in self.tables:
            table.clear()

    def stats(self, planet_hash: str) -> dict[str, int]:
        """Entry counts per table for a planet."""
        return {table.name: table.count(planet_hash) for table in self.tables}
