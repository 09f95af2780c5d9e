"""Durable storage: per-planet delta tiers as JSON, ASCII exports as text."""

import json
import os
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog

from .exceptions import DeltaPersistenceError
from .types import Coord, DeltaTier

logger = structlog.get_logger()

FORMAT_VERSION = 1


def format_coord(coord: Coord) -> str:
    """Render a coordinate as a persisted delta key, e.g. ``"12,7"``."""
    return f"{coord[0]},{coord[1]}"


def parse_coord(key: str) -> Coord:
    """Parse a persisted delta key back into a coordinate.

    Raises:
        ValueError: If the key is not two comma-separated integers.
    """
    x, y = key.split(",")
    return int(x), int(y)


def write_text_atomic(path: Path, text: str) -> Path:
    """Write a text file via a temporary sibling and an atomic replace.

    Raises:
        OSError: If the directory cannot be created or the file written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return path


class DeltaStore:
    """Delta tiers stored as ``<save_dir>/<tier>_<planet_hash>.json``.

    Each file holds::

        {"version": 1, "planet_hash": "...", "tier": "perma",
         "deltas": {"x,y": {...record fields...}}}

    The store holds no open handles; every call opens, reads or writes,
    and closes.
    """

    def __init__(self, save_dir: Path | str):
        self.save_dir = Path(save_dir)

    def path(self, planet_hash: str, tier: DeltaTier) -> Path:
        """File path for one tier of a planet."""
        return self.save_dir / f"{tier.value}_{planet_hash}.json"

    def load(self, planet_hash: str, tier: DeltaTier) -> dict[Coord, dict[str, Any]]:
        """Load one tier of a planet's deltas.

        Missing files load as empty. Unreadable or malformed files are
        logged and also load as empty; malformed entries are skipped.

        Returns:
            Mapping of coordinate to raw record fields.
        """
        path = self.path(planet_hash, tier)
        if not path.exists():
            return {}

        try:
            with open(path, encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("delta_file_unreadable", path=str(path), error=str(e))
            return {}

        raw = payload.get("deltas") if isinstance(payload, dict) else None
        if not isinstance(raw, dict):
            logger.warning("delta_file_malformed", path=str(path))
            return {}

        deltas: dict[Coord, dict[str, Any]] = {}
        for key, fields in raw.items():
            try:
                coord = parse_coord(key)
            except ValueError:
                logger.warning("delta_key_malformed", path=str(path), key=key)
                continue
            if not isinstance(fields, dict):
                logger.warning("delta_record_malformed", path=str(path), key=key)
                continue
            deltas[coord] = fields

        logger.debug(
            "delta_tier_loaded",
            planet_hash=planet_hash,
            tier=tier.value,
            count=len(deltas),
        )
        return deltas

    def save(
        self,
        planet_hash: str,
        tier: DeltaTier,
        deltas: Mapping[Coord, Mapping[str, Any]],
    ) -> Path:
        """Write one tier of a planet's deltas atomically.

        Raises:
            DeltaPersistenceError: If the file cannot be written.
        """
        payload = {
            "version": FORMAT_VERSION,
            "planet_hash": planet_hash,
            "tier": tier.value,
            "deltas": {
                format_coord(coord): dict(fields)
                for coord, fields in sorted(deltas.items())
            },
        }
        path = self.path(planet_hash, tier)
        try:
            return write_text_atomic(path, json.dumps(payload, indent=2, sort_keys=True))
        except (OSError, TypeError, ValueError) as e:
            raise DeltaPersistenceError(f"Failed to save deltas to {path}: {e}") from e

    def save_tiers(
        self,
        planet_hash: str,
        permanent: Mapping[Coord, Mapping[str, Any]],
        temporary: Mapping[Coord, Mapping[str, Any]],
    ) -> None:
        """Write both tiers of a planet.

        Raises:
            DeltaPersistenceError: If either file cannot be written.
        """
        self.save(planet_hash, DeltaTier.PERMANENT, permanent)
        self.save(planet_hash, DeltaTier.TEMPORARY, temporary)
