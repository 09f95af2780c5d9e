"""Tests for the PlanetMap engine, bakes and exports."""

import threading
from pathlib import Path

import numpy as np
import pytest

from planetmap.config import EngineConfig, PlanetConfig
from planetmap.engine import PlanetMap, RoomData
from planetmap.exceptions import InvalidPlanetConfigError, PlanetNotFoundError
from planetmap.registry import planet_hash
from planetmap.types import Biome, FlowEnd, WaterKind


class TestRegistration:
    """Tests for planet registration through the engine."""

    def test_planets_from_config(self, engine: PlanetMap) -> None:
        assert engine.list_planets() == {"small"}
        assert engine.get_planet("small").planet_hash == planet_hash("small", 7)

    def test_add_planet_returns_hash(self, engine: PlanetMap) -> None:
        h = engine.add_planet("other", {"width": 6, "height": 4, "seed": 9})
        assert h == planet_hash("other", 9)
        assert "other" in engine.list_planets()

    def test_add_invalid_planet(self, engine: PlanetMap) -> None:
        with pytest.raises(InvalidPlanetConfigError):
            engine.add_planet("bad", {"height": 4})
        assert "bad" not in engine.list_planets()

    def test_reregister_purges_old_state(self, engine: PlanetMap) -> None:
        engine.get_hydrology("small", 3, 3)
        old_hash = engine.get_planet("small").planet_hash
        assert engine.caches.stats(old_hash)["values"] > 0

        new_hash = engine.add_planet("small", PlanetConfig(width=24, height=12, seed=8))

        assert new_hash != old_hash
        assert engine.caches.stats(old_hash) == {
            "values": 0,
            "flow": 0,
            "accumulation": 0,
            "water": 0,
        }

    def test_reregister_same_config_purges(self, engine: PlanetMap) -> None:
        engine.get_height("small", 1, 1)
        engine.add_planet("small", engine.get_planet("small").config)
        assert engine.cache_stats("small")["values"] == 0

    def test_unknown_planet(self, engine: PlanetMap) -> None:
        with pytest.raises(PlanetNotFoundError):
            engine.get_height("nowhere", 0, 0)
        with pytest.raises(PlanetNotFoundError):
            engine.bake_hydrology("nowhere")
        with pytest.raises(PlanetNotFoundError):
            engine.set_permanent_delta("nowhere", 0, 0, {"biome": "x"})

    def test_resolve_planet_fallback(self, engine: PlanetMap) -> None:
        assert engine.resolve_planet("nowhere").name == "small"
        assert engine.resolve_planet(None).name == "small"
        with pytest.raises(PlanetNotFoundError):
            engine.resolve_planet("nowhere", fallback=False)

    def test_resolve_without_default(self, earthlike_engine: PlanetMap) -> None:
        with pytest.raises(PlanetNotFoundError):
            earthlike_engine.resolve_planet("nowhere")

    def test_engines_are_independent(self, engine_config: EngineConfig) -> None:
        a = PlanetMap(engine_config)
        b = PlanetMap(engine_config)
        a.get_height("small", 0, 0)
        assert b.cache_stats("small")["values"] == 0


class TestQueries:
    """Tests for per-tile queries."""

    def test_height_deterministic(self, earthlike_engine: PlanetMap) -> None:
        first = earthlike_engine.get_height("earthlike", 0, 0)
        second = earthlike_engine.get_height("earthlike", 0, 0)
        assert first == second

    def test_deterministic_across_engines(self, engine: PlanetMap, engine_config: EngineConfig) -> None:
        other = PlanetMap(engine_config)
        for x, y in [(0, 0), (5, 7), (23, 11)]:
            assert engine.get_height("small", x, y) == other.get_height("small", x, y)
            assert engine.get_temperature("small", x, y) == other.get_temperature("small", x, y)
            assert engine.get_moisture("small", x, y) == other.get_moisture("small", x, y)
            assert engine.get_biome("small", x, y) == other.get_biome("small", x, y)

    def test_wrapped_queries(self, engine: PlanetMap) -> None:
        assert engine.get_biome("small", -1, -1) == engine.get_biome("small", 23, 11)
        assert engine.get_slope("small", 48, 0) == engine.get_slope("small", 0, 0)

    def test_biome_is_known_label(self, engine: PlanetMap) -> None:
        labels = {b.value for b in Biome}
        for y in range(12):
            for x in range(24):
                assert engine.get_biome("small", x, y) in labels

    def test_room_data(self, engine: PlanetMap) -> None:
        engine.set_temporary_delta("small", 2, 3, {"occupant": "orc"})
        data = engine.get_room_data("small", 26, 15)
        assert isinstance(data, RoomData)
        assert (data.x, data.y) == (2, 3)
        assert data.height == engine.get_height("small", 2, 3)
        assert data.biome == engine.get_biome("small", 2, 3)
        assert data.hydrology == engine.get_hydrology("small", 2, 3)
        assert data.climate_zone == engine.get_climate_zone("small", 2, 3)
        assert data.permanent is None
        assert data.temporary.to_fields() == {"occupant": "orc"}

    def test_describe_tile(self, engine: PlanetMap) -> None:
        engine.set_permanent_delta("small", 1, 1, {"biome": "ruins"})
        text = engine.describe_tile("small", 1, 1)
        assert text.startswith("Tile small:1,1\n")
        assert " Biome: ruins\n" in text
        assert " Permanent delta: {'biome': 'ruins'}\n" in text
        assert " Hydrology: water=" in text


class TestBake:
    """Tests for full-planet bakes."""

    def test_earthlike_bake_count(self, earthlike_engine: PlanetMap) -> None:
        assert earthlike_engine.bake_hydrology("earthlike") == 20000

    def test_bake_fills_caches(self, engine: PlanetMap) -> None:
        engine.bake_hydrology("small")
        stats = engine.cache_stats("small")
        assert stats["accumulation"] == 24 * 12
        assert stats["water"] == 24 * 12

    def test_bake_idempotent(self, engine: PlanetMap) -> None:
        planet = engine.get_planet("small")
        engine.bake_hydrology("small")
        first_mask = engine.render_water_mask("small")
        first_acc = dict(engine.caches.accumulation.items(planet.planet_hash))

        engine.bake_hydrology("small")
        assert engine.render_water_mask("small") == first_mask
        assert dict(engine.caches.accumulation.items(planet.planet_hash)) == first_acc

    def test_bake_matches_lazy_queries(self, engine: PlanetMap, engine_config: EngineConfig) -> None:
        """Baked (primed) results equal on-demand results."""
        engine.bake_hydrology("small", climate=True)
        lazy = PlanetMap(engine_config)
        for y in range(12):
            for x in range(24):
                assert engine.get_hydrology("small", x, y) == lazy.get_hydrology("small", x, y)
                assert engine.get_moisture("small", x, y) == lazy.get_moisture("small", x, y)

    def test_conservation_after_bake(self, engine: PlanetMap) -> None:
        engine.bake_hydrology("small")
        planet = engine.get_planet("small")
        hyd = engine.hydrology
        for y in range(planet.height):
            for x in range(planet.width):
                assert hyd.accumulation(planet, x, y) == 1 + sum(
                    hyd.accumulation(planet, *n) for n in hyd.upstream(planet, x, y)
                )

    def test_river_implies_drainage(self, earthlike_engine: PlanetMap) -> None:
        earthlike_engine.bake_hydrology("earthlike")
        planet = earthlike_engine.get_planet("earthlike")
        threshold = earthlike_engine.config.hydrology.river_threshold
        for y in range(planet.height):
            for x in range(planet.width):
                info = earthlike_engine.get_hydrology("earthlike", x, y)
                if info.water is WaterKind.RIVER:
                    assert info.flow_end is FlowEnd.SEA
                    assert info.accumulation >= threshold

    def test_sea_level_boundary(self, engine: PlanetMap) -> None:
        """Tiles at exactly sea level are ocean."""
        planet = engine.get_planet("small")
        engine.set_permanent_delta("small", 8, 8, {"height": planet.config.sea_level})
        assert engine.get_hydrology("small", 8, 8).water is WaterKind.OCEAN
        assert engine.get_biome("small", 8, 8) == Biome.COASTAL_WATER.value

    def test_cancel_returns_partial_count(self, engine: PlanetMap) -> None:
        cancel = threading.Event()
        cancel.set()
        assert engine.bake_hydrology("small", cancel=cancel) == 0

    def test_cancel_midway(self, engine: PlanetMap) -> None:
        cancel = threading.Event()
        planet = engine.get_planet("small")
        original = engine.hydrology.water
        calls = []

        def water_then_cancel(p, x, y):
            calls.append((x, y))
            if len(calls) == 30:
                cancel.set()
            return original(p, x, y)

        engine.hydrology.water = water_then_cancel
        assert engine.bake_hydrology("small", cancel=cancel) == 30
        assert planet.tile_count > 30


class TestExport:
    """Tests for ASCII water-mask export."""

    def test_render_format(self, engine: PlanetMap) -> None:
        text = engine.render_water_mask("small")
        lines = text.split("\n")
        assert lines[-1] == ""
        rows = lines[:-1]
        assert len(rows) == 12
        assert all(len(row) == 24 for row in rows)
        assert set(text) <= {"~", "r", "l", ".", "\n"}

    def test_render_matches_hydrology(self, engine: PlanetMap) -> None:
        symbols = {None: ".", WaterKind.OCEAN: "~", WaterKind.RIVER: "r", WaterKind.LAKE: "l"}
        rows = engine.render_water_mask("small").splitlines()
        for y in (0, 5, 11):
            for x in (0, 9, 23):
                assert rows[y][x] == symbols[engine.get_hydrology("small", x, y).water]

    def test_grid(self, engine: PlanetMap) -> None:
        grid = engine.baker.water_mask_grid(engine.get_planet("small"))
        assert grid.shape == (12, 24)
        assert grid.dtype == np.uint8

    def test_export_to_path(self, engine: PlanetMap, tmp_path: Path) -> None:
        out = tmp_path / "mask.txt"
        assert engine.export_water_mask("small", out) == out
        assert out.read_text() == engine.render_water_mask("small")

    def test_export_default_path(self, engine: PlanetMap, engine_config: EngineConfig) -> None:
        path = engine.export_water_mask("small")
        assert path == Path(engine_config.export_dir) / "small_water.txt"
        assert path.exists()

    def test_export_stays_in_export_dir(self, engine: PlanetMap, engine_config: EngineConfig) -> None:
        with pytest.raises(InvalidPlanetConfigError):
            engine.add_planet("../outside", {"width": 4, "height": 4})
        path = engine.export_water_mask("small")
        assert path.parent == Path(engine_config.export_dir)

    def test_export_failure_returns_none(self, engine: PlanetMap, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        assert engine.export_water_mask("small", blocker / "mask.txt") is None

    def test_bake_with_export(self, engine: PlanetMap, engine_config: EngineConfig) -> None:
        assert engine.bake_hydrology("small", export_to_file=True) == 24 * 12
        assert (Path(engine_config.export_dir) / "small_water.txt").exists()

    def test_bake_export_failure_keeps_count(self, engine: PlanetMap, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        engine.baker.export_dir = blocker
        assert engine.bake_hydrology("small", export_to_file=True) == 24 * 12

    def test_bake_and_save(self, engine: PlanetMap, engine_config: EngineConfig) -> None:
        assert engine.bake_and_save("small") == 24 * 12
        ph = engine.get_planet("small").planet_hash
        assert (Path(engine_config.save_dir) / f"perma_{ph}.json").exists()
        assert (Path(engine_config.export_dir) / "small_water.txt").exists()

    def test_clear_caches(self, engine: PlanetMap) -> None:
        engine.bake_hydrology("small")
        assert engine.clear_caches("small") > 0
        assert engine.cache_stats("small")["water"] == 0
        engine.get_height("small", 0, 0)
        engine.clear_caches()
        assert engine.cache_stats("small")["values"] == 0


class TestConcurrency:
    """Tests for per-planet serialization of queries and mutations."""

    def test_height_edit_racing_a_query_wins(self, engine: PlanetMap) -> None:
        """An edit issued while a query computes the same tile is not lost."""
        lookup = engine.terrain._height_override
        writers: list[threading.Thread] = []

        def lookup_then_edit(planet, x, y):
            override = lookup(planet, x, y)
            if (x, y) == (5, 5) and not writers:
                writer = threading.Thread(
                    target=engine.set_permanent_delta,
                    args=("small", 5, 5, {"height": 0.99}),
                )
                writers.append(writer)
                writer.start()
                # The edit waits on the planet lock held by this query
                writer.join(timeout=0.2)
            return override

        engine.terrain._height_override = lookup_then_edit
        engine.get_height("small", 5, 5)
        writers[0].join()

        assert engine.get_height("small", 5, 5) == 0.99
        assert engine.query_permanent_delta("small", 5, 5).height == 0.99

    def test_other_planets_not_blocked(self, engine: PlanetMap) -> None:
        engine.add_planet("other", {"width": 6, "height": 4, "seed": 9})
        done = threading.Event()

        with engine._lock(engine.get_planet("small").planet_hash):
            worker = threading.Thread(
                target=lambda: (engine.get_height("other", 1, 1), done.set())
            )
            worker.start()
            assert done.wait(timeout=5)
        worker.join()
