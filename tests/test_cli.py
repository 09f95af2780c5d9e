"""Tests for the command-line interface."""

from pathlib import Path

import pytest

from planetmap.cli import build_parser, main


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    path = tmp_path / "cli.toml"
    path.write_text(
        f"""
[engine]
save_dir = "{(tmp_path / 'saves').as_posix()}"
export_dir = "{(tmp_path / 'exports').as_posix()}"

[planets.tiny]
seed = 3
width = 12
height = 6
noise_scale = 0.1
moisture_influence_radius = 3
"""
    )
    return path


def run_cli(config_path: Path, *args: str) -> None:
    main(["--config", str(config_path), *args])


class TestParser:
    """Tests for argument parsing."""

    def test_bake_flags(self) -> None:
        args = build_parser().parse_args(["bake", "tiny", "--export", "--climate"])
        assert args.command == "bake"
        assert args.export and args.climate

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestCommands:
    """Tests for CLI commands."""

    def test_list(self, config_path: Path, capsys) -> None:
        run_cli(config_path, "list")
        out = capsys.readouterr().out
        assert out.startswith("tiny  12x6  seed=3")

    def test_show(self, config_path: Path, capsys) -> None:
        run_cli(config_path, "show", "tiny", "2", "3")
        assert "Tile tiny:2,3" in capsys.readouterr().out

    def test_bake(self, config_path: Path, capsys) -> None:
        run_cli(config_path, "bake", "tiny")
        assert "Baked 72 tiles of tiny" in capsys.readouterr().out

    def test_export(self, config_path: Path, tmp_path: Path) -> None:
        out = tmp_path / "mask.txt"
        run_cli(config_path, "export", "tiny", "--output", str(out))
        assert len(out.read_text().splitlines()) == 6

    def test_set_biome_persists(self, config_path: Path, capsys) -> None:
        run_cli(config_path, "set-biome", "tiny", "1", "1", "ruins")
        capsys.readouterr()
        run_cli(config_path, "show", "tiny", "1", "1")
        assert " Biome: ruins" in capsys.readouterr().out

        run_cli(config_path, "clear-delta", "tiny", "1", "1")
        capsys.readouterr()
        run_cli(config_path, "show", "tiny", "1", "1")
        assert " Biome: ruins" not in capsys.readouterr().out

    def test_unknown_planet_exits(self, config_path: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            run_cli(config_path, "show", "nowhere", "0", "0")
        assert exc_info.value.code == 1

    def test_missing_config_exits(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(tmp_path / "absent.toml"), "list"])
        assert exc_info.value.code == 1
