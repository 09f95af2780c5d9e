"""Command-line admin tool for planet maps."""

import argparse
import sys
from pathlib import Path

import structlog

from .config import EngineConfig, find_config, load_config
from .engine import PlanetMap
from .exceptions import PlanetMapError

DEFAULT_CONFIG = "planets"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="planetmap",
        description="Inspect, bake and edit procedural planet maps",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help=f"Path or name of engine TOML config (default: {DEFAULT_CONFIG})",
    )
    parser.add_argument(
        "--save-dir",
        type=str,
        default=None,
        help="Delta save directory (overrides config)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Verbose logging"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List configured planets")

    show = sub.add_parser("show", help="Describe one tile")
    show.add_argument("planet")
    show.add_argument("x", type=int)
    show.add_argument("y", type=int)

    bake = sub.add_parser("bake", help="Precompute hydrology for a planet")
    bake.add_argument("planet")
    bake.add_argument(
        "--export", action="store_true", help="Also write the ASCII water mask"
    )
    bake.add_argument(
        "--climate", action="store_true", help="Also prime climate fields"
    )

    export = sub.add_parser("export", help="Write the ASCII water mask")
    export.add_argument("planet")
    export.add_argument(
        "--output", "-o", type=str, default=None, help="Output file path"
    )

    set_biome = sub.add_parser("set-biome", help="Set a permanent biome override")
    set_biome.add_argument("planet")
    set_biome.add_argument("x", type=int)
    set_biome.add_argument("y", type=int)
    set_biome.add_argument("biome")

    clear = sub.add_parser("clear-delta", help="Remove a tile's permanent delta")
    clear.add_argument("planet")
    clear.add_argument("x", type=int)
    clear.add_argument("y", type=int)

    return parser


def configure_logging(verbose: bool) -> None:
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(10 if verbose else 20),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def load_engine(config_name: str | None, save_dir: str | None) -> PlanetMap:
    """Build an engine from a named or explicit config.

    Without --config the bundled default is used when present, otherwise
    an empty engine.
    """
    logger = structlog.get_logger()

    if config_name:
        config_path = find_config(config_name)
    else:
        try:
            config_path = find_config(DEFAULT_CONFIG)
        except FileNotFoundError:
            logger.info("using_default_config")
            return PlanetMap(EngineConfig(), save_dir=save_dir)

    config = load_config(config_path)
    logger.debug("config_loaded", path=str(config_path))
    return PlanetMap(config, save_dir=save_dir)


def run(args: argparse.Namespace) -> int:
    """Execute a parsed command. Returns the process exit code."""
    engine = load_engine(args.config, args.save_dir)

    if args.command == "list":
        for name in sorted(engine.list_planets()):
            planet = engine.get_planet(name)
            print(
                f"{name}  {planet.width}x{planet.height}  "
                f"seed={planet.config.seed}  hash={planet.planet_hash}"
            )
        return 0

    if args.command == "show":
        print(engine.describe_tile(args.planet, args.x, args.y), end="")
        return 0

    if args.command == "bake":
        count = engine.bake_hydrology(
            args.planet, export_to_file=args.export, climate=args.climate
        )
        print(f"Baked {count} tiles of {args.planet}")
        return 0

    if args.command == "export":
        path = engine.export_water_mask(
            args.planet, Path(args.output) if args.output else None
        )
        if path is None:
            print(f"Export failed for {args.planet}", file=sys.stderr)
            return 1
        print(f"Wrote {path}")
        return 0

    if args.command == "set-biome":
        saved = engine.set_permanent_delta(
            args.planet, args.x, args.y, {"biome": args.biome}
        )
        print(f"Biome of {args.planet}:{args.x},{args.y} set to {args.biome}")
        return 0 if saved else 1

    if args.command == "clear-delta":
        saved = engine.remove_permanent_delta(args.planet, args.x, args.y)
        print(f"Cleared permanent delta at {args.planet}:{args.x},{args.y}")
        return 0 if saved else 1

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    logger = structlog.get_logger()

    try:
        code = run(args)
    except FileNotFoundError as e:
        logger.error("config_not_found", error=str(e))
        raise SystemExit(1)
    except PlanetMapError as e:
        logger.error("command_failed", command=args.command, error=str(e))
        raise SystemExit(1)

    if code:
        raise SystemExit(code)


if __name__ == "__main__":
    main()
