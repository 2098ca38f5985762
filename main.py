# main.py
"""CLI entry point for the Arcloom generation layer."""

from __future__ import annotations

import argparse
import sys

from config import BACKENDS_FILE_PATH
from orchestration.cli_runner import run


def _add_setup_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--genre", default="random")
    parser.add_argument("--era", default="random")
    parser.add_argument("--gender", default="random")
    parser.add_argument("--romance", default="random")
    parser.add_argument("--output", default=None, help="Write the world JSON here")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="arcloom")
    parser.add_argument(
        "--backends-file",
        default=BACKENDS_FILE_PATH,
        help="JSON file holding backend configurations",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("backends", help="List stored backend configurations")

    models = commands.add_parser("models", help="List models a backend can use")
    models.add_argument("backend_id")

    world = commands.add_parser("world", help="Generate a new world")
    world.add_argument("backend_id", help="Backend or pool id")
    _add_setup_options(world)

    complete = commands.add_parser("complete", help="Fill the gaps of a partial world")
    complete.add_argument("file", help="Partial world JSON")
    complete.add_argument("backend_id", help="Backend or pool id")
    _add_setup_options(complete)

    turn = commands.add_parser("turn", help="Stream one narrative turn")
    turn.add_argument("backend_id", help="Backend or pool id")
    turn.add_argument("state", help="Saved game state JSON")
    turn.add_argument("--input", required=True, help="What the player does")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse command-line arguments and run Arcloom."""
    args = build_parser().parse_args(argv)
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
