"""
CLI entry point.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from ..core.errors import RushGenError
from ..core.pipeline import GeneratePipeline
from ..infra.config import load_configuration
from .presenter import ConsolePresenter

logger = logging.getLogger(__name__)

GENERATE_DESCRIPTION = (
    "Run this command after changing any project's package.json. It scans the "
    "dependencies for all projects referenced in rush.json, and then constructs "
    "a superset package.json in the common folder. After running this command, "
    "you will need to commit your changes to git."
)


def cmd_generate(args) -> int:
    """Regenerate common/package.json, temp_modules and the shrinkwrap file."""
    presenter = ConsolePresenter(verbose=args.verbose)
    pipeline = GeneratePipeline(
        lambda: load_configuration(args.config),
        reporter=presenter,
    )
    try:
        pipeline.run(lazy=args.lazy)
    except RushGenError:
        # Already rendered by the presenter
        logger.debug("generate failed", exc_info=True)
        return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rushgen",
        description="Generate the shared install workspace of a monorepo",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", type=str, help="Path to rush.json / rush.yaml (default: search upwards)")
    parser.add_argument("--log-level", type=str, default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Log level")

    subparsers = parser.add_subparsers(dest="command")

    parser_generate = subparsers.add_parser(
        "generate",
        help="Run this command after changing any project's package.json.",
        description=GENERATE_DESCRIPTION,
    )
    parser_generate.add_argument(
        "-l", "--lazy", action="store_true",
        help='Do not clean the "node_modules" folder before running "npm install". '
             "This is faster, but less correct, so only use it for debugging.",
    )
    parser_generate.add_argument("-v", "--verbose", action="store_true", help="Print per-stage timings")
    parser_generate.set_defaults(func=cmd_generate)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    if not getattr(args, "func", None):
        parser.print_help()
        return 2

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
