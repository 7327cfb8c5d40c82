"""retry_guard.cli

CLI entrypoint for retry-guard.

Usage:
    retry-guard demo                     Run the scripted retry-loop demo
    retry-guard demo --json-out F        Save the demo report to file
    retry-guard version                  Print version and build info
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional


def cmd_demo(args: argparse.Namespace) -> None:
    """Run the scripted retry-loop demo."""
    from .demo import run_demo
    run_demo(json_out=getattr(args, "json_out", None))


def cmd_version(args: argparse.Namespace) -> None:
    """Print version and build info."""
    from .version import format_version_info, get_version, load_build_info
    print(format_version_info(get_version(), load_build_info()))


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        prog="retry-guard",
        description="retry-guard: blocks immediate identical retries of failed agent tool calls.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log guard events to stderr")
    subparsers = parser.add_subparsers(dest="command")

    # demo
    demo_parser = subparsers.add_parser(
        "demo",
        help="Run the scripted retry-loop demo",
    )
    demo_parser.add_argument("--json-out", type=str, help="Save JSON report to this path")
    demo_parser.set_defaults(func=cmd_demo)

    # version
    version_parser = subparsers.add_parser("version", help="Print version and build info")
    version_parser.set_defaults(func=cmd_version)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    args.func(args)


if __name__ == "__main__":
    main()
