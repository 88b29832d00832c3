from __future__ import annotations

import argparse
from typing import NoReturn, Sequence

DEFAULT_CONFIG = "procforge.yml"


class UsageError(Exception):
    def __init__(self, message: str, usage: str = "") -> None:
        super().__init__(message)
        self.usage = usage


class FlagParser(argparse.ArgumentParser):
    """ArgumentParser that reports bad flags as ``UsageError`` instead of exiting 2.

    ``-h`` is an ordinary boolean so it can be clustered (``-fh``).
    """

    def __init__(self, *args, **kwargs) -> None:
        kwargs.setdefault("add_help", False)
        kwargs.setdefault("allow_abbrev", False)
        super().__init__(*args, **kwargs)
        self.commands: dict[str, FlagParser] = {}

    def error(self, message: str) -> NoReturn:
        raise UsageError(message, self.format_usage())


def _add_help(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-h",
        "--help",
        action="store_true",
        help="Show this help message and exit",
    )


def build_parser() -> FlagParser:
    parser = FlagParser(prog="procforge")

    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG,
        help="Path to config file",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log what the orchestrator is doing to stderr",
    )
    _add_help(parser)

    subparsers = parser.add_subparsers(dest="command")

    # check
    check = subparsers.add_parser("check", help="Run all checks in parallel")
    check.add_argument(
        "-f",
        "--fix",
        action="store_true",
        help="Run the fix steps first, then verify",
    )
    _add_help(check)
    check.add_argument(
        "names",
        nargs="*",
        help="Check names (default: all)",
    )
    parser.commands["check"] = check

    # dev
    dev = subparsers.add_parser("dev", help="Run services together until one exits")
    dev.add_argument(
        "-w",
        "--wait-all",
        action="store_true",
        help="Wait for every service instead of stopping at the first exit",
    )
    _add_help(dev)
    dev.add_argument(
        "names",
        nargs="*",
        help="Service names (default: all); arguments after -- go to the interactive service",
    )
    parser.commands["dev"] = dev

    # list
    listing = subparsers.add_parser("list", help="List checks, steps and services")
    _add_help(listing)
    parser.commands["list"] = listing

    return parser


def parse_flags(
    argv: Sequence[str], parser: FlagParser | None = None
) -> argparse.Namespace:
    """Parse ``argv``; everything after the first bare ``--`` is kept verbatim."""
    parser = parser or build_parser()
    argv = list(argv)

    if "--" in argv:
        split = argv.index("--")
        head, passthrough = argv[:split], argv[split + 1 :]
    else:
        head, passthrough = argv, []

    args = parser.parse_args(head)
    args.passthrough = passthrough
    return args
