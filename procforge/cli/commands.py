from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Sequence

from procforge.config import ConfigError, ServiceConfig, load_project
from procforge.executor import Task, available_tasks, run_batch, run_step
from procforge.supervisor import EXIT_INTERRUPTED, GroupClosedError, ProcessGroup

from .args import FlagParser, UsageError, build_parser, parse_flags
from .output import print_outcome, print_result

logger = logging.getLogger(__name__)


def main() -> None:
    sys.exit(run_cli())


def run_cli(argv: list[str] | None = None) -> int:
    parser = build_parser()
    try:
        args = parse_flags(sys.argv[1:] if argv is None else argv, parser)
        _configure_logging(args.verbose)

        if args.help:
            _print_help(parser, args.command)
            return 0

        match args.command:
            case "check":
                return cmd_check(args)
            case "dev":
                return cmd_dev(args)
            case "list":
                return cmd_list(args)
            case None:
                raise UsageError("a command is required", parser.format_usage())
            case _:
                raise UsageError(f"unknown command {args.command!r}", parser.format_usage())

    except UsageError as exc:
        print(f"{exc.usage}procforge: error: {exc}", file=sys.stderr)
        return 1

    except ConfigError as exc:
        print(f"procforge: config error: {exc}", file=sys.stderr)
        return 1

    except KeyError as exc:
        print(f"procforge: error: unknown name {exc}", file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        return EXIT_INTERRUPTED


def cmd_check(args: argparse.Namespace) -> int:
    if args.passthrough:
        raise UsageError("check takes no arguments after '--'")

    project = load_project(args.config)
    checks = project.select_checks(args.names)
    fixes = list(project.fix.values()) if args.fix else []
    prepare = list(project.prepare.values())

    usable = set(available_tasks([*fixes, *prepare, *checks]))
    logger.debug(
        "%d fix step(s), %d prepare step(s), %d check(s) runnable",
        len([t for t in fixes if t in usable]),
        len([t for t in prepare if t in usable]),
        len([t for t in checks if t in usable]),
    )

    # Sequential steps: any failure aborts the whole run
    for step in [*fixes, *prepare]:
        if step in usable and not _run_sequential_step(step):
            return 1

    batch = asyncio.run(run_batch([c for c in checks if c in usable], print_result))
    return 0 if batch.ok else 1


def cmd_dev(args: argparse.Namespace) -> int:
    project = load_project(args.config)
    services = available_tasks(project.select_services(args.names))
    if not services:
        print("No services to run", file=sys.stderr)
        return 1

    return asyncio.run(_run_services(services, args.passthrough, wait_all=args.wait_all))


def cmd_list(args: argparse.Namespace) -> int:
    project = load_project(args.config)
    for kind, tasks in (("fix", project.fix), ("prepare", project.prepare), ("check", project.checks)):
        for name, task in tasks.items():
            print(f"{kind} {name} [{task.subsystem}]")
    for name in project.services:
        print(f"service {name}")
    return 0


async def _run_services(
    services: Sequence[ServiceConfig], passthrough: list[str], *, wait_all: bool
) -> int:
    group = ProcessGroup()
    # Extra arguments go to the service that reads our stdin, else the last one
    target = next((s for s in services if s.stdin), services[-1])

    for service in services:
        argv = [*service.argv, *passthrough] if service is target else list(service.argv)
        print(f"→ Starting {service.name}...", flush=True)
        try:
            await group.spawn(
                argv,
                name=service.name,
                cwd=service.cwd,
                env=service.env,
                inherit_stdin=service.stdin,
            )
        except GroupClosedError:
            await group.kill_all()
            return EXIT_INTERRUPTED
        except OSError as exc:
            print(f"could not start {service.name}: {exc}", file=sys.stderr)
            await group.kill_all()
            return 1

    if wait_all:
        return await group.wait_for_all()
    return await group.wait_for_first()


def _run_sequential_step(task: Task) -> bool:
    output, elapsed = run_step(task)
    print_outcome(task, output.exit_code, elapsed, output.stdout, output.stderr)
    return output.ok


def _print_help(parser: FlagParser, command: str | None) -> None:
    if command is None:
        print(parser.format_help(), end="")
    else:
        print(parser.commands[command].format_help(), end="")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
