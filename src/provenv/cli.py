"""Command line interface.

Usage:
    provenv build
    provenv run -- --help
    provenv shell [--print] [--pure]
    provenv check
    provenv plan [--cbor PATH]
    provenv fmt [--check]
    provenv lint
    provenv pin NAME --rev REV [--hash H]
"""

from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Sequence
from dataclasses import replace
from pathlib import Path

from provenv.environment import enter, run_command
from provenv.errors import ComponentUnavailableError, LockfileError, ProvenvError
from provenv.executor import BuildExecutor
from provenv.fetch import fetch_git
from provenv.lockfile import (
    LOCKFILE_VERSION,
    PIN_KINDS,
    PinnedInput,
    PinTable,
    read_lockfile,
    write_lockfile,
)
from provenv.observability import StructuredLogger
from provenv.pipeline import compose_project, describe_environment, plan_build
from provenv.project import Project, load_project
from provenv.toolchain.manifest import validate_date


def cmd_build(args: argparse.Namespace, project: Project, logger: StructuredLogger) -> int:
    plan = plan_build(compose_project(project, logger=logger))
    artifact = _executor(project, logger).execute(plan)
    print(artifact.path)
    return 0


def cmd_run(args: argparse.Namespace, project: Project, logger: StructuredLogger) -> int:
    plan = plan_build(compose_project(project, logger=logger))
    artifact = _executor(project, logger).execute(plan)
    argv = [str(artifact.path), *_passthrough(args.args)]
    logger.log(operation="run", message=f"running {artifact.name}", extra={"argv": argv})
    return run_command(argv)


def cmd_shell(args: argparse.Namespace, project: Project, logger: StructuredLogger) -> int:
    descriptor = describe_environment(compose_project(project, logger=logger))
    interactive = args.interactive if args.interactive is not None else sys.stdin.isatty()
    if args.print_env:
        interactive = False
    with enter(descriptor, interactive=interactive, pure=args.pure, logger=logger) as session:
        if args.print_env:
            for line in session.export_lines():
                print(line)
            return 0
        command = _passthrough(args.args) or [os.environ.get("SHELL", "/bin/sh")]
        return session.run(command)


def cmd_check(args: argparse.Namespace, project: Project, logger: StructuredLogger) -> int:
    composition = compose_project(project, logger=logger)
    plan = plan_build(composition)
    describe_environment(composition)
    print(f"{plan.artifact_name} {composition.toolchain.identifier} {plan.digest()}")
    return 0


def cmd_plan(args: argparse.Namespace, project: Project, logger: StructuredLogger) -> int:
    plan = plan_build(compose_project(project, logger=logger))
    if args.cbor is not None:
        plan.to_cbor(args.cbor)
    sys.stdout.write(plan.to_json())
    return 0


def cmd_fmt(args: argparse.Namespace, project: Project, logger: StructuredLogger) -> int:
    argv = ["fmt", "--all"]
    if args.check:
        argv.extend(["--", "--check"])
    return _cargo_in_environment(project, logger, component="rustfmt", argv=argv)


def cmd_lint(args: argparse.Namespace, project: Project, logger: StructuredLogger) -> int:
    argv = ["clippy", "--all-targets", *_passthrough(args.args)]
    return _cargo_in_environment(project, logger, component="clippy", argv=argv)


def cmd_pin(args: argparse.Namespace, project: Project, logger: StructuredLogger) -> int:
    if project.lockfile.exists():
        table = read_lockfile(project.lockfile)
    else:
        table = PinTable(version=LOCKFILE_VERSION)

    previous = table.pins.get(args.name)
    if previous is None:
        if args.location is None:
            raise LockfileError(
                f"Input `{args.name}` is not pinned yet.",
                hint="Pass --location (and --kind) to add a new input.",
                context={"input": args.name},
            )
        pin = PinnedInput(
            name=args.name,
            kind=args.kind,
            location=args.location,
            overlay=args.overlay,
        )
    else:
        pin = previous
        if args.location is not None:
            pin = replace(pin, location=args.location)

    revision = args.rev
    digest = args.hash
    if pin.kind == "channel-date":
        revision = validate_date(revision)
    if pin.kind == "repository-revision" and digest is None:
        fetched = fetch_git(
            pin.location,
            ref=revision,
            tree_hash=None,
            cache_dir=project.cache_dir / "git",
            policy=replace(project.policy, require_integrity=False, mutable_ref_policy="allow"),
            input_name=pin.name,
        )
        revision = fetched.commit
        digest = fetched.tree_hash
    pin = replace(pin, revision=revision, digest=digest)

    write_lockfile(table.repin(pin), project.lockfile)
    logger.log(operation="pin", message=f"pinned {pin.reference}", input=pin.name)
    print(f"{pin.name} {pin.reference}")
    return 0


COMMANDS = {
    "build": cmd_build,
    "run": cmd_run,
    "shell": cmd_shell,
    "develop": cmd_shell,
    "check": cmd_check,
    "plan": cmd_plan,
    "fmt": cmd_fmt,
    "lint": cmd_lint,
    "pin": cmd_pin,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="provenv",
        description="Reproducible build and development environments for Rust projects",
    )
    parser.add_argument(
        "--project",
        type=Path,
        default=Path("."),
        help="Project directory or provenv.toml path",
    )
    parser.add_argument("--log-json", type=Path, help="Write structured log records to PATH")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("build", help="Build the pinned source and publish the artifact")

    run_p = sub.add_parser("run", help="Build, then execute the artifact")
    run_p.add_argument("args", nargs=argparse.REMAINDER, help="Arguments for the artifact")

    for name, help_text in (
        ("shell", "Enter the development environment"),
        ("develop", "Alias of shell"),
    ):
        shell_p = sub.add_parser(name, help=help_text)
        shell_p.add_argument(
            "--print",
            dest="print_env",
            action="store_true",
            help="Print export statements instead of spawning a shell",
        )
        shell_p.add_argument("--pure", action="store_true", help="Do not inherit the environment")
        shell_p.add_argument(
            "--interactive",
            dest="interactive",
            action="store_true",
            default=None,
            help="Run hooks guarded as interactive",
        )
        shell_p.add_argument(
            "--no-interactive",
            dest="interactive",
            action="store_false",
            default=None,
            help="Skip hooks guarded as interactive",
        )
        shell_p.add_argument("args", nargs=argparse.REMAINDER, help="Command to run instead")

    sub.add_parser("check", help="Compose the project and print the plan digest")

    plan_p = sub.add_parser("plan", help="Print the canonical build plan")
    plan_p.add_argument("--cbor", type=Path, help="Also write the plan as canonical CBOR")

    fmt_p = sub.add_parser("fmt", help="Run cargo fmt inside the environment")
    fmt_p.add_argument("--check", action="store_true", help="Report instead of rewriting")

    lint_p = sub.add_parser("lint", help="Run cargo clippy inside the environment")
    lint_p.add_argument("args", nargs=argparse.REMAINDER, help="Extra clippy arguments")

    pin_p = sub.add_parser("pin", help="Record a new revision for an input in the lock file")
    pin_p.add_argument("name", help="Logical input name")
    pin_p.add_argument("--rev", required=True, help="Commit, snapshot date, or ref to resolve")
    pin_p.add_argument("--hash", help="Expected tree hash")
    pin_p.add_argument("--location", help="Repository URL, channel, or path for a new input")
    pin_p.add_argument("--kind", choices=PIN_KINDS, default="repository-revision")
    pin_p.add_argument("--overlay", action="store_true", help="Mark a new input as an overlay")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logger = StructuredLogger()
    try:
        project = load_project(args.project)
        return COMMANDS[args.command](args, project, logger)
    except ProvenvError as exc:
        logger.log(operation=args.command, level="error", message=exc.message)
        print(f"error[{exc.code}]: {exc}", file=sys.stderr)
        return 1
    finally:
        if args.log_json is not None:
            logger.to_json_lines(args.log_json)


def _executor(project: Project, logger: StructuredLogger) -> BuildExecutor:
    return BuildExecutor(
        output_dir=project.output_dir,
        cache_dir=project.cache_dir,
        project_root=project.root,
        policy=project.policy,
        logger=logger,
    )


def _cargo_in_environment(
    project: Project,
    logger: StructuredLogger,
    *,
    component: str,
    argv: list[str],
) -> int:
    composition = compose_project(project, logger=logger)
    toolchain = composition.toolchain
    if not any(name.removesuffix("-preview") == component for name in toolchain.components):
        raise ComponentUnavailableError(
            component,
            toolchain=toolchain.identifier,
            available=toolchain.components,
        )
    descriptor = describe_environment(composition)
    with enter(descriptor, interactive=False, logger=logger) as session:
        return session.run([toolchain.tool("cargo"), *argv])


def _passthrough(args: Sequence[str]) -> list[str]:
    items = list(args)
    if items and items[0] == "--":
        items = items[1:]
    return items
