"""Interactive development environment composition.

An :class:`EnvironmentDescriptor` pairs the toolchain and the dependency set
used for the build with variable bindings and lifecycle hooks. :func:`enter`
realizes it as a :class:`ScopedSession`: bindings live in a session-local
copy of the environment, hooks run in declared order once their guard
passes, and hook teardowns run in reverse order when the scope closes,
whether it closes normally or through an exception.
"""

from __future__ import annotations

import os
import re
import shlex
import subprocess
import sys
from collections.abc import Callable, Iterator, Mapping
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Literal, Protocol, TextIO, runtime_checkable

from provenv.dependencies import DependencySet
from provenv.errors import (
    CommandError,
    ComponentUnavailableError,
    HookError,
    UnresolvedDependencyError,
    ValidationError,
)
from provenv.observability import StructuredLogger
from provenv.toolchain.model import ToolchainDescription
from provenv.universe import PackageDef

Guard = Literal["always", "interactive"]
Teardown = Callable[[], None]

SESSION_MARKER = "IN_PROVENV_SHELL"

_REFERENCE = re.compile(r"\$\$|\$\{([^}]*)\}")


@dataclass(slots=True)
class ScopedSession:
    name: str
    env: dict[str, str]
    base_env: Mapping[str, str]
    bindings: dict[str, str]
    project_root: Path
    interactive: bool = False
    stderr: TextIO = field(default_factory=lambda: sys.stderr)
    ran_hooks: list[str] = field(default_factory=list)
    skipped_hooks: list[str] = field(default_factory=list)
    _expand: Callable[[str], str] = field(default=lambda value: value, repr=False)

    def expand(self, template: str) -> str:
        return self._expand(template)

    def changed(self) -> dict[str, str]:
        """Variables whose value differs from the environment the session started from."""
        return {
            key: value
            for key, value in sorted(self.env.items())
            if self.base_env.get(key) != value
        }

    def export_lines(self) -> list[str]:
        return [f"export {key}={shlex.quote(value)}" for key, value in self.changed().items()]

    def run(self, argv: list[str] | tuple[str, ...]) -> int:
        return run_command(argv, env=self.env, cwd=self.project_root)


@runtime_checkable
class Hook(Protocol):
    name: str
    guard: Guard

    def run(self, session: ScopedSession) -> Teardown | None:
        """Apply the hook to *session* and return its teardown, if any."""


@dataclass(frozen=True, slots=True)
class PathHook:
    """Prepend entries to a search-path variable for the session's lifetime."""

    name: str
    entries: tuple[str, ...]
    variable: str = "PATH"
    guard: Guard = "always"

    def run(self, session: ScopedSession) -> Teardown | None:
        previous = session.env.get(self.variable)
        expanded = [session.expand(entry) for entry in self.entries]
        if previous:
            expanded.append(previous)
        session.env[self.variable] = os.pathsep.join(expanded)

        def restore() -> None:
            if previous is None:
                session.env.pop(self.variable, None)
            else:
                session.env[self.variable] = previous

        return restore


@dataclass(frozen=True, slots=True)
class CommandHook:
    """Run a command inside the session.

    Output goes to the session's stderr stream so that tools which read a
    shell's stdout (for example direnv) only ever see exported variables.
    """

    name: str
    argv: tuple[str, ...]
    guard: Guard = "always"
    shell: bool = False
    teardown_argv: tuple[str, ...] = ()

    def run(self, session: ScopedSession) -> Teardown | None:
        _run_command(session, self.name, self.argv, shell=self.shell)
        if not self.teardown_argv:
            return None
        return lambda: _run_command(session, self.name, self.teardown_argv, shell=self.shell)


@dataclass(frozen=True, slots=True)
class FunctionHook:
    name: str
    action: Callable[[ScopedSession], Teardown | None]
    guard: Guard = "always"

    def run(self, session: ScopedSession) -> Teardown | None:
        return self.action(session)


@dataclass(frozen=True, slots=True)
class EnvironmentDescriptor:
    name: str
    toolchain: ToolchainDescription
    dependencies: DependencySet
    project_root: Path
    tools: tuple[PackageDef, ...] = ()
    variables: Mapping[str, str] = field(default_factory=dict)
    hooks: tuple[Hook, ...] = ()

    def with_hooks(self, *hooks: Hook) -> EnvironmentDescriptor:
        return replace(self, hooks=tuple(hooks))

    def search_path(self) -> tuple[str, ...]:
        entries: list[str] = []
        if self.toolchain.bin_dir is not None:
            entries.append(str(self.toolchain.bin_dir))
        entries.extend(self.dependencies.executable_path())
        entries.extend(entry for tool in self.tools for entry in tool.bin_dirs)
        return tuple(dict.fromkeys(entries))


def resolve_bindings(descriptor: EnvironmentDescriptor) -> dict[str, str]:
    """Expand every variable binding of *descriptor*.

    ``${NAME}`` refers to another binding, ``${pkgs.NAME}`` to a package
    prefix from the dependency set or dev tools, ``${toolchain}`` and
    ``${toolchain.src}`` to the toolchain root and its source index, and
    ``${root}`` to the project root. ``$$`` is a literal ``$``.
    """
    resolved: dict[str, str] = {}
    resolving: list[str] = []

    def binding(name: str) -> str:
        if name in resolved:
            return resolved[name]
        if name in resolving:
            cycle = " -> ".join([*resolving[resolving.index(name) :], name])
            raise ValidationError(
                "Variable bindings reference each other in a cycle.",
                context={"variable": name, "cycle": cycle},
            )
        resolving.append(name)
        try:
            value = expand(descriptor.variables[name], owner=name)
        finally:
            resolving.pop()
        resolved[name] = value
        return value

    def expand(template: str, *, owner: str) -> str:
        def substitute(match: re.Match[str]) -> str:
            reference = match.group(1)
            if reference is None:
                return "$"
            return _lookup(descriptor, reference, owner=owner, binding=binding)

        return _REFERENCE.sub(substitute, template)

    for name in descriptor.variables:
        binding(name)
    return {name: resolved[name] for name in descriptor.variables}


def expand_template(
    descriptor: EnvironmentDescriptor,
    bindings: Mapping[str, str],
    template: str,
) -> str:
    def substitute(match: re.Match[str]) -> str:
        reference = match.group(1)
        if reference is None:
            return "$"
        return _lookup(descriptor, reference, owner="<hook>", binding=lambda name: bindings[name])

    return _REFERENCE.sub(substitute, template)


@contextmanager
def enter(
    descriptor: EnvironmentDescriptor,
    *,
    interactive: bool = False,
    base_env: Mapping[str, str] | None = None,
    pure: bool = False,
    logger: StructuredLogger | None = None,
    stderr: TextIO | None = None,
) -> Iterator[ScopedSession]:
    """Enter the environment described by *descriptor*.

    The process environment is never modified; the session works on its own
    copy. Teardowns registered by hooks run in reverse order on exit.
    """
    logger = logger or StructuredLogger()
    origin = dict(os.environ if base_env is None else base_env)
    bindings = resolve_bindings(descriptor)

    if pure:
        env = {key: origin[key] for key in ("HOME", "USER", "TERM") if key in origin}
    else:
        env = dict(origin)
    inherited_path = env.get("PATH", "")
    env["PATH"] = os.pathsep.join(
        [*descriptor.search_path(), *([inherited_path] if inherited_path else [])]
    )
    env.update(descriptor.dependencies.search_path_env())
    env[SESSION_MARKER] = descriptor.name
    env.update(bindings)

    session = ScopedSession(
        name=descriptor.name,
        env=env,
        base_env=origin,
        bindings=bindings,
        project_root=descriptor.project_root,
        interactive=interactive,
        stderr=stderr or sys.stderr,
        _expand=lambda template: expand_template(descriptor, bindings, template),
    )

    with ExitStack() as stack:
        for hook in descriptor.hooks:
            if not _guard_passes(hook.guard, session):
                session.skipped_hooks.append(hook.name)
                logger.log(
                    operation="shell",
                    message=f"skipped hook {hook.name}",
                    extra={"guard": hook.guard},
                )
                continue
            teardown = hook.run(session)
            session.ran_hooks.append(hook.name)
            logger.log(operation="shell", message=f"ran hook {hook.name}")
            if teardown is not None:
                stack.callback(_logged_teardown(hook.name, teardown, logger))
        yield session


def _logged_teardown(name: str, teardown: Teardown, logger: StructuredLogger) -> Teardown:
    def run() -> None:
        teardown()
        logger.log(operation="shell", message=f"tore down hook {name}")

    return run


def _guard_passes(guard: Guard, session: ScopedSession) -> bool:
    if guard == "always":
        return True
    if guard == "interactive":
        return session.interactive
    raise ValidationError(f"Unsupported hook guard: {guard}")


def _lookup(
    descriptor: EnvironmentDescriptor,
    reference: str,
    *,
    owner: str,
    binding: Callable[[str], str],
) -> str:
    if reference == "root":
        return str(descriptor.project_root)
    if reference == "toolchain":
        if descriptor.toolchain.root is None:
            raise ValidationError(
                "Toolchain has no install root to reference.",
                context={"variable": owner, "toolchain": descriptor.toolchain.identifier},
            )
        return descriptor.toolchain.root
    if reference == "toolchain.src":
        source = descriptor.toolchain.source_index_path
        if source is None:
            raise ComponentUnavailableError(
                "rust-src",
                toolchain=descriptor.toolchain.identifier,
                available=descriptor.toolchain.components,
            )
        return str(source)
    if reference.startswith("pkgs."):
        package_name = reference.removeprefix("pkgs.")
        package = descriptor.dependencies.find_package(package_name)
        if package is None:
            package = next((tool for tool in descriptor.tools if tool.name == package_name), None)
        if package is None:
            raise UnresolvedDependencyError((package_name,), scope=f"variable:{owner}")
        return package.prefix
    if reference in descriptor.variables:
        return binding(reference)
    raise ValidationError(
        f"Unknown reference `${{{reference}}}`.",
        hint="Reference another binding, pkgs.<name>, toolchain, toolchain.src, or root.",
        context={"variable": owner},
    )


def _run_command(session: ScopedSession, name: str, argv: tuple[str, ...], *, shell: bool) -> None:
    expanded = [session.expand(part) for part in argv]
    command = ["/bin/sh", "-c", " ".join(expanded)] if shell else expanded
    try:
        completed = subprocess.run(
            command,
            env=session.env,
            cwd=str(session.project_root),
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError as exc:
        raise HookError(
            f"Hook `{name}` command was not found.",
            context={"hook": name, "argv": " ".join(command)},
        ) from exc
    for stream in (completed.stdout, completed.stderr):
        if stream:
            session.stderr.write(stream)
    if completed.returncode != 0:
        raise HookError(
            f"Hook `{name}` failed.",
            context={
                "hook": name,
                "argv": " ".join(command),
                "returncode": str(completed.returncode),
            },
        )


def run_command(
    argv: list[str] | tuple[str, ...],
    *,
    env: Mapping[str, str] | None = None,
    cwd: Path | None = None,
) -> int:
    """Run ``argv`` in the foreground and return its exit status.

    A command that cannot be started raises :class:`CommandError` instead of
    leaking the ``OSError``.
    """
    command = list(argv)
    try:
        completed = subprocess.run(
            command,
            env=None if env is None else dict(env),
            cwd=None if cwd is None else str(cwd),
            check=False,
        )
    except OSError as exc:
        raise CommandError(
            f"Command `{command[0]}` could not be started: {exc.strerror or exc}.",
            hint="Check that the program exists and is executable.",
            context={"argv": shlex.join(command), "cwd": "" if cwd is None else str(cwd)},
        ) from exc
    return completed.returncode
