"""Project file (``provenv.toml``) loading."""

from __future__ import annotations

import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from provenv.environment import CommandHook, Hook, PathHook
from provenv.errors import LockfileError, ValidationError
from provenv.plan import BuildProfile
from provenv.policy import Policy, policy_from_mapping
from provenv.toolchain.model import ChannelDatePin

PROJECT_FILE = "provenv.toml"
DEFAULT_LOCKFILE = "provenv.lock"
DEFAULT_CHANNEL_INDEX = "channels.json"
DEFAULT_OVERLAY_FILE = "overlay.json"

_TABLES = ("project", "toolchain", "packages", "dependencies", "shell", "policy")


@dataclass(frozen=True, slots=True)
class ToolchainConfig:
    index: Path
    manifest: Path | None = None
    channel_date: ChannelDatePin | None = None


@dataclass(frozen=True, slots=True)
class PackagesConfig:
    universe: str | None = None
    base: str | None = None
    overlays: tuple[str, ...] = ()
    overlay_file: str = DEFAULT_OVERLAY_FILE


@dataclass(frozen=True, slots=True)
class ShellConfig:
    tools: tuple[str, ...] = ()
    variables: Mapping[str, str] = field(default_factory=dict)
    hooks: tuple[Hook, ...] = ()


@dataclass(frozen=True, slots=True)
class Project:
    """A parsed project file with every path made absolute."""

    root: Path
    name: str
    source: str
    artifact: str
    lockfile: Path
    toolchain: ToolchainConfig
    packages: PackagesConfig = field(default_factory=PackagesConfig)
    build_time: tuple[str, ...] = ()
    runtime: tuple[str, ...] = ()
    shell: ShellConfig = field(default_factory=ShellConfig)
    policy: Policy = field(default_factory=Policy)
    profile: BuildProfile = "release"

    @property
    def cache_dir(self) -> Path:
        return self.root / ".provenv"

    @property
    def output_dir(self) -> Path:
        return self.root / "result"


def load_project(path: str | Path) -> Project:
    """Load ``provenv.toml`` from *path* (the file itself or its directory)."""
    project_path = Path(path)
    if project_path.is_dir():
        project_path = project_path / PROJECT_FILE
    try:
        raw = project_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise LockfileError(
            "Project file does not exist.",
            context={"path": str(project_path)},
        ) from exc
    try:
        payload = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        raise LockfileError(
            "Invalid project file TOML.",
            hint=str(exc),
            context={"path": str(project_path)},
        ) from exc
    return parse_project(payload, root=project_path.resolve().parent)


def parse_project(payload: Mapping[str, Any], *, root: Path) -> Project:
    unknown = sorted(set(payload) - set(_TABLES))
    if unknown:
        raise ValidationError(
            "Unknown project file tables.",
            hint=f"Supported tables: {', '.join(_TABLES)}.",
            context={"tables": ", ".join(unknown)},
        )
    project = _table(payload, "project")
    name = _string(project, "name", section="project")
    source = _string(project, "source", section="project", default=name)
    artifact = _string(project, "artifact", section="project", default=name)
    profile = _string(project, "profile", section="project", default="release")
    if profile not in ("release", "debug"):
        raise ValidationError(
            f"Unsupported build profile `{profile}`.",
            context={"table": "project"},
        )
    lockfile = root / _string(project, "lockfile", section="project", default=DEFAULT_LOCKFILE)

    dependencies = _table(payload, "dependencies")
    return Project(
        root=root,
        name=name,
        source=source,
        artifact=artifact,
        lockfile=lockfile,
        toolchain=_parse_toolchain(_table(payload, "toolchain"), root=root),
        packages=_parse_packages(_table(payload, "packages")),
        build_time=_strings(dependencies, "build-time", section="dependencies"),
        runtime=_strings(dependencies, "runtime", section="dependencies"),
        shell=_parse_shell(_table(payload, "shell")),
        policy=policy_from_mapping(_table(payload, "policy")),
        profile=profile,  # type: ignore[arg-type]
    )


def _parse_toolchain(table: Mapping[str, Any], *, root: Path) -> ToolchainConfig:
    index = root / _string(table, "index", section="toolchain", default=DEFAULT_CHANNEL_INDEX)
    manifest: Path | None = None
    if "manifest" in table:
        manifest = root / _string(table, "manifest", section="toolchain")
    channel_date: ChannelDatePin | None = None
    if "channel" in table:
        channel_date = ChannelDatePin(
            channel=_string(table, "channel", section="toolchain"),
            date=_string(table, "date", section="toolchain") if "date" in table else None,
            components=_strings(table, "components", section="toolchain"),
            targets=_strings(table, "targets", section="toolchain"),
        )
    elif "date" in table:
        raise ValidationError(
            "Toolchain `date` requires a `channel`.",
            context={"table": "toolchain"},
        )
    return ToolchainConfig(index=index, manifest=manifest, channel_date=channel_date)


def _parse_packages(table: Mapping[str, Any]) -> PackagesConfig:
    overlays = _strings(table, "overlays", section="packages")
    if len(set(overlays)) != len(overlays):
        raise ValidationError(
            "Overlay names must be unique.",
            context={"overlays": ", ".join(overlays)},
        )
    return PackagesConfig(
        universe=_string(table, "universe", section="packages") if "universe" in table else None,
        base=_string(table, "base", section="packages") if "base" in table else None,
        overlays=overlays,
        overlay_file=_string(
            table, "overlay-file", section="packages", default=DEFAULT_OVERLAY_FILE
        ),
    )


def _parse_shell(table: Mapping[str, Any]) -> ShellConfig:
    variables = table.get("variables", {})
    if not isinstance(variables, dict) or not all(
        isinstance(value, str) for value in variables.values()
    ):
        raise ValidationError("Shell `variables` must map names to strings.")

    raw_hooks = table.get("hooks", [])
    if not isinstance(raw_hooks, list):
        raise ValidationError("Shell `hooks` must be an array of tables.")
    hooks = tuple(_parse_hook(item, position) for position, item in enumerate(raw_hooks))
    names = [hook.name for hook in hooks]
    if len(set(names)) != len(names):
        raise ValidationError("Hook names must be unique.", context={"hooks": ", ".join(names)})
    return ShellConfig(
        tools=_strings(table, "tools", section="shell"),
        variables=variables,
        hooks=hooks,
    )


def _parse_hook(item: Any, position: int) -> Hook:
    if not isinstance(item, dict):
        raise ValidationError("Hook entries must be tables.", context={"hook": str(position)})
    name = _string(item, "name", section="shell.hooks", default=f"hook-{position}")
    kind = _string(item, "kind", section="shell.hooks", default="command")
    guard = _string(item, "guard", section="shell.hooks", default="always")
    if guard not in ("always", "interactive"):
        raise ValidationError(
            f"Unsupported hook guard `{guard}`.",
            hint="Use `always` or `interactive`.",
            context={"hook": name},
        )
    if kind == "path":
        return PathHook(
            name=name,
            entries=_strings(item, "entries", section="shell.hooks"),
            variable=_string(item, "variable", section="shell.hooks", default="PATH"),
            guard=guard,  # type: ignore[arg-type]
        )
    if kind == "command":
        argv = _strings(item, "argv", section="shell.hooks")
        if not argv:
            raise ValidationError("Command hooks require `argv`.", context={"hook": name})
        shell = item.get("shell", False)
        if not isinstance(shell, bool):
            raise ValidationError("Hook `shell` must be a boolean.", context={"hook": name})
        return CommandHook(
            name=name,
            argv=argv,
            guard=guard,  # type: ignore[arg-type]
            shell=shell,
            teardown_argv=_strings(item, "teardown", section="shell.hooks"),
        )
    raise ValidationError(
        f"Unsupported hook kind `{kind}`.",
        hint="Use `path` or `command`.",
        context={"hook": name},
    )


def _table(payload: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = payload.get(key, {})
    if not isinstance(value, dict):
        raise ValidationError(f"Project `{key}` must be a table.")
    return value


def _string(
    table: Mapping[str, Any],
    key: str,
    *,
    section: str = "",
    default: str | None = None,
) -> str:
    value = table.get(key, default)
    if not isinstance(value, str) or not value:
        raise ValidationError(
            f"Project setting `{key}` must be a non-empty string.",
            context={"table": section},
        )
    return value


def _strings(table: Mapping[str, Any], key: str, *, section: str = "") -> tuple[str, ...]:
    value = table.get(key, [])
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValidationError(
            f"Project setting `{key}` must be a list of strings.",
            context={"table": section},
        )
    return tuple(value)
