"""Package universe and ordered overlay composition.

A :class:`PackageUniverse` is an immutable name → :class:`PackageDef`
mapping. Overlays are applied by :func:`compose` as a left fold: every
overlay receives the universe produced by the step before it, and the
definitions it returns are layered on top. For a name defined by several
layers, the last applied layer wins.

Overlays can add or replace definitions. They cannot remove one.
"""

from __future__ import annotations

import json
import os
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Protocol, runtime_checkable

from provenv.errors import LockfileError, UnresolvedDependencyError, ValidationError
from provenv.observability import StructuredLogger
from provenv.toolchain.model import OverlayOverride, ToolchainDescription

BASE_ORIGIN = "base"


@dataclass(frozen=True, slots=True)
class PackageDef:
    name: str
    version: str
    prefix: str
    bin_dirs: tuple[str, ...] = ()
    lib_dirs: tuple[str, ...] = ()
    include_dirs: tuple[str, ...] = ()
    pkgconfig_dirs: tuple[str, ...] = ()
    libs: tuple[str, ...] = ()
    origin: str = BASE_ORIGIN
    declared_prefix: str | None = None

    def to_payload(self) -> dict[str, object]:
        """Describe the package independently of where the project is checked out.

        The prefix is recorded as written in the universe file and the search
        directories relative to it; ``prefix`` itself stays absolute for use on
        search paths.
        """
        return {
            "name": self.name,
            "version": self.version,
            "prefix": self.declared_prefix or self.prefix,
            "bin_dirs": self._relative(self.bin_dirs),
            "lib_dirs": self._relative(self.lib_dirs),
            "include_dirs": self._relative(self.include_dirs),
            "pkgconfig_dirs": self._relative(self.pkgconfig_dirs),
            "libs": list(self.libs),
            "origin": self.origin,
        }

    def _relative(self, entries: tuple[str, ...]) -> list[str]:
        if not self.prefix:
            return list(entries)
        return [os.path.relpath(entry, self.prefix) for entry in entries]


@dataclass(frozen=True, slots=True)
class PackageUniverse:
    packages: Mapping[str, PackageDef] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "packages", MappingProxyType(dict(sorted(self.packages.items()))))

    def __contains__(self, name: object) -> bool:
        return name in self.packages

    def __getitem__(self, name: str) -> PackageDef:
        return self.packages[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self.packages)

    def __len__(self) -> int:
        return len(self.packages)

    def get(self, name: str) -> PackageDef | None:
        return self.packages.get(name)

    def names(self) -> tuple[str, ...]:
        return tuple(self.packages)

    def extended(self, additions: Mapping[str, PackageDef]) -> PackageUniverse:
        """Return a new universe with *additions* layered over this one."""
        merged = dict(self.packages)
        merged.update(additions)
        return PackageUniverse(packages=merged)


@runtime_checkable
class Overlay(Protocol):
    """A named universe transform.

    ``apply`` receives the universe built so far and returns the definitions
    this overlay adds or replaces, keyed by package name.
    """

    name: str

    def apply(self, prev: PackageUniverse) -> Mapping[str, PackageDef]: ...


@dataclass(frozen=True, slots=True)
class PackageSetOverlay:
    """Overlay loaded from an overlay input: fixed packages plus aliases.

    Aliases re-export a definition visible in the previous universe (or in
    this overlay's own packages) under another name.
    """

    name: str
    packages: Mapping[str, PackageDef] = field(default_factory=dict)
    aliases: Mapping[str, str] = field(default_factory=dict)
    toolchain: OverlayOverride | None = None

    def apply(self, prev: PackageUniverse) -> Mapping[str, PackageDef]:
        additions = dict(self.packages)
        for alias, target in sorted(self.aliases.items()):
            source = additions.get(target) or prev.get(target)
            if source is None:
                raise UnresolvedDependencyError((target,), scope=f"overlay:{self.name}")
            additions[alias] = replace(source, name=alias)
        return additions


@dataclass(frozen=True, slots=True)
class AliasOverlay:
    """Re-export definitions from the previous universe under new names."""

    name: str
    aliases: Mapping[str, str] = field(default_factory=dict)

    def apply(self, prev: PackageUniverse) -> Mapping[str, PackageDef]:
        additions: dict[str, PackageDef] = {}
        for alias, target in sorted(self.aliases.items()):
            source = prev.get(target)
            if source is None:
                raise UnresolvedDependencyError((target,), scope=f"overlay:{self.name}")
            additions[alias] = replace(source, name=alias)
        return additions


@dataclass(frozen=True, slots=True)
class FunctionOverlay:
    name: str
    transform: Callable[[PackageUniverse], Mapping[str, PackageDef]]

    def apply(self, prev: PackageUniverse) -> Mapping[str, PackageDef]:
        return self.transform(prev)


@dataclass(frozen=True, slots=True)
class ToolchainOverlay:
    """Expose a resolved toolchain's components as packages."""

    toolchain: ToolchainDescription
    name: str = "toolchain"

    def apply(self, prev: PackageUniverse) -> Mapping[str, PackageDef]:
        bin_dirs = (str(self.toolchain.bin_dir),) if self.toolchain.bin_dir else ()
        prefix = self.toolchain.root or ""
        additions: dict[str, PackageDef] = {}
        for component in self.toolchain.components:
            package_name = component.removesuffix("-preview")
            if package_name == "rust-std":
                continue
            additions[package_name] = PackageDef(
                name=package_name,
                version=self.toolchain.version,
                prefix=prefix,
                bin_dirs=bin_dirs,
            )
        return additions


def compose(
    base: PackageUniverse,
    overlays: tuple[Overlay, ...] | list[Overlay],
    *,
    logger: StructuredLogger | None = None,
) -> PackageUniverse:
    """Fold *overlays* over *base* in order; the last applied overlay wins."""
    current = base
    seen: set[str] = set()
    for overlay in overlays:
        if overlay.name in seen:
            raise ValidationError(
                f"Overlay `{overlay.name}` appears twice in the overlay chain.",
                context={"overlay": overlay.name},
            )
        seen.add(overlay.name)

        additions = overlay.apply(current)
        stamped: dict[str, PackageDef] = {}
        for name, definition in additions.items():
            if not isinstance(definition, PackageDef) or definition.name != name:
                raise ValidationError(
                    "Overlay returned a definition under the wrong name.",
                    hint="Overlays add or replace packages by name only.",
                    context={"overlay": overlay.name, "package": str(name)},
                )
            stamped[name] = replace(definition, origin=overlay.name)
            previous = current.get(name)
            if logger is not None and previous is not None:
                logger.log(
                    operation="compose",
                    message=f"{overlay.name} shadows {previous.origin}",
                    overlay=overlay.name,
                    package=name,
                    extra={"previous_origin": previous.origin},
                )
        current = current.extended(stamped)
        if logger is not None:
            logger.log(
                operation="compose",
                message=f"applied overlay with {len(stamped)} definitions",
                overlay=overlay.name,
            )
    return current


def load_universe(path: str | Path) -> PackageUniverse:
    universe_path = Path(path)
    payload = _read_json(universe_path, kind="package universe")
    packages = _parse_packages(payload, root=universe_path.parent, origin=BASE_ORIGIN)
    return PackageUniverse(packages=packages)


def load_overlay(path: str | Path, *, name: str) -> PackageSetOverlay:
    overlay_path = Path(path)
    payload = _read_json(overlay_path, kind="overlay")
    packages = _parse_packages(payload, root=overlay_path.parent, origin=name)

    aliases = payload.get("aliases", {})
    if not isinstance(aliases, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in aliases.items()
    ):
        raise LockfileError("Invalid overlay `aliases` value.", context={"overlay": name})

    toolchain = payload.get("toolchain")
    override: OverlayOverride | None = None
    if toolchain is not None:
        if not isinstance(toolchain, dict) or not isinstance(toolchain.get("channel"), str):
            raise LockfileError("Invalid overlay `toolchain` value.", context={"overlay": name})
        override = OverlayOverride(
            overlay=name,
            channel=toolchain["channel"],
            date=toolchain.get("date"),
            components=tuple(toolchain.get("components", ())),
            targets=tuple(toolchain.get("targets", ())),
        )
    return PackageSetOverlay(name=name, packages=packages, aliases=aliases, toolchain=override)


def _read_json(path: Path, *, kind: str) -> dict[str, Any]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise LockfileError(
            f"The {kind} file does not exist.",
            context={"path": str(path)},
        ) from exc
    except json.JSONDecodeError as exc:
        raise LockfileError(
            f"Invalid {kind} JSON.",
            hint=str(exc),
            context={"path": str(path)},
        ) from exc
    if not isinstance(payload, dict):
        raise LockfileError(f"Invalid {kind} payload type.", context={"path": str(path)})
    return payload


def _parse_packages(payload: dict[str, Any], *, root: Path, origin: str) -> dict[str, PackageDef]:
    raw = payload.get("packages", {})
    if not isinstance(raw, dict):
        raise LockfileError("Invalid `packages` value.", context={"origin": origin})
    return {
        name: _parse_package(name, item, root=root, origin=origin)
        for name, item in raw.items()
    }


def _parse_package(name: str, item: Any, *, root: Path, origin: str) -> PackageDef:
    if not isinstance(item, dict):
        raise LockfileError("Invalid package entry.", context={"package": name, "origin": origin})
    version = item.get("version")
    prefix = item.get("prefix")
    if not isinstance(version, str) or not isinstance(prefix, str) or not prefix:
        raise LockfileError(
            "Package entries require `version` and `prefix`.",
            context={"package": name, "origin": origin},
        )
    prefix_path = Path(prefix)
    if not prefix_path.is_absolute():
        prefix_path = Path(os.path.normpath(root / prefix_path))

    def dirs(key: str, default: str) -> tuple[str, ...]:
        value = item.get(key)
        if value is None:
            return (str(prefix_path / default),)
        if not isinstance(value, list) or not all(isinstance(entry, str) for entry in value):
            raise LockfileError(
                f"Package `{key}` must be a list of paths.",
                context={"package": name, "origin": origin},
            )
        return tuple(str(prefix_path / entry) for entry in value)

    libs = item.get("libs", [])
    if not isinstance(libs, list) or not all(isinstance(lib, str) for lib in libs):
        raise LockfileError("Package `libs` must be a list.", context={"package": name})
    return PackageDef(
        name=name,
        version=version,
        prefix=str(prefix_path),
        bin_dirs=dirs("bin_dirs", "bin"),
        lib_dirs=dirs("lib_dirs", "lib"),
        include_dirs=dirs("include_dirs", "include"),
        pkgconfig_dirs=dirs("pkgconfig_dirs", "lib/pkgconfig"),
        libs=tuple(libs),
        origin=origin,
        declared_prefix=prefix,
    )
