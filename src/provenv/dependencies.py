"""Dependency set selection from a composed package universe."""

from __future__ import annotations

import os
from collections.abc import Iterable, Set
from dataclasses import dataclass

from provenv.errors import UnresolvedDependencyError
from provenv.observability import StructuredLogger
from provenv.universe import PackageDef, PackageUniverse


@dataclass(frozen=True, slots=True)
class DependencySet:
    """Packages needed only while building, and packages needed at build and run time.

    A package may appear in both lists.
    """

    build_time: tuple[PackageDef, ...] = ()
    runtime: tuple[PackageDef, ...] = ()

    def find_package(self, name: str) -> PackageDef | None:
        for package in (*self.runtime, *self.build_time):
            if package.name == name:
                return package
        return None

    def executable_path(self) -> tuple[str, ...]:
        return _unique(entry for package in self.build_time for entry in package.bin_dirs)

    def library_path(self) -> tuple[str, ...]:
        return _unique(entry for package in self.runtime for entry in package.lib_dirs)

    def include_path(self) -> tuple[str, ...]:
        return _unique(entry for package in self.runtime for entry in package.include_dirs)

    def pkg_config_path(self) -> tuple[str, ...]:
        return _unique(entry for package in self.runtime for entry in package.pkgconfig_dirs)

    def search_path_env(self) -> dict[str, str]:
        """Search-path variables for the runtime entries."""
        env: dict[str, str] = {}
        for key, entries in (
            ("LIBRARY_PATH", self.library_path()),
            ("LD_LIBRARY_PATH", self.library_path()),
            ("C_INCLUDE_PATH", self.include_path()),
            ("PKG_CONFIG_PATH", self.pkg_config_path()),
        ):
            if entries:
                env[key] = os.pathsep.join(entries)
        return env

    def to_payload(self) -> dict[str, object]:
        return {
            "build_time": [package.to_payload() for package in self.build_time],
            "runtime": [package.to_payload() for package in self.runtime],
        }


def build_dependency_set(
    universe: PackageUniverse,
    build_time: Iterable[str],
    runtime: Iterable[str],
    *,
    logger: StructuredLogger | None = None,
) -> DependencySet:
    """Select *build_time* and *runtime* packages from *universe*.

    Every missing name across both lists is reported in one
    :class:`UnresolvedDependencyError`.
    """
    build_names = _ordered(build_time)
    runtime_names = _ordered(runtime)
    missing = tuple(
        dict.fromkeys(name for name in (*build_names, *runtime_names) if name not in universe)
    )
    if missing:
        raise UnresolvedDependencyError(missing, scope="dependencies")

    dependency_set = DependencySet(
        build_time=tuple(universe[name] for name in build_names),
        runtime=tuple(universe[name] for name in runtime_names),
    )
    if logger is not None:
        for scope, packages in (
            ("build-time", dependency_set.build_time),
            ("runtime", dependency_set.runtime),
        ):
            for package in packages:
                logger.log(
                    operation="dependencies",
                    message=f"selected {scope} {package.name} {package.version}",
                    package=package.name,
                    overlay=package.origin,
                )
    return dependency_set


def _ordered(names: Iterable[str]) -> tuple[str, ...]:
    if isinstance(names, Set):
        return tuple(sorted(names))
    return tuple(dict.fromkeys(names))


def _unique(entries: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(entries))
