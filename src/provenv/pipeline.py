"""End-to-end composition of a project.

:func:`compose_project` runs the resolution steps in a fixed order: pins,
then the toolchain, then the overlay chain, then the dependency set. The
resulting :class:`Composition` feeds both :func:`plan_build` and
:func:`describe_environment`, so the build and the development shell see
the same toolchain and the same dependency set object.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from provenv.dependencies import DependencySet, build_dependency_set
from provenv.environment import EnvironmentDescriptor
from provenv.errors import UnresolvedDependencyError, ValidationError
from provenv.fetch import materialize
from provenv.lockfile import PinnedInput, PinTable, read_lockfile
from provenv.observability import StructuredLogger
from provenv.plan import BuildPlan
from provenv.policy import Policy
from provenv.project import Project
from provenv.toolchain import (
    ToolchainDescription,
    load_channel_index,
    resolve_toolchain,
    select_request,
)
from provenv.universe import (
    PackageDef,
    PackageSetOverlay,
    PackageUniverse,
    ToolchainOverlay,
    compose,
    load_overlay,
    load_universe,
)


@dataclass(frozen=True, slots=True)
class Composition:
    project: Project
    pins: PinTable
    source: PinnedInput
    toolchain: ToolchainDescription
    universe: PackageUniverse
    dependencies: DependencySet
    tools: tuple[PackageDef, ...] = ()


def compose_project(
    project: Project,
    *,
    policy: Policy | None = None,
    logger: StructuredLogger | None = None,
    cache_dir: str | Path | None = None,
) -> Composition:
    policy = policy or project.policy
    logger = logger or StructuredLogger()
    cache = Path(cache_dir) if cache_dir is not None else project.cache_dir

    pins = read_lockfile(project.lockfile, require_integrity=policy.require_integrity)
    logger.log(
        operation="pins",
        message=f"loaded {len(pins)} pinned inputs",
        extra={"path": str(project.lockfile)},
    )
    source = pins.resolve(project.source)
    logger.log(operation="pins", message=f"source {source.reference}", input=source.name)

    overlays = [
        _load_overlay_input(pins.resolve(name), project=project, policy=policy, cache=cache)
        for name in project.packages.overlays
    ]
    for overlay in overlays:
        logger.log(operation="pins", message="loaded overlay input", input=overlay.name)

    override = next(
        (overlay.toolchain for overlay in reversed(overlays) if overlay.toolchain is not None),
        None,
    )
    request = select_request(
        manifest=project.toolchain.manifest,
        channel_date=project.toolchain.channel_date,
        override=override,
        logger=logger,
    )
    toolchain = resolve_toolchain(
        request,
        index=load_channel_index(project.toolchain.index),
        host_triple=policy.host_triple,
        logger=logger,
    )

    base = _load_base_universe(project, pins=pins, policy=policy, cache=cache)
    universe = compose(base, [ToolchainOverlay(toolchain), *overlays], logger=logger)
    dependencies = build_dependency_set(
        universe,
        project.build_time,
        project.runtime,
        logger=logger,
    )

    missing_tools = tuple(name for name in project.shell.tools if name not in universe)
    if missing_tools:
        raise UnresolvedDependencyError(missing_tools, scope="shell.tools")
    return Composition(
        project=project,
        pins=pins,
        source=source,
        toolchain=toolchain,
        universe=universe,
        dependencies=dependencies,
        tools=tuple(universe[name] for name in project.shell.tools),
    )


def plan_build(composition: Composition) -> BuildPlan:
    project = composition.project
    return BuildPlan(
        source=composition.source,
        toolchain=composition.toolchain,
        dependencies=composition.dependencies,
        artifact_name=project.artifact,
        profile=project.profile,
    )


def describe_environment(composition: Composition) -> EnvironmentDescriptor:
    project = composition.project
    return EnvironmentDescriptor(
        name=project.name,
        toolchain=composition.toolchain,
        dependencies=composition.dependencies,
        project_root=project.root,
        tools=composition.tools,
        variables=dict(project.shell.variables),
        hooks=project.shell.hooks,
    )


def _load_overlay_input(
    pin: PinnedInput,
    *,
    project: Project,
    policy: Policy,
    cache: Path,
) -> PackageSetOverlay:
    if not pin.overlay:
        raise ValidationError(
            f"Input `{pin.name}` is not pinned as an overlay.",
            hint="Mark the lock file entry with `\"overlay\": true`.",
            context={"input": pin.name},
        )
    tree = materialize(pin, cache_dir=cache, project_root=project.root, policy=policy)
    path = tree if tree.is_file() else tree / project.packages.overlay_file
    return load_overlay(path, name=pin.name)


def _load_base_universe(
    project: Project,
    *,
    pins: PinTable,
    policy: Policy,
    cache: Path,
) -> PackageUniverse:
    packages = project.packages
    if packages.universe is None:
        return PackageUniverse()
    root = project.root
    if packages.base is not None:
        root = materialize(
            pins.resolve(packages.base),
            cache_dir=cache,
            project_root=project.root,
            policy=policy,
        )
    return load_universe(root / packages.universe)
