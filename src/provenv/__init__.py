"""Public package entrypoint for provenv."""

from .dependencies import DependencySet, build_dependency_set
from .environment import (
    CommandHook,
    EnvironmentDescriptor,
    FunctionHook,
    Hook,
    PathHook,
    ScopedSession,
    enter,
)
from .errors import (
    ArtifactPublishError,
    BuildError,
    CommandError,
    CompileError,
    ComponentUnavailableError,
    ErrorCode,
    FetchError,
    HookError,
    LinkError,
    LockfileError,
    MissingNativeLibraryError,
    PolicyError,
    ProvenvError,
    ReproducibilityError,
    ToolchainUnavailableError,
    UnknownInputError,
    UnresolvedDependencyError,
    ValidationError,
)
from .executor import Artifact, BuildExecutor
from .lockfile import PinnedInput, PinTable, read_lockfile, write_lockfile
from .pipeline import Composition, compose_project, describe_environment, plan_build
from .plan import BuildPlan
from .policy import Policy
from .project import Project, load_project
from .toolchain import ToolchainDescription, resolve_toolchain, select_request
from .universe import Overlay, PackageDef, PackageUniverse, compose

__all__ = [
    "Artifact",
    "ArtifactPublishError",
    "BuildError",
    "BuildExecutor",
    "BuildPlan",
    "CommandError",
    "CommandHook",
    "CompileError",
    "ComponentUnavailableError",
    "Composition",
    "DependencySet",
    "EnvironmentDescriptor",
    "ErrorCode",
    "FetchError",
    "FunctionHook",
    "Hook",
    "HookError",
    "LinkError",
    "LockfileError",
    "MissingNativeLibraryError",
    "Overlay",
    "PackageDef",
    "PackageUniverse",
    "PathHook",
    "PinTable",
    "PinnedInput",
    "Policy",
    "PolicyError",
    "Project",
    "ProvenvError",
    "ReproducibilityError",
    "ScopedSession",
    "ToolchainDescription",
    "ToolchainUnavailableError",
    "UnknownInputError",
    "UnresolvedDependencyError",
    "ValidationError",
    "build_dependency_set",
    "compose",
    "compose_project",
    "describe_environment",
    "enter",
    "load_project",
    "plan_build",
    "read_lockfile",
    "resolve_toolchain",
    "select_request",
    "write_lockfile",
]
