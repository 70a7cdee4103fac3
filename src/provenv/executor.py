"""Build plan execution via cargo.

The executor materializes the pinned source tree, exposes the dependency
set on the search paths, runs one cargo invocation in a private target
directory, and atomically publishes the produced binary. Failures are
classified from the tool's output and reported with that output attached
unmodified. Nothing is retried.
"""

from __future__ import annotations

import hashlib
import json
import os
import re
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from provenv.dependencies import DependencySet
from provenv.errors import (
    BuildError,
    CompileError,
    LinkError,
    MissingNativeLibraryError,
    ValidationError,
)
from provenv.fetch import materialize
from provenv.observability import StructuredLogger
from provenv.plan import BuildPlan
from provenv.policy import Policy
from provenv.publish import publish_file, publish_text

SYSTEM_PATH: tuple[str, ...] = ("/usr/bin", "/bin")
PASSTHROUGH_ENV: tuple[str, ...] = ("HOME", "USER", "LANG", "TERM", "TMPDIR")

_MISSING_LIBRARY_PATTERNS = (
    re.compile(r"cannot find -l(?P<lib>[\w.+-]+)"),
    re.compile(r"library not found for -l(?P<lib>[\w.+-]+)"),
    re.compile(r"error while loading shared libraries: lib(?P<lib>[\w+-]+)\.so"),
    re.compile(r"Package (?P<lib>[\w.+-]+) was not found in the pkg-config search path"),
)
_LINK_PATTERNS = (
    re.compile(r"error: linking with `[^`]+` failed"),
    re.compile(r"undefined reference to"),
    re.compile(r"collect2: error"),
    re.compile(r"\bld(?:\.\w+)?: error"),
)


@dataclass(frozen=True, slots=True)
class Artifact:
    name: str
    path: Path
    sha256: str
    plan_digest: str
    metadata_path: Path


@dataclass(slots=True)
class BuildExecutor:
    output_dir: Path
    cache_dir: Path
    project_root: Path = field(default_factory=lambda: Path("."))
    policy: Policy = field(default_factory=Policy)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    cargo_args: tuple[str, ...] = ()

    def execute(self, plan: BuildPlan) -> Artifact:
        plan_digest = plan.digest()
        tree = materialize(
            plan.source,
            cache_dir=self.cache_dir,
            project_root=self.project_root,
            policy=self.policy,
        )
        manifest = tree / "Cargo.toml"
        if not manifest.is_file():
            raise ValidationError(
                "Source tree has no Cargo.toml.",
                context={"input": plan.source.name, "path": str(tree)},
            )
        check_native_libraries(plan.dependencies)

        env = self.build_environment(plan)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(prefix="provenv-target-", dir=self.cache_dir) as target:
            target_dir = Path(target)
            command = self.build_command(plan, manifest=manifest, target_dir=target_dir)
            self.logger.log(
                operation="build",
                message="invoking cargo",
                input=plan.source.name,
                extra={"command": command, "plan_digest": plan_digest},
            )
            result = subprocess.run(
                command,
                cwd=str(tree),
                env=env,
                capture_output=True,
                text=True,
                check=False,
            )
            if result.returncode != 0:
                error = classify_failure(
                    diagnostics=_diagnostics(result),
                    returncode=result.returncode,
                    dependencies=plan.dependencies,
                    context={"input": plan.source.name, "command": " ".join(command)},
                )
                self.logger.log(
                    operation="build",
                    level="error",
                    message=f"build failed ({error.code})",
                    input=plan.source.name,
                )
                raise error

            binary = target_dir / plan.toolchain.target / plan.profile / plan.artifact_name
            if not binary.is_file():
                raise CompileError(
                    f"Build finished without producing `{plan.artifact_name}`.",
                    diagnostics=_diagnostics(result),
                    returncode=result.returncode,
                    context={"input": plan.source.name, "expected": str(binary)},
                )
            published = publish_file(binary, self.output_dir / plan.artifact_name)

        digest = hashlib.sha256(published.read_bytes()).hexdigest()
        metadata = {
            "artifact": plan.artifact_name,
            "sha256": digest,
            "plan_digest": plan_digest,
            "toolchain": plan.toolchain.identifier,
            "source": plan.source.reference,
            "command": command,
        }
        metadata_path = publish_text(
            json.dumps(metadata, indent=2, sort_keys=True) + "\n",
            self.output_dir / f"{plan.artifact_name}.json",
        )
        self.logger.log(
            operation="publish",
            message=f"published {published}",
            input=plan.source.name,
            extra={"sha256": digest},
        )
        return Artifact(
            name=plan.artifact_name,
            path=published,
            sha256=digest,
            plan_digest=plan_digest,
            metadata_path=metadata_path,
        )

    def build_command(self, plan: BuildPlan, *, manifest: Path, target_dir: Path) -> list[str]:
        command = [
            plan.toolchain.tool("cargo"),
            "build",
            "--locked",
            "--target",
            plan.toolchain.target,
            "--manifest-path",
            str(manifest),
            "--target-dir",
            str(target_dir),
        ]
        if plan.profile == "release":
            command.append("--release")
        command.extend(self.cargo_args)
        return command

    def build_environment(self, plan: BuildPlan) -> dict[str, str]:
        if self.policy.inherit_env:
            env = dict(os.environ)
            inherited_path = env.get("PATH", "")
        else:
            env = {key: os.environ[key] for key in PASSTHROUGH_ENV if key in os.environ}
            inherited_path = os.pathsep.join(SYSTEM_PATH)

        path_entries = list(plan.dependencies.executable_path())
        if plan.toolchain.bin_dir is not None:
            path_entries.insert(0, str(plan.toolchain.bin_dir))
        if inherited_path:
            path_entries.append(inherited_path)
        env["PATH"] = os.pathsep.join(path_entries)

        env.update(plan.dependencies.search_path_env())
        native = [f"-L native={entry}" for entry in plan.dependencies.library_path()]
        if native:
            env["RUSTFLAGS"] = " ".join(native)
        env["CARGO_HOME"] = str(self.cache_dir / "cargo-home")
        env["SOURCE_DATE_EPOCH"] = "0"
        return env


def check_native_libraries(dependencies: DependencySet) -> None:
    """Fail before building if a declared native library is not on the search path."""
    search_path = dependencies.library_path()
    for package in dependencies.runtime:
        for library in package.libs:
            if not any(_library_present(Path(entry), library) for entry in search_path):
                raise MissingNativeLibraryError(
                    library,
                    package=package.name,
                    context={"search_path": os.pathsep.join(search_path)},
                )


def classify_failure(
    *,
    diagnostics: str,
    returncode: int,
    dependencies: DependencySet,
    context: dict[str, str],
) -> BuildError:
    for pattern in _MISSING_LIBRARY_PATTERNS:
        match = pattern.search(diagnostics)
        if match:
            library = match.group("lib")
            return MissingNativeLibraryError(
                library,
                package=_providing_package(library, dependencies),
                diagnostics=diagnostics,
                returncode=returncode,
                context=context,
            )
    if any(pattern.search(diagnostics) for pattern in _LINK_PATTERNS):
        return LinkError(
            "Linking failed.",
            diagnostics=diagnostics,
            returncode=returncode,
            context=context,
        )
    return CompileError(
        "Compilation failed.",
        diagnostics=diagnostics,
        returncode=returncode,
        context=context,
    )


def _providing_package(library: str, dependencies: DependencySet) -> str | None:
    for package in dependencies.runtime:
        if library in package.libs or package.name == library:
            return package.name
    return None


def _library_present(directory: Path, library: str) -> bool:
    if not directory.is_dir():
        return False
    for pattern in (f"lib{library}.so*", f"lib{library}.a", f"lib{library}.dylib"):
        if any(directory.glob(pattern)):
            return True
    return False


def _diagnostics(result: subprocess.CompletedProcess[str]) -> str:
    return "".join(part for part in (result.stderr, result.stdout) if part)
