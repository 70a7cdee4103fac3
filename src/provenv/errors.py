"""Typed error model with stable, machine-readable error codes."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum


class ErrorCode(StrEnum):
    """Stable error identifiers used across API and CLI surfaces."""

    VALIDATION = "E_VALIDATION"
    LOCKFILE = "E_LOCKFILE"
    POLICY = "E_POLICY"
    FETCH = "E_FETCH"
    REPRODUCIBILITY = "E_REPRODUCIBILITY"
    UNKNOWN_INPUT = "E_UNKNOWN_INPUT"
    TOOLCHAIN_UNAVAILABLE = "E_TOOLCHAIN_UNAVAILABLE"
    COMPONENT_UNAVAILABLE = "E_COMPONENT_UNAVAILABLE"
    UNRESOLVED_DEPENDENCY = "E_UNRESOLVED_DEPENDENCY"
    COMPILE = "E_COMPILE"
    LINK = "E_LINK"
    MISSING_NATIVE_LIBRARY = "E_MISSING_NATIVE_LIBRARY"
    ARTIFACT_PUBLISH = "E_ARTIFACT_PUBLISH"
    HOOK = "E_HOOK"
    COMMAND = "E_COMMAND"


class ProvenvError(Exception):
    """Base error class that carries code, optional hint, and context."""

    code: str
    hint: str | None
    context: Mapping[str, str]

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code.value
        self.hint = hint
        self.context = dict(context or {})

    @property
    def message(self) -> str:
        return super().__str__()

    def __str__(self) -> str:
        parts = [self.message]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        for k, v in self.context.items():
            if v:
                parts.append(f"  {k}: {v}")
        return "\n".join(parts)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "code": self.code,
            "message": str(self),
            "context": dict(self.context),
        }
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class ValidationError(ProvenvError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.VALIDATION, hint=hint, context=context)


class LockfileError(ProvenvError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.LOCKFILE, hint=hint, context=context)


class PolicyError(ProvenvError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.POLICY, hint=hint, context=context)


class FetchError(ProvenvError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.FETCH, hint=hint, context=context)


class ReproducibilityError(ProvenvError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.REPRODUCIBILITY, hint=hint, context=context)


class UnknownInputError(ProvenvError):
    """A logical input name is absent from the pin table."""

    def __init__(self, name: str, *, known: tuple[str, ...] = ()) -> None:
        super().__init__(
            f"Unknown pinned input `{name}`.",
            code=ErrorCode.UNKNOWN_INPUT,
            hint="Add the input to the lock file with an explicit re-pin.",
            context={"input": name, "known": ", ".join(known)},
        )
        self.name = name


class ToolchainUnavailableError(ProvenvError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=ErrorCode.TOOLCHAIN_UNAVAILABLE,
            hint=hint,
            context=context,
        )


class ComponentUnavailableError(ProvenvError):
    def __init__(
        self,
        component: str,
        *,
        toolchain: str,
        available: tuple[str, ...] = (),
    ) -> None:
        super().__init__(
            f"Toolchain `{toolchain}` does not provide component `{component}`.",
            code=ErrorCode.COMPONENT_UNAVAILABLE,
            hint="Drop the component or pin a snapshot that ships it.",
            context={
                "component": component,
                "toolchain": toolchain,
                "available": ", ".join(available),
            },
        )
        self.component = component


class UnresolvedDependencyError(ProvenvError):
    def __init__(self, names: tuple[str, ...], *, scope: str) -> None:
        listed = ", ".join(names)
        super().__init__(
            f"Unresolved dependency `{listed}`.",
            code=ErrorCode.UNRESOLVED_DEPENDENCY,
            hint="Provide the package from the base universe or an overlay.",
            context={"dependency": listed, "scope": scope},
        )
        self.names = names

    @property
    def name(self) -> str:
        return self.names[0]


class BuildError(ProvenvError):
    """Build tool failure carrying the tool's diagnostics verbatim."""

    diagnostics: str
    returncode: int

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        diagnostics: str,
        returncode: int,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=code, hint=hint, context=context)
        self.diagnostics = diagnostics
        self.returncode = returncode

    def __str__(self) -> str:
        rendered = super().__str__()
        if self.diagnostics:
            rendered = f"{rendered}\n{self.diagnostics.rstrip()}"
        return rendered


class CompileError(BuildError):
    def __init__(
        self,
        message: str,
        *,
        diagnostics: str,
        returncode: int,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=ErrorCode.COMPILE,
            diagnostics=diagnostics,
            returncode=returncode,
            hint="Fix the reported compiler errors in the pinned source revision.",
            context=context,
        )


class LinkError(BuildError):
    def __init__(
        self,
        message: str,
        *,
        diagnostics: str,
        returncode: int,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=ErrorCode.LINK,
            diagnostics=diagnostics,
            returncode=returncode,
            hint="Check the linker output against the runtime dependency set.",
            context=context,
        )


class MissingNativeLibraryError(BuildError):
    def __init__(
        self,
        library: str,
        *,
        package: str | None,
        diagnostics: str = "",
        returncode: int = 0,
        context: Mapping[str, str] | None = None,
    ) -> None:
        merged = {"library": library, "dependency": package or ""}
        merged.update(context or {})
        super().__init__(
            f"Native library `{library}` was not found on the search path.",
            code=ErrorCode.MISSING_NATIVE_LIBRARY,
            diagnostics=diagnostics,
            returncode=returncode,
            hint="Add the providing package to the runtime dependencies.",
            context=merged,
        )
        self.library = library
        self.package = package


class ArtifactPublishError(ProvenvError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.ARTIFACT_PUBLISH, hint=hint, context=context)


class HookError(ProvenvError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.HOOK, hint=hint, context=context)


class CommandError(ProvenvError):
    """A command could not be started."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.COMMAND, hint=hint, context=context)


__all__ = [
    "ArtifactPublishError",
    "BuildError",
    "CommandError",
    "CompileError",
    "ComponentUnavailableError",
    "ErrorCode",
    "FetchError",
    "HookError",
    "LinkError",
    "LockfileError",
    "MissingNativeLibraryError",
    "PolicyError",
    "ProvenvError",
    "ReproducibilityError",
    "ToolchainUnavailableError",
    "UnknownInputError",
    "UnresolvedDependencyError",
    "ValidationError",
]
