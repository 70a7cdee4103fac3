"""Toolchain request and description types."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

COMPONENT_ROLES: dict[str, str] = {
    "rustc": "compiler",
    "cargo": "build-tool",
    "rust-std": "standard-library",
    "rustfmt": "formatter",
    "clippy": "linter",
    "rust-analyzer": "language-server",
    "rls": "language-server",
    "rust-src": "source-index",
    "rust-analysis": "analysis",
    "rust-docs": "documentation",
    "llvm-tools": "llvm-tools",
    "miri": "interpreter",
}

DEFAULT_PROFILE: tuple[str, ...] = ("rustc", "cargo", "rust-std")


def component_role(component: str) -> str:
    base = component.removesuffix("-preview")
    return COMPONENT_ROLES.get(base, "auxiliary")


@dataclass(frozen=True, slots=True)
class ManifestPin:
    """Toolchain pinned by an explicit toolchain file."""

    path: Path


@dataclass(frozen=True, slots=True)
class ChannelDatePin:
    channel: str
    date: str | None
    components: tuple[str, ...] = ()
    targets: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class OverlayOverride:
    """Toolchain contributed by an overlay instead of the project itself."""

    overlay: str
    channel: str
    date: str | None
    components: tuple[str, ...] = ()
    targets: tuple[str, ...] = ()


ToolchainRequest = ManifestPin | ChannelDatePin | OverlayOverride


@dataclass(frozen=True, slots=True)
class ToolchainDescription:
    channel: str
    date: str | None
    version: str
    components: tuple[str, ...]
    target: str
    root: str | None = None

    @property
    def identifier(self) -> str:
        if self.date is None:
            return self.version
        return f"{self.channel}-{self.date}"

    @property
    def bin_dir(self) -> Path | None:
        if self.root is None:
            return None
        return Path(self.root) / "bin"

    @property
    def source_index_path(self) -> Path | None:
        if self.root is None or "rust-src" not in self.components:
            return None
        return Path(self.root) / "lib" / "rustlib" / "src" / "rust" / "library"

    def tool(self, name: str) -> str:
        if self.bin_dir is None:
            return name
        return str(self.bin_dir / name)

    def component_roles(self) -> dict[str, str]:
        return {component: component_role(component) for component in self.components}

    def compiler(self) -> str:
        return next(name for name, role in self.component_roles().items() if role == "compiler")

    def to_payload(self) -> dict[str, object]:
        return {
            "channel": self.channel,
            "date": self.date,
            "version": self.version,
            "components": list(self.components),
            "target": self.target,
            "root": self.root,
        }
