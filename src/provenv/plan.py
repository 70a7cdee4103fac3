"""Build plan: the fully resolved description of one build invocation."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

import cbor2

from provenv.dependencies import DependencySet
from provenv.errors import ValidationError
from provenv.lockfile.model import PinnedInput
from provenv.toolchain.model import ToolchainDescription

BuildProfile = Literal["release", "debug"]

PLAN_SCHEMA_VERSION = 1


@dataclass(frozen=True, slots=True)
class BuildPlan:
    source: PinnedInput
    toolchain: ToolchainDescription
    dependencies: DependencySet
    artifact_name: str
    profile: BuildProfile = "release"

    def __post_init__(self) -> None:
        if not self.artifact_name or "/" in self.artifact_name:
            raise ValidationError(
                "Build plan requires a plain artifact name.",
                context={"artifact": self.artifact_name},
            )

    def to_json(self, path: str | Path | None = None) -> str:
        encoded = json.dumps(self._payload(), indent=2, sort_keys=True) + "\n"
        if path is not None:
            Path(path).write_text(encoded, encoding="utf-8")
        return encoded

    def to_cbor(self, path: str | Path | None = None) -> bytes:
        encoded = cbor2.dumps(self._payload(), canonical=True)
        if path is not None:
            Path(path).write_bytes(encoded)
        return encoded

    def digest(self) -> str:
        """SHA-256 of the canonical CBOR encoding."""
        return hashlib.sha256(self.to_cbor()).hexdigest()

    def _payload(self) -> dict[str, object]:
        return {
            "schema_version": PLAN_SCHEMA_VERSION,
            "artifact": self.artifact_name,
            "profile": self.profile,
            "source": {"name": self.source.name, **self.source.to_payload()},
            "toolchain": self.toolchain.to_payload(),
            "dependencies": self.dependencies.to_payload(),
        }
