"""Pinned input and pin table types."""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Literal, get_args

from provenv.errors import UnknownInputError

PinKind = Literal["repository-revision", "channel-date", "local-path"]
PIN_KINDS: tuple[str, ...] = get_args(PinKind)

COMMIT_PATTERN = re.compile(r"^[0-9a-f]{40}$")


@dataclass(frozen=True, slots=True)
class PinnedInput:
    """Immutable reference to one version of an external input.

    ``location`` is the repository URL, channel name, or filesystem path;
    ``revision`` is the commit, snapshot date, or ``None`` for local paths.
    """

    name: str
    kind: PinKind
    location: str
    revision: str | None = None
    digest: str | None = None
    overlay: bool = False

    @property
    def reference(self) -> str:
        if self.revision is None:
            return self.location
        return f"{self.location}@{self.revision}"

    @property
    def immutable(self) -> bool:
        if self.kind == "repository-revision":
            return self.revision is not None and bool(COMMIT_PATTERN.fullmatch(self.revision))
        return True

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "kind": self.kind,
            "location": self.location,
            "overlay": self.overlay,
        }
        if self.revision is not None:
            payload["revision"] = self.revision
        if self.digest is not None:
            payload["digest"] = self.digest
        return payload


@dataclass(frozen=True, slots=True)
class PinTable:
    """Versioned, load-once mapping from logical input name to pin."""

    version: int
    pins: Mapping[str, PinnedInput] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "pins", MappingProxyType(dict(sorted(self.pins.items()))))

    def __contains__(self, name: object) -> bool:
        return name in self.pins

    def __iter__(self) -> Iterator[PinnedInput]:
        return iter(self.pins.values())

    def __len__(self) -> int:
        return len(self.pins)

    def resolve(self, name: str) -> PinnedInput:
        try:
            return self.pins[name]
        except KeyError:
            raise UnknownInputError(name, known=self.names()) from None

    def names(self) -> tuple[str, ...]:
        return tuple(self.pins)

    def overlays(self) -> tuple[PinnedInput, ...]:
        return tuple(pin for pin in self.pins.values() if pin.overlay)

    def repin(self, pin: PinnedInput) -> PinTable:
        """Return a new table with *pin* recorded; this table is unchanged."""
        updated = dict(self.pins)
        updated[pin.name] = pin
        return replace(self, pins=updated)


__all__ = ["COMMIT_PATTERN", "PIN_KINDS", "PinKind", "PinTable", "PinnedInput"]
