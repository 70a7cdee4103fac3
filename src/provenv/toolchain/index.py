"""Channel index: the set of toolchain snapshots available for pinning."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from provenv.errors import LockfileError


@dataclass(frozen=True, slots=True)
class Snapshot:
    channel: str
    date: str
    version: str
    components: tuple[str, ...]
    targets: tuple[str, ...]
    root: str | None = None


@dataclass(frozen=True, slots=True)
class ChannelIndex:
    snapshots: tuple[Snapshot, ...] = field(default_factory=tuple)

    def lookup(self, channel: str, date: str) -> Snapshot | None:
        """Return the snapshot published on exactly *date*, if any."""
        for snapshot in self.snapshots:
            if snapshot.channel == channel and snapshot.date == date:
                return snapshot
        return None

    def lookup_version(self, version: str) -> Snapshot | None:
        for snapshot in self.snapshots:
            if snapshot.channel == "stable" and snapshot.version == version:
                return snapshot
        return None

    def dates_for(self, channel: str) -> tuple[str, ...]:
        return tuple(sorted(s.date for s in self.snapshots if s.channel == channel))


def parse_channel_index(raw: str) -> ChannelIndex:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LockfileError("Invalid channel index JSON.", hint=str(exc)) from exc
    if not isinstance(payload, dict) or not isinstance(payload.get("snapshots"), list):
        raise LockfileError("Invalid channel index payload.")
    return ChannelIndex(snapshots=tuple(_parse_snapshot(item) for item in payload["snapshots"]))


def load_channel_index(path: str | Path) -> ChannelIndex:
    index_path = Path(path)
    try:
        raw = index_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise LockfileError(
            "Channel index does not exist.",
            context={"path": str(index_path)},
        ) from exc
    return parse_channel_index(raw)


def _parse_snapshot(item: Any) -> Snapshot:
    if not isinstance(item, dict):
        raise LockfileError("Invalid snapshot entry in channel index.")
    for key in ("channel", "date", "version"):
        if not isinstance(item.get(key), str) or not item[key]:
            raise LockfileError(f"Invalid channel index `{key}` value.")
    components = item.get("components", [])
    targets = item.get("targets", [])
    if not isinstance(components, list) or not all(isinstance(c, str) for c in components):
        raise LockfileError(
            "Invalid channel index component list.",
            context={"channel": item["channel"], "date": item["date"]},
        )
    if not isinstance(targets, list) or not all(isinstance(t, str) for t in targets):
        raise LockfileError(
            "Invalid channel index target list.",
            context={"channel": item["channel"], "date": item["date"]},
        )
    root = item.get("root")
    if root is not None and not isinstance(root, str):
        raise LockfileError("Invalid channel index `root` value.")
    return Snapshot(
        channel=item["channel"],
        date=item["date"],
        version=item["version"],
        components=tuple(components),
        targets=tuple(targets),
        root=root,
    )
