"""Toolchain file parsing (``rust-toolchain.toml`` and legacy ``rust-toolchain``)."""

from __future__ import annotations

import re
import tomllib
from dataclasses import dataclass
from datetime import date as Date
from pathlib import Path

from provenv.errors import LockfileError, ValidationError

CHANNELS = ("stable", "beta", "nightly")

_DATED_CHANNEL = re.compile(r"^(stable|beta|nightly)-(\d{4}-\d{2}-\d{2})$")
_RELEASE_VERSION = re.compile(r"^\d+\.\d+\.\d+$")


@dataclass(frozen=True, slots=True)
class ChannelSpec:
    channel: str
    date: str | None = None
    version: str | None = None


@dataclass(frozen=True, slots=True)
class ToolchainManifest:
    path: Path
    channel: ChannelSpec
    components: tuple[str, ...] = ()
    targets: tuple[str, ...] = ()


def parse_channel_spec(raw: str) -> ChannelSpec:
    """Split a toolchain channel string such as ``nightly-2021-01-15``."""
    text = raw.strip()
    dated = _DATED_CHANNEL.fullmatch(text)
    if dated:
        return ChannelSpec(channel=dated.group(1), date=validate_date(dated.group(2)))
    if _RELEASE_VERSION.fullmatch(text):
        return ChannelSpec(channel="stable", version=text)
    if text in CHANNELS:
        return ChannelSpec(channel=text)
    raise ValidationError(
        f"Unrecognized toolchain channel `{raw}`.",
        hint="Use <channel>-YYYY-MM-DD or an X.Y.Z stable release.",
        context={"channel": raw},
    )


def validate_date(value: str) -> str:
    try:
        Date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(
            f"Invalid toolchain date `{value}`.",
            hint="Dates are written as YYYY-MM-DD.",
            context={"date": value},
        ) from exc
    return value


def read_toolchain_manifest(path: str | Path) -> ToolchainManifest:
    manifest_path = Path(path)
    try:
        raw = manifest_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise LockfileError(
            "Toolchain manifest does not exist.",
            context={"path": str(manifest_path)},
        ) from exc
    if manifest_path.suffix != ".toml" and "[" not in raw:
        return ToolchainManifest(path=manifest_path, channel=parse_channel_spec(raw))
    return parse_toolchain_manifest(raw, path=manifest_path)


def parse_toolchain_manifest(raw: str, *, path: Path) -> ToolchainManifest:
    try:
        payload = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        raise LockfileError(
            "Invalid toolchain manifest TOML.",
            hint=str(exc),
            context={"path": str(path)},
        ) from exc
    table = payload.get("toolchain")
    if not isinstance(table, dict):
        raise LockfileError(
            "Toolchain manifest is missing its [toolchain] table.",
            context={"path": str(path)},
        )
    channel = table.get("channel")
    if not isinstance(channel, str) or not channel:
        raise LockfileError(
            "Toolchain manifest is missing `channel`.",
            context={"path": str(path)},
        )
    return ToolchainManifest(
        path=path,
        channel=parse_channel_spec(channel),
        components=_string_list(table, "components", path),
        targets=_string_list(table, "targets", path),
    )


def _string_list(table: dict[str, object], key: str, path: Path) -> tuple[str, ...]:
    value = table.get(key, [])
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise LockfileError(
            f"Toolchain manifest `{key}` must be a list of strings.",
            context={"path": str(path)},
        )
    return tuple(value)
