"""Lock file parser and serializer."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from provenv.errors import LockfileError
from provenv.lockfile.model import PIN_KINDS, PinnedInput, PinTable
from provenv.publish import publish_text

LOCKFILE_VERSION = 1


def serialize_lockfile(table: PinTable) -> str:
    payload = {
        "version": table.version,
        "inputs": {pin.name: pin.to_payload() for pin in table},
    }
    return json.dumps(payload, indent=2, sort_keys=True) + "\n"


def parse_lockfile(raw: str, *, require_integrity: bool = False) -> PinTable:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LockfileError("Invalid lock file JSON.", hint=str(exc)) from exc

    if not isinstance(payload, dict):
        raise LockfileError("Invalid lock file payload type.")

    version = _required_int(payload, "version")
    if version != LOCKFILE_VERSION:
        raise LockfileError(
            "Unsupported lock file version.",
            hint=f"This release reads lock file version {LOCKFILE_VERSION}.",
            context={"version": str(version)},
        )
    inputs = payload.get("inputs")
    if not isinstance(inputs, dict):
        raise LockfileError("Invalid lock file `inputs` value.")

    pins: dict[str, PinnedInput] = {}
    for name, item in inputs.items():
        pins[name] = _parse_pin(name, item, require_integrity=require_integrity)
    return PinTable(version=version, pins=pins)


def read_lockfile(path: str | Path, *, require_integrity: bool = False) -> PinTable:
    lock_path = Path(path)
    try:
        raw = lock_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise LockfileError(
            "Lock file does not exist.",
            hint="Record the inputs with `provenv pin` before composing.",
            context={"path": str(lock_path)},
        ) from exc
    return parse_lockfile(raw, require_integrity=require_integrity)


def write_lockfile(table: PinTable, path: str | Path) -> Path:
    return publish_text(serialize_lockfile(table), path)


def _parse_pin(name: Any, item: Any, *, require_integrity: bool) -> PinnedInput:
    if not isinstance(name, str) or not name:
        raise LockfileError("Invalid lock file input name.")
    if not isinstance(item, dict):
        raise LockfileError("Invalid lock file input entry.", context={"input": name})

    kind = _required_str(item, "kind", name)
    if kind not in PIN_KINDS:
        raise LockfileError(
            f"Unsupported pin kind `{kind}`.",
            hint=f"Supported kinds: {', '.join(PIN_KINDS)}.",
            context={"input": name},
        )
    location = _required_str(item, "location", name)
    revision = _optional_str(item, "revision", name)
    digest = _optional_str(item, "digest", name)
    overlay = item.get("overlay", False)
    if not isinstance(overlay, bool):
        raise LockfileError("Invalid lock file `overlay` value.", context={"input": name})

    if kind in ("repository-revision", "channel-date") and revision is None:
        raise LockfileError(
            f"Pin of kind `{kind}` requires a revision.",
            context={"input": name},
        )
    if require_integrity and kind == "repository-revision" and digest is None:
        raise LockfileError(
            "Repository pin is missing its tree digest.",
            hint="Re-pin the input with --hash or relax policy.require_integrity.",
            context={"input": name},
        )
    return PinnedInput(
        name=name,
        kind=kind,  # type: ignore[arg-type]
        location=location,
        revision=revision,
        digest=digest,
        overlay=overlay,
    )


def _required_str(payload: dict[str, Any], key: str, name: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise LockfileError(f"Invalid lock file `{key}` value.", context={"input": name})
    return value


def _optional_str(payload: dict[str, Any], key: str, name: str) -> str | None:
    if key not in payload:
        return None
    return _required_str(payload, key, name)


def _required_int(payload: dict[str, Any], key: str) -> int:
    value = payload.get(key)
    if not isinstance(value, int) or isinstance(value, bool):
        raise LockfileError(f"Invalid lock file `{key}` value.")
    return value
