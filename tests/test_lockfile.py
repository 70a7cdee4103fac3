import json
from pathlib import Path

import pytest

from provenv.errors import ErrorCode, LockfileError, UnknownInputError
from provenv.lockfile import (
    PinnedInput,
    PinTable,
    parse_lockfile,
    read_lockfile,
    serialize_lockfile,
    write_lockfile,
)

COMMIT = "a" * 40


def _table() -> PinTable:
    return PinTable(
        version=1,
        pins={
            "shellcaster": PinnedInput(
                name="shellcaster",
                kind="repository-revision",
                location="https://example.invalid/shellcaster.git",
                revision=COMMIT,
                digest="b" * 40,
            ),
            "overlayA": PinnedInput(
                name="overlayA",
                kind="local-path",
                location="overlays/a",
                revision="OA1",
                overlay=True,
            ),
        },
    )


def test_lockfile_roundtrip_parser_serializer() -> None:
    table = _table()
    decoded = parse_lockfile(serialize_lockfile(table), require_integrity=True)

    assert decoded == table
    assert decoded.names() == ("overlayA", "shellcaster")


def test_serialized_lockfile_is_stable() -> None:
    assert serialize_lockfile(_table()) == serialize_lockfile(_table())
    payload = json.loads(serialize_lockfile(_table()))
    assert list(payload["inputs"]) == ["overlayA", "shellcaster"]


def test_resolve_returns_pin_and_is_repeatable() -> None:
    table = _table()

    first = table.resolve("shellcaster")
    second = table.resolve("shellcaster")

    assert first is second
    assert first.reference == f"https://example.invalid/shellcaster.git@{COMMIT}"
    assert first.immutable is True


def test_resolve_unknown_input_raises_with_name() -> None:
    with pytest.raises(UnknownInputError) as excinfo:
        _table().resolve("missing")

    assert excinfo.value.name == "missing"
    assert excinfo.value.code == ErrorCode.UNKNOWN_INPUT
    assert excinfo.value.context["input"] == "missing"


def test_repin_returns_new_table_without_mutating_original() -> None:
    table = _table()
    pin = PinnedInput(name="shellcaster", kind="local-path", location="src", revision="R2")

    updated = table.repin(pin)

    assert updated.resolve("shellcaster").revision == "R2"
    assert table.resolve("shellcaster").revision == COMMIT
    with pytest.raises(TypeError):
        table.pins["other"] = pin  # type: ignore[index]


def test_overlays_lists_only_overlay_inputs() -> None:
    assert [pin.name for pin in _table().overlays()] == ["overlayA"]


def test_branch_name_revision_is_not_immutable() -> None:
    pin = PinnedInput(name="x", kind="repository-revision", location="repo", revision="main")

    assert pin.immutable is False


def test_parse_rejects_unsupported_version() -> None:
    with pytest.raises(LockfileError) as excinfo:
        parse_lockfile(json.dumps({"version": 2, "inputs": {}}))

    assert excinfo.value.context["version"] == "2"


def test_parse_rejects_unknown_kind() -> None:
    raw = json.dumps({"version": 1, "inputs": {"x": {"kind": "tarball", "location": "u"}}})

    with pytest.raises(LockfileError, match="Unsupported pin kind"):
        parse_lockfile(raw)


def test_parse_requires_revision_for_repository_pins() -> None:
    raw = json.dumps(
        {"version": 1, "inputs": {"x": {"kind": "repository-revision", "location": "u"}}}
    )

    with pytest.raises(LockfileError, match="requires a revision"):
        parse_lockfile(raw)


def test_parse_requires_digest_when_integrity_is_required() -> None:
    raw = json.dumps(
        {
            "version": 1,
            "inputs": {
                "x": {"kind": "repository-revision", "location": "u", "revision": COMMIT}
            },
        }
    )

    assert parse_lockfile(raw).resolve("x").digest is None
    with pytest.raises(LockfileError, match="tree digest"):
        parse_lockfile(raw, require_integrity=True)


def test_read_lockfile_missing_file(tmp_path: Path) -> None:
    with pytest.raises(LockfileError) as excinfo:
        read_lockfile(tmp_path / "provenv.lock")

    assert "provenv pin" in (excinfo.value.hint or "")


def test_write_lockfile_then_read(tmp_path: Path) -> None:
    path = write_lockfile(_table(), tmp_path / "provenv.lock")

    assert read_lockfile(path) == _table()
    assert list(tmp_path.iterdir()) == [path]
