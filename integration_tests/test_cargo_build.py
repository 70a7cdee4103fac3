"""Integration test: pin a git source, then build it with an installed Rust toolchain.

The channel index is generated from ``rustc --print sysroot`` so the build
runs the real ``cargo`` binary of that toolchain, offline, against a crate
without dependencies.
"""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from provenv.cli import main
from provenv.lockfile import read_lockfile

pytestmark = pytest.mark.integration


def _pin_source(root: Path, repository: Path) -> None:
    argv = ["--project", str(root), "pin", "shellcaster", "--rev", "main"]
    assert main([*argv, "--location", str(repository)]) == 0


def test_pin_then_build_publishes_runnable_artifact(
    installed_project: Path, crate_repository: Path
) -> None:
    _pin_source(installed_project, crate_repository)
    pin = read_lockfile(installed_project / "provenv.lock").resolve("shellcaster")
    assert pin.revision is not None and len(pin.revision) == 40
    assert pin.digest is not None

    assert main(["--project", str(installed_project), "build"]) == 0

    artifact = installed_project / "result" / "shellcaster"
    completed = subprocess.run([str(artifact)], check=True, text=True, capture_output=True)
    assert completed.stdout.strip() == "shellcaster 1.1.0"


def test_same_pins_give_same_plan_digest(
    installed_project: Path, crate_repository: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _pin_source(installed_project, crate_repository)
    capsys.readouterr()

    assert main(["--project", str(installed_project), "check"]) == 0
    first = capsys.readouterr().out
    assert main(["--project", str(installed_project), "check"]) == 0

    assert capsys.readouterr().out == first
