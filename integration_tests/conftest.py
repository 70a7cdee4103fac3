"""Shared helpers for integration tests."""

from __future__ import annotations

import json
import shutil
import subprocess
from pathlib import Path

import pytest

HELLO_MAIN = 'fn main() {\n    println!("shellcaster {}", env!("CARGO_PKG_VERSION"));\n}\n'
HELLO_LOCK = """# This file is automatically @generated by Cargo.
# It is not intended for manual editing.
version = 3

[[package]]
name = "shellcaster"
version = "1.1.0"
"""


def run_git(argv: list[str], *, cwd: Path) -> str:
    completed = subprocess.run(
        ["git", *argv], cwd=cwd, check=False, text=True, capture_output=True
    )
    if completed.returncode != 0:
        raise RuntimeError(f"git {' '.join(argv)} failed: {completed.stderr.strip()}")
    return completed.stdout.strip()


@pytest.fixture
def crate_repository(tmp_path: Path) -> Path:
    """A git repository holding a dependency-free binary crate."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    repo = tmp_path / "upstream"
    (repo / "src").mkdir(parents=True)
    (repo / "Cargo.toml").write_text(
        '[package]\nname = "shellcaster"\nversion = "1.1.0"\nedition = "2018"\n',
        encoding="utf-8",
    )
    (repo / "Cargo.lock").write_text(HELLO_LOCK, encoding="utf-8")
    (repo / "src" / "main.rs").write_text(HELLO_MAIN, encoding="utf-8")
    run_git(["init"], cwd=repo)
    run_git(["checkout", "-b", "main"], cwd=repo)
    run_git(["config", "user.email", "provenv@example.com"], cwd=repo)
    run_git(["config", "user.name", "Provenv Integration"], cwd=repo)
    run_git(["add", "."], cwd=repo)
    run_git(["commit", "-m", "shellcaster"], cwd=repo)
    return repo


def _write_project(root: Path, *, toolchain_root: Path, version: str, host: str) -> Path:
    """Write a project whose channel index points at an installed toolchain."""
    root.mkdir(parents=True, exist_ok=True)
    (root / "channels.json").write_text(
        json.dumps(
            {
                "snapshots": [
                    {
                        "channel": "stable",
                        "date": "2021-01-15",
                        "version": version,
                        "components": ["rustc", "cargo", "rust-std"],
                        "root": str(toolchain_root),
                    }
                ]
            }
        ),
        encoding="utf-8",
    )
    (root / "universe.json").write_text(json.dumps({"packages": {}}), encoding="utf-8")
    (root / "provenv.lock").write_text(
        json.dumps({"version": 1, "inputs": {}}), encoding="utf-8"
    )
    (root / "provenv.toml").write_text(
        f"""
[project]
name = "shellcaster"

[toolchain]
channel = "stable"
date = "2021-01-15"

[packages]
universe = "universe.json"

[policy]
host_triple = "{host}"
""",
        encoding="utf-8",
    )
    return root


@pytest.fixture
def installed_project(tmp_path: Path) -> Path:
    """A project pinned to the Rust toolchain found on ``PATH``."""
    if shutil.which("rustc") is None:
        pytest.skip("no Rust toolchain on PATH")
    sysroot = subprocess.run(
        ["rustc", "--print", "sysroot"], check=True, text=True, capture_output=True
    ).stdout.strip()
    details = subprocess.run(
        ["rustc", "-vV"], check=True, text=True, capture_output=True
    ).stdout.splitlines()
    fields = dict(line.split(": ", 1) for line in details if ": " in line)
    if not (Path(sysroot) / "bin" / "cargo").exists():
        pytest.skip("cargo is not installed next to rustc")
    return _write_project(
        tmp_path / "project",
        toolchain_root=Path(sysroot),
        version=fields["release"],
        host=fields["host"],
    )
