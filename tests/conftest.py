"""Shared test fixtures."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import pytest

from provenv.dependencies import DependencySet
from provenv.toolchain.model import ToolchainDescription
from provenv.universe import PackageDef

NIGHTLY_COMPONENTS = [
    "rustc",
    "cargo",
    "rust-std",
    "rust-src",
    "clippy-preview",
    "rustfmt-preview",
    "rust-analyzer-preview",
]
HOST = "x86_64-unknown-linux-gnu"

ProjectFactory = Callable[..., Path]


def write_json(path: Path, payload: object) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return path


def make_package(root: Path, name: str, version: str, libs: tuple[str, ...] = ()) -> PackageDef:
    """Create an on-disk package prefix with the given native libraries."""
    prefix = root / f"{name}-{version}"
    for sub in ("bin", "lib", "include", "lib/pkgconfig"):
        (prefix / sub).mkdir(parents=True, exist_ok=True)
    for lib in libs:
        (prefix / "lib" / f"lib{lib}.so").write_bytes(b"")
    return PackageDef(
        name=name,
        version=version,
        prefix=str(prefix),
        bin_dirs=(str(prefix / "bin"),),
        lib_dirs=(str(prefix / "lib"),),
        include_dirs=(str(prefix / "include"),),
        pkgconfig_dirs=(str(prefix / "lib" / "pkgconfig"),),
        libs=libs,
    )


@pytest.fixture
def package_store(tmp_path: Path) -> Callable[..., PackageDef]:
    def factory(name: str, version: str, libs: tuple[str, ...] = ()) -> PackageDef:
        return make_package(tmp_path / "store", name, version, libs)

    return factory


@pytest.fixture
def nightly_toolchain(tmp_path: Path) -> ToolchainDescription:
    root = tmp_path / "toolchains" / "nightly-2021-01-15"
    (root / "bin").mkdir(parents=True, exist_ok=True)
    return ToolchainDescription(
        channel="nightly",
        date="2021-01-15",
        version="1.51.0-nightly",
        components=("rustc", "cargo", "rust-std", "rust-src", "clippy-preview"),
        target=HOST,
        root=str(root),
    )


@pytest.fixture
def runtime_dependencies(tmp_path: Path) -> DependencySet:
    store = tmp_path / "store"
    return DependencySet(
        build_time=(make_package(store, "pkg-config", "0.29.2"),),
        runtime=(
            make_package(store, "openssl", "1.1.1i", libs=("ssl", "crypto")),
            make_package(store, "sqlite", "3.34.0", libs=("sqlite3",)),
        ),
    )


@pytest.fixture
def shellcaster_project(tmp_path: Path) -> ProjectFactory:
    """Write a complete shellcaster project and return its directory.

    The source and the overlay are local-path pins labelled ``R1`` and
    ``OA1``; the toolchain is nightly 2021-01-15 from a local channel index.
    """

    def factory(
        *,
        overlays: tuple[str, ...] = ("overlayA",),
        source_revision: str = "R1",
        date: str = "2021-01-15",
        runtime: tuple[str, ...] = ("openssl", "sqlite"),
        extra_toml: str = "",
    ) -> Path:
        root = tmp_path / "shellcaster"
        store = tmp_path / "store"
        source = root / "source"
        source.mkdir(parents=True, exist_ok=True)
        (source / "Cargo.toml").write_text(
            '[package]\nname = "shellcaster"\nversion = "1.1.0"\n',
            encoding="utf-8",
        )

        toolchain_root = tmp_path / "toolchains" / "nightly-2021-01-15"
        (toolchain_root / "bin").mkdir(parents=True, exist_ok=True)
        write_json(
            root / "channels.json",
            {
                "snapshots": [
                    {
                        "channel": "nightly",
                        "date": day,
                        "version": "1.51.0-nightly",
                        "components": NIGHTLY_COMPONENTS,
                        "targets": [HOST],
                        "root": str(toolchain_root),
                    }
                    for day in ("2021-01-14", "2021-01-15", "2021-01-17")
                ]
            },
        )

        base = {
            "pkg-config": make_package(store, "pkg-config", "0.29.2"),
            "openssl": make_package(store, "openssl", "1.1.1h", libs=("ssl", "crypto")),
            "sqlite": make_package(store, "sqlite", "3.34.0", libs=("sqlite3",)),
            "ncurses6": make_package(store, "ncurses6", "6.2", libs=("ncursesw",)),
            "git": make_package(store, "git", "2.29.2"),
        }
        write_json(
            root / "packages" / "universe.json",
            {"packages": {name: _universe_entry(pkg) for name, pkg in base.items()}},
        )

        patched_openssl = make_package(store, "openssl", "1.1.1i", libs=("ssl", "crypto"))
        write_json(
            root / "overlays" / "overlayA" / "overlay.json",
            {
                "packages": {"openssl": _universe_entry(patched_openssl)},
                "aliases": {"ncurses": "ncurses6"},
            },
        )
        patched_sqlite = make_package(store, "sqlite", "3.35.0", libs=("sqlite3",))
        write_json(
            root / "overlays" / "overlayB" / "overlay.json",
            {
                "packages": {
                    "openssl": _universe_entry(
                        make_package(store, "openssl", "3.0.0", libs=("ssl", "crypto"))
                    ),
                    "sqlite": _universe_entry(patched_sqlite),
                }
            },
        )

        write_json(
            root / "provenv.lock",
            {
                "version": 1,
                "inputs": {
                    "shellcaster": {
                        "kind": "local-path",
                        "location": "source",
                        "revision": source_revision,
                    },
                    "overlayA": {
                        "kind": "local-path",
                        "location": "overlays/overlayA",
                        "revision": "OA1",
                        "overlay": True,
                    },
                    "overlayB": {
                        "kind": "local-path",
                        "location": "overlays/overlayB",
                        "revision": "OB1",
                        "overlay": True,
                    },
                },
            },
        )

        overlay_list = ", ".join(f'"{name}"' for name in overlays)
        runtime_list = ", ".join(f'"{name}"' for name in runtime)
        (root / "provenv.toml").write_text(
            f"""
[project]
name = "shellcaster"
source = "shellcaster"
artifact = "shellcaster"

[toolchain]
channel = "nightly"
date = "{date}"
components = ["rust-src", "clippy-preview", "rustfmt-preview", "rust-analyzer-preview"]
index = "channels.json"

[packages]
universe = "packages/universe.json"
overlays = [{overlay_list}]

[dependencies]
build-time = ["pkg-config"]
runtime = [{runtime_list}]

[shell]
tools = ["git"]

[shell.variables]
RUST_SRC_PATH = "${{toolchain.src}}"
RUST_BACKTRACE = "1"
SHELLCASTER_ROOT = "${{root}}"
CARGO_INSTALL_ROOT = "${{SHELLCASTER_ROOT}}/.cargo"

[[shell.hooks]]
name = "dev-binaries"
kind = "path"
entries = ["${{root}}/target/debug"]

[policy]
require_integrity = true
{extra_toml}
""",
            encoding="utf-8",
        )
        return root

    return factory


def _universe_entry(package: PackageDef) -> dict[str, object]:
    return {"version": package.version, "prefix": package.prefix, "libs": list(package.libs)}
