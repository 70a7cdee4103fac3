from pathlib import Path

import pytest

from provenv.environment import CommandHook, PathHook
from provenv.errors import LockfileError, ValidationError
from provenv.project import load_project, parse_project


def test_load_shellcaster_project(shellcaster_project) -> None:
    root = shellcaster_project()

    project = load_project(root)

    assert project.root == root.resolve()
    assert project.name == "shellcaster"
    assert project.artifact == "shellcaster"
    assert project.lockfile == root.resolve() / "provenv.lock"
    assert project.toolchain.manifest is None
    assert project.toolchain.channel_date is not None
    assert project.toolchain.channel_date.date == "2021-01-15"
    assert project.packages.overlays == ("overlayA",)
    assert project.build_time == ("pkg-config",)
    assert project.runtime == ("openssl", "sqlite")
    assert project.shell.tools == ("git",)
    assert isinstance(project.shell.hooks[0], PathHook)
    assert project.policy.require_integrity is True
    assert project.output_dir == root.resolve() / "result"


def test_load_project_accepts_file_path(shellcaster_project) -> None:
    root = shellcaster_project()

    assert load_project(root / "provenv.toml").root == root.resolve()


def test_missing_project_file(tmp_path: Path) -> None:
    with pytest.raises(LockfileError):
        load_project(tmp_path)


def test_invalid_toml(tmp_path: Path) -> None:
    (tmp_path / "provenv.toml").write_text("[project\n", encoding="utf-8")

    with pytest.raises(LockfileError, match="TOML"):
        load_project(tmp_path)


def test_defaults_follow_project_name(tmp_path: Path) -> None:
    project = parse_project({"project": {"name": "shellcaster"}}, root=tmp_path)

    assert project.source == "shellcaster"
    assert project.artifact == "shellcaster"
    assert project.profile == "release"
    assert project.toolchain.index == tmp_path / "channels.json"


def test_command_hooks_are_parsed(tmp_path: Path) -> None:
    project = parse_project(
        {
            "project": {"name": "shellcaster"},
            "shell": {
                "hooks": [
                    {
                        "name": "banner",
                        "kind": "command",
                        "argv": ["figlet shellcaster | lolcat"],
                        "shell": True,
                        "guard": "interactive",
                    }
                ]
            },
        },
        root=tmp_path,
    )

    hook = project.shell.hooks[0]
    assert isinstance(hook, CommandHook)
    assert hook.guard == "interactive"
    assert hook.shell is True


@pytest.mark.parametrize(
    "payload",
    [
        {"project": {}},
        {"project": {"name": "x"}, "extras": {}},
        {"project": {"name": "x", "profile": "fast"}},
        {"project": {"name": "x"}, "toolchain": {"date": "2021-01-15"}},
        {"project": {"name": "x"}, "packages": {"overlays": ["a", "a"]}},
        {"project": {"name": "x"}, "dependencies": {"runtime": "openssl"}},
        {"project": {"name": "x"}, "shell": {"hooks": [{"kind": "mount", "argv": ["x"]}]}},
        {"project": {"name": "x"}, "shell": {"hooks": [{"argv": ["x"], "guard": "tty"}]}},
        {"project": {"name": "x"}, "shell": {"variables": {"A": 1}}},
        {"project": {"name": "x"}, "policy": {"network_mode": "sometimes"}},
    ],
)
def test_invalid_declarations(tmp_path: Path, payload: dict[str, object]) -> None:
    with pytest.raises(ValidationError):
        parse_project(payload, root=tmp_path)
