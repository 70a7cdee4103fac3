import json
import subprocess
from pathlib import Path

import pytest

from provenv.cli import main
from provenv.lockfile import read_lockfile


def _fake_cargo(command, *, cwd, env, capture_output, text, check):
    target_dir = Path(command[command.index("--target-dir") + 1])
    binary = target_dir / command[command.index("--target") + 1] / "release" / "shellcaster"
    binary.parent.mkdir(parents=True, exist_ok=True)
    binary.write_bytes(b"shellcaster binary")
    return subprocess.CompletedProcess(command, 0, "", "")


def test_check_prints_plan_digest(shellcaster_project, capsys: pytest.CaptureFixture[str]) -> None:
    root = shellcaster_project()

    assert main(["--project", str(root), "check"]) == 0

    name, toolchain, digest = capsys.readouterr().out.split()
    assert (name, toolchain) == ("shellcaster", "nightly-2021-01-15")
    assert len(digest) == 64


def test_plan_prints_canonical_json(
    shellcaster_project, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    root = shellcaster_project()

    assert main(["--project", str(root), "plan", "--cbor", str(tmp_path / "plan.cbor")]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["source"]["revision"] == "R1"
    assert (tmp_path / "plan.cbor").is_file()


def test_build_publishes_artifact(
    shellcaster_project, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    root = shellcaster_project()
    monkeypatch.setattr("provenv.executor.subprocess.run", _fake_cargo)

    assert main(["--project", str(root), "build"]) == 0

    assert capsys.readouterr().out.strip() == str(root.resolve() / "result" / "shellcaster")


def test_errors_print_code_and_exit_one(
    shellcaster_project, capsys: pytest.CaptureFixture[str]
) -> None:
    root = shellcaster_project(date="2021-01-16")

    assert main(["--project", str(root), "check"]) == 1

    err = capsys.readouterr().err
    assert err.startswith("error[E_TOOLCHAIN_UNAVAILABLE]: ")


def test_shell_print_emits_exports(
    shellcaster_project, capsys: pytest.CaptureFixture[str]
) -> None:
    root = shellcaster_project()

    assert main(["--project", str(root), "shell", "--print"]) == 0

    lines = capsys.readouterr().out.splitlines()
    assert "export RUST_BACKTRACE=1" in lines
    assert any(line.startswith("export IN_PROVENV_SHELL=") for line in lines)


def test_develop_runs_command_in_session(shellcaster_project) -> None:
    root = shellcaster_project()

    code = main(
        ["--project", str(root), "develop", "--", "/bin/sh", "-c", 'test "$RUST_BACKTRACE" = 1']
    )

    assert code == 0


def test_log_json_written_even_on_failure(shellcaster_project, tmp_path: Path) -> None:
    root = shellcaster_project(runtime=("zlib",))
    log_path = tmp_path / "log.jsonl"

    assert main(["--project", str(root), "--log-json", str(log_path), "check"]) == 1

    records = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines()]
    assert records[-1]["level"] == "error"
    assert records[-1]["operation"] == "check"


def test_pin_updates_lock_file(shellcaster_project, capsys: pytest.CaptureFixture[str]) -> None:
    root = shellcaster_project()

    assert main(["--project", str(root), "pin", "overlayA", "--rev", "OA2"]) == 0

    table = read_lockfile(root / "provenv.lock")
    assert table.resolve("overlayA").revision == "OA2"
    assert table.resolve("overlayA").overlay is True
    assert table.resolve("shellcaster").revision == "R1"


def test_pin_new_input_requires_location(
    shellcaster_project, capsys: pytest.CaptureFixture[str]
) -> None:
    root = shellcaster_project()

    assert main(["--project", str(root), "pin", "mozilla", "--rev", "abc"]) == 1
    assert "error[E_LOCKFILE]" in capsys.readouterr().err


def test_pin_channel_date_validates(
    shellcaster_project, capsys: pytest.CaptureFixture[str]
) -> None:
    root = shellcaster_project()
    argv = ["--project", str(root), "pin", "rust", "--kind", "channel-date"]

    assert main([*argv, "--location", "nightly", "--rev", "2021-02-30"]) == 1
    assert main([*argv, "--location", "nightly", "--rev", "2021-01-15"]) == 0
    assert read_lockfile(root / "provenv.lock").resolve("rust").revision == "2021-01-15"


def test_fmt_requires_rustfmt_component(
    shellcaster_project, capsys: pytest.CaptureFixture[str]
) -> None:
    root = shellcaster_project()
    toml = (root / "provenv.toml").read_text(encoding="utf-8")
    (root / "provenv.toml").write_text(
        toml.replace('"rustfmt-preview", ', ""), encoding="utf-8"
    )

    assert main(["--project", str(root), "fmt", "--check"]) == 1
    assert "error[E_COMPONENT_UNAVAILABLE]" in capsys.readouterr().err


def test_shell_reports_missing_login_shell(
    shellcaster_project,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    root = shellcaster_project()
    monkeypatch.setenv("SHELL", str(tmp_path / "no-such-shell"))

    assert main(["--project", str(root), "shell", "--no-interactive"]) == 1

    err = capsys.readouterr().err
    assert err.startswith("error[E_COMMAND]: ")
    assert "no-such-shell" in err


def test_lint_reports_missing_cargo(
    shellcaster_project, capsys: pytest.CaptureFixture[str]
) -> None:
    root = shellcaster_project()

    assert main(["--project", str(root), "lint"]) == 1
    assert "error[E_COMMAND]" in capsys.readouterr().err


def test_run_reports_artifact_that_cannot_start(
    shellcaster_project, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    root = shellcaster_project()
    monkeypatch.setattr("provenv.executor.subprocess.run", _fake_cargo)

    assert main(["--project", str(root), "run", "--", "--help"]) == 1

    err = capsys.readouterr().err
    assert "error[E_COMMAND]" in err
    assert "shellcaster" in err
