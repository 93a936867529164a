from __future__ import annotations

import errno
import os
import stat
import subprocess
from pathlib import Path

import pytest

from services.update import (
    BinaryInstaller,
    DisabledPrivilegedMover,
    InstallFailed,
    PermissionDenied,
    RollbackFailed,
    SudoMover,
    UpdateInProgress,
)
from services.update import installers
from services.update.installers import install_lock, lock_path_for, move_path
from tests.unit.update_service_test_utils import RecordingPrivilegedMover, executable_script

OLD = executable_script("1.0.0")
NEW = executable_script("1.1.0")


@pytest.fixture
def live(tmp_path: Path) -> Path:
    path = tmp_path / "bin" / "polymarket"
    path.parent.mkdir()
    path.write_bytes(OLD)
    path.chmod(0o755)
    return path


@pytest.fixture
def new_binary(tmp_path: Path) -> Path:
    path = tmp_path / "scratch" / "polymarket"
    path.parent.mkdir()
    path.write_bytes(NEW)
    path.chmod(0o644)
    return path


def _fail_when(monkeypatch: pytest.MonkeyPatch, predicate, error: OSError) -> list[tuple[Path, Path]]:
    """Make ``move_path`` raise ``error`` for calls matching ``predicate``."""

    calls: list[tuple[Path, Path]] = []
    real_move = installers.move_path

    def fake_move(source: Path, destination: Path) -> None:
        calls.append((source, destination))
        if predicate(source, destination):
            raise error
        real_move(source, destination)

    monkeypatch.setattr(installers, "move_path", fake_move)
    return calls


def test_install_replaces_live_binary(live: Path, new_binary: Path) -> None:
    transaction = BinaryInstaller().install(new_binary, live)

    assert live.read_bytes() == NEW
    assert transaction.backup_path == live.with_name("polymarket.bak")
    assert not transaction.backup_path.exists()
    assert not new_binary.exists()
    assert not lock_path_for(live).exists()


@pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")
def test_install_marks_binary_executable(live: Path, new_binary: Path) -> None:
    BinaryInstaller().install(new_binary, live)

    assert stat.S_IMODE(live.stat().st_mode) == 0o755


def test_install_replaces_stale_backup(live: Path, new_binary: Path) -> None:
    stale = live.with_name("polymarket.bak")
    stale.write_bytes(b"left over from an interrupted update")

    BinaryInstaller().install(new_binary, live)

    assert live.read_bytes() == NEW
    assert not stale.exists()


def test_failed_swap_restores_previous_binary(
    live: Path, new_binary: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _fail_when(
        monkeypatch,
        lambda source, destination: source == new_binary,
        OSError(errno.EIO, "Input/output error"),
    )

    with pytest.raises(InstallFailed, match="previous version is still installed"):
        BinaryInstaller().install(new_binary, live)

    assert live.read_bytes() == OLD
    assert not live.with_name("polymarket.bak").exists()
    assert not lock_path_for(live).exists()


def test_failed_rollback_is_reported_with_manual_instructions(
    live: Path, new_binary: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    backup = live.with_name("polymarket.bak")
    _fail_when(
        monkeypatch,
        lambda source, destination: destination == live,
        OSError(errno.EIO, "Input/output error"),
    )

    with pytest.raises(RollbackFailed) as excinfo:
        BinaryInstaller().install(new_binary, live)

    assert excinfo.value.fatal
    assert f"mv {backup} {live}" in str(excinfo.value)
    assert backup.read_bytes() == OLD
    assert not live.exists()


def test_denied_backup_without_escalation_leaves_live_untouched(
    live: Path, new_binary: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _fail_when(monkeypatch, lambda source, destination: True, PermissionError(errno.EACCES, "denied"))

    with pytest.raises(PermissionDenied, match="try running with sudo"):
        BinaryInstaller(DisabledPrivilegedMover()).install(new_binary, live)

    assert live.read_bytes() == OLD
    assert new_binary.exists()


def test_denied_moves_are_retried_with_privileged_mover(
    live: Path, new_binary: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    calls = _fail_when(
        monkeypatch, lambda source, destination: True, PermissionError(errno.EACCES, "denied")
    )
    mover = RecordingPrivilegedMover(succeed=True)

    BinaryInstaller(mover).install(new_binary, live)

    backup = live.with_name("polymarket.bak")
    assert live.read_bytes() == NEW
    assert mover.moves == [(live, backup), (new_binary, live)]
    assert len(calls) == 2
    assert not backup.exists()


def test_privileged_remove_is_used_for_protected_backup(
    live: Path, new_binary: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    backup = live.with_name("polymarket.bak")
    real_unlink = Path.unlink

    def guarded_unlink(self: Path, missing_ok: bool = False) -> None:
        if self == backup:
            raise PermissionError(errno.EACCES, "denied", str(self))
        real_unlink(self, missing_ok=missing_ok)

    monkeypatch.setattr(Path, "unlink", guarded_unlink)
    mover = RecordingPrivilegedMover(succeed=False)

    BinaryInstaller(mover).install(new_binary, live)

    assert live.read_bytes() == NEW
    assert mover.removals == [backup]
    # The leftover backup is reported, not fatal.
    assert backup.exists()


def test_concurrent_install_is_refused(live: Path, new_binary: Path) -> None:
    with install_lock(live) as lock_path:
        with pytest.raises(UpdateInProgress) as excinfo:
            BinaryInstaller().install(new_binary, live)

    assert excinfo.value.lock_path == lock_path
    assert live.read_bytes() == OLD
    assert not lock_path.exists()


def test_move_path_falls_back_to_copy_across_filesystems(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    source = tmp_path / "source"
    source.write_bytes(NEW)
    destination = tmp_path / "destination"
    destination.write_bytes(OLD)
    real_replace = os.replace
    replaced: list[tuple[str, str]] = []

    def fake_replace(src, dst) -> None:
        replaced.append((str(src), str(dst)))
        if Path(src) == source:
            raise OSError(errno.EXDEV, "Invalid cross-device link")
        real_replace(src, dst)

    monkeypatch.setattr(installers.os, "replace", fake_replace)

    move_path(source, destination)

    assert destination.read_bytes() == NEW
    assert not source.exists()
    staging = replaced[1][0]
    assert Path(staging).parent == tmp_path
    assert not Path(staging).exists()


def test_move_path_propagates_other_errors(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        move_path(tmp_path / "missing", tmp_path / "destination")


def test_disabled_mover_always_refuses(tmp_path: Path) -> None:
    mover = DisabledPrivilegedMover()

    with pytest.raises(PermissionError):
        mover.move(tmp_path / "a", tmp_path / "b")
    with pytest.raises(PermissionError):
        mover.remove(tmp_path / "a")


def test_sudo_mover_runs_command(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    commands: list[list[str]] = []

    def fake_run(command, check):
        commands.append(command)
        return subprocess.CompletedProcess(command, 0)

    monkeypatch.setattr(installers.subprocess, "run", fake_run)

    SudoMover().move(tmp_path / "a", tmp_path / "b")
    SudoMover(("doas",)).remove(tmp_path / "b")

    assert commands == [
        ["sudo", "mv", str(tmp_path / "a"), str(tmp_path / "b")],
        ["doas", "rm", "-f", str(tmp_path / "b")],
    ]


def test_sudo_mover_failure_is_permission_error(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(
        installers.subprocess,
        "run",
        lambda command, check: subprocess.CompletedProcess(command, 1),
    )

    with pytest.raises(PermissionError, match="exit code 1"):
        SudoMover().move(tmp_path / "a", tmp_path / "b")


def test_sudo_mover_missing_command_is_permission_error(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    def missing(command, check):
        raise FileNotFoundError(errno.ENOENT, "No such file or directory", command[0])

    monkeypatch.setattr(installers.subprocess, "run", missing)

    with pytest.raises(PermissionError, match="Unable to run sudo"):
        SudoMover().remove(tmp_path / "a")
