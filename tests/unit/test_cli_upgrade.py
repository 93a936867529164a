from __future__ import annotations

import io
import logging
from pathlib import Path

import pytest

from app import cli
from shared import logging_config
from services.update import (
    ArtifactFetcher,
    BinaryInstaller,
    ChecksumMismatch,
    GitHubReleaseProvider,
    PlatformResolver,
    RollbackFailed,
    UpdateService,
)
from tests.unit.update_service_test_utils import (
    FakeHttpClient,
    RecordingPrivilegedMover,
    build_release_archive,
    executable_script,
    fake_platform,
    release_responses,
)


class _Runner:
    def __init__(self, tmp_path: Path, responses: dict, *, current_version: str = "1.0.0") -> None:
        self.live = tmp_path / "polymarket"
        self.live.write_bytes(executable_script(current_version))
        self.client = FakeHttpClient(responses)
        self.current_version = current_version
        self.stdout = io.StringIO()
        self.stderr = io.StringIO()

    def factory(self, args, progress) -> UpdateService:
        return UpdateService(
            GitHubReleaseProvider(self.client),
            ArtifactFetcher(self.client),
            BinaryInstaller(RecordingPrivilegedMover()),
            current_version=self.current_version,
            live_path=self.live,
            platform_resolver=PlatformResolver(fake_platform),
            progress=progress,
        )

    def run(self, *argv: str) -> int:
        args = cli.parse_args(["upgrade", *argv])
        return cli.run_upgrade(
            args, service_factory=self.factory, stdout=self.stdout, stderr=self.stderr
        )

    @property
    def output(self) -> list[str]:
        return self.stdout.getvalue().splitlines()


def _archive(version: str) -> bytes:
    return build_release_archive({"polymarket": executable_script(version)})


def test_upgrade_installs_new_release(tmp_path: Path) -> None:
    runner = _Runner(tmp_path, release_responses("v1.1.0", _archive("1.1.0")))

    assert runner.run() == cli.EXIT_OK

    assert runner.output == [
        "Current version: v1.0.0",
        "Checking for updates...",
        "New version available: v1.1.0",
        "Downloading v1.1.0 (x86_64-unknown-linux-gnu)...",
        "Checksum verified.",
        f"Installing to {runner.live}...",
        "Updated to v1.1.0",
    ]
    assert runner.live.read_bytes() == executable_script("1.1.0")


def test_upgrade_reports_up_to_date(tmp_path: Path) -> None:
    runner = _Runner(
        tmp_path, release_responses("v2.3.1", b"unused"), current_version="2.3.1"
    )

    assert runner.run() == cli.EXIT_OK

    assert runner.output[-1] == "Already up to date."
    assert len(runner.client.requests) == 1


def test_upgrade_check_only_reports_availability(tmp_path: Path) -> None:
    runner = _Runner(tmp_path, release_responses("v1.1.0", _archive("1.1.0")))

    assert runner.run("--check") == cli.EXIT_OK

    assert runner.output[-2:] == [
        "New version available: v1.1.0",
        "Run 'polymarket upgrade' to install it.",
    ]
    assert len(runner.client.requests) == 1
    assert runner.live.read_bytes() == executable_script("1.0.0")


def test_upgrade_labels_downgrades(tmp_path: Path) -> None:
    runner = _Runner(tmp_path, release_responses("v0.9.0", _archive("0.9.0")))

    assert runner.run() == cli.EXIT_OK

    assert "New version available: v0.9.0 (downgrade)" in runner.output


def test_upgrade_checksum_failure_exits_with_integrity_code(tmp_path: Path) -> None:
    manifest = f"{'0' * 64}  polymarket-v1.1.0-x86_64-unknown-linux-gnu.tar.gz\n"
    runner = _Runner(
        tmp_path, release_responses("v1.1.0", _archive("1.1.0"), manifest=manifest)
    )

    assert runner.run() == cli.EXIT_INTEGRITY

    assert "Checksum mismatch!" in runner.stderr.getvalue()
    assert "Updated to" not in runner.stdout.getvalue()
    assert runner.live.read_bytes() == executable_script("1.0.0")


def test_upgrade_network_failure_exits_with_error(tmp_path: Path) -> None:
    runner = _Runner(tmp_path, {})

    assert runner.run() == cli.EXIT_FAILURE

    assert runner.stderr.getvalue().startswith("Error: ")
    assert "HTTP status 404" in runner.stderr.getvalue()


def test_upgrade_rollback_failure_is_fatal(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    runner = _Runner(tmp_path, release_responses("v1.1.0", _archive("1.1.0")))

    def broken_install(self, new_binary: Path, live_path: Path):
        raise RollbackFailed(live_path, live_path.with_name("polymarket.bak"), "disk full")

    monkeypatch.setattr(BinaryInstaller, "install", broken_install)

    assert runner.run() == cli.EXIT_ROLLBACK_FAILED

    message = runner.stderr.getvalue()
    assert message.startswith("Fatal: ")
    assert f"mv {runner.live.with_name('polymarket.bak')} {runner.live}" in message


def test_upgrade_factory_errors_are_reported(tmp_path: Path) -> None:
    stderr = io.StringIO()

    def failing_factory(args, progress):
        raise ChecksumMismatch("a", "b")

    code = cli.run_upgrade(
        cli.parse_args(["upgrade"]),
        service_factory=failing_factory,
        stdout=io.StringIO(),
        stderr=stderr,
    )

    assert code == cli.EXIT_INTEGRITY
    assert "tampered with" in stderr.getvalue()


def test_parse_args_reads_upgrade_options(tmp_path: Path) -> None:
    args = cli.parse_args(
        ["upgrade", "--check", "--no-sudo", "--verbose", "--install-path", str(tmp_path / "pm")]
    )

    assert args.command == "upgrade"
    assert args.check and args.no_sudo and args.verbose
    assert args.install_path == tmp_path / "pm"


def test_version_flag_prints_packaged_version(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("POLYMARKET_VERSION", "v9.8.7")

    with pytest.raises(SystemExit) as excinfo:
        cli.parse_args(["--version"])

    assert excinfo.value.code == 0
    assert capsys.readouterr().out.strip() == "polymarket 9.8.7"


def test_main_without_install_path_fails_cleanly(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("POLYMARKET_UPDATE_NO_SUDO", "1")
    monkeypatch.setattr("services.update.builder.sys.frozen", False, raising=False)

    assert cli.main(["upgrade"]) == cli.EXIT_FAILURE

    assert "--install-path" in capsys.readouterr().err


def test_main_runs_without_a_writable_log_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("", encoding="utf-8")
    monkeypatch.setenv("POLYMARKET_LOG_FILE", str(blocker / "polymarket.log"))
    monkeypatch.setattr("services.update.builder.sys.frozen", False, raising=False)

    assert cli.main(["upgrade", "--check"]) == cli.EXIT_FAILURE

    err = capsys.readouterr().err
    assert "Warning: cannot write log file" in err
    assert "Error: Self-update requires a packaged executable" in err


def test_main_reports_missing_install_path(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    missing = tmp_path / "bin" / "polymarket"

    assert cli.main(["upgrade", "--install-path", str(missing)]) == cli.EXIT_FAILURE

    err = capsys.readouterr().err
    assert "does not exist" in err
    assert "previous version" not in err


@pytest.mark.parametrize(
    ("argv", "expected"),
    [
        ([], logging_config.LogVerbosity.INFO),
        (["--verbose"], logging_config.LogVerbosity.VERBOSE),
        (["--log-level", "error"], logging_config.LogVerbosity.ERROR),
        (["--verbose", "--log-level", "warning"], logging_config.LogVerbosity.WARNING),
    ],
)
def test_configure_logging_sets_file_verbosity(argv, expected) -> None:
    cli.configure_logging(cli.parse_args(["upgrade", *argv]))

    assert logging_config.get_file_log_verbosity() == expected
    handlers = [
        handler
        for handler in logging.getLogger().handlers
        if isinstance(handler, logging.FileHandler)
        and getattr(handler, logging_config._HANDLER_TAG, False)
    ]
    assert [handler.level for handler in handlers] == [logging_config._VERBOSITY_LEVELS[expected]]


def test_log_level_rejects_unknown_values() -> None:
    with pytest.raises(SystemExit):
        cli.parse_args(["upgrade", "--log-level", "chatty"])
