from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from unittest.mock import Mock

import pytest

from cryptshot import cli
from cryptshot.config import ConfigurationError, CryptshotConfig


@pytest.fixture(autouse=True)
def configure_logging(monkeypatch: pytest.MonkeyPatch) -> Mock:
    configure = Mock()
    monkeypatch.setattr(cli, "configure_logging", configure)
    return configure


def _write_config(tmp_path: Path) -> Path:
    device_root = tmp_path / "by-uuid"
    device_root.mkdir()
    lines = [
        "uuid: abcd",
        f"keyfile: {tmp_path / 'backup.key'}",
        f"mountpoint: {tmp_path / 'mnt'}",
        f"device_root: {device_root}",
    ]
    path = tmp_path / "cryptshot.yaml"
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def test_parse_args_accepts_config_and_interval() -> None:
    args = cli.parse_args(["-c", "/etc/cryptshot.yaml", "daily"])

    assert args.config == "/etc/cryptshot.yaml"
    assert args.interval == "daily"


def test_parse_args_reads_config_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CRYPTSHOT_CONFIG", "/srv/cryptshot.yaml")

    assert cli.parse_args(["hourly"]).config == "/srv/cryptshot.yaml"


def test_build_cycle_wires_configured_tools() -> None:
    config = CryptshotConfig(uuid="abcd", tools={"cryptsetup": "/sbin/cryptsetup"})

    cycle = cli.build_cycle(config)

    assert cycle._volume._cryptsetup == "/sbin/cryptsetup"  # type: ignore[attr-defined]
    assert cycle._backup.command == ["/usr/bin/rsnapshot"]  # type: ignore[attr-defined]


def test_main_without_configuration_exits_78(capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = cli.main(["daily"], loader=lambda _path: CryptshotConfig())

    assert exit_code == 78
    assert capsys.readouterr().out == "No volume specified.\n"


def test_main_without_interval_exits_64(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config_path = _write_config(tmp_path)

    exit_code = cli.main(["-c", str(config_path)])

    assert exit_code == 64
    assert capsys.readouterr().out == "No interval specified.\n"


def test_main_reports_configuration_errors(capsys: pytest.CaptureFixture[str]) -> None:
    def _broken(_path: object) -> CryptshotConfig:
        raise ConfigurationError("Configuration file not found: /nope.yaml")

    exit_code = cli.main(["-c", "/nope.yaml", "daily"], loader=_broken)

    assert exit_code == 78
    assert "Configuration error: Configuration file not found" in capsys.readouterr().out


def test_main_absent_volume_exits_33(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config_path = _write_config(tmp_path)

    exit_code = cli.main(["-c", str(config_path), "daily"])

    assert exit_code == 33
    assert capsys.readouterr().out == "Volume abcd not found.\n"
    assert (tmp_path / "mnt").is_dir()


def test_main_runs_full_cycle_through_external_tools(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    config_path = _write_config(tmp_path)
    (tmp_path / "by-uuid" / "abcd").touch()
    run = Mock(return_value=SimpleNamespace(returncode=0))
    monkeypatch.setattr("cryptshot.runner.subprocess.run", run)

    exit_code = cli.main(["-c", str(config_path), "daily"])

    commands = [call.args[0] for call in run.call_args_list]
    assert exit_code == 0
    assert capsys.readouterr().out == ""
    assert [cmd[0] for cmd in commands] == ["cryptsetup", "mount", "/usr/bin/rsnapshot", "umount", "cryptsetup"]
    assert commands[1] == ["mount", "/dev/mapper/crypt-abcd", str(tmp_path / "mnt")]
    assert commands[2] == ["/usr/bin/rsnapshot", "daily"]
    assert commands[4] == ["cryptsetup", "luksClose", "crypt-abcd"]
    assert not (tmp_path / "mnt").exists()


def test_main_bad_key_returns_cryptsetup_code(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    config_path = _write_config(tmp_path)
    (tmp_path / "by-uuid" / "abcd").touch()
    run = Mock(return_value=SimpleNamespace(returncode=2))
    monkeypatch.setattr("cryptshot.runner.subprocess.run", run)

    exit_code = cli.main(["-c", str(config_path), "daily"])

    assert exit_code == 2
    assert run.call_count == 1
    device = tmp_path / "by-uuid" / "abcd"
    assert capsys.readouterr().out == f"Failed to open {device} with key {tmp_path / 'backup.key'}.\n"


def test_main_log_level_flag_overrides_configuration(tmp_path: Path, configure_logging: Mock) -> None:
    config_path = _write_config(tmp_path)

    cli.main(["-c", str(config_path), "--log-level", "debug", "daily"])

    configure_logging.assert_called_once_with("debug")


def test_main_uses_configured_log_level(tmp_path: Path, configure_logging: Mock) -> None:
    config_path = _write_config(tmp_path)
    with config_path.open("a", encoding="utf-8") as fh:
        fh.write("logging:\n  level: info\n")

    cli.main(["-c", str(config_path), "daily"])

    configure_logging.assert_called_once_with("INFO")


def test_main_killed_mount_exits_with_shell_signal_status(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    config_path = _write_config(tmp_path)
    (tmp_path / "by-uuid" / "abcd").touch()
    run = Mock(
        side_effect=[
            SimpleNamespace(returncode=0),
            SimpleNamespace(returncode=-9),
            SimpleNamespace(returncode=0),
        ]
    )
    monkeypatch.setattr("cryptshot.runner.subprocess.run", run)

    exit_code = cli.main(["-c", str(config_path), "daily"])

    assert exit_code == 137
    assert capsys.readouterr().out.startswith("Failed to mount ")
    assert run.call_args_list[-1].args[0] == ["cryptsetup", "luksClose", "crypt-abcd"]
