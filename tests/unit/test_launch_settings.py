from __future__ import annotations

from pathlib import Path

import pytest

from voyager_e2e import config
from voyager_e2e.config import LaunchSettings, os_folder_name


pytestmark = pytest.mark.unit


def test_os_folder_name_follows_gaia_build_layout() -> None:
    assert os_folder_name("linux") == "linux_amd64"
    assert os_folder_name("darwin") == "darwin_amd64"
    assert os_folder_name("win32") == "windows_amd64"
    with pytest.raises(RuntimeError):
        os_folder_name("sunos5")


def test_from_env_reads_binary_overrides(tmp_path: Path) -> None:
    settings = LaunchSettings.from_env(
        {
            "BINARY_PATH": "/opt/gaia/gaiacli",
            "NODE_BINARY_PATH": "/opt/gaia/gaiad",
            "VOYAGER_E2E_ARTIFACTS": str(tmp_path / "artifacts"),
        }
    )
    assert settings.cli_binary == Path("/opt/gaia/gaiacli")
    assert settings.node_binary == Path("/opt/gaia/gaiad")
    assert settings.cli_home == tmp_path / "artifacts" / "cli_home"
    assert settings.node_home == tmp_path / "artifacts" / "node_home"
    assert settings.keystore_home == tmp_path / "artifacts" / "cli_home" / "lcd"
    assert settings.timeout_divisor == 50
    assert settings.failure_markers == ("Failed", "Error")


def test_yaml_overlay_overrides_constants(tmp_path: Path) -> None:
    overlay = tmp_path / "launch.yaml"
    overlay.write_text(
        "timeout_divisor: 10\n"
        "failure_markers: [panic]\n"
        "wait_timeout_sec: 30\n"
        "extra_app_env:\n"
        "  COSMOS_NODE: 127.0.0.1\n",
        encoding="utf-8",
    )
    settings = LaunchSettings.from_env({"VOYAGER_E2E_CONFIG": str(overlay)})
    assert settings.timeout_divisor == 10
    assert settings.failure_markers == ("panic",)
    assert settings.wait_timeout_sec == 30.0
    assert settings.app_env()["COSMOS_NODE"] == "127.0.0.1"


def test_unknown_overlay_keys_are_rejected(tmp_path: Path) -> None:
    settings = LaunchSettings.from_env({})
    with pytest.raises(ValueError, match="unknown launch settings"):
        settings.with_overrides({"timeout_divsor": 10})


def test_app_env_disables_mocking_and_devtools(tmp_path: Path) -> None:
    settings = LaunchSettings.from_env(
        {"VOYAGER_E2E_ARTIFACTS": str(tmp_path), "BINARY_PATH": "/bin/gaiacli"}
    )
    env = settings.app_env()
    assert env["COSMOS_MOCKED"] == "false"
    assert env["COSMOS_DEVTOOLS"] == "0"
    assert env["COSMOS_HOME"] == str(tmp_path / "cli_home")
    assert env["COSMOS_NETWORK"] == str(tmp_path / "node_home" / "config")
    assert env["BINARY_PATH"] == "/bin/gaiacli"


def test_crash_flags_are_read_at_call_time(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("CI", raising=False)
    monkeypatch.delenv("COSMOS_E2E_KEEP_OPEN", raising=False)
    assert not config.ci_enabled()
    assert not config.keep_open_on_crash()
    monkeypatch.setenv("CI", "true")
    monkeypatch.setenv("COSMOS_E2E_KEEP_OPEN", "1")
    assert config.ci_enabled()
    assert config.keep_open_on_crash()
