from __future__ import annotations

from pathlib import Path

import pytest

from voyager_e2e.config import LaunchSettings
from voyager_e2e.pytest_plugin import _missing_binaries


pytestmark = pytest.mark.unit


def _settings(tmp_path: Path) -> LaunchSettings:
    return LaunchSettings(
        artifacts_dir=tmp_path / "testArtifacts",
        node_binary=tmp_path / "gaiad",
        cli_binary=tmp_path / "gaiacli",
        electron_binary=tmp_path / "electron",
        chromedriver_binary=tmp_path / "chromedriver",
        app_main=tmp_path / "main.js",
    )


def test_missing_chromedriver_is_reported(tmp_path: Path) -> None:
    settings = _settings(tmp_path)
    for path in (settings.node_binary, settings.cli_binary, settings.electron_binary, settings.app_main):
        path.write_text("", encoding="utf-8")

    assert _missing_binaries(settings) == [settings.chromedriver_binary]


def test_nothing_missing_when_every_binary_exists(tmp_path: Path) -> None:
    settings = _settings(tmp_path)
    for path in (
        settings.node_binary,
        settings.cli_binary,
        settings.electron_binary,
        settings.chromedriver_binary,
        settings.app_main,
    ):
        path.write_text("", encoding="utf-8")

    assert _missing_binaries(settings) == []
