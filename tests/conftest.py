from __future__ import annotations

"""
Shared pytest utilities for the full test suite.

This module:
- registers the scenario plugin (`launched` / `e2e` fixtures),
- builds the fake gaia daemon and wallet CLI used by integration tests, and
- provides launch settings pointing every path into the test's tmp dir.
"""

from pathlib import Path

import pytest

from tests.support.fake_app import FakeApplication
from tests.support.fake_binaries import FakeBinaries, build_fake_binaries
from voyager_e2e.config import LaunchSettings

pytest_plugins = ["voyager_e2e.pytest_plugin"]


@pytest.fixture
def fake_binaries(tmp_path: Path) -> FakeBinaries:
    return build_fake_binaries(tmp_path / "bin")


@pytest.fixture
def launch_settings(tmp_path: Path, fake_binaries: FakeBinaries) -> LaunchSettings:
    return LaunchSettings(
        artifacts_dir=tmp_path / "testArtifacts",
        node_binary=fake_binaries.gaiad,
        cli_binary=fake_binaries.gaiacli,
        electron_binary=tmp_path / "electron",
        chromedriver_binary=tmp_path / "chromedriver",
        app_main=tmp_path / "app" / "dist" / "main.js",
        wait_timeout_sec=1.0,
        refresh_timeout_sec=0.5,
    )


@pytest.fixture
def fake_app_factory():
    """Returns a factory recording every FakeApplication handed to the orchestrator."""
    built: list[FakeApplication] = []

    def _factory(settings: LaunchSettings, runner) -> FakeApplication:
        app = FakeApplication(env=settings.app_env())
        built.append(app)
        return app

    _factory.built = built
    return _factory
