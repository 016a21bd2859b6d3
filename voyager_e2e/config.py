from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml


ROOT_DIR = Path(os.getenv("VOYAGER_ROOT", Path.cwd()))

TIMEOUT_KEYS = (
    "timeout_propose",
    "timeout_propose_delta",
    "timeout_prevote",
    "timeout_prevote_delta",
    "timeout_precommit",
    "timeout_precommit_delta",
    "timeout_commit",
    "flush_throttle_timeout",
)
TIMEOUT_DIVISOR = 50
FAILURE_MARKERS = ("Failed", "Error")

NODE_PASSWORD = "12345678"
ACCOUNT_PASSPHRASE = "1234567890"
PRIMARY_ACCOUNT = "testkey"
SECONDARY_ACCOUNT = "testreceiver"

SESSION_SELECTOR = ".tm-session"
SIGN_IN_SELECTOR = ".tm-session-title=Sign In"
ONBOARDING_KEY = "appOnboardingActive"

CI_ENV = "CI"
KEEP_OPEN_ENV = "COSMOS_E2E_KEEP_OPEN"
CONFIG_ENV = "VOYAGER_E2E_CONFIG"


def os_folder_name(platform: str | None = None) -> str:
    platform = platform or sys.platform
    if platform.startswith("win"):
        return "windows_amd64"
    if platform == "darwin":
        return "darwin_amd64"
    if platform.startswith("linux"):
        return "linux_amd64"
    raise RuntimeError(f"Unsupported platform for gaia builds: {platform}")


def env_flag(name: str) -> bool:
    """Truthiness of an environment flag, read at call time."""
    return bool(os.environ.get(name))


def ci_enabled() -> bool:
    return env_flag(CI_ENV)


def keep_open_on_crash() -> bool:
    return env_flag(KEEP_OPEN_ENV)


def _default_builds_dir() -> Path:
    return ROOT_DIR / "builds" / "Gaia" / os_folder_name()


@dataclass(frozen=True)
class LaunchSettings:
    artifacts_dir: Path
    node_binary: Path
    cli_binary: Path
    electron_binary: Path
    chromedriver_binary: Path
    app_main: Path
    start_timeout_sec: float = 10.0
    wait_timeout_sec: float = 10.0
    refresh_timeout_sec: float = 5.0
    node_password: str = NODE_PASSWORD
    account_passphrase: str = ACCOUNT_PASSPHRASE
    primary_account: str = PRIMARY_ACCOUNT
    secondary_account: str = SECONDARY_ACCOUNT
    timeout_keys: tuple[str, ...] = TIMEOUT_KEYS
    timeout_divisor: int = TIMEOUT_DIVISOR
    failure_markers: tuple[str, ...] = FAILURE_MARKERS
    extra_app_env: dict[str, str] = field(default_factory=dict)

    @property
    def cli_home(self) -> Path:
        return self.artifacts_dir / "cli_home"

    @property
    def node_home(self) -> Path:
        return self.artifacts_dir / "node_home"

    @property
    def keystore_home(self) -> Path:
        # the GUI reads keys from the light client directory inside its home
        return self.cli_home / "lcd"

    @property
    def node_config_dir(self) -> Path:
        return self.node_home / "config"

    def app_env(self) -> dict[str, str]:
        """Environment handed to the GUI process."""
        env = {
            "COSMOS_NODE": "localhost",
            "NODE_ENV": "production",
            "PREVIEW": "true",
            # open devtools break the automation session, open them manually instead
            "COSMOS_DEVTOOLS": "0",
            "COSMOS_HOME": str(self.cli_home),
            "COSMOS_NETWORK": str(self.node_config_dir),
            "COSMOS_MOCKED": "false",
            "BINARY_PATH": str(self.cli_binary),
        }
        env.update(self.extra_app_env)
        return env

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "LaunchSettings":
        environ = os.environ if environ is None else environ
        builds_dir = _default_builds_dir()
        settings = cls(
            artifacts_dir=Path(environ.get("VOYAGER_E2E_ARTIFACTS", ROOT_DIR / "testArtifacts")),
            node_binary=Path(environ.get("NODE_BINARY_PATH", builds_dir / "gaiad")),
            cli_binary=Path(environ.get("BINARY_PATH", builds_dir / "gaiacli")),
            electron_binary=Path(
                environ.get("ELECTRON_PATH", ROOT_DIR / "node_modules" / ".bin" / "electron")
            ),
            chromedriver_binary=Path(environ.get("CHROMEDRIVER_PATH", "chromedriver")),
            app_main=Path(environ.get("VOYAGER_APP_MAIN", ROOT_DIR / "app" / "dist" / "main.js")),
        )
        config_path = environ.get(CONFIG_ENV, "").strip()
        if config_path:
            settings = settings.with_overrides(load_yaml_overrides(Path(config_path)))
        return settings

    def with_overrides(self, overrides: dict[str, Any]) -> "LaunchSettings":
        known = {item.name: item for item in fields(self)}
        unknown = sorted(set(overrides) - set(known))
        if unknown:
            raise ValueError(f"unknown launch settings: {unknown}")
        coerced: dict[str, Any] = {}
        for key, value in overrides.items():
            current = getattr(self, key)
            if isinstance(current, Path):
                coerced[key] = Path(value)
            elif isinstance(current, tuple):
                coerced[key] = tuple(value)
            elif isinstance(current, dict):
                coerced[key] = {str(k): str(v) for k, v in (value or {}).items()}
            else:
                coerced[key] = type(current)(value)
        return replace(self, **coerced)


def load_yaml_overrides(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        loaded = yaml.safe_load(handle) or {}
    if not isinstance(loaded, dict):
        raise ValueError(f"launch config at {path} must be a mapping")
    return loaded
