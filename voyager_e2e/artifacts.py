from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from voyager_e2e.io import append_text, ensure_file
from voyager_e2e.webdriver import RENDERER_CONSOLE_PREFIX


@dataclass(frozen=True)
class ArtifactDirectory:
    """On-disk layout kept after a run for inspection."""

    root: Path

    @property
    def cli_home(self) -> Path:
        return self.root / "cli_home"

    @property
    def node_home(self) -> Path:
        return self.root / "node_home"

    @property
    def main_process_log(self) -> Path:
        return self.root / "main-process.log"

    @property
    def renderer_process_log(self) -> Path:
        return self.root / "renderer-process.log"

    @property
    def screenshot(self) -> Path:
        return self.root / "snapshot.png"

    @property
    def node_log(self) -> Path:
        return self.root / "node.log"

    @property
    def harness_log(self) -> Path:
        return self.root / "harness.log"

    def prepare(self) -> None:
        """Remove what a previous run left behind and recreate the root."""
        if self.root.exists():
            for entry in self.root.iterdir():
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
        self.root.mkdir(parents=True, exist_ok=True)
        logger.info(f"ui home: {self.cli_home}")
        logger.info(f"node home: {self.node_home}")


async def _main_lines(app) -> list[str]:
    # renderer output is mirrored into the main-process log
    return [line for line in await app.main_process_logs() if RENDERER_CONSOLE_PREFIX not in line]


async def write_app_logs(app, artifacts: ArtifactDirectory) -> None:
    ensure_file(artifacts.main_process_log)
    ensure_file(artifacts.renderer_process_log)
    main_lines = await _main_lines(app)
    renderer_lines = [str(entry.get("message", "")) for entry in await app.renderer_process_logs()]
    append_text(artifacts.main_process_log, "".join(f"{line}\n" for line in main_lines))
    append_text(artifacts.renderer_process_log, "".join(f"{line}\n" for line in renderer_lines))
    logger.info(f"wrote main process log to {artifacts.main_process_log}")
    logger.info(f"wrote renderer process log to {artifacts.renderer_process_log}")


async def print_app_logs(app) -> None:
    if app is None:
        logger.info("not printing logs as the app has not started yet")
        return
    for line in await _main_lines(app):
        logger.info(f"[main] {line}")
    for entry in await app.renderer_process_logs():
        message = str(entry.get("message", "")).replace("\\n", "\n")
        logger.info(f"[renderer] {message}")


async def save_screenshot(app, artifacts: ArtifactDirectory) -> Path:
    image = await app.capture_page()
    artifacts.screenshot.parent.mkdir(parents=True, exist_ok=True)
    artifacts.screenshot.write_bytes(image)
    logger.info(f"saved screenshot to {artifacts.screenshot}")
    return artifacts.screenshot
