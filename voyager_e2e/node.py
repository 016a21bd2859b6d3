from __future__ import annotations

from pathlib import Path
from typing import Any

from loguru import logger

from voyager_e2e.config import NODE_PASSWORD
from voyager_e2e.io import write_text
from voyager_e2e.process_runner import ProcessHandle, ProcessRunner


VERSION_FILE_NAME = "gaiaversion.txt"


class NodeLifecycle:
    """Initialise, start and snapshot a single local gaia daemon."""

    def __init__(
        self,
        node_binary: Path,
        node_home: Path,
        *,
        runner: ProcessRunner | None = None,
        password: str = NODE_PASSWORD,
        log_path: Path | None = None,
    ) -> None:
        self.node_binary = node_binary
        self.node_home = node_home
        self.runner = runner or ProcessRunner()
        self.password = password
        self.log_path = log_path
        self.handle: ProcessHandle | None = None

    @property
    def config_path(self) -> Path:
        return self.node_home / "config" / "config.toml"

    @property
    def version_path(self) -> Path:
        # node_home/config is copied into the GUI network config, so the version travels with it
        return self.node_home / "config" / VERSION_FILE_NAME

    async def init(self) -> dict[str, Any]:
        args = ["init", "--home", str(self.node_home), "--name", "local", "--owk", "--overwrite"]
        logger.info(f"{self.node_binary} {' '.join(args)}")
        result = await self.runner.run(
            self.node_binary,
            args,
            stdin=[self.password],
            parse_json=True,
        )
        await result.handle.reap()
        return result.payload

    async def start(self) -> ProcessHandle:
        if self.handle is not None and self.handle.running:
            return self.handle
        args = ["start", "--home", str(self.node_home)]
        logger.info(f"{self.node_binary} {' '.join(args)}")
        result = await self.runner.run(self.node_binary, args, output_path=self.log_path)
        self.handle = result.handle
        logger.info(f"started local node (pid {self.handle.pid})")
        return self.handle

    async def save_version(self) -> str:
        logger.info(f"{self.node_binary} version > {self.version_path}")
        result = await self.runner.run(self.node_binary, ["version"])
        await result.handle.reap()
        write_text(self.version_path, result.payload)
        return result.payload

    async def stop(self) -> None:
        if self.handle is None:
            return
        handle, self.handle = self.handle, None
        code = await handle.terminate()
        logger.info(f"local node stopped (exit {code})")
