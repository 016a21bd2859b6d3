from __future__ import annotations

import os
import sys
from typing import Awaitable, Callable

from loguru import logger

from voyager_e2e.artifacts import ArtifactDirectory, print_app_logs, save_screenshot, write_app_logs
from voyager_e2e.config import ci_enabled, keep_open_on_crash


class CrashRecovery:
    """
    Handle the first crash of a run exactly once.

    `crashed` is set before any capture work starts, so a failure while writing
    logs or the screenshot that finds its way back here is a no-op instead of
    a recursive crash. Capture is best-effort; termination always runs unless
    the keep-open override asks to leave the app up for inspection.
    """

    def __init__(
        self,
        artifacts: ArtifactDirectory,
        *,
        shutdown: Callable[[], Awaitable[None]] | None = None,
        exit_process: Callable[[int], None] = os._exit,
        ci: Callable[[], bool] = ci_enabled,
        keep_open: Callable[[], bool] = keep_open_on_crash,
    ) -> None:
        self.artifacts = artifacts
        self.shutdown = shutdown
        self.exit_process = exit_process
        self.ci = ci
        self.keep_open = keep_open
        self.crashed = False

    async def handle(self, app, error: BaseException) -> None:
        if self.crashed:
            return
        self.crashed = True

        logger.error("-- App crashed --")
        logger.error(f"{type(error).__name__}: {error}")
        if error.__traceback__ is not None:
            logger.opt(exception=error).debug("crash traceback")

        try:
            if self.ci():
                await write_app_logs(app, self.artifacts)
            else:
                await print_app_logs(app)
        except Exception as exc:
            logger.warning(f"collecting app logs failed: {exc!r}")

        try:
            if app is not None and await app.has_window():
                await save_screenshot(app, self.artifacts)
        except Exception as exc:
            logger.warning(f"capturing screenshot failed: {exc!r}")

        if self.keep_open():
            logger.warning("keeping the app open for inspection")
            return

        try:
            if app is not None:
                await app.stop()
        except Exception as exc:
            logger.warning(f"stopping the app failed: {exc!r}")
        if self.shutdown is not None:
            try:
                await self.shutdown()
            except Exception as exc:
                logger.warning(f"stopping the local node failed: {exc!r}")

        await logger.complete()
        sys.stdout.flush()
        sys.stderr.flush()
        self.exit_process(1)
