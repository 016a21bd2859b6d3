from __future__ import annotations

import enum
from typing import Awaitable, Callable

from loguru import logger

from voyager_e2e.artifacts import ArtifactDirectory, write_app_logs
from voyager_e2e.config import ONBOARDING_KEY, SESSION_SELECTOR, SIGN_IN_SELECTOR, ci_enabled
from voyager_e2e.errors import InvalidTransition


CrashHandler = Callable[[object, BaseException], Awaitable[None]]


class AppState(enum.Enum):
    NOT_STARTED = "not_started"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    CRASHED = "crashed"


STARTABLE = {AppState.NOT_STARTED, AppState.STOPPED, AppState.CRASHED}
# states in which the app may still own a chromedriver even if no session is up
STOPPABLE = {AppState.STARTING, AppState.RUNNING, AppState.CRASHED}


class AppDriver:
    """
    Start, stop, restart and refresh the GUI, waiting for a DOM marker each time.

    Transitions are serialized by the caller; overlapping `start`/`stop`
    calls on one driver are not supported.
    """

    def __init__(
        self,
        app,
        artifacts: ArtifactDirectory,
        *,
        crash_handler: CrashHandler,
        wait_timeout_sec: float = 10.0,
        refresh_timeout_sec: float = 5.0,
        ci: Callable[[], bool] = ci_enabled,
    ) -> None:
        self.app = app
        self.artifacts = artifacts
        self.crash_handler = crash_handler
        self.wait_timeout_sec = wait_timeout_sec
        self.refresh_timeout_sec = refresh_timeout_sec
        self.ci = ci
        self.state = AppState.NOT_STARTED

    def is_running(self) -> bool:
        return self.state is AppState.RUNNING and self.app.is_running()

    async def _crash(self, error: BaseException) -> None:
        self.state = AppState.CRASHED
        await self.crash_handler(self.app, error)

    async def start(self, selector: str = SESSION_SELECTOR) -> None:
        if self.state not in STARTABLE:
            raise InvalidTransition(f"cannot start the app while {self.state.value}")
        logger.info("starting app")
        self.state = AppState.STARTING
        try:
            await self.app.start()
            await self.app.wait_for_exist(selector, self.wait_timeout_sec)
        except Exception as exc:
            await self._crash(exc)
            raise
        self.state = AppState.RUNNING
        logger.info("started app")

    async def _collect_logs_in_ci(self) -> None:
        # the app output is reset when the app stops, so CI keeps a copy first
        if self.ci():
            logger.info("collecting app logs")
            await write_app_logs(self.app, self.artifacts)

    async def stop(self) -> None:
        logger.info("stopping app")
        running = self.app.is_running()
        if running or self.state in STOPPABLE:
            self.state = AppState.STOPPING
            if running:
                await self._collect_logs_in_ci()
            await self.app.stop()
        self.state = AppState.STOPPED
        logger.info("app stopped")

    async def restart(self, selector: str = SIGN_IN_SELECTOR) -> None:
        logger.info("restarting app")
        await self.stop()
        await self.start(selector)

    async def refresh(self, selector: str = SIGN_IN_SELECTOR) -> None:
        logger.info("refreshing app")
        if not self.is_running():
            raise InvalidTransition(f"cannot refresh the app while {self.state.value}")
        await self._collect_logs_in_ci()
        try:
            await self.app.refresh()
            await self.app.wait_for_exist(selector, self.refresh_timeout_sec)
        except Exception as exc:
            await self._crash(exc)
            raise

    async def disable_onboarding(self) -> None:
        await self.app.set_local_storage(ONBOARDING_KEY, "false")

    async def onboarding_flag(self) -> str | None:
        return await self.app.get_local_storage(ONBOARDING_KEY)
