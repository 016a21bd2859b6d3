from __future__ import annotations

"""
Top-level sequencing of the daemon, account provisioning and GUI sessions.

One `Orchestrator` exists per test run. It owns the memoized launch, the
crash flag and every child it started; tests reach the running stack only
through it.
"""

import asyncio
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

from voyager_e2e.accounts import Account, AccountProvisioner
from voyager_e2e.app_driver import AppDriver
from voyager_e2e.artifacts import ArtifactDirectory
from voyager_e2e.config import SESSION_SELECTOR, SIGN_IN_SELECTOR, LaunchSettings, keep_open_on_crash
from voyager_e2e.config_patcher import reduce_timeouts
from voyager_e2e.crash import CrashRecovery
from voyager_e2e.errors import HarnessError
from voyager_e2e.logs import add_file_sink
from voyager_e2e.node import NodeLifecycle
from voyager_e2e.process_runner import ProcessRunner
from voyager_e2e.webdriver import Application


T = TypeVar("T")
AppFactory = Callable[[LaunchSettings, ProcessRunner], Any]


def build_application(settings: LaunchSettings, runner: ProcessRunner) -> Application:
    return Application(
        electron_binary=settings.electron_binary,
        app_main=settings.app_main,
        chromedriver_binary=settings.chromedriver_binary,
        env=settings.app_env(),
        start_timeout_sec=settings.start_timeout_sec,
        runner=runner,
    )


@dataclass(frozen=True)
class LaunchState:
    app: AppDriver
    cli_home: Path
    node_home: Path
    accounts: list[Account]
    genesis: dict[str, Any] = field(default_factory=dict, repr=False)


class Orchestrator:
    def __init__(
        self,
        settings: LaunchSettings,
        *,
        runner: ProcessRunner | None = None,
        app_factory: AppFactory = build_application,
        exit_process: Callable[[int], None] = os._exit,
        keep_open: Callable[[], bool] = keep_open_on_crash,
    ) -> None:
        self.settings = settings
        self.runner = runner or ProcessRunner(failure_markers=settings.failure_markers)
        self.app_factory = app_factory
        self.artifacts = ArtifactDirectory(settings.artifacts_dir)
        self.node = NodeLifecycle(
            settings.node_binary,
            settings.node_home,
            runner=self.runner,
            password=settings.node_password,
            log_path=self.artifacts.node_log,
        )
        self.provisioner = AccountProvisioner(
            settings.cli_binary,
            settings.keystore_home,
            runner=self.runner,
            passphrase=settings.account_passphrase,
        )
        self.crash = CrashRecovery(
            self.artifacts,
            shutdown=self.node.stop,
            exit_process=exit_process,
            keep_open=keep_open,
        )
        self.driver: AppDriver | None = None
        self._launch: asyncio.Task | None = None
        self._sink_id: int | None = None

    @property
    def crashed(self) -> bool:
        return self.crash.crashed

    async def supervise(self, awaitable: Awaitable[T]) -> T:
        """Route any failure of a top-level entry point through crash recovery once."""
        try:
            return await awaitable
        except Exception as exc:
            app = self.driver.app if self.driver is not None else None
            await self.crash.handle(app, exc)
            raise

    async def launch(self) -> LaunchState:
        if self._launch is None:
            self._launch = asyncio.ensure_future(self.supervise(self._launch_sequence()))
        return await asyncio.shield(self._launch)

    async def _launch_sequence(self) -> LaunchState:
        settings = self.settings
        logger.info(f"using cli binary {settings.cli_binary}")
        logger.info(f"using node binary {settings.node_binary}")
        self.artifacts.prepare()
        self._sink_id = add_file_sink(self.artifacts.harness_log)

        genesis = await self.node.init()
        reduce_timeouts(
            self.node.config_path,
            keys=settings.timeout_keys,
            divisor=settings.timeout_divisor,
        )
        await self.node.start()
        await self.node.save_version()

        self.driver = AppDriver(
            self.app_factory(settings, self.runner),
            self.artifacts,
            crash_handler=self.crash.handle,
            wait_timeout_sec=settings.wait_timeout_sec,
            refresh_timeout_sec=settings.refresh_timeout_sec,
        )
        # first start creates the GUI's config in cli_home before keys are added to it
        await self.driver.start(SESSION_SELECTOR)
        await self.driver.stop()

        accounts = await self.provisioner.setup_accounts(
            primary_seed(genesis),
            primary=settings.primary_account,
            secondary=settings.secondary_account,
        )

        await self.driver.start(SIGN_IN_SELECTOR)
        if not self.driver.is_running():
            raise HarnessError("app is not running after the sign-in screen appeared")
        await self.driver.disable_onboarding()

        return LaunchState(
            app=self.driver,
            cli_home=settings.cli_home,
            node_home=settings.node_home,
            accounts=accounts,
            genesis=genesis,
        )

    async def restart(self, selector: str = SIGN_IN_SELECTOR) -> None:
        state = await self.launch()
        await self.supervise(state.app.restart(selector))

    async def refresh(self, selector: str = SIGN_IN_SELECTOR) -> None:
        state = await self.launch()
        await self.supervise(state.app.refresh(selector))

    async def stop(self) -> None:
        if self.driver is not None:
            await self.driver.stop()

    async def finish(self) -> int:
        """Test-completion hook: stop everything this run started. Always succeeds with 0."""
        logger.info("DONE: cleaning up")
        for step in (self.stop, self.node.stop):
            try:
                await step()
            except Exception as exc:
                logger.warning(f"cleanup step {step.__name__} failed: {exc!r}")
        if self._sink_id is not None:
            logger.remove(self._sink_id)
            self._sink_id = None
        return 0


def primary_seed(genesis: dict[str, Any]) -> str:
    try:
        return str(genesis["app_message"]["secret"])
    except (KeyError, TypeError) as exc:
        raise HarnessError(f"init payload carries no app_message.secret: {genesis!r}") from exc
