from __future__ import annotations

"""
Pytest fixtures for GUI scenarios running against a launched stack.

The orchestrator lives on one asyncio loop hosted by a dedicated thread. The
loop keeps running between synchronous tests so the daemon and chromedriver
pipes keep draining while a test is busy with assertions.

Scenario tests request `launched` (the memoized launch) or `e2e` (the same
state plus restart/refresh/stop helpers). The stack is launched once per
session and cleaned up when the session finishes.
"""

import asyncio
import threading
from pathlib import Path
from typing import Awaitable, Iterator, TypeVar

import pytest

from voyager_e2e.config import LaunchSettings, SIGN_IN_SELECTOR
from voyager_e2e.logs import configure_logging
from voyager_e2e.orchestrator import LaunchState, Orchestrator


T = TypeVar("T")


class LoopThread:
    """An event loop running forever on a daemon thread."""

    def __init__(self) -> None:
        self.loop = asyncio.new_event_loop()
        self.thread = threading.Thread(target=self._run, name="voyager-e2e-loop", daemon=True)
        self.thread.start()

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def call(self, awaitable: Awaitable[T], timeout_sec: float | None = None) -> T:
        future = asyncio.run_coroutine_threadsafe(_await(awaitable), self.loop)
        return future.result(timeout=timeout_sec)

    def close(self) -> None:
        self.loop.call_soon_threadsafe(self.loop.stop)
        self.thread.join(timeout=10)
        if not self.loop.is_running():
            self.loop.close()


async def _await(awaitable: Awaitable[T]) -> T:
    return await awaitable


class E2ESession:
    """Synchronous view of the launched stack for scenario tests."""

    def __init__(self, loop: LoopThread, orchestrator: Orchestrator, state: LaunchState) -> None:
        self.loop = loop
        self.orchestrator = orchestrator
        self.state = state

    @property
    def app(self):
        return self.state.app.app

    @property
    def accounts(self):
        return self.state.accounts

    def call(self, awaitable: Awaitable[T]) -> T:
        return self.loop.call(awaitable)

    def restart(self, selector: str = SIGN_IN_SELECTOR) -> None:
        self.loop.call(self.orchestrator.restart(selector))

    def refresh(self, selector: str = SIGN_IN_SELECTOR) -> None:
        self.loop.call(self.orchestrator.refresh(selector))

    def stop(self) -> None:
        self.loop.call(self.orchestrator.stop())


def _missing_binaries(settings: LaunchSettings) -> list[Path]:
    required = (
        settings.node_binary,
        settings.cli_binary,
        settings.electron_binary,
        settings.chromedriver_binary,
        settings.app_main,
    )
    return [path for path in required if not path.exists()]


def pytest_configure(config) -> None:
    configure_logging()


@pytest.fixture(scope="session")
def e2e_settings() -> LaunchSettings:
    settings = LaunchSettings.from_env()
    missing = _missing_binaries(settings)
    if missing:
        pytest.skip(f"e2e binaries not available: {', '.join(str(p) for p in missing)}")
    return settings


@pytest.fixture(scope="session")
def e2e_loop() -> Iterator[LoopThread]:
    loop = LoopThread()
    yield loop
    loop.close()


@pytest.fixture(scope="session")
def e2e_orchestrator(e2e_settings: LaunchSettings, e2e_loop: LoopThread) -> Iterator[Orchestrator]:
    orchestrator = Orchestrator(e2e_settings)
    yield orchestrator
    e2e_loop.call(orchestrator.finish())


@pytest.fixture(scope="session")
def launched(e2e_orchestrator: Orchestrator, e2e_loop: LoopThread) -> LaunchState:
    return e2e_loop.call(e2e_orchestrator.launch())


@pytest.fixture
def e2e(e2e_loop: LoopThread, e2e_orchestrator: Orchestrator, launched: LaunchState) -> E2ESession:
    return E2ESession(e2e_loop, e2e_orchestrator, launched)