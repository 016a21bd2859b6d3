from __future__ import annotations

"""
Remote automation of the Electron GUI over the W3C WebDriver protocol.

chromedriver is spawned as a child of the harness and launches Electron with
the GUI entry point, so the GUI inherits chromedriver's environment and its
stdout doubles as the main-process log. Renderer console output is read back
through chromedriver's browser log endpoint.
"""

import base64
import os
import socket
from pathlib import Path
from typing import Any, Sequence

import httpx
from loguru import logger

from voyager_e2e.errors import WebDriverError
from voyager_e2e.io import wait_until
from voyager_e2e.process_runner import ProcessHandle, ProcessRunner


ELEMENT_KEY = "element-6066-11e4-a52e-4f735466cecf"
DEFAULT_APP_ARGS = ("--disable-gpu", "--no-sandbox")
RENDERER_CONSOLE_PREFIX = "CONSOLE("


def find_free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return int(sock.getsockname()[1])


def parse_selector(selector: str) -> tuple[str, str | None]:
    """
    Split a `css=Text` selector into the CSS part and the expected text.

    An `=` inside an attribute selector (`[name=value]`) belongs to the CSS.
    """
    depth = 0
    for index, char in enumerate(selector):
        if char == "[":
            depth += 1
        elif char == "]":
            depth = max(depth - 1, 0)
        elif char == "=" and depth == 0 and index > 0:
            return selector[:index], selector[index + 1 :]
    return selector, None


class WebDriverSession:
    """Thin async client for one WebDriver session."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_sec: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self.client = httpx.AsyncClient(
            base_url=base_url, timeout=httpx.Timeout(timeout_sec), transport=transport
        )
        self.session_id: str | None = None

    async def _request(self, method: str, path: str, payload: dict | None = None) -> Any:
        response = await self.client.request(method, path, json=payload)
        try:
            body = response.json()
        except ValueError:
            body = {}
        value = body.get("value") if isinstance(body, dict) else None
        if response.status_code >= 400:
            details = value if isinstance(value, dict) else {}
            raise WebDriverError(
                response.status_code,
                str(details.get("error", "unknown error")),
                str(details.get("message", response.text)),
            )
        return value

    def _session_path(self, suffix: str = "") -> str:
        if self.session_id is None:
            raise WebDriverError(0, "invalid session id", "no active session")
        return f"/session/{self.session_id}{suffix}"

    async def ready(self) -> bool | None:
        try:
            value = await self._request("GET", "/status")
        except httpx.TransportError:
            return None
        if isinstance(value, dict) and value.get("ready"):
            return True
        return None

    async def create(self, capabilities: dict[str, Any]) -> str:
        value = await self._request("POST", "/session", {"capabilities": {"alwaysMatch": capabilities}})
        if not isinstance(value, dict) or not value.get("sessionId"):
            raise WebDriverError(0, "session not created", f"no session id in {value!r}")
        self.session_id = str(value["sessionId"])
        return self.session_id

    async def delete(self) -> None:
        if self.session_id is None:
            return
        try:
            await self._request("DELETE", self._session_path())
        finally:
            self.session_id = None

    async def close(self) -> None:
        await self.client.aclose()

    async def find_elements(self, css: str) -> list[str]:
        value = await self._request(
            "POST", self._session_path("/elements"), {"using": "css selector", "value": css}
        )
        return [item[ELEMENT_KEY] for item in value or [] if ELEMENT_KEY in item]

    async def element_text(self, element_id: str) -> str:
        value = await self._request("GET", self._session_path(f"/element/{element_id}/text"))
        return str(value or "")

    async def execute(self, script: str, args: Sequence[Any] = ()) -> Any:
        return await self._request(
            "POST", self._session_path("/execute/sync"), {"script": script, "args": list(args)}
        )

    async def refresh(self) -> None:
        await self._request("POST", self._session_path("/refresh"), {})

    async def screenshot(self) -> bytes:
        value = await self._request("GET", self._session_path("/screenshot"))
        return base64.b64decode(value)

    async def window_handles(self) -> list[str]:
        value = await self._request("GET", self._session_path("/window/handles"))
        return list(value or [])

    async def browser_logs(self) -> list[dict[str, Any]]:
        value = await self._request("POST", self._session_path("/se/log"), {"type": "browser"})
        return list(value or [])


class Application:
    """
    Electron GUI driven through chromedriver.

    A fresh chromedriver and session are created on every `start`. Both app
    logs are drained on read, like the browser log endpoint, and the
    main-process log also resets whenever the app is stopped.
    """

    def __init__(
        self,
        *,
        electron_binary: Path,
        app_main: Path,
        chromedriver_binary: Path,
        env: dict[str, str],
        app_args: Sequence[str] = DEFAULT_APP_ARGS,
        start_timeout_sec: float = 10.0,
        runner: ProcessRunner | None = None,
    ) -> None:
        self.electron_binary = electron_binary
        self.app_main = app_main
        self.chromedriver_binary = chromedriver_binary
        self.env = dict(env)
        self.app_args = tuple(app_args)
        self.start_timeout_sec = start_timeout_sec
        self.runner = runner or ProcessRunner()
        self.driver: ProcessHandle | None = None
        self.session: WebDriverSession | None = None

    def capabilities(self) -> dict[str, Any]:
        return {
            "browserName": "chrome",
            "goog:loggingPrefs": {"browser": "ALL"},
            "goog:chromeOptions": {
                "binary": str(self.electron_binary),
                "args": [f"app={self.app_main}", *self.app_args],
            },
        }

    def is_running(self) -> bool:
        return (
            self.session is not None
            and self.session.session_id is not None
            and self.driver is not None
            and self.driver.running
        )

    async def start(self) -> None:
        port = find_free_port()
        env = dict(os.environ)
        env.update(self.env)
        result = await self.runner.run(
            self.chromedriver_binary, [f"--port={port}"], env=env
        )
        self.driver = result.handle
        self.session = WebDriverSession(f"http://127.0.0.1:{port}")
        try:
            await wait_until(
                self.session.ready,
                timeout_sec=self.start_timeout_sec,
                description="chromedriver status",
            )
            session_id = await self.session.create(self.capabilities())
        except BaseException:
            # a half-started chromedriver must not outlive the failed start
            await self.stop()
            raise
        logger.debug(f"automation session {session_id} on port {port}")

    async def stop(self) -> None:
        session, self.session = self.session, None
        driver, self.driver = self.driver, None
        try:
            if session is not None:
                try:
                    await session.delete()
                finally:
                    await session.close()
        finally:
            if driver is not None:
                await driver.terminate()

    def _require_session(self) -> WebDriverSession:
        if self.session is None:
            raise WebDriverError(0, "invalid session id", "application is not running")
        return self.session

    async def element_exists(self, selector: str) -> bool | None:
        session = self._require_session()
        css, text = parse_selector(selector)
        elements = await session.find_elements(css)
        if text is None:
            return True if elements else None
        for element_id in elements:
            if (await session.element_text(element_id)).strip() == text:
                return True
        return None

    async def wait_for_exist(self, selector: str, timeout_sec: float) -> None:
        await wait_until(
            lambda: self.element_exists(selector),
            timeout_sec=timeout_sec,
            poll_sec=0.5,
            description=f"element {selector!r}",
        )

    async def refresh(self) -> None:
        await self._require_session().refresh()

    async def set_local_storage(self, key: str, value: str) -> None:
        await self._require_session().execute(
            "window.localStorage.setItem(arguments[0], arguments[1])", [key, value]
        )

    async def get_local_storage(self, key: str) -> str | None:
        return await self._require_session().execute(
            "return window.localStorage.getItem(arguments[0])", [key]
        )

    async def main_process_logs(self) -> list[str]:
        if self.driver is None:
            return []
        return self.driver.clear_output()

    async def renderer_process_logs(self) -> list[dict[str, Any]]:
        return await self._require_session().browser_logs()

    async def has_window(self) -> bool:
        if not self.is_running():
            return False
        return bool(await self._require_session().window_handles())

    async def capture_page(self) -> bytes:
        return await self._require_session().screenshot()
