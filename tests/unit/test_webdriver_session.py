from __future__ import annotations

import base64
import json

import httpx
import pytest

from voyager_e2e.errors import ReadinessTimeout, WebDriverError
from voyager_e2e.webdriver import ELEMENT_KEY, Application, WebDriverSession


pytestmark = pytest.mark.unit


class FakeDriverEndpoint:
    """Answers the handful of WebDriver routes the harness uses."""

    def __init__(self) -> None:
        self.requests: list[tuple[str, str, dict]] = []
        self.elements = {".tm-session-title": {"e1": "Welcome", "e2": "Sign In"}}
        self.storage: dict[str, str] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else {}
        path = request.url.path
        self.requests.append((request.method, path, body))
        if path == "/status":
            return httpx.Response(200, json={"value": {"ready": True}})
        if path == "/session" and request.method == "POST":
            return httpx.Response(200, json={"value": {"sessionId": "s1", "capabilities": {}}})
        if path == "/session/s1" and request.method == "DELETE":
            return httpx.Response(200, json={"value": None})
        if path == "/session/s1/elements":
            found = self.elements.get(body["value"], {})
            return httpx.Response(200, json={"value": [{ELEMENT_KEY: key} for key in found]})
        if path.startswith("/session/s1/element/") and path.endswith("/text"):
            element_id = path.split("/")[4]
            for texts in self.elements.values():
                if element_id in texts:
                    return httpx.Response(200, json={"value": texts[element_id]})
        if path == "/session/s1/execute/sync":
            key, *rest = body["args"]
            if rest:
                self.storage[key] = rest[0]
                return httpx.Response(200, json={"value": None})
            return httpx.Response(200, json={"value": self.storage.get(key)})
        if path == "/session/s1/screenshot":
            return httpx.Response(200, json={"value": base64.b64encode(b"png-bytes").decode()})
        if path == "/session/s1/se/log":
            return httpx.Response(200, json={"value": [{"level": "INFO", "message": "hello"}]})
        return httpx.Response(
            404, json={"value": {"error": "unknown command", "message": f"no route {path}"}}
        )


@pytest.fixture
def endpoint() -> FakeDriverEndpoint:
    return FakeDriverEndpoint()


@pytest.fixture
def session(endpoint: FakeDriverEndpoint) -> WebDriverSession:
    return WebDriverSession("http://driver", transport=httpx.MockTransport(endpoint))


@pytest.mark.asyncio
async def test_session_round_trip(session: WebDriverSession, endpoint: FakeDriverEndpoint) -> None:
    assert await session.ready() is True
    assert await session.create({"browserName": "chrome"}) == "s1"
    assert await session.find_elements(".tm-session-title") == ["e1", "e2"]
    assert await session.element_text("e2") == "Sign In"
    assert await session.screenshot() == b"png-bytes"
    assert await session.browser_logs() == [{"level": "INFO", "message": "hello"}]
    await session.delete()
    assert session.session_id is None
    await session.close()
    methods = [(method, path) for method, path, _ in endpoint.requests]
    assert ("DELETE", "/session/s1") in methods


@pytest.mark.asyncio
async def test_error_payload_raises_webdriver_error(session: WebDriverSession) -> None:
    await session.create({})
    with pytest.raises(WebDriverError, match="unknown command"):
        await session.refresh()
    await session.close()


@pytest.mark.asyncio
async def test_application_text_selector_and_local_storage(
    tmp_path, session: WebDriverSession, endpoint: FakeDriverEndpoint
) -> None:
    app = Application(
        electron_binary=tmp_path / "electron",
        app_main=tmp_path / "main.js",
        chromedriver_binary=tmp_path / "chromedriver",
        env={},
    )
    app.session = session
    await session.create({})

    await app.wait_for_exist(".tm-session-title=Sign In", timeout_sec=1.0)
    assert await app.element_exists(".tm-session-title") is True
    assert await app.element_exists(".tm-session-title=Sign Up") is None
    with pytest.raises(ReadinessTimeout):
        await app.wait_for_exist(".tm-missing", timeout_sec=0.2)

    await app.set_local_storage("appOnboardingActive", "false")
    assert await app.get_local_storage("appOnboardingActive") == "false"
    assert endpoint.storage == {"appOnboardingActive": "false"}
    await session.close()


@pytest.mark.asyncio
async def test_session_reply_without_id_is_a_webdriver_error() -> None:
    session = WebDriverSession(
        "http://driver",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"value": None})),
    )
    with pytest.raises(WebDriverError, match="session not created"):
        await session.create({})
    assert session.session_id is None
    await session.close()
