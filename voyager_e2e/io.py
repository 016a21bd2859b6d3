from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Awaitable, Callable, TypeVar

from voyager_e2e.errors import ReadinessTimeout


T = TypeVar("T")


def ensure_file(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.touch(exist_ok=True)
    return path


def write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def append_text(path: Path, text: str) -> None:
    ensure_file(path)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(text)


async def wait_until(
    fn: Callable[[], Awaitable[T | None]],
    *,
    timeout_sec: float,
    poll_sec: float = 0.25,
    description: str,
) -> T:
    deadline = time.monotonic() + timeout_sec
    last_exc: Exception | None = None
    while True:
        try:
            result = await fn()
            if result is not None:
                return result
        except Exception as exc:  # pragma: no cover - used for diagnostics
            last_exc = exc
        if time.monotonic() >= deadline:
            break
        await asyncio.sleep(poll_sec)
    if last_exc is not None:
        raise ReadinessTimeout(f"timed out waiting for {description}: {last_exc}") from last_exc
    raise ReadinessTimeout(f"timed out waiting for {description}")
