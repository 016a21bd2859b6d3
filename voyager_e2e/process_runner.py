from __future__ import annotations

"""
Spawn external binaries and decide their readiness from raw stdout.

The daemon and the wallet CLI share no IPC contract with the harness beyond
the text they print. A child is considered ready or failed based on the FIRST
chunk it writes to stdout, classified by a named policy:

- `first_chunk_classifier`: failed when a failure marker ("Failed", "Error")
  appears in the chunk, ready otherwise;
- `json_object_classifier`: ready when the chunk opens a JSON object, pending
  otherwise.

Later output is never reconsidered. A child that writes partial output before
its real status line is therefore misclassified; callers rely on the binaries
printing their status first.

Stdin lines are written right after spawn without waiting for the child's
prompts. The binaries are assumed to prompt in a fixed order.
"""

import asyncio
import enum
import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Sequence

from loguru import logger

from voyager_e2e.config import FAILURE_MARKERS
from voyager_e2e.errors import ParseFailure, ProcessFailure


CHUNK_SIZE = 64 * 1024
TERMINATE_WAIT_SEC = 10.0


class Readiness(enum.Enum):
    READY = "ready"
    FAILED = "failed"
    PENDING = "pending"


@dataclass(frozen=True)
class ReadinessSignal:
    state: Readiness
    text: str

    @property
    def ready(self) -> bool:
        return self.state is Readiness.READY


Classifier = Callable[[str], ReadinessSignal]


def first_chunk_classifier(
    text: str,
    failure_markers: Sequence[str] = FAILURE_MARKERS,
) -> ReadinessSignal:
    if any(marker in text for marker in failure_markers):
        return ReadinessSignal(Readiness.FAILED, text)
    return ReadinessSignal(Readiness.READY, text)


def json_object_classifier(text: str) -> ReadinessSignal:
    if text.startswith("{"):
        return ReadinessSignal(Readiness.READY, text)
    return ReadinessSignal(Readiness.PENDING, text)


def marker_classifier(failure_markers: Sequence[str]) -> Classifier:
    markers = tuple(failure_markers)

    def _classify(text: str) -> ReadinessSignal:
        return first_chunk_classifier(text, markers)

    return _classify


@dataclass
class ProcessHandle:
    """An owned child process together with the tasks pumping its output."""

    cmd: tuple[str, ...]
    process: asyncio.subprocess.Process
    output_lines: list[str] = field(default_factory=list)
    pumps: list[asyncio.Task] = field(default_factory=list)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> int | None:
        return self.process.returncode

    @property
    def running(self) -> bool:
        return self.process.returncode is None

    def clear_output(self) -> list[str]:
        lines = list(self.output_lines)
        self.output_lines.clear()
        return lines

    async def wait(self) -> int:
        return await self.process.wait()

    async def reap(self, timeout_sec: float = TERMINATE_WAIT_SEC) -> int | None:
        """Wait for a short-lived child to exit on its own, then release its pipes."""
        try:
            await asyncio.wait_for(self.process.wait(), timeout=timeout_sec)
        except asyncio.TimeoutError:
            logger.warning(f"{self.cmd[0]} (pid {self.pid}) still running after its output, stopping it")
        else:
            pending = [pump for pump in self.pumps if not pump.done()]
            if pending:
                await asyncio.wait(pending, timeout=timeout_sec)
        return await self.terminate()

    async def terminate(self, timeout_sec: float = TERMINATE_WAIT_SEC) -> int | None:
        if self.running:
            try:
                self.process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(self.process.wait(), timeout=timeout_sec)
            except asyncio.TimeoutError:
                logger.warning(f"{self.cmd[0]} (pid {self.pid}) ignored SIGTERM, killing")
                try:
                    self.process.kill()
                except ProcessLookupError:
                    pass
                await self.process.wait()
        if self.process.stdin is not None and not self.process.stdin.is_closing():
            self.process.stdin.close()
        for pump in self.pumps:
            if not pump.done():
                pump.cancel()
        if self.pumps:
            await asyncio.gather(*self.pumps, return_exceptions=True)
        self.pumps.clear()
        return self.returncode


@dataclass(frozen=True)
class RunResult:
    payload: Any
    handle: ProcessHandle


def _decode(chunk: bytes) -> str:
    return chunk.decode("utf-8", errors="replace")


async def _pump_stderr(stream: asyncio.StreamReader) -> None:
    while True:
        chunk = await stream.read(CHUNK_SIZE)
        if not chunk:
            return
        sys.stderr.write(_decode(chunk))
        sys.stderr.flush()


async def _drain_stdout(
    stream: asyncio.StreamReader,
    handle: ProcessHandle,
    output_path: Path | None,
    first_chunk: bytes = b"",
) -> None:
    # the chunk that decided readiness is part of the log too
    if output_path is not None:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with output_path.open("ab") as out:
            out.write(first_chunk)
            out.flush()
            while True:
                chunk = await stream.read(CHUNK_SIZE)
                if not chunk:
                    return
                out.write(chunk)
                out.flush()
    pending = _decode(first_chunk)
    *lines, pending = pending.split("\n")
    handle.output_lines.extend(lines)
    while True:
        chunk = await stream.read(CHUNK_SIZE)
        if not chunk:
            if pending:
                handle.output_lines.append(pending)
            return
        pending += _decode(chunk)
        *lines, pending = pending.split("\n")
        handle.output_lines.extend(lines)


async def _write_stdin(process: asyncio.subprocess.Process, lines: Sequence[str]) -> None:
    if process.stdin is None:
        return
    for line in lines:
        process.stdin.write(f"{line}\n".encode("utf-8"))
    try:
        await process.stdin.drain()
    except (BrokenPipeError, ConnectionResetError):
        # the child may exit before reading its prompts; readiness handles that
        pass


class ProcessRunner:
    """Spawns a binary and resolves once its first stdout chunk is classified."""

    def __init__(self, *, failure_markers: Sequence[str] = FAILURE_MARKERS) -> None:
        self.failure_markers = tuple(failure_markers)

    def default_classifier(self) -> Classifier:
        return marker_classifier(self.failure_markers)

    async def run(
        self,
        command: str | os.PathLike[str],
        args: Sequence[str] = (),
        *,
        stdin: Sequence[str] | None = None,
        classifier: Classifier | None = None,
        parse_json: bool = False,
        env: dict[str, str] | None = None,
        output_path: Path | None = None,
    ) -> RunResult:
        cmd = (str(command), *[str(arg) for arg in args])
        classify = classifier or self.default_classifier()
        logger.debug(f"spawning {' '.join(cmd)}")
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
        )
        handle = ProcessHandle(cmd=cmd, process=process)
        assert process.stdout is not None and process.stderr is not None
        handle.pumps.append(asyncio.ensure_future(_pump_stderr(process.stderr)))

        if stdin:
            await _write_stdin(process, stdin)

        chunk = await process.stdout.read(CHUNK_SIZE)
        if not chunk:
            returncode = await process.wait()
            await handle.terminate()
            raise ProcessFailure(cmd, returncode=returncode)

        signal = classify(_decode(chunk))
        if signal.state is Readiness.PENDING:
            # no readiness decision was made; only the exit can settle the call
            handle.pumps.append(
                asyncio.ensure_future(_drain_stdout(process.stdout, handle, None, chunk))
            )
            returncode = await process.wait()
            await handle.terminate()
            raise ProcessFailure(cmd, returncode=returncode)

        handle.pumps.append(
            asyncio.ensure_future(_drain_stdout(process.stdout, handle, output_path, chunk))
        )
        if signal.state is Readiness.FAILED:
            await handle.terminate()
            raise ProcessFailure(cmd, text=signal.text)

        payload: Any = signal.text
        if parse_json:
            try:
                payload = json.loads(signal.text)
            except json.JSONDecodeError as exc:
                await handle.terminate()
                raise ParseFailure(cmd, text=signal.text) from exc
        return RunResult(payload=payload, handle=handle)
