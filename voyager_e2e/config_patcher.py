from __future__ import annotations

import re
from pathlib import Path
from typing import Sequence

from loguru import logger

from voyager_e2e.config import TIMEOUT_DIVISOR, TIMEOUT_KEYS


LEADING_INT = re.compile(r"\s*([-+]?\d+)")


def _truncating_div(value: int, divisor: int) -> int:
    quotient = abs(value) // divisor
    return -quotient if value < 0 else quotient


def reduce_timeout_line(
    line: str,
    keys: Sequence[str] = TIMEOUT_KEYS,
    divisor: int = TIMEOUT_DIVISOR,
) -> str:
    key, sep, value = line.partition(" = ")
    if not sep or key not in keys:
        return line
    match = LEADING_INT.match(value)
    if match is None:
        return line
    suffix = "\r" if value.endswith("\r") else ""
    return f"{key} = {_truncating_div(int(match.group(1)), divisor)}{suffix}"


def reduce_timeouts_text(
    text: str,
    keys: Sequence[str] = TIMEOUT_KEYS,
    divisor: int = TIMEOUT_DIVISOR,
) -> str:
    """Shrink the consensus timeouts of a `key = value` config for fast blocks."""
    if divisor <= 0:
        raise ValueError("divisor must be positive")
    return "\n".join(reduce_timeout_line(line, keys, divisor) for line in text.split("\n"))


def reduce_timeouts(
    config_path: Path,
    keys: Sequence[str] = TIMEOUT_KEYS,
    divisor: int = TIMEOUT_DIVISOR,
) -> None:
    with config_path.open("r", encoding="utf-8", newline="") as handle:
        original = handle.read()
    with config_path.open("w", encoding="utf-8", newline="") as handle:
        handle.write(reduce_timeouts_text(original, keys, divisor))
    logger.debug(f"reduced consensus timeouts in {config_path} by a factor of {divisor}")
