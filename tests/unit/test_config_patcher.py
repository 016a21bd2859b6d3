from __future__ import annotations

from pathlib import Path

import pytest

from voyager_e2e.config_patcher import reduce_timeout_line, reduce_timeouts, reduce_timeouts_text


pytestmark = pytest.mark.unit


CONFIG = """# This is a TOML config file.
moniker = "local"

[consensus]
timeout_propose = 3000
timeout_commit = 1000
create_empty_blocks = true

[p2p]
flush_throttle_timeout = 100
send_rate = 5120000
"""


def test_timeout_commit_is_divided_and_other_lines_are_untouched() -> None:
    patched = reduce_timeouts_text(CONFIG)
    lines = patched.split("\n")
    assert "timeout_commit = 20" in lines
    assert "timeout_propose = 60" in lines
    assert "flush_throttle_timeout = 2" in lines
    original = CONFIG.split("\n")
    for before, after in zip(original, lines):
        if before.split(" = ")[0] not in {"timeout_commit", "timeout_propose", "flush_throttle_timeout"}:
            assert before == after
    assert len(original) == len(lines)


def test_division_truncates() -> None:
    assert reduce_timeout_line("timeout_prevote = 99") == "timeout_prevote = 1"
    assert reduce_timeout_line("timeout_prevote = 49") == "timeout_prevote = 0"
    assert reduce_timeout_line("timeout_prevote = -99") == "timeout_prevote = -1"


def test_non_numeric_and_malformed_lines_are_left_alone() -> None:
    assert reduce_timeout_line('timeout_commit = "5s"') == 'timeout_commit = "5s"'
    assert reduce_timeout_line("timeout_commit=1000") == "timeout_commit=1000"
    assert reduce_timeout_line("  timeout_commit = 1000") == "  timeout_commit = 1000"
    assert reduce_timeout_line("[consensus]") == "[consensus]"
    assert reduce_timeout_line("") == ""


def test_unlisted_keys_and_custom_divisor() -> None:
    text = "send_rate = 5000\ntimeout_commit = 1000"
    assert reduce_timeouts_text(text, divisor=10) == "send_rate = 5000\ntimeout_commit = 100"
    assert reduce_timeouts_text(text, keys=("send_rate",)) == "send_rate = 100\ntimeout_commit = 1000"
    with pytest.raises(ValueError):
        reduce_timeouts_text(text, divisor=0)


def test_reduce_timeouts_rewrites_file_in_place_keeping_crlf(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_bytes(b"timeout_commit = 1000\r\nmoniker = \"x\"\r\n")
    reduce_timeouts(path)
    assert path.read_bytes() == b"timeout_commit = 20\r\nmoniker = \"x\"\r\n"
