from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import Callable

from loguru import logger

from voyager_e2e.config import TIMEOUT_DIVISOR, LaunchSettings, keep_open_on_crash
from voyager_e2e.config_patcher import reduce_timeouts
from voyager_e2e.logs import configure_logging
from voyager_e2e.orchestrator import Orchestrator


async def run_launch(
    settings: LaunchSettings,
    stop_event: asyncio.Event | None = None,
    *,
    keep_open: Callable[[], bool] = keep_open_on_crash,
) -> int:
    orchestrator = Orchestrator(settings, keep_open=keep_open)
    stop_event = stop_event or asyncio.Event()
    try:
        state = await orchestrator.launch()
        print(f"cli home:  {state.cli_home}")
        print(f"node home: {state.node_home}")
        for account in state.accounts:
            origin = "recovered" if account.recovered else "new"
            print(f"account:   {account.name} {account.address} ({origin})")
        print("Stack is up. Press Ctrl+C to stop.")
        await stop_event.wait()
    finally:
        status = await orchestrator.finish()
    return status


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Voyager end-to-end stack control")
    sub = parser.add_subparsers(dest="mode", required=True)

    launch = sub.add_parser("launch", help="Boot node, accounts and GUI and keep them running")
    launch.add_argument("--artifacts", type=Path, help="Artifact directory (default: testArtifacts)")
    launch.add_argument("--keep-open", action="store_true", help="Leave the app open after a crash")

    patch = sub.add_parser("reduce-timeouts", help="Shrink consensus timeouts in a config.toml")
    patch.add_argument("config", type=Path)
    patch.add_argument("--divisor", type=int, default=None)

    parser.add_argument("--log-level", default=None)
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    if args.mode == "reduce-timeouts":
        if not args.config.is_file():
            parser.error(f"config file not found: {args.config}")
        divisor = args.divisor or TIMEOUT_DIVISOR
        reduce_timeouts(args.config, divisor=divisor)
        return 0

    settings = LaunchSettings.from_env()
    if args.artifacts is not None:
        settings = settings.with_overrides({"artifacts_dir": args.artifacts})
    keep_open = (lambda: True) if args.keep_open else keep_open_on_crash
    try:
        asyncio.run(run_launch(settings, keep_open=keep_open))
    except KeyboardInterrupt:
        logger.info("interrupted")
    # cleanup already ran; open handles of the stack must not keep the process alive
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
