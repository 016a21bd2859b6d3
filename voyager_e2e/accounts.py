from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger

from voyager_e2e.config import ACCOUNT_PASSPHRASE, PRIMARY_ACCOUNT, SECONDARY_ACCOUNT
from voyager_e2e.process_runner import ProcessRunner, json_object_classifier


@dataclass(frozen=True)
class Account:
    name: str
    address: str
    recovered: bool
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_payload(cls, payload: dict[str, Any], *, recovered: bool) -> "Account":
        return cls(
            name=str(payload.get("name", "")),
            address=str(payload.get("address", "")),
            recovered=recovered,
            raw=dict(payload),
        )


class AccountProvisioner:
    """
    Create or recover keys through the wallet CLI.

    Calls must be awaited one after another: concurrent `keys add` children
    write to the same keystore directory and interleave their prompts.
    """

    def __init__(
        self,
        cli_binary: Path,
        keystore_home: Path,
        *,
        runner: ProcessRunner | None = None,
        passphrase: str = ACCOUNT_PASSPHRASE,
    ) -> None:
        self.cli_binary = cli_binary
        self.keystore_home = keystore_home
        self.runner = runner or ProcessRunner()
        self.passphrase = passphrase

    def command_args(self, name: str, *, recover: bool) -> list[str]:
        args = ["keys", "add", name]
        if recover:
            args.append("--recover")
        args.extend(["--home", str(self.keystore_home), "--output", "json"])
        return args

    async def create_account(self, name: str, seed: str | None = None) -> Account:
        stdin = [self.passphrase]
        if seed:
            stdin.append(seed)
        result = await self.runner.run(
            self.cli_binary,
            self.command_args(name, recover=bool(seed)),
            stdin=stdin,
            classifier=json_object_classifier,
            parse_json=True,
        )
        await result.handle.reap()
        return Account.from_payload(result.payload, recovered=bool(seed))

    async def setup_accounts(
        self,
        primary_seed: str,
        *,
        primary: str = PRIMARY_ACCOUNT,
        secondary: str = SECONDARY_ACCOUNT,
    ) -> list[Account]:
        # the primary key has to match the genesis account to own the test tokens
        accounts = [await self.create_account(primary, primary_seed)]
        accounts.append(await self.create_account(secondary))
        logger.info(f"set up test accounts: {[(a.name, a.address) for a in accounts]}")
        return accounts
