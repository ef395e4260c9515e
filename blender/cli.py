#!/usr/bin/env python3
"""
Blender operator console.

Deposit native tokens into the escrow under a fresh secret, and withdraw
them later by revealing it.

Usage:
    blender                      # interactive menu
    blender deposit 1000         # deposit 1000 native tokens
    blender withdraw [COMMITMENT] [--recipient ADDR]
    blender list
    blender balances

Settings come from the environment or a .env file (see BlenderConfig).
Secrets are kept in BLENDER_SECRETS_FILE (default ~/.blender/secrets.json).
Do not run two instances against the same secrets file at once.
"""

import argparse
import logging
import sys
from dataclasses import replace
from datetime import datetime
from typing import Optional, Callable, List

from dotenv import load_dotenv

from .config import BlenderConfig
from .core import CommitResult, DepositRecord, from_units, to_units, denominations_in_units, DEFAULT_DENOMINATIONS
from .errors import BlenderError, EntropyFailure, ConfigError, InvalidAmount, SecretPersistenceError
from .chains.evm import EVMLedgerClient
from .escrow.protocol import CommitmentProtocol, ProtocolConfig
from .vault import SecretVault, JsonFileStore

log = logging.getLogger(__name__)

BANNER = r"""
 ____  _     _____ _   _ ____  _____ ____
| __ )| |   | ____| \ | |  _ \| ____|  _ \
|  _ \| |   |  _| |  \| | | | |  _| | |_) |
| |_) | |___| |___| |\  | |_| | |___|  _ <
|____/|_____|_____|_| \_|____/|_____|_| \_\
"""


def format_table(headers: List[str], rows: List[List[str]], widths: List[int]) -> str:
    """Fixed-width text table."""
    sep = "+" + "+".join("-" * (w + 2) for w in widths) + "+"
    lines = [sep, "| " + " | ".join(h.ljust(w) for h, w in zip(headers, widths)) + " |", sep]
    for row in rows:
        lines.append("| " + " | ".join(str(c).ljust(w) for c, w in zip(row, widths)) + " |")
    lines.append(sep)
    return "\n".join(lines)


class OperatorConsole:
    """Menu and prompts around a CommitmentProtocol."""

    def __init__(self, protocol: CommitmentProtocol, config: BlenderConfig,
                 input_fn: Callable[[str], str] = input,
                 output: Callable[[str], None] = print):
        self.protocol = protocol
        self.config = config
        self.input = input_fn
        self.out = output

    # =========================================================================
    # Display
    # =========================================================================

    def show_balances(self):
        snap = self.protocol.balances()
        self.out(format_table(
            ["Token", "Balance"],
            [
                [self.config.token_symbol, from_units(snap.token, self.config.token_decimals)],
                [self.config.native_symbol, from_units(snap.native, self.config.native_decimals)],
            ],
            [18, 28],
        ))

    def show_secret(self, result: CommitResult):
        self.out("Generated Secret Details (back these up):")
        self.out(format_table(
            ["Attribute", "Value"],
            [["Raw Secret", result.secret_hex], ["Hashed Secret", result.commitment]],
            [14, 66],
        ))

    def show_critical(self, err: SecretPersistenceError):
        self.out("!" * 70)
        self.out("CRITICAL: deposit confirmed on-chain but the secret was NOT saved.")
        self.out("Copy these values now. Without the secret the funds are lost.")
        self.out(f"  TX:         {err.tx_hash}")
        self.out(f"  Commitment: {err.commitment}")
        self.out(f"  Secret:     {err.secret_hex}")
        self.out(f"  Amount:     {err.amount}")
        self.out(f"  Cause:      {err.cause}")
        self.out("!" * 70)

    def list_deposits(self, include_spent: bool = True) -> List[DepositRecord]:
        records = self.protocol.vault.records(include_spent=include_spent)
        self.out("\nAvailable deposits:")
        for index, record in enumerate(records, 1):
            date = datetime.fromtimestamp(record.created_at / 1000).strftime("%Y-%m-%d")
            amount = from_units(record.amount, self.config.native_decimals)
            status = " [withdrawn]" if record.spent else ""
            self.out(f"{index} - {record.commitment} ({date}, {amount} {self.config.native_symbol}){status}")
        return records

    # =========================================================================
    # Operations
    # =========================================================================

    def deposit(self, amount_text: Optional[str] = None) -> Optional[CommitResult]:
        """Run one deposit. Errors are reported, not raised."""
        try:
            self.show_balances()
            fee = self.protocol.ledger.fee_amount()
            self.out(f"Required fee: {from_units(fee, self.config.token_decimals)} {self.config.token_symbol}")

            if amount_text is None:
                amount_text = self.input(f"Enter deposit amount in {self.config.native_symbol}: ")
            try:
                amount = to_units(amount_text, self.config.native_decimals)
            except ValueError as e:
                self.out(f"ERROR: {e}")
                return None

            result = self.protocol.commit(amount)
            self.show_secret(result)
            self.out(f"Deposit successful! TX: {result.tx_hash}")
            self.show_balances()
            return result
        except SecretPersistenceError as e:
            self.show_critical(e)
            return None
        except InvalidAmount as e:
            allowed = ", ".join(from_units(a, self.config.native_decimals) for a in e.allowed)
            self.out("ERROR: Invalid deposit amount.")
            self.out(f"Allowed amounts are: {allowed} {self.config.native_symbol}.")
            return None
        except EntropyFailure:
            raise
        except BlenderError as e:
            log.warning(f"Deposit failed: {e}")
            self.out(f"ERROR: {e}")
            return None

    def select_deposit(self) -> Optional[str]:
        records = self.list_deposits(include_spent=False)
        choice = self.input("Select a deposit: ").strip()
        try:
            index = int(choice)
        except ValueError:
            index = 0
        if not 1 <= index <= len(records):
            self.out("Invalid choice")
            return None
        return records[index - 1].commitment

    def withdraw(self, commitment: Optional[str] = None,
                 recipient: Optional[str] = None) -> bool:
        """Run one withdrawal. Errors are reported, not raised."""
        try:
            if commitment is None:
                commitment = self.select_deposit()
                if commitment is None:
                    return False
            result = self.protocol.reveal(commitment, recipient)
            self.out(f"Withdrawal successful! TX: {result.tx_hash}")
            if not result.spent_recorded:
                self.out("WARNING: could not mark the deposit as withdrawn in the secrets file")
            self.show_balances()
            return True
        except BlenderError as e:
            log.warning(f"Withdrawal failed: {e}")
            self.out(f"ERROR: {e}")
            return False

    def run_menu(self):
        """Interactive loop. Returns on '0' or end of input."""
        while True:
            self.out(BANNER)
            self.out("1 - Deposit")
            self.out("2 - Withdraw")
            self.out("0 - Exit")
            self.out("")
            try:
                choice = self.input("Your choice: ").strip()
            except EOFError:
                return
            if choice == "1":
                self.deposit()
            elif choice == "2":
                self.withdraw()
            elif choice == "0":
                return
            else:
                self.out("Invalid choice")


def build_console(config: BlenderConfig) -> OperatorConsole:
    ledger = EVMLedgerClient(
        rpc_url=config.rpc_url,
        contract_address=config.contract_address,
        token_address=config.token_address,
        private_key=config.private_key,
        chain_id=config.chain_id,
        receipt_timeout=config.receipt_timeout,
    )
    vault = SecretVault(JsonFileStore(config.secrets_file))
    protocol = CommitmentProtocol(
        ledger,
        vault,
        ProtocolConfig(
            denominations=denominations_in_units(config.native_decimals, DEFAULT_DENOMINATIONS),
            default_recipient=config.recipient_address,
        ),
        on_state_change=lambda state: log.debug(f"-> {state.value}"),
    )
    return OperatorConsole(protocol, config)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Blender hashlock escrow operator console"
    )
    parser.add_argument("--env-file", help="Path to .env file (default: search from cwd)")
    parser.add_argument("--secrets-file", help="Override BLENDER_SECRETS_FILE")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command")
    dep = sub.add_parser("deposit", help="Deposit an allowed amount")
    dep.add_argument("amount", help="Amount in whole native tokens")
    wd = sub.add_parser("withdraw", help="Withdraw a stored deposit")
    wd.add_argument("commitment", nargs="?", help="Commitment hex (prompt if omitted)")
    wd.add_argument("--recipient", help="Override RECIPIENT_ADDRESS")
    sub.add_parser("list", help="List stored deposits")
    sub.add_parser("balances", help="Show operator balances")
    sub.add_parser("menu", help="Interactive menu (default)")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s'
    )

    load_dotenv(args.env_file)
    try:
        config = BlenderConfig.from_env()
    except ConfigError as e:
        log.error(str(e))
        return 1
    if args.secrets_file:
        config = replace(config, secrets_file=args.secrets_file)

    try:
        console = build_console(config)
    except ValueError as e:
        # Key outside the secp256k1 range
        log.error(f"Invalid configuration: {e}")
        return 1
    try:
        if args.command == "deposit":
            return 0 if console.deposit(args.amount) else 1
        if args.command == "withdraw":
            return 0 if console.withdraw(args.commitment, args.recipient) else 1
        if args.command == "list":
            console.list_deposits()
            return 0
        if args.command == "balances":
            console.show_balances()
            return 0
        console.run_menu()
        return 0
    except EntropyFailure as e:
        log.critical(f"Entropy source failed, aborting: {e}")
        return 2
    except BlenderError as e:
        log.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
