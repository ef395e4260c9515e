#!/usr/bin/env python3
"""
Configuration and Console Tests

1. BlenderConfig from environment
2. Human amount <-> minor unit conversion
3. Operator console deposit / withdraw / menu flows (mocked ledger)
4. CLI entry point exit codes

Usage:
    python -m pytest tests/test_config_cli.py
"""

import sys
import os
import unittest
from unittest.mock import MagicMock, patch

# Add package to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from blender import cli
from blender.cli import OperatorConsole, format_table
from blender.config import BlenderConfig
from blender.core import TxResult, to_units, from_units, denominations_in_units
from blender.errors import ConfigError, StoreIOError, EntropyFailure
from blender.escrow import CommitmentProtocol, ProtocolConfig
from blender.vault import SecretVault, MemoryStore

OPERATOR = "0x" + "11" * 20
CONTRACT = "0x" + "22" * 20
RECIPIENT = "0x" + "33" * 20

ENV = {
    "RPC_URL": "https://rpc.example",
    "CONTRACT_ADDRESS": CONTRACT,
    "TOKEN_ADDRESS": "0x" + "44" * 20,
    "PRIVATE_KEY": "0x" + "4c" * 32,
    "RECIPIENT_ADDRESS": RECIPIENT,
}


class TestConfig(unittest.TestCase):

    def test_from_env(self):
        config = BlenderConfig.from_env(dict(ENV, CHAIN_ID="97741", BLENDER_SECRETS_FILE="/tmp/s.json"))
        self.assertEqual(config.rpc_url, "https://rpc.example")
        self.assertEqual(config.recipient_address, RECIPIENT)
        self.assertEqual(config.chain_id, 97741)
        self.assertEqual(config.secrets_file, "/tmp/s.json")
        self.assertEqual(config.native_decimals, 18)
        self.assertEqual(config.token_symbol, "BLENDER")

    def test_defaults(self):
        config = BlenderConfig.from_env(ENV)
        self.assertIsNone(config.chain_id)
        self.assertEqual(config.secrets_file, "~/.blender/secrets.json")

    def test_missing_required(self):
        env = dict(ENV)
        del env["PRIVATE_KEY"]
        del env["RPC_URL"]
        with self.assertRaises(ConfigError) as ctx:
            BlenderConfig.from_env(env)
        self.assertIn("RPC_URL", str(ctx.exception))
        self.assertIn("PRIVATE_KEY", str(ctx.exception))

    def test_bad_integer(self):
        with self.assertRaises(ConfigError):
            BlenderConfig.from_env(dict(ENV, CHAIN_ID="abc"))

    def test_bad_private_key(self):
        for key in ("nothex", "0x1234", "0x" + "zz" * 32, "4c" * 33):
            with self.assertRaises(ConfigError) as ctx:
                BlenderConfig.from_env(dict(ENV, PRIVATE_KEY=key))
            self.assertNotIn(key, str(ctx.exception))

    def test_key_without_prefix(self):
        config = BlenderConfig.from_env(dict(ENV, PRIVATE_KEY="4c" * 32))
        self.assertEqual(config.private_key, "4c" * 32)

    def test_bad_addresses(self):
        for name in ("CONTRACT_ADDRESS", "TOKEN_ADDRESS", "RECIPIENT_ADDRESS"):
            with self.assertRaises(ConfigError) as ctx:
                BlenderConfig.from_env(dict(ENV, **{name: "0x1234"}))
            self.assertIn(name, str(ctx.exception))

    def test_repr_hides_key(self):
        config = BlenderConfig.from_env(ENV)
        self.assertNotIn(ENV["PRIVATE_KEY"], repr(config))


class TestUnits(unittest.TestCase):

    def test_to_units(self):
        self.assertEqual(to_units("1000"), 1000 * 10**18)
        self.assertEqual(to_units("0.5", 6), 500_000)
        self.assertEqual(to_units("1000000"), 10**24)

    def test_to_units_rejects(self):
        for bad in ("abc", "-1", "1e-30", "", "NaN"):
            with self.assertRaises(ValueError):
                to_units(bad)

    def test_from_units(self):
        self.assertEqual(from_units(10**18), "1")
        self.assertEqual(from_units(1_500_000, 6), "1.5")
        self.assertEqual(from_units(0), "0")
        self.assertEqual(from_units(123456789012345678901234567890), "123456789012.34567890123456789")

    def test_denominations(self):
        self.assertEqual(denominations_in_units(0), (100, 1000, 10000, 100000, 1000000))
        self.assertEqual(denominations_in_units()[0], 100 * 10**18)


def make_ledger():
    ledger = MagicMock()
    ledger.address = OPERATOR
    ledger.contract_address = CONTRACT
    ledger.fee_amount.return_value = 5 * 10**18
    ledger.token_balance.return_value = 10 * 10**18
    ledger.native_balance.return_value = 10**7 * 10**18
    ledger.allowance.return_value = 10**30
    ledger.deposit.return_value = TxResult(success=True, tx_hash="0xd1")
    ledger.withdraw.return_value = TxResult(success=True, tx_hash="0xw1")
    return ledger


class TestOperatorConsole(unittest.TestCase):

    def setUp(self):
        self.ledger = make_ledger()
        self.store = MemoryStore()
        self.protocol = CommitmentProtocol(
            self.ledger, SecretVault(self.store),
            ProtocolConfig(default_recipient=RECIPIENT),
        )
        self.config = BlenderConfig.from_env(ENV)
        self.output = []

    def console(self, *inputs):
        answers = iter(inputs)
        return OperatorConsole(
            self.protocol, self.config,
            input_fn=lambda prompt: next(answers),
            output=self.output.append,
        )

    def text(self):
        return "\n".join(self.output)

    def test_deposit_shows_secret_once(self):
        result = self.console().deposit("1000")
        self.assertIsNotNone(result)
        self.assertIn(result.secret_hex, self.text())
        self.assertIn(result.commitment, self.text())
        self.assertIn("Required fee: 5 BLENDER", self.text())
        self.ledger.deposit.assert_called_once_with(result.commitment, 1000 * 10**18)

    def test_deposit_invalid_amount(self):
        self.assertIsNone(self.console().deposit("1500"))
        self.assertIn("Allowed amounts are: 100, 1000, 10000, 100000, 1000000 PEPU.", self.text())
        self.ledger.deposit.assert_not_called()

    def test_deposit_unparseable_amount(self):
        self.assertIsNone(self.console().deposit("lots"))
        self.assertIn("ERROR", self.text())
        self.ledger.deposit.assert_not_called()

    def test_deposit_critical_banner(self):
        class FailingStore(MemoryStore):
            def put(self, key, value):
                raise StoreIOError("read-only filesystem")

        self.protocol.vault = SecretVault(FailingStore())
        self.assertIsNone(self.console().deposit("100"))
        self.assertIn("CRITICAL", self.text())
        self.assertIn("Secret:", self.text())

    def test_deposit_entropy_failure_propagates(self):
        self.protocol.vault.generate = MagicMock(side_effect=EntropyFailure("no entropy"))
        with self.assertRaises(EntropyFailure):
            self.console().deposit("100")

    def test_withdraw_select(self):
        deposit = self.console().deposit("100")
        self.assertTrue(self.console("1").withdraw())
        self.ledger.withdraw.assert_called_once_with(deposit.secret_hex, RECIPIENT)
        self.assertIn("Withdrawal successful", self.text())

    def test_withdraw_bad_choice(self):
        self.console().deposit("100")
        self.assertFalse(self.console("7").withdraw())
        self.ledger.withdraw.assert_not_called()

    def test_withdraw_no_store(self):
        self.assertFalse(self.console().withdraw())
        self.assertIn("not been created", self.text())

    def test_menu(self):
        self.console("1", "100", "2", "1", "9", "0").run_menu()
        self.ledger.deposit.assert_called_once()
        self.ledger.withdraw.assert_called_once()
        self.assertIn("Invalid choice", self.text())

    def test_menu_eof(self):
        def eof(prompt):
            raise EOFError
        OperatorConsole(self.protocol, self.config, input_fn=eof, output=self.output.append).run_menu()

    def test_format_table(self):
        table = format_table(["A", "B"], [["x", "y"]], [3, 3])
        self.assertEqual(table.splitlines()[1], "| A   | B   |")


class TestMain(unittest.TestCase):

    @patch.object(cli, "load_dotenv")
    def test_missing_config_exits_1(self, _load):
        with patch.dict(os.environ, {}, clear=True):
            self.assertEqual(cli.main(["list"]), 1)

    @patch.object(cli, "load_dotenv")
    def test_malformed_key_exits_1(self, _load):
        with patch.dict(os.environ, dict(ENV, PRIVATE_KEY="nothex"), clear=True):
            self.assertEqual(cli.main(["list"]), 1)

    @patch.object(cli, "load_dotenv")
    def test_malformed_address_exits_1(self, _load):
        with patch.dict(os.environ, dict(ENV, CONTRACT_ADDRESS="0xnope"), clear=True):
            self.assertEqual(cli.main(["list"]), 1)

    @patch.object(cli, "load_dotenv")
    def test_out_of_range_key_exits_1(self, _load):
        # Well-formed hex, but above the secp256k1 group order
        with patch.dict(os.environ, dict(ENV, PRIVATE_KEY="0x" + "ff" * 32), clear=True):
            self.assertEqual(cli.main(["list"]), 1)

    @patch.object(cli, "load_dotenv")
    @patch.object(cli, "build_console")
    def test_dispatch(self, build, _load):
        console = build.return_value
        console.deposit.return_value = object()
        console.withdraw.return_value = False
        with patch.dict(os.environ, ENV, clear=True):
            self.assertEqual(cli.main(["deposit", "100"]), 0)
            console.deposit.assert_called_once_with("100")
            self.assertEqual(cli.main(["withdraw", "0xabc", "--recipient", RECIPIENT]), 1)
            console.withdraw.assert_called_once_with("0xabc", RECIPIENT)
            self.assertEqual(cli.main([]), 0)
            console.run_menu.assert_called_once()

    @patch.object(cli, "load_dotenv")
    @patch.object(cli, "build_console")
    def test_entropy_failure_exits_2(self, build, _load):
        build.return_value.deposit.side_effect = EntropyFailure("gone")
        with patch.dict(os.environ, ENV, clear=True):
            self.assertEqual(cli.main(["deposit", "100"]), 2)

    @patch.object(cli, "load_dotenv")
    @patch.object(cli, "build_console")
    def test_secrets_file_override(self, build, _load):
        with patch.dict(os.environ, ENV, clear=True):
            cli.main(["--secrets-file", "/tmp/other.json", "list"])
        config = build.call_args[0][0]
        self.assertEqual(config.secrets_file, "/tmp/other.json")


if __name__ == "__main__":
    unittest.main()
