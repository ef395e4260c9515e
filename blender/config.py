"""
Runtime configuration, read once at process start.

Values come from the environment. The CLI loads a .env file into the
environment first (python-dotenv), so either source works.
"""

import os
import string
from dataclasses import dataclass
from typing import Optional, Mapping

from . import core
from .chains.evm import EVMLedgerClient
from .errors import ConfigError
from .vault.store import DEFAULT_STORE_PATH


@dataclass(frozen=True)
class BlenderConfig:
    """Blender operator configuration."""
    rpc_url: str
    contract_address: str
    token_address: str
    private_key: str
    recipient_address: Optional[str] = None
    chain_id: Optional[int] = None
    secrets_file: str = DEFAULT_STORE_PATH
    native_symbol: str = "PEPU"
    token_symbol: str = "BLENDER"
    native_decimals: int = core.NATIVE_DECIMALS
    token_decimals: int = core.TOKEN_DECIMALS
    receipt_timeout: int = core.RECEIPT_TIMEOUT

    @classmethod
    def from_env(cls, env: Mapping[str, str] = None) -> "BlenderConfig":
        """
        Build config from environment variables.

        Required: RPC_URL, CONTRACT_ADDRESS, TOKEN_ADDRESS, PRIVATE_KEY.

        Raises:
            ConfigError: a required variable is missing, or a key, address
                or number is malformed
        """
        env = os.environ if env is None else env

        missing = [
            name for name in ("RPC_URL", "CONTRACT_ADDRESS", "TOKEN_ADDRESS", "PRIVATE_KEY")
            if not env.get(name)
        ]
        if missing:
            raise ConfigError(f"Missing required settings: {', '.join(missing)}")

        _check_private_key(env["PRIVATE_KEY"])
        for name in ("CONTRACT_ADDRESS", "TOKEN_ADDRESS", "RECIPIENT_ADDRESS"):
            if env.get(name) and not EVMLedgerClient.is_valid_address(env[name]):
                raise ConfigError(f"{name} is not a valid address: {env[name]!r}")

        return cls(
            rpc_url=env["RPC_URL"],
            contract_address=env["CONTRACT_ADDRESS"],
            token_address=env["TOKEN_ADDRESS"],
            private_key=env["PRIVATE_KEY"],
            recipient_address=env.get("RECIPIENT_ADDRESS") or None,
            chain_id=_int_setting(env, "CHAIN_ID", None),
            secrets_file=env.get("BLENDER_SECRETS_FILE") or DEFAULT_STORE_PATH,
            native_symbol=env.get("NATIVE_SYMBOL") or "PEPU",
            token_symbol=env.get("TOKEN_SYMBOL") or "BLENDER",
            native_decimals=_int_setting(env, "NATIVE_DECIMALS", core.NATIVE_DECIMALS),
            token_decimals=_int_setting(env, "TOKEN_DECIMALS", core.TOKEN_DECIMALS),
            receipt_timeout=_int_setting(env, "RECEIPT_TIMEOUT", core.RECEIPT_TIMEOUT),
        )

    def __repr__(self) -> str:
        # Keep the signing key out of logs and tracebacks
        return (
            f"BlenderConfig(rpc_url={self.rpc_url!r}, "
            f"contract_address={self.contract_address!r}, "
            f"token_address={self.token_address!r}, "
            f"recipient_address={self.recipient_address!r}, "
            f"secrets_file={self.secrets_file!r})"
        )


def _int_setting(env: Mapping[str, str], name: str, default: Optional[int]) -> Optional[int]:
    raw = env.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def _check_private_key(raw: str):
    """32-byte hex, with or without 0x. The value never goes into the message."""
    key = raw.strip()
    if key[:2].lower() == "0x":
        key = key[2:]
    if len(key) != 64 or any(c not in string.hexdigits for c in key):
        raise ConfigError("PRIVATE_KEY must be 32 bytes of hex (64 hex digits)")
