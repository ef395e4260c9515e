"""
Blender - hashlock escrow operator toolkit

Deposits native tokens into an escrow contract under keccak256(secret) and
withdraws them later by revealing the secret. Secrets are kept in a local
JSON store keyed by commitment.

Usage:
    from blender import EVMLedgerClient, SecretVault, JsonFileStore
    from blender import CommitmentProtocol, ProtocolConfig

    ledger = EVMLedgerClient(rpc_url, contract, token, private_key)
    vault = SecretVault(JsonFileStore("~/.blender/secrets.json"))
    protocol = CommitmentProtocol(ledger, vault, ProtocolConfig(default_recipient=addr))

    deposit = protocol.commit(1000 * 10**18)
    protocol.reveal(deposit.commitment)
"""

from .core import (
    DepositState,
    DepositRecord,
    TxResult,
    CommitResult,
    RevealResult,
    BalanceSnapshot,
    generate_secret,
    compute_commitment,
    verify_secret,
    to_units,
    from_units,
    denominations_in_units,
    DEFAULT_DENOMINATIONS,
)
from .errors import (
    BlenderError,
    ConfigError,
    EntropyFailure,
    LedgerError,
    InsufficientFee,
    InvalidAmount,
    InsufficientBalance,
    ApprovalFailed,
    DepositRejected,
    SecretPersistenceError,
    UnknownCommitment,
    CorruptRecord,
    AlreadySpent,
    InvalidRecipient,
    WithdrawalRejected,
    StoreIOError,
    StoreNotFound,
    EmptyStore,
)
from .config import BlenderConfig
from .chains.evm import LedgerClient, EVMLedgerClient
from .vault import SecretVault, StoreBackend, JsonFileStore, MemoryStore
from .escrow import CommitmentProtocol, ProtocolConfig

__version__ = "1.0.0"
__all__ = [
    # Core types
    "DepositState",
    "DepositRecord",
    "TxResult",
    "CommitResult",
    "RevealResult",
    "BalanceSnapshot",
    # Utilities
    "generate_secret",
    "compute_commitment",
    "verify_secret",
    "to_units",
    "from_units",
    "denominations_in_units",
    "DEFAULT_DENOMINATIONS",
    # Errors
    "BlenderError",
    "ConfigError",
    "EntropyFailure",
    "LedgerError",
    "InsufficientFee",
    "InvalidAmount",
    "InsufficientBalance",
    "ApprovalFailed",
    "DepositRejected",
    "SecretPersistenceError",
    "UnknownCommitment",
    "CorruptRecord",
    "AlreadySpent",
    "InvalidRecipient",
    "WithdrawalRejected",
    "StoreIOError",
    "StoreNotFound",
    "EmptyStore",
    # Config
    "BlenderConfig",
    # Ledger
    "LedgerClient",
    "EVMLedgerClient",
    # Vault
    "SecretVault",
    "StoreBackend",
    "JsonFileStore",
    "MemoryStore",
    # Protocol
    "CommitmentProtocol",
    "ProtocolConfig",
]
