"""
Core types and helpers for the Blender escrow toolkit.
"""

import secrets
import time
from decimal import Decimal, InvalidOperation, localcontext
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Tuple

from web3 import Web3

from .errors import EntropyFailure


class DepositState(Enum):
    """Deposit lifecycle states."""
    REQUESTED = "requested"       # Operator asked for a deposit
    FEE_CHECKED = "fee_checked"   # Fee token balance covers the fee
    APPROVED = "approved"         # Fee allowance granted to the contract
    COMMITTED = "committed"       # Deposit TX confirmed on-chain
    STORED = "stored"             # Secret persisted locally
    REVEALED = "revealed"         # Withdrawal confirmed, secret spent
    FAILED = "failed"             # Aborted, store untouched


@dataclass
class DepositRecord:
    """A deposit whose secret is held in the local store."""
    commitment: str         # keccak256(secret), 0x-prefixed hex
    secret_hex: str         # 32-byte secret, 0x-prefixed hex
    amount: int             # Deposited principal in minor units (wei)
    created_at: int         # Epoch milliseconds

    spent: bool = False
    spent_at: Optional[int] = None
    withdraw_tx: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the persisted document layout (keyed by commitment)."""
        data = {
            "secretHex": self.secret_hex,
            "amount": str(self.amount),
            "createdAt": self.created_at,
            "spent": self.spent,
        }
        if self.spent_at is not None:
            data["spentAt"] = self.spent_at
        if self.withdraw_tx:
            data["withdrawTx"] = self.withdraw_tx
        return data

    @classmethod
    def from_dict(cls, commitment: str, data: Dict[str, Any]) -> "DepositRecord":
        return cls(
            commitment=normalize_hex(commitment),
            secret_hex=normalize_hex(data["secretHex"]),
            amount=int(data["amount"]),
            created_at=int(data.get("createdAt", 0)),
            spent=bool(data.get("spent", False)),
            spent_at=data.get("spentAt"),
            withdraw_tx=data.get("withdrawTx"),
        )


@dataclass
class TxResult:
    """Result from a ledger transaction."""
    success: bool
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CommitResult:
    """Outcome of a confirmed and stored deposit."""
    commitment: str
    secret_hex: str
    amount: int
    tx_hash: str
    approval_tx: Optional[str] = None
    state: DepositState = DepositState.STORED


@dataclass
class RevealResult:
    """Outcome of a confirmed withdrawal."""
    commitment: str
    recipient: str
    amount: int
    tx_hash: str
    spent_recorded: bool = True
    state: DepositState = DepositState.REVEALED
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class BalanceSnapshot:
    """Operator balances at a point in time, minor units."""
    address: str
    native: int
    token: int


# =============================================================================
# Hashlock Utilities
# =============================================================================

SECRET_SIZE = 32


def normalize_hex(value: str) -> str:
    """Lowercase hex with a single 0x prefix."""
    value = value.strip().lower()
    if not value.startswith("0x"):
        value = "0x" + value
    return value


def compute_commitment(secret: bytes) -> str:
    """keccak256 over the raw secret bytes, 0x-prefixed hex."""
    return "0x" + bytes(Web3.keccak(secret)).hex()


def generate_secret() -> Tuple[str, str]:
    """
    Generate a random 32-byte secret and its keccak256 commitment.

    Returns:
        (secret_hex, commitment_hex), both 0x-prefixed

    Raises:
        EntropyFailure: the OS random source is unavailable
    """
    try:
        secret = secrets.token_bytes(SECRET_SIZE)
    except (OSError, NotImplementedError) as e:
        raise EntropyFailure(f"Random source failed: {e}") from e
    if len(secret) != SECRET_SIZE:
        raise EntropyFailure(f"Random source returned {len(secret)} bytes")
    return "0x" + secret.hex(), compute_commitment(secret)


def verify_secret(secret_hex: str, commitment_hex: str) -> bool:
    """
    Verify that keccak256(secret) == commitment.

    Malformed hex on either side counts as a mismatch.
    """
    try:
        secret = bytes.fromhex(normalize_hex(secret_hex)[2:])
        expected = normalize_hex(commitment_hex)
        bytes.fromhex(expected[2:])
    except (ValueError, TypeError, AttributeError):
        return False
    if len(secret) != SECRET_SIZE:
        return False
    return compute_commitment(secret) == expected


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


# =============================================================================
# Units
# =============================================================================

def to_units(amount: str, decimals: int = 18) -> int:
    """
    Convert a human amount ("100", "0.5") to minor units without floats.

    Raises:
        ValueError: not a number, negative, or more precision than decimals
    """
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        raise ValueError(f"Not a number: {amount!r}")
    if not value.is_finite() or value < 0:
        raise ValueError(f"Invalid amount: {amount!r}")
    with localcontext() as ctx:
        ctx.prec = 80
        scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Too many decimal places for {decimals}-decimal unit: {amount}")
    return int(scaled)


def from_units(units: int, decimals: int = 18) -> str:
    """Format minor units as a human amount string."""
    with localcontext() as ctx:
        ctx.prec = 80
        value = Decimal(units).scaleb(-decimals)
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


# =============================================================================
# Constants
# =============================================================================

# Allowed deposit sizes, whole native tokens. Equal-sized deposits are
# indistinguishable on-chain.
DEFAULT_DENOMINATIONS = (100, 1_000, 10_000, 100_000, 1_000_000)

NATIVE_DECIMALS = 18
TOKEN_DECIMALS = 18

# Gas ceilings (no estimation)
DEPOSIT_GAS_LIMIT = 250_000
WITHDRAW_GAS_LIMIT = 100_000
APPROVE_GAS_LIMIT = 100_000

# Seconds to wait for a receipt before treating a TX as dropped
RECEIPT_TIMEOUT = 120


def denominations_in_units(decimals: int = NATIVE_DECIMALS,
                           denominations: Tuple[int, ...] = DEFAULT_DENOMINATIONS) -> Tuple[int, ...]:
    """Scale whole-token denominations to minor units, order preserved."""
    return tuple(d * 10 ** decimals for d in denominations)
