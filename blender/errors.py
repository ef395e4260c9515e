"""
Error types raised by the Blender toolkit.

Every operation failure surfaces as a BlenderError subclass. The console
reports it and returns to the menu; nothing is retried automatically.
"""

from typing import Optional, Sequence


class BlenderError(Exception):
    """Base class for all toolkit errors."""


class ConfigError(BlenderError):
    """Missing or invalid configuration."""


class EntropyFailure(BlenderError):
    """The CSPRNG could not produce a secret. Fatal."""


class LedgerError(BlenderError):
    """A read-only ledger query failed."""


# =============================================================================
# Commit (deposit) errors
# =============================================================================

class InsufficientFee(BlenderError):
    """Fee token balance does not cover the contract fee."""

    def __init__(self, balance: int, fee: int):
        self.balance = balance
        self.fee = fee
        super().__init__(f"Insufficient fee token balance: {balance} < required fee {fee}")


class InvalidAmount(BlenderError):
    """Requested amount is not one of the allowed denominations."""

    def __init__(self, amount: int, allowed: Sequence[int]):
        self.amount = amount
        self.allowed = tuple(allowed)
        super().__init__(
            f"Invalid deposit amount {amount}. Allowed amounts are: "
            f"{', '.join(str(a) for a in self.allowed)}"
        )


class InsufficientBalance(BlenderError):
    """Native balance does not cover the deposit."""

    def __init__(self, balance: int, amount: int):
        self.balance = balance
        self.amount = amount
        super().__init__(f"Insufficient native balance: {balance} < {amount}")


class TransactionError(BlenderError):
    """A submitted transaction reverted, was dropped or timed out."""

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        self.tx_hash = tx_hash
        if tx_hash:
            message = f"{message} (tx {tx_hash})"
        super().__init__(message)


class ApprovalFailed(TransactionError):
    """Fee token approval did not confirm."""


class DepositRejected(TransactionError):
    """Deposit transaction reverted or timed out."""


class SecretPersistenceError(BlenderError):
    """
    Deposit confirmed on-chain but the secret could not be stored.

    The secret exists only in this exception now. Losing it makes the
    escrowed value unrecoverable.
    """

    def __init__(self, commitment: str, secret_hex: str, amount: int,
                 tx_hash: str, cause: Exception):
        self.commitment = commitment
        self.secret_hex = secret_hex
        self.amount = amount
        self.tx_hash = tx_hash
        self.cause = cause
        super().__init__(
            f"Deposit {tx_hash} confirmed but secret was NOT saved ({cause}). "
            f"Commitment: {commitment} Secret: {secret_hex}"
        )


# =============================================================================
# Reveal (withdraw) errors
# =============================================================================

class UnknownCommitment(BlenderError):
    """No stored record for this commitment."""

    def __init__(self, commitment: str):
        self.commitment = commitment
        super().__init__(f"Unknown commitment: {commitment}")


class CorruptRecord(BlenderError):
    """Stored secret does not hash to its commitment."""

    def __init__(self, commitment: str, reason: str = "secret does not match commitment"):
        self.commitment = commitment
        super().__init__(f"Corrupt record {commitment}: {reason}")


class AlreadySpent(BlenderError):
    """Commitment was already revealed in a confirmed withdrawal."""

    def __init__(self, commitment: str, withdraw_tx: Optional[str] = None):
        self.commitment = commitment
        self.withdraw_tx = withdraw_tx
        msg = f"Commitment {commitment} already withdrawn"
        if withdraw_tx:
            msg += f" in tx {withdraw_tx}"
        super().__init__(msg)


class InvalidRecipient(BlenderError):
    """Recipient is not a valid address."""


class WithdrawalRejected(TransactionError):
    """Withdrawal transaction reverted or timed out."""


# =============================================================================
# Store errors
# =============================================================================

class StoreIOError(BlenderError):
    """Secret store read/write failure."""


class StoreNotFound(StoreIOError):
    """The store document has never been created."""


class EmptyStore(StoreIOError):
    """The store document has no entries."""
