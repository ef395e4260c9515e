"""
Commit-then-reveal protocol for the Blender escrow.

Commit (deposit):
1. Check amount is an allowed denomination
2. Check fee token balance covers FEE_AMOUNT
3. Check native balance covers the amount
4. Approve the fee if the current allowance is short
5. Generate secret + commitment (held in memory only)
6. Deposit under the commitment, wait for confirmation
7. Persist the secret

Reveal (withdraw):
1. Look up the secret for a commitment
2. Refuse spent or corrupt records
3. Withdraw to the recipient, wait for confirmation
4. Flag the record as spent

Nothing is retried. A failed step raises and leaves the store as it was.
The exception is step 7 of commit: once the deposit is confirmed the secret
is the only key to the funds, so a storage failure there raises
SecretPersistenceError and is logged CRITICAL with the secret attached.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Callable, Tuple

from web3 import Web3

from ..core import (
    DepositState, CommitResult, RevealResult, BalanceSnapshot,
    denominations_in_units, normalize_hex,
)
from ..errors import (
    InsufficientFee, InvalidAmount, InsufficientBalance, ApprovalFailed,
    DepositRejected, CorruptRecord, AlreadySpent, InvalidRecipient,
    WithdrawalRejected, StoreIOError, SecretPersistenceError,
)
from ..chains.evm import LedgerClient
from ..vault.secret_vault import SecretVault

log = logging.getLogger(__name__)


@dataclass
class ProtocolConfig:
    """Commitment protocol configuration."""
    # Allowed deposit amounts, minor units, ascending
    denominations: Tuple[int, ...] = field(default_factory=denominations_in_units)

    # Used by reveal() when no recipient is passed
    default_recipient: Optional[str] = None

    # Recompute keccak256(secret) before submitting a withdrawal
    validate_before_reveal: bool = True


class CommitmentProtocol:
    """
    Drives deposits and withdrawals against a LedgerClient.

    One operation at a time; every call blocks until its transactions
    confirm or fail.
    """

    def __init__(self, ledger: LedgerClient, vault: SecretVault,
                 config: ProtocolConfig = None,
                 on_state_change: Optional[Callable[[DepositState], None]] = None):
        self.ledger = ledger
        self.vault = vault
        self.config = config or ProtocolConfig()
        self.on_state_change = on_state_change

    def _enter(self, state: DepositState):
        log.debug(f"Deposit state -> {state.value}")
        if self.on_state_change:
            self.on_state_change(state)

    def check_amount(self, amount: int):
        """Raise InvalidAmount unless amount is an allowed denomination."""
        if isinstance(amount, bool) or not isinstance(amount, int) \
                or amount not in self.config.denominations:
            raise InvalidAmount(amount, self.config.denominations)

    def balances(self) -> BalanceSnapshot:
        """Operator native and fee token balances."""
        address = self.ledger.address
        return BalanceSnapshot(
            address=address,
            native=self.ledger.native_balance(address),
            token=self.ledger.token_balance(address),
        )

    # =========================================================================
    # Commit
    # =========================================================================

    def commit(self, amount: int) -> CommitResult:
        """
        Deposit amount under a fresh commitment and store its secret.

        Args:
            amount: Deposit in native minor units (wei); must be allowed

        Returns:
            CommitResult with the secret, for one-time display

        Raises:
            InvalidAmount, InsufficientFee, InsufficientBalance,
            ApprovalFailed, DepositRejected, EntropyFailure,
            SecretPersistenceError
        """
        self._enter(DepositState.REQUESTED)
        self.check_amount(amount)

        owner = self.ledger.address
        contract = self.ledger.contract_address

        fee = self.ledger.fee_amount()
        token_balance = self.ledger.token_balance(owner)
        log.info(f"Required fee: {fee}, fee token balance: {token_balance}")
        if token_balance < fee:
            raise InsufficientFee(token_balance, fee)
        self._enter(DepositState.FEE_CHECKED)

        native_balance = self.ledger.native_balance(owner)
        if native_balance < amount:
            raise InsufficientBalance(native_balance, amount)

        approval_tx = None
        allowance = self.ledger.allowance(owner, contract)
        if allowance < fee:
            log.info(f"Allowance {allowance} below fee {fee}, requesting approval")
            approval = self.ledger.approve(contract, fee)
            if not approval.success:
                raise ApprovalFailed(approval.error or "Approval failed", approval.tx_hash)
            approval_tx = approval.tx_hash
        self._enter(DepositState.APPROVED)

        secret_hex, commitment = self.vault.generate()

        result = self.ledger.deposit(commitment, amount)
        if not result.success:
            raise DepositRejected(result.error or "Deposit failed", result.tx_hash)
        self._enter(DepositState.COMMITTED)
        log.info(f"Deposit confirmed: {result.tx_hash} (commitment {commitment[:18]}...)")

        try:
            self.vault.persist(commitment, secret_hex, amount)
        except (StoreIOError, CorruptRecord, ValueError) as e:
            log.critical(
                f"DEPOSIT CONFIRMED BUT SECRET NOT SAVED. tx={result.tx_hash} "
                f"commitment={commitment} secret={secret_hex} amount={amount}. "
                f"Record the secret now or the funds are lost."
            )
            raise SecretPersistenceError(commitment, secret_hex, amount, result.tx_hash, e) from e
        self._enter(DepositState.STORED)

        return CommitResult(
            commitment=commitment,
            secret_hex=secret_hex,
            amount=amount,
            tx_hash=result.tx_hash,
            approval_tx=approval_tx,
        )

    # =========================================================================
    # Reveal
    # =========================================================================

    def reveal(self, commitment: str, recipient: Optional[str] = None) -> RevealResult:
        """
        Withdraw the deposit locked under commitment to recipient.

        Raises:
            UnknownCommitment, AlreadySpent, CorruptRecord,
            InvalidRecipient, WithdrawalRejected
        """
        record = self.vault.lookup(commitment)
        if record.spent:
            raise AlreadySpent(record.commitment, record.withdraw_tx)

        if self.config.validate_before_reveal and \
                not self.vault.validate(record.commitment, record.secret_hex):
            raise CorruptRecord(record.commitment)

        recipient = recipient or self.config.default_recipient
        if not recipient or not Web3.is_address(recipient):
            raise InvalidRecipient(f"Invalid recipient address: {recipient!r}")

        log.info(f"Withdrawing {record.commitment[:18]}... to {recipient}")
        result = self.ledger.withdraw(record.secret_hex, recipient)
        if not result.success:
            raise WithdrawalRejected(result.error or "Withdrawal failed", result.tx_hash)
        log.info(f"Withdrawal confirmed: {result.tx_hash}")

        spent_recorded = True
        try:
            self.vault.mark_spent(record.commitment, result.tx_hash)
        except StoreIOError as e:
            spent_recorded = False
            log.error(f"Withdrawal {result.tx_hash} confirmed but spent flag not saved: {e}")

        return RevealResult(
            commitment=normalize_hex(record.commitment),
            recipient=recipient,
            amount=record.amount,
            tx_hash=result.tx_hash,
            spent_recorded=spent_recorded,
            data=dict(result.data),
        )
