"""
Secret vault: generates hashlock secrets and keeps them keyed by commitment.

A record is written only after its deposit is confirmed on-chain and is
never deleted. Withdrawn records stay in the store flagged as spent.
"""

import logging
from typing import Optional, List, Tuple

from ..core import (
    DepositRecord, generate_secret, verify_secret, normalize_hex, now_ms,
)
from ..errors import CorruptRecord, EmptyStore, UnknownCommitment, StoreIOError
from .store import StoreBackend

log = logging.getLogger(__name__)


class SecretVault:
    """
    Secret generation and storage.

    All reads and writes go through the injected StoreBackend.
    """

    def __init__(self, store: StoreBackend):
        self.store = store

    def generate(self) -> Tuple[str, str]:
        """New (secret_hex, commitment). Nothing is stored."""
        return generate_secret()

    def validate(self, commitment: str, secret_hex: str) -> bool:
        """True if keccak256(secret) equals commitment."""
        return verify_secret(secret_hex, commitment)

    def persist(self, commitment: str, secret_hex: str, amount: int,
                created_at: Optional[int] = None) -> DepositRecord:
        """
        Store (or overwrite) the record for commitment.

        Raises:
            CorruptRecord: secret does not hash to commitment
            StoreIOError: document could not be written
        """
        commitment = normalize_hex(commitment)
        secret_hex = normalize_hex(secret_hex)

        if not self.validate(commitment, secret_hex):
            raise CorruptRecord(commitment, "refusing to store secret that does not match")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise ValueError(f"Amount must be a non-negative integer, got {amount!r}")

        record = DepositRecord(
            commitment=commitment,
            secret_hex=secret_hex,
            amount=amount,
            created_at=created_at if created_at is not None else now_ms(),
        )
        self.store.put(commitment, record.to_dict())
        log.info(f"Stored secret for commitment {commitment[:18]}...")
        return record

    def lookup(self, commitment: str) -> DepositRecord:
        """
        Fetch the record for commitment.

        Raises:
            UnknownCommitment: no such key, or no store document yet
            CorruptRecord: entry exists but cannot be parsed
        """
        commitment = normalize_hex(commitment)
        data = self.store.get(commitment)
        if data is None:
            raise UnknownCommitment(commitment)
        try:
            return DepositRecord.from_dict(commitment, data)
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            raise CorruptRecord(commitment, f"invalid entry: {e}") from e

    def records(self, include_spent: bool = True) -> List[DepositRecord]:
        """
        All records in insertion order.

        Raises:
            StoreNotFound: store document never created
            EmptyStore: no (matching) readable entries
        """
        result = []
        for key, data in self.store.list():
            try:
                record = DepositRecord.from_dict(key, data)
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                # lookup() still raises CorruptRecord for this key
                log.warning(f"Skipping unreadable entry {key[:18]}...: {e}")
                continue
            if include_spent or not record.spent:
                result.append(record)
        if not result:
            raise EmptyStore("No available deposits")
        return result

    def list(self, include_spent: bool = True) -> List[Tuple[str, int]]:
        """(commitment, created_at) pairs in insertion order."""
        return [(r.commitment, r.created_at) for r in self.records(include_spent)]

    def mark_spent(self, commitment: str, tx_hash: Optional[str] = None) -> DepositRecord:
        """Flag a record as withdrawn. The record itself is kept."""
        record = self.lookup(commitment)
        record.spent = True
        record.spent_at = now_ms()
        record.withdraw_tx = tx_hash
        try:
            self.store.put(record.commitment, record.to_dict())
        except StoreIOError:
            log.error(f"Could not mark {record.commitment[:18]}... as spent")
            raise
        log.info(f"Marked commitment {record.commitment[:18]}... as spent")
        return record
