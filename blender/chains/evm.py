"""
EVM ledger client for the Blender escrow contract.

The escrow contract locks native value under a bytes32 commitment and
releases it to any recipient once the raw secret is presented. Each deposit
also pulls a fixed fee (FEE_AMOUNT) in an ERC20 fee token, which needs a
prior approve() from the depositor.
"""

import logging
from typing import Optional, Dict, Any, Protocol, runtime_checkable

from .. import core
from ..core import TxResult, normalize_hex
from ..errors import LedgerError

log = logging.getLogger(__name__)


# Escrow contract ABI (minimal - only functions we use)
BLENDER_ABI = [
    {
        "name": "deposit",
        "type": "function",
        "stateMutability": "payable",
        "inputs": [{"name": "hashedSecret", "type": "bytes32"}],
        "outputs": []
    },
    {
        "name": "withdraw",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "secret", "type": "bytes"},
            {"name": "recipient", "type": "address"}
        ],
        "outputs": []
    },
    {
        "name": "FEE_AMOUNT",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}]
    },
    {
        "name": "Deposited",
        "type": "event",
        "anonymous": False,
        "inputs": [
            {"name": "hashedSecret", "type": "bytes32", "indexed": True},
            {"name": "amount", "type": "uint256", "indexed": False}
        ]
    },
    {
        "name": "Withdrawn",
        "type": "event",
        "anonymous": False,
        "inputs": [
            {"name": "recipient", "type": "address", "indexed": True},
            {"name": "amount", "type": "uint256", "indexed": False},
            {"name": "gasCompensation", "type": "uint256", "indexed": False}
        ]
    }
]

# ERC20 subset for the fee token
ERC20_ABI = [
    {
        "name": "approve",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "spender", "type": "address"},
            {"name": "amount", "type": "uint256"}
        ],
        "outputs": [{"name": "", "type": "bool"}]
    },
    {
        "name": "allowance",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "spender", "type": "address"}
        ],
        "outputs": [{"name": "", "type": "uint256"}]
    },
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}]
    }
]


@runtime_checkable
class LedgerClient(Protocol):
    """
    What the commitment protocol needs from the chain.

    Amounts are integers in minor units. Transactions block until the
    receipt arrives and report the outcome as a TxResult.
    """

    address: str
    contract_address: str

    def deposit(self, commitment: str, value: int) -> TxResult: ...

    def withdraw(self, secret_hex: str, recipient: str) -> TxResult: ...

    def fee_amount(self) -> int: ...

    def token_balance(self, address: str) -> int: ...

    def native_balance(self, address: str) -> int: ...

    def allowance(self, owner: str, spender: str) -> int: ...

    def approve(self, spender: str, amount: int) -> TxResult: ...


class EVMLedgerClient:
    """
    LedgerClient backed by web3.py, signing locally with eth-account.
    """

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        token_address: str,
        private_key: str,
        chain_id: Optional[int] = None,
        receipt_timeout: int = core.RECEIPT_TIMEOUT,
        web3=None,
    ):
        """
        Args:
            rpc_url: Ethereum JSON-RPC URL
            contract_address: Escrow contract address
            token_address: ERC20 fee token address
            private_key: Operator signing key
            chain_id: Chain ID (queried from the node when omitted)
            receipt_timeout: Seconds to wait for each receipt
            web3: Preconfigured Web3 instance (skips provider setup)

        Raises:
            ValueError: unusable private key or address
        """
        from web3 import Web3
        from eth_account import Account

        if not private_key.startswith("0x"):
            private_key = "0x" + private_key
        try:
            self._account = Account.from_key(private_key)
        except Exception as e:
            # eth_keys raises its own ValidationError for out-of-range keys
            raise ValueError(f"Invalid private key: {type(e).__name__}") from e
        self.address = self._account.address

        self.rpc_url = rpc_url
        self.contract_address = Web3.to_checksum_address(contract_address)
        self.token_address = Web3.to_checksum_address(token_address)
        self.receipt_timeout = receipt_timeout
        self._chain_id = chain_id
        self._web3 = web3
        self._contract = None
        self._token = None

    @property
    def web3(self):
        """Lazy-load web3 instance."""
        if self._web3 is None:
            from web3 import Web3
            self._web3 = Web3(Web3.HTTPProvider(self.rpc_url))
        return self._web3

    @property
    def contract(self):
        if self._contract is None:
            self._contract = self.web3.eth.contract(
                address=self.contract_address, abi=BLENDER_ABI
            )
        return self._contract

    @property
    def token(self):
        if self._token is None:
            self._token = self.web3.eth.contract(
                address=self.token_address, abi=ERC20_ABI
            )
        return self._token

    @property
    def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = self.web3.eth.chain_id
        return self._chain_id

    # =========================================================================
    # Read Operations
    # =========================================================================

    def fee_amount(self) -> int:
        """Fee charged per deposit, in fee token minor units."""
        try:
            return int(self.contract.functions.FEE_AMOUNT().call())
        except Exception as e:
            raise LedgerError(f"FEE_AMOUNT query failed: {e}") from e

    def token_balance(self, address: str) -> int:
        from web3 import Web3
        try:
            return int(self.token.functions.balanceOf(
                Web3.to_checksum_address(address)
            ).call())
        except Exception as e:
            raise LedgerError(f"Token balance query failed: {e}") from e

    def native_balance(self, address: str) -> int:
        from web3 import Web3
        try:
            return int(self.web3.eth.get_balance(Web3.to_checksum_address(address)))
        except Exception as e:
            raise LedgerError(f"Native balance query failed: {e}") from e

    def allowance(self, owner: str, spender: str) -> int:
        from web3 import Web3
        try:
            return int(self.token.functions.allowance(
                Web3.to_checksum_address(owner),
                Web3.to_checksum_address(spender)
            ).call())
        except Exception as e:
            raise LedgerError(f"Allowance query failed: {e}") from e

    # =========================================================================
    # Transactions
    # =========================================================================

    def approve(self, spender: str, amount: int) -> TxResult:
        """Approve spender for exactly amount of the fee token."""
        from web3 import Web3

        log.info(f"Approving {amount} fee token units for {spender[:10]}...")
        fn = self.token.functions.approve(Web3.to_checksum_address(spender), amount)
        result = self._send(fn, gas=core.APPROVE_GAS_LIMIT, label="Approve")
        result.data.pop("receipt", None)
        return result

    def deposit(self, commitment: str, value: int) -> TxResult:
        """Lock value under commitment (bytes32)."""
        commitment = normalize_hex(commitment)
        try:
            commitment_bytes = bytes.fromhex(commitment[2:])
        except ValueError as e:
            return TxResult(success=False, error=f"Commitment is not valid hex: {e}")
        if len(commitment_bytes) != 32:
            return TxResult(success=False, error=f"Commitment must be 32 bytes, got {len(commitment_bytes)}")

        fn = self.contract.functions.deposit(commitment_bytes)
        result = self._send(fn, gas=core.DEPOSIT_GAS_LIMIT, value=value, label="Deposit")
        if result.success:
            result.data.pop("receipt", None)
            result.data.update({"commitment": commitment, "value": value})
        return result

    def withdraw(self, secret_hex: str, recipient: str) -> TxResult:
        """Reveal secret and release the escrowed value to recipient."""
        from web3 import Web3

        try:
            secret_bytes = bytes.fromhex(normalize_hex(secret_hex)[2:])
        except ValueError as e:
            return TxResult(success=False, error=f"Secret is not valid hex: {e}")
        fn = self.contract.functions.withdraw(
            secret_bytes, Web3.to_checksum_address(recipient)
        )
        result = self._send(fn, gas=core.WITHDRAW_GAS_LIMIT, label="Withdraw")
        if result.success:
            result.data.update(self._decode_withdrawn(result.data.pop("receipt", None)))
        return result

    def _send(self, fn, gas: int, label: str, value: int = 0) -> TxResult:
        """Build, sign, broadcast and wait for a contract call."""
        from web3 import Web3

        w3 = self.web3
        tx_hash = None
        try:
            if not w3.is_connected():
                return TxResult(success=False, error="Cannot connect to RPC")

            nonce = w3.eth.get_transaction_count(self.address, 'pending')
            gas_price = int(w3.eth.gas_price * 1.1)  # 10% buffer

            tx = fn.build_transaction({
                'from': self.address,
                'value': value,
                'nonce': nonce,
                'gas': gas,
                'gasPrice': gas_price,
                'chainId': self.chain_id
            })

            signed = self._account.sign_transaction(tx)
            tx_hash = Web3.to_hex(w3.eth.send_raw_transaction(signed.raw_transaction))
            log.info(f"{label} TX: {tx_hash}")

            receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        except Exception as e:
            log.error(f"{label} failed: {e}")
            return TxResult(success=False, tx_hash=tx_hash, error=str(e))

        if receipt['status'] != 1:
            log.error(f"{label} reverted: {tx_hash}")
            return TxResult(success=False, tx_hash=tx_hash, error=f"{label} reverted",
                            block_number=receipt.get('blockNumber'))

        return TxResult(
            success=True,
            tx_hash=tx_hash,
            block_number=receipt.get('blockNumber'),
            gas_used=receipt.get('gasUsed'),
            data={"receipt": receipt},
        )

    def _decode_withdrawn(self, receipt) -> Dict[str, Any]:
        """Pull amount and gas compensation out of the Withdrawn event."""
        if receipt is None:
            return {}
        from web3.logs import DISCARD

        try:
            events = self.contract.events.Withdrawn().process_receipt(receipt, errors=DISCARD)
        except Exception as e:
            log.warning(f"Could not decode Withdrawn event: {e}")
            return {}
        for event in events:
            args = event['args']
            return {
                "recipient": args['recipient'],
                "amount": int(args['amount']),
                "gas_compensation": int(args['gasCompensation']),
            }
        return {}

    # =========================================================================
    # Utility
    # =========================================================================

    @staticmethod
    def is_valid_address(address: str) -> bool:
        """Check if address is a 20-byte hex address."""
        from web3 import Web3
        return bool(address) and Web3.is_address(address)
