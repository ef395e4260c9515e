"""
Chain clients for the Blender toolkit.

LedgerClient is the interface the commitment protocol consumes;
EVMLedgerClient implements it over JSON-RPC with web3.py.
"""

from .evm import LedgerClient, EVMLedgerClient, BLENDER_ABI, ERC20_ABI

__all__ = ["LedgerClient", "EVMLedgerClient", "BLENDER_ABI", "ERC20_ABI"]
