"""
Escrow coordination for the Blender toolkit.

Ties on-chain deposits to locally held secrets.
"""

from .protocol import CommitmentProtocol, ProtocolConfig

__all__ = ["CommitmentProtocol", "ProtocolConfig"]
