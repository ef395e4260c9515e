"""
Secret storage for hashlock deposits.

- SecretVault: generate, persist, look up and validate secrets
- JsonFileStore: single JSON document backend
- MemoryStore: in-process backend for tests
"""

from .store import StoreBackend, JsonFileStore, MemoryStore, DEFAULT_STORE_PATH
from .secret_vault import SecretVault

__all__ = [
    "StoreBackend",
    "JsonFileStore",
    "MemoryStore",
    "DEFAULT_STORE_PATH",
    "SecretVault",
]
