"""Pacote system: armazenamento e locks por caminho.

Re-exports das peças usadas pelo escritor de métricas.
"""

from .locks import DEFAULT_REGISTRY, FileLocker, LockError, MemLocker, MemLockRegistry, new_locker
from .storage import MemoryStorage, OsStorage, Storage

__all__ = [
    "DEFAULT_REGISTRY",
    "FileLocker",
    "LockError",
    "MemLocker",
    "MemLockRegistry",
    "MemoryStorage",
    "OsStorage",
    "Storage",
    "new_locker",
]
