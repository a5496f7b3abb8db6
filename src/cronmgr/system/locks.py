"""Locks por caminho para o ficheiro de exposição.

Duas implementações com a mesma interface (``lock``/``unlock`` e uso como
context manager):

- ``FileLocker``: lock consultivo do SO (via `portalocker`) num ficheiro
  auxiliar ``<path>.lock``. O SO liberta o lock quando o descritor fecha,
  inclusive se o processo morrer.
- ``MemLocker``: mutex em memória obtido de um ``MemLockRegistry``; todos os
  lockers criados para o mesmo caminho disputam o mesmo objeto.
"""

import logging
import threading
from pathlib import Path
from typing import IO, Protocol

import portalocker

logger = logging.getLogger(__name__)

LOCK_SUFFIX = ".lock"


class LockError(OSError):
    """Falha ao adquirir o lock de um caminho."""


class Locker(Protocol):
    def lock(self) -> None: ...

    def unlock(self) -> None: ...


class _LockerContext:
    def __enter__(self):
        self.lock()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.unlock()
        return False


# ========================
# 1. Lock durável (entre processos)
# ========================


class FileLocker(_LockerContext):
    """Lock exclusivo sobre ``<path>.lock`` usando `portalocker`.

    ``lock()`` bloqueia até obter o lock, sem timeout. ``unlock()`` pode ser
    chamado mais de uma vez.
    """

    def __init__(self, path: str):
        self.path = path
        self.lock_path = path + LOCK_SUFFIX
        self._fh: IO[str] | None = None

    def lock(self) -> None:
        if self._fh is not None:
            return
        try:
            Path(self.lock_path).parent.mkdir(parents=True, exist_ok=True)
            fh = open(self.lock_path, "a", encoding="utf-8")
        except OSError as exc:
            raise LockError(f"não foi possível abrir {self.lock_path}: {exc}") from exc
        try:
            portalocker.lock(fh, portalocker.LOCK_EX)
        except (portalocker.LockException, OSError) as exc:
            fh.close()
            raise LockError(f"não foi possível travar {self.lock_path}: {exc}") from exc
        self._fh = fh

    def unlock(self) -> None:
        fh, self._fh = self._fh, None
        if fh is None:
            return
        try:
            portalocker.unlock(fh)
        except (portalocker.LockException, OSError) as exc:
            # fechar o descritor liberta o lock de qualquer forma
            logger.debug("unlock: portalocker.unlock falhou em %s: %s", self.lock_path, exc)
        finally:
            fh.close()

    @property
    def locked(self) -> bool:
        return self._fh is not None


# ========================
# 2. Lock em memória (processo único / testes)
# ========================


class MemLockRegistry:
    """Registo caminho -> mutex partilhado pelo processo."""

    def __init__(self):
        self._mu = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def get(self, path: str) -> threading.Lock:
        """Devolve o mutex do caminho, criando-o na primeira chamada."""
        with self._mu:
            lock = self._locks.get(path)
            if lock is None:
                lock = threading.Lock()
                self._locks[path] = lock
            return lock

    def reset(self) -> None:
        """Esvazia o registo. Apenas para isolar testes."""
        with self._mu:
            self._locks = {}

    def __len__(self) -> int:
        with self._mu:
            return len(self._locks)


DEFAULT_REGISTRY = MemLockRegistry()


class MemLocker(_LockerContext):
    def __init__(self, path: str, registry: MemLockRegistry | None = None):
        self.path = path
        self._mutex = (registry if registry is not None else DEFAULT_REGISTRY).get(path)
        self._held = False

    def lock(self) -> None:
        if self._held:
            return
        self._mutex.acquire()
        self._held = True

    def unlock(self) -> None:
        if not self._held:
            return
        self._held = False
        self._mutex.release()

    @property
    def locked(self) -> bool:
        return self._held


def new_locker(path: str, use_os_lock: bool = True, registry: MemLockRegistry | None = None) -> FileLocker | MemLocker:
    """Cria o locker adequado: SO quando `use_os_lock`, memória caso contrário."""
    if use_os_lock:
        return FileLocker(path)
    return MemLocker(path, registry)
