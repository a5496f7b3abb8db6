"""Backends de armazenamento usados pelo escritor de métricas.

Expõe uma superfície mínima (ler, gravar, criar diretório e verificar
existência) com duas implementações:

- ``OsStorage``: sistema de ficheiros real, gravação atômica via ficheiro
  temporário + ``os.replace`` e ``fsync`` opcional.
- ``MemoryStorage``: dicionário em memória, determinístico, usado em testes.
"""

from pathlib import Path
import os
import logging
import threading
from typing import Protocol

logger = logging.getLogger(__name__)

# Durabilidade controlada via variável de ambiente (padrão: ligado)
DURABLE_WRITES = os.environ.get("CRONMGR_DURABLE_WRITES", "1").lower() in ("1", "true", "yes", "on")


class Storage(Protocol):
    """Capacidades de armazenamento consumidas pelo ``MetricWriter``."""

    def read_file(self, path: str) -> str: ...

    def write_file(self, path: str, data: str) -> None: ...

    def makedirs(self, path: str) -> None: ...

    def exists(self, path: str) -> bool: ...


# ========================
# 1. Sistema de ficheiros real
# ========================


class OsStorage:
    """Armazenamento sobre o sistema de ficheiros do processo."""

    def __init__(self, durable: bool | None = None):
        self.durable = DURABLE_WRITES if durable is None else bool(durable)

    def read_file(self, path: str) -> str:
        """Lê o ficheiro inteiro; ``FileNotFoundError`` se não existir."""
        return Path(path).read_text(encoding="utf-8")

    def write_file(self, path: str, data: str) -> None:
        """Sobrescreve `path` com `data` de forma atômica.

        Grava num ficheiro temporário ao lado do destino e aplica
        ``os.replace``, de modo que o coletor nunca lê conteúdo parcial.
        """
        target = Path(path)
        tmp = target.with_name(f".{target.name}.{os.getpid()}.{threading.get_ident()}.tmp")
        try:
            with tmp.open("w", encoding="utf-8") as fh:
                fh.write(data)
                fh.flush()
                if self.durable:
                    try:
                        os.fsync(fh.fileno())
                    except OSError as exc:
                        logger.debug("write_file: fsync falhou em %s: %s", tmp, exc)
            os.replace(tmp, target)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise

    def makedirs(self, path: str) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)

    def exists(self, path: str) -> bool:
        return Path(path).exists()


# ========================
# 2. Armazenamento em memória
# ========================


class MemoryStorage:
    """Armazenamento em memória, seguro entre threads.

    Diretórios são registados explicitamente via ``makedirs``; gravar num
    diretório inexistente falha como no sistema de ficheiros real.
    """

    def __init__(self, files: dict[str, str] | None = None):
        self._mu = threading.Lock()
        self._files: dict[str, str] = {}
        self._dirs: set[str] = {"", ".", os.sep}
        for path, data in (files or {}).items():
            self.makedirs(os.path.dirname(path))
            self._files[self._norm(path)] = data

    @staticmethod
    def _norm(path: str) -> str:
        return os.path.normpath(path) if path else path

    def read_file(self, path: str) -> str:
        with self._mu:
            try:
                return self._files[self._norm(path)]
            except KeyError:
                raise FileNotFoundError(path) from None

    def write_file(self, path: str, data: str) -> None:
        p = self._norm(path)
        with self._mu:
            if os.path.dirname(p) not in self._dirs:
                raise FileNotFoundError(f"diretório inexistente para {path}")
            if p in self._dirs:
                raise IsADirectoryError(path)
            self._files[p] = data

    def makedirs(self, path: str) -> None:
        with self._mu:
            p = self._norm(path)
            while p and p not in self._dirs:
                if p in self._files:
                    raise FileExistsError(p)
                self._dirs.add(p)
                p = os.path.dirname(p)

    def exists(self, path: str) -> bool:
        p = self._norm(path)
        with self._mu:
            return p in self._files or p in self._dirs
