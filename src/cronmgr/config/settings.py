"""Configurações do exportador de métricas.

Centraliza a resolução do caminho do ficheiro de exposição, do prefixo das
métricas e dos backends de armazenamento/lock. O resultado é um
``ExporterSettings`` imutável, construído uma vez e passado ao ``Exporter``.

Precedência (da maior para a menor):

- argumentos explícitos (CLI);
- variáveis de ambiente do processo;
- ficheiro ``.env`` indicado por ``CRONMGR_ENV_FILE``;
- valores padrão deste módulo.

O diretório via ambiente (``COLLECTOR_TEXTFILE_PATH``) só é considerado se
não for vazio.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from ..system.storage import OsStorage, Storage

logger = logging.getLogger(__name__)


# ========================
# Constantes e padrões globais
# ========================

DEFAULT_EXPORTER_DIR = "/var/lib/prometheus/node-exporter"
DEFAULT_FILENAME = "crons.prom"
DEFAULT_METRIC_NAME = "crontab"

ENV_EXPORTER_DIR = "COLLECTOR_TEXTFILE_PATH"
ENV_ENV_FILE = "CRONMGR_ENV_FILE"
ENV_LOCK_BACKEND = "CRONMGR_LOCK_BACKEND"

LOCK_BACKENDS = ("file", "memory")


@dataclass(frozen=True)
class ExporterSettings:
    """Configuração imutável do exportador.

    `use_os_lock` seleciona o lock durável (ficheiro ``.lock``) ou o lock em
    memória; `sort_labels` ordena os labels do chamador por chave antes de
    serializar.
    """

    directory: str = DEFAULT_EXPORTER_DIR
    filename: str = DEFAULT_FILENAME
    metric_name: str = DEFAULT_METRIC_NAME
    disabled: bool = False
    use_os_lock: bool = True
    sort_labels: bool = False
    storage: Storage = field(default_factory=OsStorage, compare=False, repr=False)

    @property
    def path(self) -> str:
        return os.path.join(self.directory, self.filename)


# ========================
# 1. Carregamento das configurações
# ========================


# Função principal do módulo; resolve a configuração completa
def load_settings(
    directory: str | None = None,
    filename: str | None = None,
    metric_name: str | None = None,
    disabled: bool = False,
    storage: Storage | None = None,
    use_os_lock: bool | None = None,
    sort_labels: bool = False,
) -> ExporterSettings:
    """Resolve um ``ExporterSettings`` a partir de argumentos, ambiente e `.env`.

    Argumentos `None` (ou string vazia) são tratados como "não fornecidos".
    """
    env_items = _merge_env_items(os.getenv(ENV_ENV_FILE))

    if use_os_lock is None:
        use_os_lock = _resolve_lock_backend(env_items) == "file"

    return ExporterSettings(
        directory=resolve_exporter_dir(directory, env_items),
        filename=filename or DEFAULT_FILENAME,
        metric_name=metric_name or DEFAULT_METRIC_NAME,
        disabled=bool(disabled),
        use_os_lock=use_os_lock,
        sort_labels=bool(sort_labels),
        storage=storage if storage is not None else OsStorage(),
    )


def resolve_exporter_dir(directory: str | None = None, env_items: dict | None = None) -> str:
    """Diretório alvo: explícito > ``COLLECTOR_TEXTFILE_PATH`` não vazio > padrão."""
    if directory:
        return directory
    items = env_items if env_items is not None else dict(os.environ)
    env_dir = (items.get(ENV_EXPORTER_DIR) or "").strip()
    if env_dir:
        return env_dir
    return DEFAULT_EXPORTER_DIR


# ========================
# 2. Funções auxiliares para ambiente e overrides
# ========================


def _read_env_file(path: Path | str) -> dict:
    """Lê ``CHAVE=valor`` de um ficheiro `.env` (aceita ``export`` e aspas).

    Linhas vazias, comentários e linhas sem ``=`` são ignorados. Um
    ficheiro inexistente ou ilegível resulta num dicionário vazio.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as exc:
        logger.warning("Falha ao ler .env em %s: %s", path, exc)
        return {}

    result: dict[str, str] = {}
    for raw in text.splitlines():
        key, sep, val = raw.strip().partition("=")
        if not sep or key.startswith("#"):
            continue
        key = key.removeprefix("export ").strip()
        result[key] = val.strip().strip("\"'")
    return result


def _merge_env_items(env_path: Path | str | None) -> dict:
    """`.env` (quando indicado) sobreposto pelas variáveis do processo."""
    items = _read_env_file(env_path) if env_path else {}
    items.update(os.environ)
    return items


def _resolve_lock_backend(env_items: dict) -> str:
    raw = (env_items.get(ENV_LOCK_BACKEND) or "file").strip().lower()
    if raw not in LOCK_BACKENDS:
        logger.warning("%s inválido: %s. Usando 'file'.", ENV_LOCK_BACKEND, raw)
        return "file"
    return raw
