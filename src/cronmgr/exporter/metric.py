"""Escritor de métricas no formato de exposição do Prometheus.

Implementa o ciclo ler-modificar-gravar, sob lock por caminho, sobre um
ficheiro de texto partilhado por vários escritores (processos distintos e
o repórter periódico do próprio processo).

Formato de cada grupo de métricas::

    # HELP <metric> <help>
    # TYPE <metric> <gauge|counter>
    <metric>{name="<job>",<k>="<v>",...} <value>

Regras principais:

- a identidade de uma amostra é (nome da métrica, string de labels);
- uma amostra existente é substituída no lugar, nunca duplicada;
- ``HELP``/``TYPE`` são acrescentados apenas quando ainda não existem;
- contadores são incrementados sob o mesmo lock das gravações normais.
"""

import enum
import logging
import os
import re
from typing import Mapping

from ..system.locks import LockError, MemLockRegistry, new_locker
from ..system.storage import OsStorage, Storage

logger = logging.getLogger(__name__)

_INT_RE = re.compile(r"[+-]?\d+")
_FLOAT_RE = re.compile(r"[+-]?(?:\d+\.\d*|\.\d+)(?:[eE][+-]?\d+)?")


class MetricType(str, enum.Enum):
    GAUGE = "gauge"
    COUNTER = "counter"

    def __str__(self) -> str:
        return self.value


class MetricWriteError(RuntimeError):
    """Falha fatal ao gravar uma métrica; a métrica não foi registada."""


# ========================
# 1. Labels e linhas
# ========================


def escape_label_value(s: str) -> str:
    r"""Escapa um valor de label: ``\`` -> ``\\``, ``"`` -> ``\"``, newline -> ``\n``.

    A ordem das substituições importa; trocar a ordem gera escape duplo.
    """
    s = s.replace("\\", "\\\\")
    s = s.replace('"', '\\"')
    return s.replace("\n", "\\n")


def unescape_label_value(s: str) -> str:
    """Inverso de ``escape_label_value``."""
    out = []
    i = 0
    while i < len(s):
        ch = s[i]
        if ch == "\\" and i + 1 < len(s):
            nxt = s[i + 1]
            out.append({"\\": "\\", '"': '"', "n": "\n"}.get(nxt, ch + nxt))
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def build_label_string(job: str, labels: Mapping[str, str] | None = None, sort_labels: bool = False) -> str:
    """Monta a string de labels: ``name="<job>"`` seguido dos labels do chamador.

    Os labels seguem a ordem de iteração do mapeamento, a menos que
    `sort_labels` esteja ativo (ordenação por chave).
    """
    pairs = [f'name="{escape_label_value(str(job))}"']
    items = list((labels or {}).items())
    if sort_labels:
        items.sort(key=lambda kv: str(kv[0]))
    for k, v in items:
        pairs.append(f'{escape_label_value(str(k))}="{escape_label_value(str(v))}"')
    return ",".join(pairs)


def format_value(value) -> str:
    """Texto do valor de uma amostra; ``bool`` vira ``"1"``/``"0"``.

    Levanta ``MetricWriteError`` para valores vazios ou com espaços/newlines,
    que partiriam a linha ``<metric>{<labels>} <value>``.
    """
    if isinstance(value, bool):
        return "1" if value else "0"
    s = str(value)
    if not s or any(ch.isspace() for ch in s):
        raise MetricWriteError(f"valor de amostra inválido: {s!r}")
    return s


def format_sample(metric: str, label_string: str, value) -> str:
    return f"{metric}{{{label_string}}} {format_value(value)}"


def _split_lines(content: str) -> list[str]:
    if not content:
        return []
    lines = content.split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


def _join_lines(lines: list[str]) -> str:
    return "\n".join(lines) + "\n" if lines else ""


def _matches(line: str, prefix: str) -> bool:
    """True se `line` é a amostra identificada por `prefix` (``metric{labels}``)."""
    if not line.startswith(prefix):
        return False
    rest = line[len(prefix) :]
    return rest == "" or rest[0] in " \t"


def _sample_value(line: str, prefix: str) -> str:
    parts = line[len(prefix) :].split()
    return parts[0] if parts else ""


def _has_header(lines: list[str], keyword: str, metric: str) -> bool:
    head = f"# {keyword} {metric}"
    return any(line == head or line.startswith(head + " ") for line in lines)


def _append_headers(lines: list[str], metric: str, kind: MetricType, help_text: str) -> list[str]:
    if not _has_header(lines, "HELP", metric):
        lines.append(f"# HELP {metric} {help_text}")
    if not _has_header(lines, "TYPE", metric):
        lines.append(f"# TYPE {metric} {MetricType(kind).value}")
    return lines


def add_metric_headers(content: str, metric: str, kind: MetricType, help_text: str) -> str:
    """Acrescenta ``HELP`` e ``TYPE`` de `metric` a `content` quando ausentes."""
    return _join_lines(_append_headers(_split_lines(content), metric, kind, help_text))


def upsert_sample(content: str, metric: str, kind: MetricType, label_string: str, value, help_text: str) -> str:
    """Devolve `content` com a amostra (metric, label_string) definida para `value`.

    Substitui no lugar quando a amostra existe; senão acrescenta os
    cabeçalhos em falta e a amostra no fim.
    """
    prefix = f"{metric}{{{label_string}}}"
    sample = format_sample(metric, label_string, value)
    lines = _split_lines(content)
    found = False
    for i, line in enumerate(lines):
        if _matches(line, prefix):
            lines[i] = sample
            found = True
    if not found:
        _append_headers(lines, metric, kind, help_text)
        lines.append(sample)
    return _join_lines(lines)


def is_counter_value(value: str) -> bool:
    s = str(value).strip()
    if "." in s:
        return _FLOAT_RE.fullmatch(s) is not None
    return _INT_RE.fullmatch(s) is not None


def increment_value(current: str) -> str:
    """Incrementa um valor numérico em texto.

    Com ponto decimal: float + 1 formatado com duas casas. Sem ponto:
    inteiro + 1. Valor inválido reinicia em ``"1"``.
    """
    s = str(current).strip()
    if not is_counter_value(s):
        return "1"
    if "." in s:
        return f"{float(s) + 1.0:.2f}"
    return str(int(s) + 1)


# ========================
# 2. Escritor com lock
# ========================


class MetricWriter:
    """Motor de upsert sobre o ficheiro de exposição.

    Parâmetros:
        storage: backend de armazenamento (``OsStorage`` por padrão).
        use_os_lock: usa ``FileLocker`` (True) ou ``MemLocker`` (False).
        lock_registry: registo para os ``MemLocker`` (padrão global).
        sort_labels: ordena os labels do chamador por chave.
    """

    def __init__(
        self,
        storage: Storage | None = None,
        use_os_lock: bool = True,
        lock_registry: MemLockRegistry | None = None,
        sort_labels: bool = False,
    ):
        self.storage = storage if storage is not None else OsStorage()
        self.use_os_lock = use_os_lock
        self.lock_registry = lock_registry
        self.sort_labels = sort_labels

    def label_string(self, job: str, labels: Mapping[str, str] | None = None) -> str:
        return build_label_string(job, labels, self.sort_labels)

    def _acquire(self, path: str):
        locker = new_locker(path, self.use_os_lock, self.lock_registry)
        try:
            locker.lock()
        except LockError as exc:
            # leniência: segue sem lock
            logger.warning("Erro ao travar o ficheiro %s: %s", path, exc)
        return locker

    def _ensure_directory(self, path: str) -> None:
        directory = os.path.dirname(path)
        if directory and directory != ".":
            try:
                self.storage.makedirs(directory)
            except OSError as exc:
                raise MetricWriteError(f"não foi possível criar o diretório {directory}: {exc}") from exc

    def _read(self, path: str) -> str:
        try:
            return self.storage.read_file(path)
        except FileNotFoundError:
            raise
        except OSError as exc:
            raise MetricWriteError(f"não foi possível ler {path}: {exc}") from exc

    def _read_or_create(self, path: str) -> str:
        try:
            return self._read(path)
        except FileNotFoundError:
            self._write(path, "")
            return ""

    def _write(self, path: str, content: str) -> None:
        try:
            self.storage.write_file(path, content)
        except OSError as exc:
            raise MetricWriteError(f"não foi possível gravar {path}: {exc}") from exc

    def write_metric(
        self,
        path: str,
        metric: str,
        kind: MetricType,
        job: str,
        labels: Mapping[str, str] | None = None,
        value="",
        help_text: str = "",
        locked: bool = False,
    ) -> None:
        """Grava (ou substitui) uma amostra no ficheiro `path`.

        `locked=True` indica que o chamador já detém o lock do caminho.
        Levanta ``MetricWriteError`` se o valor for inválido ou se o diretório
        ou a gravação falharem.
        """
        kind = MetricType(kind)
        value = format_value(value)
        locker = None if locked else self._acquire(path)
        try:
            self._ensure_directory(path)
            content = self._read_or_create(path)
            label_str = self.label_string(job, labels)
            new_content = upsert_sample(content, metric, kind, label_str, value, help_text)
            if new_content != content:
                self._write(path, new_content)
            logger.debug("Métrica gravada em %s: %s{%s} %s", path, metric, label_str, format_value(value))
        finally:
            if locker is not None:
                locker.unlock()

    def increment_counter(
        self,
        path: str,
        metric: str,
        job: str,
        labels: Mapping[str, str] | None = None,
        help_text: str = "",
    ) -> str:
        """Incrementa em 1 o contador (metric, job, labels) e devolve o novo valor."""
        locker = self._acquire(path)
        try:
            try:
                content = self._read(path)
            except FileNotFoundError:
                content = None
            label_str = self.label_string(job, labels)
            prefix = f"{metric}{{{label_str}}}"
            lines = _split_lines(content or "")
            current = next((_sample_value(line, prefix) for line in lines if _matches(line, prefix)), None)
            if current is None:
                self.write_metric(path, metric, MetricType.COUNTER, job, labels, "1", help_text, locked=True)
                return "1"

            new_value = increment_value(current)
            if not is_counter_value(current):
                logger.warning("Valor inválido para %s{%s}: %r; contador reiniciado", metric, label_str, current)
            sample = format_sample(metric, label_str, new_value)
            lines = [sample if _matches(line, prefix) else line for line in lines]
            self._write(path, _join_lines(lines))
            logger.debug("Contador %s{%s} incrementado para %s em %s", metric, label_str, new_value, path)
            return new_value
        finally:
            locker.unlock()
