"""Leitura e validação do ficheiro de exposição.

Usa o parser do `prometheus_client` para garantir que o conteúdo continua
legível pelo coletor e verifica que cada métrica tem exatamente um
``HELP`` e um ``TYPE``.
"""

import logging
import re
from collections import Counter

from prometheus_client.parser import text_string_to_metric_families

from ..system.storage import OsStorage, Storage

logger = logging.getLogger(__name__)

_SAMPLE_RE = re.compile(r'^[a-zA-Z_:][a-zA-Z0-9_:]*\{(?:[^"\\}]|"(?:[^"\\]|\\.)*")*\} \S+(?: \S+)?$')


def parse_samples(text: str) -> list[tuple[str, dict, float]]:
    """Devolve ``(nome, labels, valor)`` de cada amostra em `text`.

    Levanta ``ValueError`` se o parser não aceitar o conteúdo.
    """
    out = []
    for family in text_string_to_metric_families(text):
        for sample in family.samples:
            out.append((sample.name, dict(sample.labels), sample.value))
    return out


def validate_exposition(text: str) -> list[str]:
    """Lista os problemas encontrados em `text`; lista vazia = válido."""
    problems: list[str] = []
    helps: Counter = Counter()
    types: Counter = Counter()
    sampled: list[str] = []

    for lineno, line in enumerate(text.split("\n"), start=1):
        if not line.strip():
            continue
        if line.startswith("# HELP "):
            helps[line.split(" ", 3)[2]] += 1
        elif line.startswith("# TYPE "):
            parts = line.split(" ")
            if len(parts) != 4 or parts[3] not in ("gauge", "counter", "untyped", "summary", "histogram"):
                problems.append(f"linha {lineno}: TYPE inválido: {line!r}")
                continue
            types[parts[2]] += 1
        elif line.startswith("#"):
            continue
        elif not _SAMPLE_RE.match(line):
            problems.append(f"linha {lineno}: amostra inválida: {line!r}")
        else:
            name = line.split("{", 1)[0]
            if name not in sampled:
                sampled.append(name)

    for name in sampled:
        if helps[name] != 1:
            problems.append(f"{name}: esperado 1 HELP, encontrado {helps[name]}")
        if types[name] != 1:
            problems.append(f"{name}: esperado 1 TYPE, encontrado {types[name]}")

    try:
        parse_samples(text)
    except ValueError as exc:
        problems.append(f"parser: {exc}")
    return problems


def check_file(path: str, storage: Storage | None = None) -> list[str]:
    """Lê `path` e valida o conteúdo; um ficheiro inexistente é válido."""
    storage = storage if storage is not None else OsStorage()
    try:
        text = storage.read_file(path)
    except FileNotFoundError:
        logger.info("Ficheiro de exposição inexistente: %s", path)
        return []
    return validate_exposition(text)
