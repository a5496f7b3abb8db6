"""Ponto de entrada do cronmgr.

Faz o parsing dos argumentos, configura o logging, resolve a configuração
do exportador e executa o job. Mantemos a lógica de runtime em `core` e
`exporter` para facilitar testes e reutilização.

Códigos de saída: o do job; 1 para erro de uso; 2 quando a gravação das
métricas falha.
"""

import json as _json
import logging as _logging
import sys
import traceback
from pathlib import Path

from . import version_message
from .config.settings import load_settings
from .core.args import UsageError, configure_argparser, get_log_config, parse_args
from .core.runner import run_job
from .exporter.exporter import Exporter
from .exporter.metric import MetricWriteError
from .exporter.textfile import check_file

logger = _logging.getLogger(__name__)

EXIT_USAGE = 1
EXIT_METRIC_FAILURE = 2

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def main(argv: list[str] | None = None) -> int:
    """Inicializa a aplicação e executa o job.

    Args:
        argv: Lista de argumentos sem o nome do programa. Quando ``None``
            usa ``sys.argv[1:]``.

    Returns:
        Código de saída do processo.
    """
    if argv is None:
        argv = sys.argv[1:]
    try:
        args = parse_args(argv)
    except UsageError as exc:
        print(f"Error: {exc}\n", file=sys.stderr)
        configure_argparser().print_help(sys.stderr)
        return EXIT_USAGE

    log_conf = get_log_config(args)
    _logging.basicConfig(level=getattr(_logging, log_conf["level"]), format=LOG_FORMAT)
    if log_conf.get("debug_log"):
        try:
            _setup_debug_file_handler(Path(log_conf["debug_log"]))
        except OSError as exc:
            logger.warning("Falha ao configurar debug log em %s: %s", log_conf["debug_log"], exc)

    if args.version:
        print(version_message())
        return 0

    settings = load_settings(
        directory=args.directory,
        filename=args.textfile,
        metric_name=args.metric,
        disabled=args.no_metric,
    )

    if args.check:
        return _check(settings)

    exporter = Exporter(settings)
    try:
        return run_job(exporter, args.name, args.command, args.log_file, args.idle)
    except MetricWriteError as exc:
        logger.error("Falha ao gravar métricas em %s: %s", exporter.path, exc)
        return EXIT_METRIC_FAILURE
    except OSError as exc:
        logger.error("Falha ao preparar o job %s: %s", args.name, exc)
        return EXIT_USAGE


def _check(settings) -> int:
    problems = check_file(settings.path, settings.storage)
    for problem in problems:
        print(f"{settings.path}: {problem}", file=sys.stderr)
    if problems:
        return 1
    print(f"{settings.path}: OK")
    return 0


def _setup_debug_file_handler(path: Path) -> None:
    """Adiciona ao logger root um handler JSONL (uma linha JSON por evento).

    Evita duplicar o handler quando já existe um para o mesmo ficheiro.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    root = _logging.getLogger()
    target = str(path.resolve())
    for h in root.handlers:
        if isinstance(h, _logging.FileHandler) and getattr(h, "baseFilename", None) == target:
            return
    fh = _logging.FileHandler(str(path), encoding="utf-8")
    fh.setLevel(_logging.DEBUG)
    fh.setFormatter(_JSONFormatter())
    root.addHandler(fh)


class _JSONFormatter(_logging.Formatter):
    def format(self, record):
        obj = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            obj["exc"] = "".join(traceback.format_exception(*record.exc_info))
        return _json.dumps(obj, ensure_ascii=False)


if __name__ == "__main__":
    sys.exit(main())
