"""Parser de argumentos da linha de comando.

Uso::

    cronmgr --name <job> [opções] -- <comando> [args...]

Tudo o que vem depois do separador ``--`` é o comando do job. As opções
de logging aceitam override por variáveis de ambiente quando não foram
passadas na linha de comando (prioridade: CLI > ENV > padrão).
"""

import argparse
import logging
import os
from typing import Sequence

from ..config.settings import DEFAULT_FILENAME, DEFAULT_METRIC_NAME

SEPARATOR = "--"

USAGE = "cronmgr --name <jobname> [options] -- <command> [args...]"

EPILOG = """Exemplos:
  cronmgr --name update_entities_cron -- /usr/bin/php /var/www/app/console task:run
  cronmgr -n job_cron --log /var/log/cron.log -- /usr/bin/python3 script.py
  cronmgr -n job_cron --idle 60 --metric my_metric -- /usr/bin/command arg1 arg2
  cronmgr -n job_cron --no-metric -- /usr/bin/command
"""


class UsageError(ValueError):
    """Argumentos inválidos; o programa termina com código 1."""


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser que levanta ``UsageError`` em vez de terminar com código 2."""

    def error(self, message):
        raise UsageError(message)


# ========================
# 0. Configuração do parser e argumentos padrão
# ========================


def configure_argparser() -> argparse.ArgumentParser:
    """Cria e retorna ArgumentParser configurado para o cronmgr."""
    parser = _ArgumentParser(
        prog="cronmgr",
        usage=USAGE,
        description="Executa e monitoriza um cron job, publicando métricas para o Prometheus.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-n", "--name", default="", help="Nome do job (obrigatório, aparece nos alertas)")
    parser.add_argument("-l", "--log", dest="log_file", default=None, help="Ficheiro onde gravar a saída do job")
    parser.add_argument(
        "-i",
        "--idle",
        type=int,
        default=0,
        help="Duração mínima do job em segundos (0 = desativado), para o Prometheus notar a execução",
    )
    parser.add_argument(
        "-d",
        "--dir",
        dest="directory",
        default=None,
        help="Diretório do ficheiro de exposição (padrão: COLLECTOR_TEXTFILE_PATH ou /var/lib/prometheus/node-exporter)",
    )
    parser.add_argument("--textfile", default=DEFAULT_FILENAME, help="Nome do ficheiro de exposição")
    parser.add_argument("--metric", default=DEFAULT_METRIC_NAME, help="Prefixo das métricas")
    parser.add_argument("--no-metric", action="store_true", help="Desativa a gravação de métricas")
    parser.add_argument("--check", action="store_true", help="Valida o ficheiro de exposição e termina")
    parser.add_argument(
        "--log-level",
        dest="log_level",
        default=None,
        help="Nível de logging (DEBUG/INFO/WARNING/ERROR). Padrão: WARNING",
    )
    parser.add_argument(
        "--debug-log",
        dest="debug_log",
        default=None,
        help="Ficheiro JSONL para os logs do próprio cronmgr",
    )
    parser.add_argument("-v", "--version", action="store_true", help="Mostra a versão e termina")
    return parser


# ========================
# 1. Funções auxiliares para análise e validação de argumentos
# ========================


def split_command(argv: Sequence[str]) -> tuple[list[str], list[str] | None]:
    """Separa `argv` em (opções, comando) no primeiro ``--``.

    O comando é ``None`` quando o separador não existe.
    """
    argv = list(argv)
    if SEPARATOR not in argv:
        return argv, None
    idx = argv.index(SEPARATOR)
    return argv[:idx], argv[idx + 1 :]


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    """Analisa argv e retorna Namespace validado; ``command`` contém o job."""
    parser = configure_argparser()
    options, command = split_command(argv)
    ns = parser.parse_args(options)
    ns.command = command

    env_map = {"log_level": "CRONMGR_LOG_LEVEL", "debug_log": "CRONMGR_DEBUG_LOG"}
    # Overrides via ambiente SOMENTE quando o argumento não veio da CLI
    for arg, env_var in env_map.items():
        env_val = os.getenv(env_var)
        if env_val and getattr(ns, arg, None) is None:
            setattr(ns, arg, env_val)

    validate_args(ns)
    return ns


def validate_args(args: argparse.Namespace) -> None:
    """Valida os argumentos; levanta ``UsageError`` com mensagem para o utilizador."""
    if getattr(args, "version", False) or getattr(args, "check", False):
        return
    if not getattr(args, "name", ""):
        raise UsageError("--name é obrigatório")
    command = getattr(args, "command", None)
    if command is None:
        raise UsageError(f"separador de comando '{SEPARATOR}' não encontrado")
    if not command:
        raise UsageError(f"é necessário um comando depois de '{SEPARATOR}'")
    if getattr(args, "idle", 0) < 0:
        raise UsageError("--idle deve ser >= 0")


# ========================
# 2. Função auxiliar para configuração de logging
# ========================


def get_log_config(args: argparse.Namespace) -> dict:
    """Retorna dict com configuração de logging ('level' e 'debug_log')."""
    level = str(getattr(args, "log_level", None) or "WARNING").upper()
    if not isinstance(getattr(logging, level, None), int):
        level = "WARNING"
    return {"level": level, "debug_log": getattr(args, "debug_log", None)}
