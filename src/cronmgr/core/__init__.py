"""Pacote core: parsing de argumentos e execução do job.

Re-exports para os pontos de entrada.
"""

from .args import parse_args, get_log_config
from .runner import run_job

__all__ = ["parse_args", "get_log_config", "run_job"]
