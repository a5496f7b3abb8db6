"""Fachada do exportador: nomes de métricas, caminho e modo desativado.

Traduz a semântica do ciclo de vida de um job (a correr, falhou, código de
saída, duração, última execução, contagem de execuções) em chamadas ao
``MetricWriter``, aplicando o prefixo configurado aos nomes.

Também aceita a API antiga baseada numa "dimensão" livre
(``write_legacy``): grava a amostra genérica ``<prefixo>{name,dimension}``
e, para as dimensões conhecidas, também a métrica canónica.
"""

import logging
from typing import Mapping

from ..config.settings import ExporterSettings, load_settings
from .metric import MetricType, MetricWriter

logger = logging.getLogger(__name__)

# Métricas do ciclo de vida: nome -> texto de HELP
HELP_RUNNING = "Whether the job is currently running (1 = running, 0 = finished)"
HELP_FAILED = "Whether the job failed (1 = failed, 0 = success)"
HELP_EXIT_CODE = "Exit code of the last job execution"
HELP_DURATION = "Duration of the last job execution in seconds"
HELP_LAST_RUN = "Timestamp of the last job execution"
HELP_RUNS_TOTAL = "Total number of job runs"
HELP_LEGACY = "Cron job metric by dimension"

# Dimensões da API antiga -> (métrica canónica, HELP)
LEGACY_DIMENSIONS: dict[str, tuple[str, str]] = {
    "failed": ("failed", HELP_FAILED),
    "exit_code": ("exit_code", HELP_EXIT_CODE),
    "duration": ("duration_seconds", HELP_DURATION),
    "run": ("running", HELP_RUNNING),
    "running": ("running", HELP_RUNNING),
    "last": ("last_run_timestamp_seconds", HELP_LAST_RUN),
}


class Exporter:
    """Ponto de entrada para gravar métricas de jobs no ficheiro de exposição.

    Com ``settings.disabled`` todas as operações são no-op: nenhum lock é
    adquirido e nenhum ficheiro ou diretório é tocado.
    """

    def __init__(self, settings: ExporterSettings | None = None, writer: MetricWriter | None = None):
        self.settings = settings if settings is not None else load_settings()
        if writer is None:
            writer = MetricWriter(
                self.settings.storage,
                use_os_lock=self.settings.use_os_lock,
                sort_labels=self.settings.sort_labels,
            )
        self.writer = writer

    @classmethod
    def from_options(cls, **options) -> "Exporter":
        """Cria o exportador via ``load_settings(**options)``."""
        return cls(load_settings(**options))

    @property
    def path(self) -> str:
        return self.settings.path

    @property
    def disabled(self) -> bool:
        return self.settings.disabled

    def full_metric_name(self, name: str) -> str:
        """Aplica o prefixo ``<metric_name>_`` a `name`, sem duplicá-lo."""
        prefix = self.settings.metric_name
        if name == prefix or name.startswith(prefix + "_"):
            return name
        return f"{prefix}_{name}"

    def write_gauge(self, name: str, job: str, value, help_text: str, labels: Mapping[str, str] | None = None) -> None:
        if self.disabled:
            return
        self.writer.write_metric(self.path, self.full_metric_name(name), MetricType.GAUGE, job, labels, value, help_text)

    def write_counter(self, name: str, job: str, value, help_text: str, labels: Mapping[str, str] | None = None) -> None:
        """Grava um contador com valor fornecido externamente (sobrescreve)."""
        if self.disabled:
            return
        self.writer.write_metric(self.path, self.full_metric_name(name), MetricType.COUNTER, job, labels, value, help_text)

    def increment_counter(
        self, name: str, job: str, labels: Mapping[str, str] | None = None, help_text: str = ""
    ) -> str | None:
        """Incrementa um contador; devolve o novo valor ou ``None`` se desativado."""
        if self.disabled:
            return None
        return self.writer.increment_counter(self.path, self.full_metric_name(name), job, labels, help_text)

    def write_legacy(self, job: str, dimension: str, value) -> None:
        """API antiga: grava `value` para a `dimension` do job.

        Grava sempre a amostra genérica ``<prefixo>{name,dimension}``, que
        dashboards antigos continuam a consultar. Dimensões conhecidas
        também atualizam a métrica canónica correspondente.
        """
        if self.disabled:
            return
        mapped = LEGACY_DIMENSIONS.get(dimension)
        if mapped is not None:
            name, help_text = mapped
            self.write_gauge(name, job, value, help_text)
        else:
            logger.debug("Dimensão desconhecida %r; apenas métrica genérica", dimension)
        self.write_gauge(self.settings.metric_name, job, value, HELP_LEGACY, {"dimension": dimension})

    # ========================
    # Ciclo de vida do job
    # ========================

    def job_started(self, job: str) -> None:
        self.increment_counter("runs_total", job, {"status": "started"}, HELP_RUNS_TOTAL)
        self.write_gauge("running", job, "1", HELP_RUNNING)

    def job_heartbeat(self, job: str, duration: float, timestamp: int) -> None:
        self.write_gauge("duration_seconds", job, f"{duration:.2f}", HELP_DURATION)
        self.write_gauge("last_run_timestamp_seconds", job, str(int(timestamp)), HELP_LAST_RUN)

    def job_finished(self, job: str, exit_code: int) -> None:
        """Regista o resultado: sucesso quando `exit_code` é 0."""
        failed = exit_code != 0
        self.write_gauge("failed", job, "1" if failed else "0", HELP_FAILED)
        self.write_gauge("exit_code", job, str(exit_code), HELP_EXIT_CODE)
        self.increment_counter("runs_total", job, {"status": "failed" if failed else "success"}, HELP_RUNS_TOTAL)

    def job_stopped(self, job: str, duration: float, timestamp: int) -> None:
        self.write_gauge("running", job, "0", HELP_RUNNING)
        self.job_heartbeat(job, duration, timestamp)
