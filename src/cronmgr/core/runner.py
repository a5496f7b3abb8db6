"""Execução do job e registo do seu ciclo de vida.

Sequência de ``run_job``:

1. inicia o ``HeartbeatReporter`` (duração e timestamp a cada intervalo);
2. incrementa ``runs_total{status="started"}`` e marca ``running=1``;
3. executa o comando, opcionalmente gravando o stdout num ficheiro;
4. aguarda o tempo mínimo (``idle``) quando pedido;
5. grava ``failed``/``exit_code`` e incrementa ``runs_total`` pelo status;
6. para o repórter e grava ``running=0``, duração final e timestamp.
"""

import logging
import subprocess
import threading
import time
from typing import Sequence

from ..exporter.exporter import Exporter
from ..exporter.metric import MetricWriteError

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL = 1.0
EXIT_CANNOT_EXECUTE = 127


class HeartbeatReporter(threading.Thread):
    """Thread que regrava duração e último timestamp enquanto o job corre.

    Falhas de gravação são registadas e o repórter continua no próximo tick.
    """

    def __init__(self, exporter: Exporter, job: str, started: float, interval: float = HEARTBEAT_INTERVAL):
        super().__init__(name=f"heartbeat-{job}", daemon=True)
        self.exporter = exporter
        self.job = job
        self.started = started
        self.interval = interval
        self._stopped = threading.Event()

    def run(self) -> None:
        while not self._stopped.wait(self.interval):
            self.tick()

    def tick(self) -> None:
        try:
            self.exporter.job_heartbeat(self.job, time.monotonic() - self.started, int(time.time()))
        except (MetricWriteError, OSError) as exc:
            logger.error("Falha ao gravar heartbeat de %s: %s", self.job, exc, exc_info=True)

    def stop(self, timeout: float | None = None) -> None:
        self._stopped.set()
        if self.is_alive():
            self.join(timeout)


def idle_wait(started: float, idle_seconds: int, sleep=time.sleep) -> float:
    """Espera o restante de `idle_seconds` desde `started` (relógio monotónico).

    Retorna o tempo efetivamente esperado.
    """
    remaining = idle_seconds - (time.monotonic() - started)
    if remaining <= 0:
        return 0.0
    logger.info("Idle ativo: aguardando mais %.0f segundos", remaining)
    sleep(remaining)
    return remaining


def normalize_returncode(returncode: int) -> int:
    """Converte o returncode do subprocess num código de saída de shell (sinal -> 128+N)."""
    if returncode < 0:
        return 128 - returncode
    return returncode


def execute(command: Sequence[str], log_file: str | None = None) -> int:
    """Executa `command` e devolve o código de saída.

    O stdout vai para `log_file` quando fornecido; caso contrário é descartado.
    Um comando que não pode ser iniciado (incluindo um `log_file` que não
    pode ser aberto) devolve 127.
    """
    out = None
    try:
        try:
            if log_file:
                out = open(log_file, "wb")
            proc = subprocess.Popen(list(command), stdout=out if out is not None else subprocess.DEVNULL)
        except OSError as exc:
            logger.error("Não foi possível executar %s: %s", command[0], exc)
            return EXIT_CANNOT_EXECUTE
        return normalize_returncode(proc.wait())
    finally:
        if out is not None:
            out.close()


def run_job(
    exporter: Exporter,
    job: str,
    command: Sequence[str],
    log_file: str | None = None,
    idle_seconds: int = 0,
    interval: float = HEARTBEAT_INTERVAL,
) -> int:
    """Executa o job registando as métricas do ciclo de vida; devolve o código de saída."""
    started = time.monotonic()
    reporter = HeartbeatReporter(exporter, job, started, interval)
    reporter.start()
    try:
        exporter.job_started(job)
        exit_code = execute(command, log_file)
        if idle_seconds > 0:
            idle_wait(started, idle_seconds)
        if exit_code != 0:
            logger.warning("Job %s terminou com código %d", job, exit_code)
        exporter.job_finished(job, exit_code)
    finally:
        reporter.stop()
    exporter.job_stopped(job, time.monotonic() - started, int(time.time()))
    return exit_code
