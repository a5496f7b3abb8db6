import sys
import time

import pytest

from cronmgr.config.settings import ExporterSettings
from cronmgr.core import runner
from cronmgr.exporter.exporter import Exporter
from cronmgr.exporter.metric import MetricWriteError
from cronmgr.system.storage import MemoryStorage


@pytest.fixture
def mem_exporter():
    return Exporter(ExporterSettings(directory="/prom", storage=MemoryStorage(), use_os_lock=False))


def _content(exp):
    return exp.settings.storage.read_file(exp.path)


def test_normalize_returncode():
    """Teste para conversão de returncode de sinal."""
    assert runner.normalize_returncode(0) == 0
    assert runner.normalize_returncode(3) == 3
    assert runner.normalize_returncode(-9) == 137


def test_execute_success_and_failure():
    """Teste para o código de saída do comando."""
    assert runner.execute([sys.executable, "-c", "pass"]) == 0
    assert runner.execute([sys.executable, "-c", "import sys; sys.exit(4)"]) == 4


def test_execute_missing_command(tmp_path):
    """Teste para comando inexistente devolver 127."""
    assert runner.execute([str(tmp_path / "does-not-exist")]) == runner.EXIT_CANNOT_EXECUTE


def test_execute_writes_log_file(tmp_path):
    """Teste para o stdout do job gravado no ficheiro de log."""
    log = tmp_path / "job.log"
    runner.execute([sys.executable, "-c", "print('hello')"], str(log))
    assert log.read_text().strip() == "hello"


def test_execute_unopenable_log_file(tmp_path):
    """Teste para ficheiro de log impossível de abrir devolver 127."""
    log = tmp_path / "nodir" / "job.log"
    assert runner.execute([sys.executable, "-c", "pass"], str(log)) == runner.EXIT_CANNOT_EXECUTE
    assert not log.exists()


def test_run_job_unopenable_log_file_is_recorded_as_failure(mem_exporter):
    """Teste para o job sem ficheiro de log registado como falha e terminado."""
    code = runner.run_job(mem_exporter, "j", [sys.executable, "-c", "pass"], log_file="/nonexistent-dir/x/job.log")
    assert code == runner.EXIT_CANNOT_EXECUTE
    content = _content(mem_exporter)
    assert 'crontab_failed{name="j"} 1' in content
    assert 'crontab_exit_code{name="j"} 127' in content
    assert 'crontab_runs_total{name="j",status="failed"} 1' in content
    assert 'crontab_running{name="j"} 0' in content


def test_idle_wait(monkeypatch):
    """Teste para espera do tempo restante."""
    slept = []
    started = time.monotonic()
    waited = runner.idle_wait(started, 60, sleep=slept.append)
    assert 59 < waited <= 60
    assert slept == [waited]
    assert runner.idle_wait(started - 100, 60, sleep=slept.append) == 0.0
    assert len(slept) == 1


def test_run_job_success(mem_exporter):
    """Teste para métricas de um job com sucesso."""
    code = runner.run_job(mem_exporter, "ok_job", [sys.executable, "-c", "pass"])
    assert code == 0
    content = _content(mem_exporter)
    assert 'crontab_runs_total{name="ok_job",status="started"} 1' in content
    assert 'crontab_runs_total{name="ok_job",status="success"} 1' in content
    assert 'crontab_running{name="ok_job"} 0' in content
    assert 'crontab_failed{name="ok_job"} 0' in content
    assert 'crontab_exit_code{name="ok_job"} 0' in content
    assert 'crontab_duration_seconds{name="ok_job"}' in content


def test_run_job_failure(mem_exporter):
    """Teste para métricas de um job com falha."""
    code = runner.run_job(mem_exporter, "bad_job", [sys.executable, "-c", "import sys; sys.exit(2)"])
    assert code == 2
    content = _content(mem_exporter)
    assert 'crontab_failed{name="bad_job"} 1' in content
    assert 'crontab_exit_code{name="bad_job"} 2' in content
    assert 'crontab_runs_total{name="bad_job",status="failed"} 1' in content


def test_run_job_heartbeat_ticks(mem_exporter):
    """Teste para o repórter periódico gravar durante a execução."""
    ticks = []
    original = mem_exporter.job_heartbeat

    def spy(job, duration, timestamp):
        ticks.append(duration)
        original(job, duration, timestamp)

    mem_exporter.job_heartbeat = spy
    runner.run_job(mem_exporter, "slow", [sys.executable, "-c", "import time; time.sleep(0.5)"], interval=0.05)
    # ticks do repórter + o registo final
    assert len(ticks) >= 3


def test_heartbeat_failure_is_logged(caplog):
    """Teste para falha no heartbeat registada sem interromper."""

    class FailingExporter:
        def job_heartbeat(self, *args):
            raise MetricWriteError("disk full")

    rep = runner.HeartbeatReporter(FailingExporter(), "j", time.monotonic(), 0.01)
    with caplog.at_level("ERROR"):
        rep.tick()
    assert any("heartbeat" in r.getMessage() for r in caplog.records)
    rep.stop()


def test_run_job_propagates_metric_failure(monkeypatch, mem_exporter):
    """Teste para falha de gravação propagada e repórter parado."""

    def fail(job):
        raise MetricWriteError("boom")

    monkeypatch.setattr(mem_exporter, "job_started", fail)
    with pytest.raises(MetricWriteError):
        runner.run_job(mem_exporter, "j", [sys.executable, "-c", "pass"])
