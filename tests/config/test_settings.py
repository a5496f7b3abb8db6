import dataclasses
import logging

import pytest

from cronmgr.config import settings as settings_mod
from cronmgr.system.storage import MemoryStorage, OsStorage


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in ("COLLECTOR_TEXTFILE_PATH", "CRONMGR_ENV_FILE", "CRONMGR_LOCK_BACKEND"):
        monkeypatch.delenv(var, raising=False)


def test_defaults():
    """Teste para os valores padrão."""
    s = settings_mod.load_settings()
    assert s.directory == settings_mod.DEFAULT_EXPORTER_DIR
    assert s.filename == "crons.prom"
    assert s.metric_name == "crontab"
    assert s.disabled is False
    assert s.use_os_lock is True
    assert isinstance(s.storage, OsStorage)
    assert s.path == settings_mod.DEFAULT_EXPORTER_DIR + "/crons.prom"


def test_settings_are_immutable():
    """Teste para a configuração imutável."""
    s = settings_mod.load_settings()
    with pytest.raises(dataclasses.FrozenInstanceError):
        s.directory = "/tmp"


def test_directory_precedence(monkeypatch):
    """Teste para a precedência explícito > ambiente > padrão."""
    monkeypatch.setenv("COLLECTOR_TEXTFILE_PATH", "/from/env")
    assert settings_mod.load_settings().directory == "/from/env"
    assert settings_mod.load_settings(directory="/explicit").directory == "/explicit"


def test_empty_env_dir_is_ignored(monkeypatch):
    """Teste para variável de ambiente vazia ignorada."""
    monkeypatch.setenv("COLLECTOR_TEXTFILE_PATH", "")
    assert settings_mod.load_settings().directory == settings_mod.DEFAULT_EXPORTER_DIR
    monkeypatch.setenv("COLLECTOR_TEXTFILE_PATH", "   ")
    assert settings_mod.resolve_exporter_dir() == settings_mod.DEFAULT_EXPORTER_DIR


def test_env_file_is_merged_under_process_env(monkeypatch, tmp_path):
    """Teste para o ficheiro .env com o ambiente do processo a prevalecer."""
    env_file = tmp_path / ".env"
    env_file.write_text(
        "# comentário\nexport COLLECTOR_TEXTFILE_PATH='/from/file'\nCRONMGR_LOCK_BACKEND=memory\nmalformed\n"
    )
    monkeypatch.setenv("CRONMGR_ENV_FILE", str(env_file))
    s = settings_mod.load_settings()
    assert s.directory == "/from/file"
    assert s.use_os_lock is False

    monkeypatch.setenv("COLLECTOR_TEXTFILE_PATH", "/from/env")
    assert settings_mod.load_settings().directory == "/from/env"


def test_invalid_lock_backend(monkeypatch, caplog):
    """Teste para backend de lock inválido."""
    caplog.set_level(logging.WARNING)
    monkeypatch.setenv("CRONMGR_LOCK_BACKEND", "redis")
    assert settings_mod.load_settings().use_os_lock is True
    assert any("CRONMGR_LOCK_BACKEND" in r.getMessage() for r in caplog.records)


def test_explicit_values():
    """Teste para valores explícitos."""
    storage = MemoryStorage()
    s = settings_mod.load_settings(
        directory="/d", filename="f.prom", metric_name="jobs", disabled=True, storage=storage, use_os_lock=False
    )
    assert (s.path, s.metric_name, s.disabled, s.use_os_lock) == ("/d/f.prom", "jobs", True, False)
    assert s.storage is storage


def test_read_env_file_missing(tmp_path):
    """Teste para .env inexistente."""
    assert settings_mod._read_env_file(tmp_path / "nope.env") == {}


def test_read_env_file_skips_comments_and_unreadable(tmp_path):
    """Teste para comentários com '=' ignorados e .env ilegível."""
    env_file = tmp_path / "cron.env"
    env_file.write_text('# COLLECTOR_TEXTFILE_PATH=/nao\nCOLLECTOR_TEXTFILE_PATH = "/sim"\n')
    assert settings_mod._read_env_file(env_file) == {"COLLECTOR_TEXTFILE_PATH": "/sim"}
    assert settings_mod._read_env_file(tmp_path) == {}
