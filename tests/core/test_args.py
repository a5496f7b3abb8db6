from types import SimpleNamespace

import pytest

from cronmgr.core import args as args_mod


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("CRONMGR_LOG_LEVEL", raising=False)
    monkeypatch.delenv("CRONMGR_DEBUG_LOG", raising=False)


def test_configure_argparser_defaults():
    """Teste para configuração de argumentos padrão do parser."""
    ns = args_mod.configure_argparser().parse_args([])
    assert ns.textfile == "crons.prom"
    assert ns.metric == "crontab"
    assert ns.idle == 0
    assert ns.no_metric is False


def test_split_command():
    """Teste para a separação no primeiro '--'."""
    assert args_mod.split_command(["-n", "j", "--", "ls", "--", "x"]) == (["-n", "j"], ["ls", "--", "x"])
    assert args_mod.split_command(["-n", "j"]) == (["-n", "j"], None)


def test_parse_args_full():
    """Teste para parsing completo de opções e comando."""
    ns = args_mod.parse_args(
        ["-n", "backup", "-l", "/tmp/o.log", "-i", "60", "-d", "/d", "--metric", "m", "--no-metric", "--", "tar", "-c"]
    )
    assert ns.name == "backup"
    assert ns.log_file == "/tmp/o.log"
    assert ns.idle == 60
    assert ns.directory == "/d"
    assert ns.metric == "m"
    assert ns.no_metric is True
    assert ns.command == ["tar", "-c"]


@pytest.mark.parametrize(
    "argv",
    [
        ["--", "ls"],
        ["-n", "j"],
        ["-n", "j", "--"],
        ["-n", "j", "-i", "-1", "--", "ls"],
        ["-n", "j", "-i", "abc", "--", "ls"],
        ["-n", "j", "--bogus", "--", "ls"],
    ],
)
def test_parse_args_usage_errors(argv):
    """Teste para erros de uso."""
    with pytest.raises(args_mod.UsageError):
        args_mod.parse_args(argv)


def test_version_and_check_do_not_require_command():
    """Teste para --version e --check sem nome nem comando."""
    assert args_mod.parse_args(["--version"]).version is True
    assert args_mod.parse_args(["--check", "-d", "/d"]).check is True


def test_env_overrides_only_when_cli_absent(monkeypatch):
    """Teste para override de logging via ambiente."""
    monkeypatch.setenv("CRONMGR_LOG_LEVEL", "debug")
    ns = args_mod.parse_args(["-n", "j", "--", "true"])
    assert ns.log_level == "debug"
    ns = args_mod.parse_args(["-n", "j", "--log-level", "ERROR", "--", "true"])
    assert ns.log_level == "ERROR"


def test_get_log_config_levels():
    """Teste para obtenção de níveis de configuração de log."""
    assert args_mod.get_log_config(SimpleNamespace(log_level="debug", debug_log=None))["level"] == "DEBUG"
    assert args_mod.get_log_config(SimpleNamespace(log_level=None, debug_log=None))["level"] == "WARNING"
    assert args_mod.get_log_config(SimpleNamespace(log_level="bogus", debug_log="/x"))["level"] == "WARNING"
    assert args_mod.get_log_config(SimpleNamespace(log_level=None, debug_log="/x"))["debug_log"] == "/x"
