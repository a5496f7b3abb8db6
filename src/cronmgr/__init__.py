"""cronmgr: executa cron jobs e publica o resultado num ficheiro de exposição do Prometheus."""

__version__ = "0.3.0"


def version_message() -> str:
    return f"cronmgr version {__version__}"
