# conftest.py
# Configuração global para pytest: adiciona 'src' ao sys.path para permitir imports absolutos
import sys
from pathlib import Path

import pytest

SRC_PATH = Path(__file__).parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


@pytest.fixture(autouse=True)
def _reset_mem_locks():
    """Isola os testes: esvazia o registo global de locks em memória."""
    from cronmgr.system.locks import DEFAULT_REGISTRY

    DEFAULT_REGISTRY.reset()
    yield
    DEFAULT_REGISTRY.reset()
