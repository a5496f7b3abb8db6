"""Pacote config: resolução da configuração imutável do exportador."""

from .settings import ExporterSettings, load_settings

__all__ = ["ExporterSettings", "load_settings"]
