"""Pacote exporter: escrita de métricas no ficheiro de exposição do Prometheus.

Re-exports da fachada e do motor de escrita.
"""

from .exporter import Exporter
from .metric import MetricType, MetricWriteError, MetricWriter

__all__ = ["Exporter", "MetricType", "MetricWriteError", "MetricWriter"]
