"""
Monitoring 모듈
===============
구조화 로깅과 구현별 성능 메트릭
"""

from .implementation_metrics import ImplementationMetrics, MetricsCollector
from .logger import AgentLogger, log_execution

__all__ = ["AgentLogger", "ImplementationMetrics", "MetricsCollector", "log_execution"]
