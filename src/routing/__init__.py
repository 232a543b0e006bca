"""Adaptive routing of operations to direct calls or generated scripts."""

from .complexity_analyzer import ComplexityAnalyzer
from .context import BridgeContext
from .metrics import RoutingMetrics
from .orchestrator import RoutingOrchestrator

__all__ = ["BridgeContext", "ComplexityAnalyzer", "RoutingMetrics", "RoutingOrchestrator"]
