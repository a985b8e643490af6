"""
flowcast: dependency graph analysis and Monte Carlo forecasting for backlogs.

Answers "what is blocking what, and how bad is it?" and "given our historical
pace, how much will we finish, and when?".
"""

__version__ = "0.1.0"
__license__ = "MIT"

from .models import (
    GraphNode, DependencyEdge, GraphSnapshot, CompletionRecord, CycleTimeSample,
    NotFound, FlowcastError, ProviderError, build_edges,
)
from .dependency_graph import DependencyGraph, GraphAnalysisResult, IssueDependencyView
from .sampling import CycleTimeSampler, SampleSet, SampleSource, make_rng
from .monte_carlo import (
    MonteCarloEngine, SprintSimulationInput, BacklogForecastInput,
    SprintSimulationResult, BacklogForecastResult,
)
from .service import PlanningService

__all__ = [
    "GraphNode", "DependencyEdge", "GraphSnapshot", "CompletionRecord", "CycleTimeSample",
    "NotFound", "FlowcastError", "ProviderError", "build_edges",
    "DependencyGraph", "GraphAnalysisResult", "IssueDependencyView",
    "CycleTimeSampler", "SampleSet", "SampleSource", "make_rng",
    "MonteCarloEngine", "SprintSimulationInput", "BacklogForecastInput",
    "SprintSimulationResult", "BacklogForecastResult",
    "PlanningService",
]
