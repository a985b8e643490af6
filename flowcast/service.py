"""Planning facade: providers in, structured analysis and forecasts out."""

from typing import Optional, Union

from .config import Config
from .dependency_graph import DependencyGraph, GraphAnalysisResult, IssueDependencyView
from .models import NotFound
from .monte_carlo import (
    BacklogForecastInput, BacklogForecastResult, MonteCarloEngine,
    SprintSimulationInput, SprintSimulationResult,
)
from .providers import GraphDataProvider, HistoryProvider
from .sampling import RandomSource, make_rng
from .utils import logger


class PlanningService:
    """Wires the configured engines to a graph provider and a history provider.

    Either provider may be omitted when only one half is needed.
    """

    def __init__(self, graph_provider: Optional[GraphDataProvider] = None,
                 history_provider: Optional[HistoryProvider] = None,
                 config: Optional[Config] = None,
                 rng: Optional[RandomSource] = None):
        self.graph_provider = graph_provider
        self.history_provider = history_provider
        self.config = config or Config()
        self.rng = rng if rng is not None else make_rng(self.config.simulation.seed)
        self.engine = MonteCarloEngine(self.config.simulation, self.rng, self.config.sampling)
        self.sampler = self.engine.sampler

    def _graph(self) -> DependencyGraph:
        if self.graph_provider is None:
            raise ValueError("No graph data provider configured")
        snapshot = self.graph_provider.get_graph_snapshot()
        return DependencyGraph.from_snapshot(snapshot, self.config.graph)

    def _samples(self, area: Optional[str]):
        if self.history_provider is None:
            raise ValueError("No history provider configured")
        records = self.history_provider.get_completion_records()
        return self.sampler.get_cycle_time_samples(records, area)

    def analyze_dependency_graph(self) -> GraphAnalysisResult:
        return self._graph().analyze()

    def get_issue_dependencies(self, node_id: int) -> Union[IssueDependencyView, NotFound]:
        view = self._graph().get_issue_dependencies(node_id)
        if isinstance(view, NotFound):
            logger.info(view.message)
        return view

    def simulate_sprint(self, sim_input: Optional[SprintSimulationInput] = None) -> SprintSimulationResult:
        sim_input = sim_input or SprintSimulationInput()
        return self.engine.simulate_sprint(self._samples(sim_input.area), sim_input)

    def forecast_backlog(self, forecast_input: BacklogForecastInput) -> BacklogForecastResult:
        return self.engine.forecast_backlog(self._samples(forecast_input.area), forecast_input)
