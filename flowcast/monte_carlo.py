"""Monte Carlo sprint simulation and backlog forecasting.

Every trial replays the team's historical cycle times through a fixed number
of WIP slots: each slot works on one item, pulled by bootstrap draw from the
sample set, and picks up the next item the moment the current one finishes.
Aggregating many trials gives probability curves such as "80% chance of
finishing 7 items in 14 days".
"""

import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from .config import SamplingConfig, SimulationConfig
from .sampling import CycleTimeSampler, DataQuality, RandomSource, SampleSet, make_rng
from .stats import mean, percentile, round_half_up, std_dev
from .utils import clamp, logger


@dataclass
class SprintSimulationInput:
    """``None`` fields fall back to the configured defaults."""
    item_count: Optional[int] = None
    sprint_days: Optional[float] = None
    trials: Optional[int] = None
    area: Optional[str] = None
    wip_limit: Optional[int] = None


@dataclass
class BacklogForecastInput:
    item_count: int
    trials: Optional[int] = None
    area: Optional[str] = None
    wip_limit: Optional[int] = None
    sprint_days: Optional[float] = None
    start: Optional[datetime] = None


@dataclass
class PercentileBand:
    p25: float
    p50: float
    p75: float

    def to_dict(self) -> Dict[str, float]:
        return {'p25': self.p25, 'p50': self.p50, 'p75': self.p75}


@dataclass
class ThroughputForecast:
    """Items completed per sprint across all trials."""
    p10: float
    p25: float
    p50: float
    p75: float
    p90: float
    mean: float
    std_dev: float

    def to_dict(self) -> Dict[str, float]:
        return {
            'p10': self.p10, 'p25': self.p25, 'p50': self.p50,
            'p75': self.p75, 'p90': self.p90,
            'mean': self.mean, 'std_dev': self.std_dev,
        }


@dataclass
class CompletionProbability:
    items: int
    probability: float
    cumulative_probability: float  # chance of completing at least ``items``

    def to_dict(self) -> Dict[str, Any]:
        return {
            'items': self.items,
            'probability': self.probability,
            'cumulative_probability': self.cumulative_probability,
        }


@dataclass
class HistogramBin:
    items: int
    count: int
    percentage: float

    def to_dict(self) -> Dict[str, Any]:
        return {'items': self.items, 'count': self.count, 'percentage': self.percentage}


@dataclass
class TargetAnalysis:
    target_items: int
    probability_of_completion: float
    confidence_level: str
    recommendation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'target_items': self.target_items,
            'probability_of_completion': self.probability_of_completion,
            'confidence_level': self.confidence_level,
            'recommendation': self.recommendation,
        }


@dataclass
class SprintSimulationResult:
    input: Dict[str, Any]
    throughput_forecast: ThroughputForecast
    completion_probabilities: List[CompletionProbability]
    target_analysis: TargetAnalysis
    data_quality: DataQuality
    histogram: List[HistogramBin]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'input': dict(self.input),
            'throughput_forecast': self.throughput_forecast.to_dict(),
            'completion_probabilities': [c.to_dict() for c in self.completion_probabilities],
            'target_analysis': self.target_analysis.to_dict(),
            'data_quality': self.data_quality.to_dict(),
            'histogram': [h.to_dict() for h in self.histogram],
        }


@dataclass
class CompletionForecast:
    p50_days: float
    p80_days: float
    p95_days: float
    p50_date: str
    p80_date: str
    p95_date: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'p50_days': self.p50_days, 'p80_days': self.p80_days, 'p95_days': self.p95_days,
            'p50_date': self.p50_date, 'p80_date': self.p80_date, 'p95_date': self.p95_date,
        }


@dataclass
class SprintBreakdown:
    sprint: int
    end_day: float
    end_date: str
    items_completed: PercentileBand
    cumulative_completed: PercentileBand
    remaining_items: PercentileBand
    probability_of_done: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sprint': self.sprint,
            'end_day': self.end_day,
            'end_date': self.end_date,
            'items_completed': self.items_completed.to_dict(),
            'cumulative_completed': self.cumulative_completed.to_dict(),
            'remaining_items': self.remaining_items.to_dict(),
            'probability_of_done': self.probability_of_done,
        }


@dataclass
class RiskAnalysis:
    tail_risk_days: float
    variability_ratio: float
    risk_level: str  # low, medium, high
    factors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'tail_risk_days': self.tail_risk_days,
            'variability_ratio': self.variability_ratio,
            'risk_level': self.risk_level,
            'factors': list(self.factors),
        }


@dataclass
class BacklogForecastResult:
    input: Dict[str, Any]
    completion_forecast: CompletionForecast
    sprint_breakdown: List[SprintBreakdown]
    risk_analysis: RiskAnalysis
    data_quality: DataQuality

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'input': dict(self.input),
            'completion_forecast': self.completion_forecast.to_dict(),
            'sprint_breakdown': [s.to_dict() for s in self.sprint_breakdown],
            'risk_analysis': self.risk_analysis.to_dict(),
            'data_quality': self.data_quality.to_dict(),
        }


def confidence_level(probability: float) -> str:
    """Label for the chance of hitting a sprint target."""
    if probability >= 0.9:
        return "very_likely"
    if probability >= 0.7:
        return "likely"
    if probability >= 0.4:
        return "uncertain"
    if probability >= 0.15:
        return "unlikely"
    return "very_unlikely"


def risk_level(variability_ratio: float, tail_risk: float, p50_days: float) -> str:
    if variability_ratio > 0.5 or tail_risk > p50_days:
        return "high"
    if variability_ratio > 0.3 or tail_risk > p50_days * 0.5:
        return "medium"
    return "low"


class MonteCarloEngine:
    """Runs independent WIP-constrained trials over a cycle-time sample set.

    The injected random source is the only source of randomness, so a seeded
    generator makes every result reproducible.
    """

    def __init__(self, config: Optional[SimulationConfig] = None,
                 rng: Optional[RandomSource] = None,
                 sampling_config: Optional[SamplingConfig] = None):
        self.config = config or SimulationConfig()
        if rng is None:
            rng = make_rng(self.config.seed)
        self.rng = rng
        self.sampler = CycleTimeSampler(sampling_config, rng)

    # ─── Parameter handling ─────────────────────────────────

    def _trials(self, requested: Optional[int]) -> int:
        trials = self.config.trials if requested is None else requested
        clamped = int(clamp(trials, 1, self.config.max_trials))
        if clamped != trials:
            logger.warning(f"Trial count {trials} clamped to {clamped}")
        return clamped

    def _wip_limit(self, requested: Optional[int]) -> int:
        wip = self.config.wip_limit if requested is None else requested
        clamped = int(clamp(wip, 1))
        if clamped != wip:
            logger.warning(f"WIP limit {wip} clamped to {clamped}")
        return clamped

    def _item_count(self, requested: Optional[int]) -> int:
        items = self.config.item_count if requested is None else requested
        clamped = int(clamp(items, 0))
        if clamped != items:
            logger.warning(f"Item count {items} clamped to {clamped}")
        return clamped

    def _sprint_days(self, requested: Optional[float]) -> float:
        days = self.config.sprint_days if requested is None else requested
        clamped = clamp(days, self.config.step_days)
        if clamped != days:
            logger.warning(f"Sprint length {days} clamped to {clamped} days")
        return clamped

    @staticmethod
    def _check_samples(samples: Sequence[float]) -> Sequence[float]:
        if samples is None:
            raise TypeError("samples must not be None")
        if len(samples) == 0:
            raise ValueError("cannot simulate with an empty cycle-time set")
        return samples

    # ─── Trials ─────────────────────────────────────────────

    def run_sprint_trial(self, samples: Sequence[float], sprint_days: float,
                         wip_limit: int) -> int:
        """Items completed within ``sprint_days`` for one trial."""
        draw = self.sampler.sample_cycle_time
        step = self.config.step_days
        steps = max(0, math.ceil(sprint_days / step))

        slots = [draw(samples) for _ in range(wip_limit)]
        completed = 0

        for _ in range(steps):
            for s in range(wip_limit):
                slots[s] -= step
                if slots[s] <= 0:
                    completed += 1
                    slots[s] = draw(samples)

        return completed

    def run_backlog_trial(self, samples: Sequence[float], item_count: int,
                          wip_limit: int) -> float:
        """Days to finish ``item_count`` items for one trial, to one decimal."""
        draw = self.sampler.sample_cycle_time
        step = self.config.step_days
        max_days = self.config.max_backlog_days

        # None marks an idle slot once nothing is left to start
        slots: List[Optional[float]] = [None] * wip_limit
        started = 0
        for s in range(wip_limit):
            if started < item_count:
                slots[s] = draw(samples)
                started += 1

        completed = 0
        elapsed = 0.0
        while completed < item_count and elapsed < max_days:
            elapsed += step
            for s in range(wip_limit):
                if slots[s] is None:
                    continue
                slots[s] -= step
                if slots[s] <= 0:
                    completed += 1
                    if started < item_count:
                        slots[s] = draw(samples)
                        started += 1
                    else:
                        slots[s] = None

        return round_half_up(elapsed, 1)

    # ─── Forecasts ──────────────────────────────────────────

    def simulate_sprint(self, sample_set: SampleSet,
                        sim_input: Optional[SprintSimulationInput] = None) -> SprintSimulationResult:
        """How many items will likely be finished in one sprint?"""
        sim_input = sim_input or SprintSimulationInput()
        samples = self._check_samples(sample_set.samples)
        sprint_days = self._sprint_days(sim_input.sprint_days)
        trials = self._trials(sim_input.trials)
        wip_limit = self._wip_limit(sim_input.wip_limit)
        item_count = self._item_count(sim_input.item_count)

        results = sorted(
            self.run_sprint_trial(samples, sprint_days, wip_limit) for _ in range(trials)
        )

        throughput = ThroughputForecast(
            p10=percentile(results, 0.1),
            p25=percentile(results, 0.25),
            p50=percentile(results, 0.5),
            p75=percentile(results, 0.75),
            p90=percentile(results, 0.9),
            mean=round_half_up(mean(results), 1),
            std_dev=round_half_up(std_dev(results), 1),
        )

        counts = Counter(results)
        max_items = max(results[-1], item_count)
        histogram = []
        probabilities = []
        at_least = trials
        for n in range(max_items + 1):
            count = counts.get(n, 0)
            if count:
                histogram.append(HistogramBin(n, count, round_half_up(count / trials * 100, 1)))
            probability = round_half_up(count / trials, 3)
            if probability > 0 or n <= item_count:
                probabilities.append(CompletionProbability(
                    items=n,
                    probability=probability,
                    cumulative_probability=round_half_up(at_least / trials, 3),
                ))
            at_least -= count

        hit = sum(1 for r in results if r >= item_count) / trials
        target = TargetAnalysis(
            target_items=item_count,
            probability_of_completion=round_half_up(hit, 3),
            confidence_level=confidence_level(hit),
            recommendation=self._sprint_recommendation(hit, item_count, throughput),
        )

        logger.info(
            f"Sprint simulation: {trials} trials, P50 throughput {throughput.p50}, "
            f"P(>= {item_count}) = {target.probability_of_completion}"
        )

        return SprintSimulationResult(
            input={
                'item_count': item_count,
                'sprint_days': sprint_days,
                'trials': trials,
                'area': sample_set.area,
                'wip_limit': wip_limit,
            },
            throughput_forecast=throughput,
            completion_probabilities=probabilities,
            target_analysis=target,
            data_quality=self.sampler.assess(sample_set),
            histogram=histogram,
        )

    @staticmethod
    def _sprint_recommendation(probability: float, item_count: int,
                               throughput: ThroughputForecast) -> str:
        if probability >= 0.9:
            return f"Very likely to complete all {item_count} items: comfortable sprint commitment"
        if probability >= 0.7:
            return f"Likely to complete {item_count} items: reasonable commitment with some risk"
        if probability >= 0.4:
            return (f"Uncertain: consider committing to {throughput.p50} items (P50) "
                    f"and treating {item_count} as stretch")
        if probability >= 0.15:
            return (f"Unlikely: {item_count} items is aggressive. "
                    f"Commit to {throughput.p25}-{throughput.p50} items instead")
        return (f"Very unlikely: {item_count} items far exceeds capacity. "
                f"Expected throughput is {throughput.p50} items (P50)")

    def forecast_backlog(self, sample_set: SampleSet,
                         forecast_input: BacklogForecastInput) -> BacklogForecastResult:
        """When will ``item_count`` items be finished?"""
        samples = self._check_samples(sample_set.samples)
        item_count = self._item_count(forecast_input.item_count)
        trials = self._trials(forecast_input.trials)
        wip_limit = self._wip_limit(forecast_input.wip_limit)
        sprint_days = self._sprint_days(forecast_input.sprint_days)
        start = forecast_input.start or datetime.now()

        def date_after(days: float) -> str:
            return (start + timedelta(days=days)).date().isoformat()

        day_results = sorted(
            self.run_backlog_trial(samples, item_count, wip_limit) for _ in range(trials)
        )

        p50 = round_half_up(percentile(day_results, 0.5), 1)
        p80 = round_half_up(percentile(day_results, 0.8), 1)
        p95 = round_half_up(percentile(day_results, 0.95), 1)

        breakdown = self._sprint_breakdown(
            samples, day_results, item_count, wip_limit, trials, sprint_days, p95, date_after
        )
        risk = self._risk_analysis(day_results, samples, p50, p95)

        logger.info(
            f"Backlog forecast: {item_count} items, P50 {p50}d, P80 {p80}d, P95 {p95}d "
            f"({risk.risk_level} risk)"
        )

        return BacklogForecastResult(
            input={
                'item_count': item_count,
                'trials': trials,
                'area': sample_set.area,
                'wip_limit': wip_limit,
                'sprint_days': sprint_days,
            },
            completion_forecast=CompletionForecast(
                p50_days=p50, p80_days=p80, p95_days=p95,
                p50_date=date_after(p50), p80_date=date_after(p80), p95_date=date_after(p95),
            ),
            sprint_breakdown=breakdown,
            risk_analysis=risk,
            data_quality=self.sampler.assess(sample_set),
        )

    def _sprint_breakdown(self, samples, day_results, item_count, wip_limit,
                          trials, sprint_days, p95, date_after) -> List[SprintBreakdown]:
        max_sprints = min(math.ceil(p95 / sprint_days) + 2, self.config.max_breakdown_sprints)
        sub_trials = min(trials, self.config.breakdown_trials)
        breakdown: List[SprintBreakdown] = []
        previous = PercentileBand(0, 0, 0)

        for sprint in range(1, max_sprints + 1):
            end_day = sprint * sprint_days
            prob_done = sum(1 for d in day_results if d <= end_day) / trials

            cumulative_trials = sorted(
                min(self.run_sprint_trial(samples, end_day, wip_limit), item_count)
                for _ in range(sub_trials)
            )
            cumulative = PercentileBand(
                p25=percentile(cumulative_trials, 0.25),
                p50=percentile(cumulative_trials, 0.5),
                p75=percentile(cumulative_trials, 0.75),
            )

            breakdown.append(SprintBreakdown(
                sprint=sprint,
                end_day=end_day,
                end_date=date_after(end_day),
                items_completed=PercentileBand(
                    p25=max(0, cumulative.p25 - previous.p25),
                    p50=max(0, cumulative.p50 - previous.p50),
                    p75=max(0, cumulative.p75 - previous.p75),
                ),
                cumulative_completed=cumulative,
                remaining_items=PercentileBand(
                    p25=max(0, item_count - cumulative.p25),
                    p50=max(0, item_count - cumulative.p50),
                    p75=max(0, item_count - cumulative.p75),
                ),
                probability_of_done=round_half_up(prob_done, 3),
            ))
            previous = cumulative

            if prob_done >= 0.95:
                break

        return breakdown

    @staticmethod
    def _risk_analysis(day_results: Sequence[float], samples: Sequence[float],
                       p50: float, p95: float) -> RiskAnalysis:
        tail_risk = round_half_up(p95 - p50, 1)
        mean_days = mean(day_results)
        sd_days = std_dev(day_results)
        variability = round_half_up(sd_days / mean_days, 2) if mean_days > 0 else 0.0

        factors = []
        if variability > 0.5:
            factors.append("High variability in cycle times: estimates have wide confidence intervals")
        if tail_risk > p50 * 0.8:
            factors.append("Large tail risk: worst case is significantly worse than expected case")
        if len(samples) < 10:
            factors.append("Limited historical data: predictions may be unreliable")

        low, high = min(samples), max(samples)
        if low > 0 and high / low > 5:
            factors.append(
                f"Cycle times vary {round_half_up(high / low):g}x "
                f"({round_half_up(low, 1):g}d to {round_half_up(high, 1):g}d): consider splitting by area"
            )

        if not factors:
            factors.append("Cycle times are consistent: forecast is reliable")

        return RiskAnalysis(
            tail_risk_days=tail_risk,
            variability_ratio=variability,
            risk_level=risk_level(variability, tail_risk, p50),
            factors=factors,
        )
