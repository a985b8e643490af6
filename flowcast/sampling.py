"""Turn raw completion history into a usable cycle-time distribution."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

import numpy as np

from .config import SamplingConfig
from .models import CompletionRecord, CycleTimeSample, is_valid_cycle_time
from .stats import confidence_tier, percentile, round_half_up
from .utils import logger


class RandomSource(Protocol):
    """Anything with ``random() -> float`` in ``[0, 1)``.

    ``numpy.random.Generator`` and ``random.Random`` both satisfy it.
    """

    def random(self) -> float:
        ...


def make_rng(seed: Optional[int] = None) -> np.random.Generator:
    """Default random source; pass a seed for reproducible runs."""
    return np.random.default_rng(seed)


def sample_cycle_time(samples: Sequence[float], rng: RandomSource) -> float:
    """Bootstrap draw: one value, uniformly, with replacement."""
    if samples is None:
        raise TypeError("samples must not be None")
    if len(samples) == 0:
        raise ValueError("cannot sample from an empty cycle-time set")
    idx = int(float(rng.random()) * len(samples))
    return samples[min(idx, len(samples) - 1)]


class SampleSource(Enum):
    """Where the samples in a ``SampleSet`` came from."""
    OBSERVED = "observed"
    ALL_AREAS = "all_areas"
    SYNTHETIC = "synthetic"


@dataclass(frozen=True)
class SampleSet:
    """Cycle times ready for simulation, plus how much to trust them."""
    samples: Tuple[float, ...]
    source: SampleSource = SampleSource.OBSERVED
    warning: Optional[str] = None
    area: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'samples', tuple(self.samples))

    @property
    def size(self) -> int:
        return len(self.samples)

    @property
    def is_fallback(self) -> bool:
        return self.source is not SampleSource.OBSERVED

    def range_summary(self) -> Dict[str, float]:
        ordered = sorted(self.samples)
        if not ordered:
            return {'min': 0.0, 'max': 0.0, 'median': 0.0}
        return {
            'min': round_half_up(ordered[0], 1),
            'max': round_half_up(ordered[-1], 1),
            'median': round_half_up(percentile(ordered, 0.5), 1),
        }


@dataclass(frozen=True)
class DataQuality:
    """How far a forecast can be trusted, given its input sample."""
    sample_size: int
    cycle_time_range: Dict[str, float]
    area: Optional[str]
    confidence: str  # high, medium, low
    warning: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sample_size': self.sample_size,
            'cycle_time_range': dict(self.cycle_time_range),
            'area': self.area,
            'confidence': self.confidence,
            'warning': self.warning,
        }


class CycleTimeSampler:
    """Filters completion records and falls back when data is thin.

    The resulting ``SampleSet`` is never empty: an area filter with too few
    matches is dropped, and a history with too few usable records is replaced
    by a synthetic uniform distribution. Every fallback carries a warning.
    """

    def __init__(self, config: Optional[SamplingConfig] = None,
                 rng: Optional[RandomSource] = None):
        self.config = config or SamplingConfig()
        self.rng = rng if rng is not None else make_rng()

    def _valid_durations(self, records: Iterable[CompletionRecord],
                         area: Optional[str] = None) -> List[float]:
        durations = []
        for record in records:
            if not is_valid_cycle_time(record.duration_days,
                                       self.config.min_days, self.config.max_days):
                continue
            if area and record.area != area:
                continue
            durations.append(CycleTimeSample(float(record.duration_days)))
        return [sample.days for sample in durations]

    def synthetic_samples(self) -> List[float]:
        low = self.config.synthetic_min_days
        span = self.config.synthetic_max_days - low
        return [low + float(self.rng.random()) * span for _ in range(self.config.synthetic_count)]

    def get_cycle_time_samples(self, records: Iterable[CompletionRecord],
                               area: Optional[str] = None) -> SampleSet:
        """Build the empirical distribution for ``area`` (or all areas)."""
        if records is None:
            raise TypeError("records must not be None")
        records = list(records)

        warnings = []
        source = SampleSource.OBSERVED
        samples = self._valid_durations(records, area)

        if area and len(samples) < self.config.min_area_samples:
            warnings.append(
                f'Only {len(samples)} samples for area "{area}": falling back to all areas'
            )
            samples = self._valid_durations(records)
            source = SampleSource.ALL_AREAS

        if len(samples) < self.config.min_samples:
            warnings.append(
                f"Fewer than {self.config.min_samples} historical cycle times: using synthetic "
                f"distribution ({self.config.synthetic_min_days:g}-"
                f"{self.config.synthetic_max_days:g} days uniform)"
            )
            samples = self.synthetic_samples()
            source = SampleSource.SYNTHETIC

        warning = "; ".join(warnings) if warnings else None
        if warning:
            logger.warning(warning)
        logger.debug(f"Cycle-time sample set: {len(samples)} values ({source.value})")

        return SampleSet(samples=samples, source=source, warning=warning, area=area)

    def sample_cycle_time(self, samples: Sequence[float]) -> float:
        return sample_cycle_time(samples, self.rng)

    def assess(self, sample_set: SampleSet) -> DataQuality:
        """Data-quality tiering shared by sprint and backlog forecasts."""
        return DataQuality(
            sample_size=sample_set.size,
            cycle_time_range=sample_set.range_summary(),
            area=sample_set.area,
            confidence=confidence_tier(
                sample_set.size,
                high=self.config.high_confidence_samples,
                medium=self.config.medium_confidence_samples,
            ),
            warning=sample_set.warning,
        )
