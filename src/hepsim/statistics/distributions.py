"""
Statistical distributions for call quality sampling.

Quality ranges in scenario config are either a two-element list
(``[low, high]``, sampled uniformly) or a mapping with a ``distribution`` key
(``{distribution: normal, mean: 4.1, stddev: 0.2, min: 1.0, max: 4.5}``).
"""

import math
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


class Distribution(ABC):
    """Base class for statistical distributions."""

    @abstractmethod
    def sample(self, rng: random.Random | None = None) -> float:
        """Draw a single sample from the distribution."""
        pass


@dataclass
class UniformDistribution(Distribution):
    """Uniform distribution over [low, high]."""

    low: float = 0.0
    high: float = 1.0

    def sample(self, rng: random.Random | None = None) -> float:
        r = rng if rng is not None else random
        return r.random() * (self.high - self.low) + self.low


@dataclass
class NormalDistribution(Distribution):
    """
    Normal (Gaussian) distribution.

    Good for: MOS and jitter that cluster around a typical value.
    """

    mean: float = 0.0
    stddev: float = 1.0

    def sample(self, rng: random.Random | None = None) -> float:
        r = rng if rng is not None else random
        return r.gauss(self.mean, self.stddev)


@dataclass
class LogNormalDistribution(Distribution):
    """
    Log-normal distribution - right-skewed, good for jitter and loss bursts.

    Parameters:
        median: The median value (50th percentile)
        sigma: Shape parameter controlling the spread/skew
    """

    median: float = 1.0
    sigma: float = 0.8

    def sample(self, rng: random.Random | None = None) -> float:
        r = rng if rng is not None else random
        return r.lognormvariate(math.log(self.median), self.sigma)


@dataclass
class MetricRange:
    """
    A configured quality-metric range.

    Samples come from ``distribution`` and are clamped into [low, high];
    ``decimals`` controls the fixed-point rendering (3 for MOS and jitter,
    0 for packet counts).
    """

    low: float
    high: float
    distribution: Distribution
    decimals: int = 3

    def sample(self, rng: random.Random | None = None) -> float:
        value = min(self.high, max(self.low, self.distribution.sample(rng)))
        return round(value, self.decimals)

    def sample_int(self, rng: random.Random | None = None) -> int:
        return int(round(min(self.high, max(self.low, self.distribution.sample(rng)))))


class DistributionFactory:
    """Factory for creating distributions from configuration values."""

    @classmethod
    def create(cls, config: dict[str, Any]) -> Distribution:
        """
        Create a distribution from a configuration dictionary.

        Examples:
            {"distribution": "uniform", "min": 3.5, "max": 4.4}
            {"distribution": "normal", "mean": 4.1, "stddev": 0.2}
            {"distribution": "log_normal", "median": 2.0, "sigma": 0.6}
        """
        dist_type = str(config.get("distribution", "uniform")).lower().replace("-", "_")

        if dist_type == "uniform":
            return UniformDistribution(
                low=float(config.get("low", config.get("min", 0.0))),
                high=float(config.get("high", config.get("max", 1.0))),
            )

        if dist_type == "normal":
            return NormalDistribution(
                mean=float(config.get("mean", 0.0)),
                stddev=float(config.get("stddev", 1.0)),
            )

        if dist_type == "log_normal":
            return LogNormalDistribution(
                median=float(config.get("median", 1.0)),
                sigma=float(config.get("sigma", 0.8)),
            )

        raise ValueError(f"Unknown distribution type: {dist_type}")

    @classmethod
    def create_range(cls, value: Any, decimals: int = 3) -> MetricRange:
        """
        Build a MetricRange from ``[low, high]`` or a distribution mapping.

        Raises ValueError for malformed ranges (wrong length, non-numeric, low > high).
        """
        if isinstance(value, (list, tuple)):
            if len(value) != 2:
                raise ValueError(f"range must have exactly two values, got {list(value)}")
            low, high = float(value[0]), float(value[1])
            if low > high:
                raise ValueError(f"range low {low} is greater than high {high}")
            return MetricRange(low, high, UniformDistribution(low, high), decimals)

        if isinstance(value, dict):
            dist = cls.create(value)
            low = float(value.get("min", value.get("low", -math.inf)))
            high = float(value.get("max", value.get("high", math.inf)))
            if low > high:
                raise ValueError(f"range min {low} is greater than max {high}")
            return MetricRange(low, high, dist, decimals)

        raise ValueError(f"range must be [low, high] or a distribution mapping, got {value!r}")
