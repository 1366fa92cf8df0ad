"""Random values and distributions for realistic call simulation."""

from .distributions import (
    Distribution,
    DistributionFactory,
    LogNormalDistribution,
    MetricRange,
    NormalDistribution,
    UniformDistribution,
)
from .random_values import (
    pick_random_element,
    random_branch,
    random_call_id,
    random_float,
    random_integer,
    random_phone_number,
    random_public_ip,
    random_string,
)

__all__ = [
    "Distribution",
    "NormalDistribution",
    "LogNormalDistribution",
    "UniformDistribution",
    "MetricRange",
    "DistributionFactory",
    "pick_random_element",
    "random_branch",
    "random_call_id",
    "random_float",
    "random_integer",
    "random_phone_number",
    "random_public_ip",
    "random_string",
]
