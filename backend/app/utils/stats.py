from __future__ import annotations

import math
import random
from collections.abc import Sequence


def mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def population_variance(values: Sequence[float], *, center: float | None = None) -> float:
    if not values:
        return 0.0
    mu = mean(values) if center is None else center
    return sum((value - mu) ** 2 for value in values) / len(values)


def population_std(values: Sequence[float]) -> float:
    return math.sqrt(population_variance(values))


def sample_variance(values: Sequence[float]) -> float:
    n = len(values)
    if n < 2:
        return 0.0
    mu = mean(values)
    return sum((value - mu) ** 2 for value in values) / (n - 1)


def order_statistic(sorted_values: Sequence[float], fraction: float) -> float:
    """Value at index floor(fraction * n) of an ascending series.

    No interpolation between neighbours; fraction 0.5 on an even-length
    series returns the upper of the two middle values.
    """
    if not sorted_values:
        return 0.0
    index = min(int(math.floor(fraction * len(sorted_values))), len(sorted_values) - 1)
    return sorted_values[index]


def linear_trend(series: Sequence[float]) -> tuple[float, float]:
    """Least-squares (slope, intercept) against x = 1..n."""
    n = len(series)
    if n < 2:
        return 0.0, (float(series[0]) if series else 0.0)
    xs = range(1, n + 1)
    x_sum = float(sum(xs))
    y_sum = float(sum(series))
    xx_sum = float(sum(x * x for x in xs))
    xy_sum = float(sum(x * y for x, y in zip(xs, series)))
    denom = n * xx_sum - x_sum * x_sum
    slope = (n * xy_sum - x_sum * y_sum) / denom
    intercept = (y_sum - slope * x_sum) / n
    return slope, intercept


def normal(rng: random.Random, mean_value: float, std: float) -> float:
    # Box-Muller; zero draws are resampled so log() stays finite
    u = 0.0
    while u == 0.0:
        u = rng.random()
    v = 0.0
    while v == 0.0:
        v = rng.random()
    z = math.sqrt(-2.0 * math.log(u)) * math.cos(2.0 * math.pi * v)
    return mean_value + std * z


def round_half_up(value: float) -> float:
    return float(math.floor(value + 0.5))
