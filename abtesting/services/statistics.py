"""
Fixed-horizon statistics for conversion experiments.

Everything here is pure: counts in, numbers out. The aggregation that
produces the counts lives in results_service.
"""

import math
from dataclasses import dataclass
from typing import Optional, Tuple

from scipy.stats import norm

# 95% two-sided critical value and 80% power
Z_ALPHA = 1.96
Z_BETA = 0.84


@dataclass(frozen=True)
class ProportionTest:
    z_score: float
    p_value: float
    effect: float  # relative lift of test over control, percent

    @property
    def confidence(self) -> float:
        return max(0.0, (1 - self.p_value) * 100)

    def is_significant(self, alpha: float) -> bool:
        return self.p_value < alpha


def conversion_rate(conversions: int, participants: int) -> float:
    return conversions / participants if participants > 0 else 0.0


def relative_effect(test_rate: float, control_rate: float) -> float:
    """Percentage change of test over control; 0 when control is 0."""
    if control_rate <= 0:
        return 0.0
    return (test_rate - control_rate) / control_rate * 100


def two_proportion_z_test(
    control_participants: int,
    control_conversions: int,
    test_participants: int,
    test_conversions: int,
) -> ProportionTest:
    """
    Two-sided pooled two-proportion z-test.

    A zero standard error (no variance at all, e.g. nobody or everybody
    converted in both arms) is reported as no detectable difference.
    """
    if control_participants <= 0 or test_participants <= 0:
        return ProportionTest(z_score=0.0, p_value=1.0, effect=0.0)

    control_rate = conversion_rate(control_conversions, control_participants)
    test_rate = conversion_rate(test_conversions, test_participants)

    pooled_rate = (control_conversions + test_conversions) / (
        control_participants + test_participants
    )
    std_err = math.sqrt(
        pooled_rate
        * (1 - pooled_rate)
        * (1 / control_participants + 1 / test_participants)
    )
    if std_err == 0:
        return ProportionTest(z_score=0.0, p_value=1.0, effect=0.0)

    z_score = abs(test_rate - control_rate) / std_err
    p_value = 2 * (1 - norm.cdf(abs(z_score)))

    return ProportionTest(
        z_score=z_score,
        p_value=min(1.0, max(0.0, float(p_value))),
        effect=relative_effect(test_rate, control_rate),
    )


def wald_interval(conversions: int, participants: int, z: float = Z_ALPHA) -> Tuple[float, float]:
    """95% Wald interval for a conversion rate, clamped to [0, 1]."""
    if participants <= 0:
        return (0.0, 0.0)
    rate = conversions / participants
    margin = z * math.sqrt(rate * (1 - rate) / participants)
    return (max(0.0, rate - margin), min(1.0, rate + margin))


def required_sample_size(
    baseline_rate: float,
    minimum_effect: float,
    z_alpha: float = Z_ALPHA,
    z_beta: float = Z_BETA,
) -> Optional[int]:
    """
    Participants needed per variant to detect a relative lift of
    ``minimum_effect`` percent over ``baseline_rate``.

    Returns None when the question has no answer: a zero baseline or effect
    (nothing to detect) or a target rate outside (0, 1].
    """
    p1 = baseline_rate
    p2 = baseline_rate * (1 + minimum_effect / 100)
    delta = abs(p2 - p1)
    if delta == 0 or not 0 < p1 < 1 or not 0 < p2 <= 1:
        return None

    pooled = (p1 + p2) / 2
    numerator = (
        z_alpha * math.sqrt(2 * pooled * (1 - pooled))
        + z_beta * math.sqrt(p1 * (1 - p1) + p2 * (1 - p2))
    ) ** 2
    return math.ceil(numerator / delta**2)
