"""
Differential Privacy Primitives with Exact Rational Arithmetic.

This module implements the randomized building blocks used by the bound,
weight-table and attribution stages:

- Cryptographically secure (and, for tests, seeded) integer RNGs
- Exact Bernoulli(exp(-gamma)) and Discrete Laplace samplers
- Weighted index sampling against exact Fraction weights
- The base-2 exponential mechanism

The samplers follow Canonne, Kamath & Steinke (2020), which only needs
integer comparisons. Exponential-mechanism weights are dyadic rationals
derived from an Eta token (see core.budget), so cumulative sums are exact
and only the uniform draw is truncated to a configurable number of bits.

Reference:
    "The Discrete Gaussian for Differential Privacy"
    https://arxiv.org/abs/2004.00010
"""

import random
import secrets
import logging
from dataclasses import dataclass
from fractions import Fraction
from typing import Callable, List, Optional, Sequence, Tuple, TypeVar, Union

import numpy as np

from core.budget import Eta


logger = logging.getLogger(__name__)

T = TypeVar("T")

# Lower bound on the bits drawn for any weighted selection
MIN_PRECISION = 64
# Extra bits on top of the dynamic range of the weights
GUARD_BITS = 8


# ============================================================================
# Random Number Generation
# ============================================================================

class SecureRNG:
    """
    Cryptographically secure random number generator.
    Uses secrets module for production security.
    """

    def integers(self, low: int, high: int) -> int:
        """
        Generate a random integer in [low, high).

        Args:
            low: Lower bound (inclusive)
            high: Upper bound (exclusive)

        Returns:
            Random integer in [low, high)
        """
        if high <= low:
            raise ValueError(f"high ({high}) must be greater than low ({low})")
        return low + secrets.randbelow(high - low)


class SeededRNG(SecureRNG):
    """
    Reproducible generator for tests and demos.

    NOT suitable for releases: the output is determined by the seed.
    """

    def __init__(self, seed: int):
        self._random = random.Random(seed)

    def integers(self, low: int, high: int) -> int:
        if high <= low:
            raise ValueError(f"high ({high}) must be greater than low ({low})")
        return self._random.randrange(low, high)


# Default RNG factory - use secure RNG for production
_rng_factory = SecureRNG


def get_rng() -> SecureRNG:
    """Get a new RNG instance."""
    return _rng_factory()


# ============================================================================
# Exact Bernoulli(exp(-gamma)) Sampling
# ============================================================================

def bernoulli_exp_scalar(gamma: Tuple[int, int], rng: SecureRNG) -> int:
    """
    Sample from Bernoulli(exp(-gamma)) exactly.

    Args:
        gamma: (numerator, denominator) representing gamma >= 0
        rng: Random number generator

    Returns:
        1 with probability exp(-gamma), 0 otherwise
    """
    gn, gd = gamma

    if 0 <= gn <= gd:
        k: int = 1
        a: bool = True
        while a:
            a = rng.integers(0, gd * k) < gn
            k = k + 1 if a else k
        return k % 2
    else:
        for _ in range(gn // gd):
            b = bernoulli_exp_scalar((1, 1), rng)
            if not b:
                return 0
        return bernoulli_exp_scalar((gn % gd, gd), rng)


# ============================================================================
# Exact Discrete Laplace Sampling
# ============================================================================

def discrete_laplace_scalar(s: int, t: int, rng: SecureRNG) -> int:
    """
    Sample from Discrete Laplace (two-sided Geometric) exactly.

    The Discrete Laplace has PMF:
        Pr[X = x] = (exp(s/t) - 1) / (exp(s/t) + 1) * exp(-|x| * s/t)

    Args:
        s: Scale numerator (>= 1)
        t: Scale denominator (>= 1)
        rng: Random number generator

    Returns:
        Sample from Discrete Laplace with scale t/s
    """
    if s < 1 or t < 1:
        raise ValueError(f"Discrete Laplace needs s >= 1 and t >= 1, got s={s}, t={t}")

    while True:
        d: bool = False
        while not d:
            u: int = rng.integers(0, t)
            d = bool(bernoulli_exp_scalar((u, t), rng))

        v: int = 0
        a: bool = True
        while a:
            a = bool(bernoulli_exp_scalar((1, 1), rng))
            v = v + 1 if a else v

        x: int = u + t * v
        y: int = x // s
        b: int = rng.integers(0, 2) < 1  # Bernoulli(1/2)

        if not (b == 1 and y == 0):
            return (1 - 2 * b) * y


def laplace_scale_fraction(eta: Eta, sensitivity: int = 1) -> Fraction:
    """
    Rational inverse scale s/t = eta / sensitivity for discrete Laplace noise.

    The float eta is rounded down to a bounded-denominator fraction so that
    the realised noise is never narrower than the nominal scale.
    """
    if sensitivity < 1:
        raise ValueError(f"sensitivity must be >= 1, got {sensitivity}")
    inverse_scale = Fraction(eta.epsilon).limit_denominator(1000000) / sensitivity
    if inverse_scale > Fraction(eta.epsilon) / sensitivity:
        inverse_scale = Fraction(int(eta.epsilon * 1000000), 1000000 * sensitivity)
    if inverse_scale <= 0:
        raise ValueError(f"Budget {eta} is too small to calibrate Laplace noise")
    return inverse_scale


def discrete_laplace_vector(
    eta: Eta,
    size: int,
    rng: Optional[SecureRNG] = None,
    sensitivity: int = 1
) -> np.ndarray:
    """
    Sample a vector of Discrete Laplace noise with scale sensitivity / eta.

    Args:
        eta: Budget token calibrating the noise
        size: Number of samples
        rng: Random number generator (optional)
        sensitivity: L1 sensitivity of the query

    Returns:
        int64 array of noise samples
    """
    if rng is None:
        rng = get_rng()
    inverse_scale = laplace_scale_fraction(eta, sensitivity)
    s, t = inverse_scale.numerator, inverse_scale.denominator
    logger.debug(f"[DLAP] size={size}, scale={float(1 / inverse_scale):.4f}")
    return np.array([discrete_laplace_scalar(s, t, rng) for _ in range(size)], dtype=np.int64)


# ============================================================================
# Weighted Selection
# ============================================================================

def required_precision(eta: Eta, utility_range: int, max_outcomes: int) -> int:
    """
    Bits of uniform randomness needed to resolve the smallest weight.

    The smallest weight is base^(z * utility_range), i.e. about
    bits_per_unit * utility_range bits below the largest, and up to
    max_outcomes weights are summed.
    """
    if utility_range < 0:
        raise ValueError(f"utility_range must be >= 0, got {utility_range}")
    outcome_bits = max(1, max_outcomes).bit_length()
    return max(MIN_PRECISION, eta.bits_per_unit * utility_range + outcome_bits + GUARD_BITS)


def sample_weighted_index(
    weights: Sequence[Fraction],
    rng: SecureRNG,
    precision: int
) -> int:
    """
    Select an index with probability proportional to its weight.

    A uniform value with `precision` random bits is scaled by the exact
    total and compared against exact cumulative sums.

    Args:
        weights: Non-negative exact weights, at least one positive
        rng: Random number generator
        precision: Number of random bits in the uniform draw

    Returns:
        Selected index
    """
    if precision < 1:
        raise ValueError(f"precision must be >= 1, got {precision}")
    total = Fraction(0)
    for w in weights:
        if w < 0:
            raise ValueError(f"weights must be non-negative, got {w}")
        total += w
    if total == 0:
        raise RuntimeError("Cannot sample: all weights are zero")

    scale = 2 ** precision
    draw = Fraction(rng.integers(0, scale), scale) * total

    cumulative = Fraction(0)
    last_positive = -1
    for i, w in enumerate(weights):
        if w == 0:
            continue
        cumulative += w
        last_positive = i
        if draw < cumulative:
            return i
    return last_positive


# ============================================================================
# Exponential Mechanism
# ============================================================================

@dataclass
class ExponentialOptions:
    """Options for the exponential mechanism."""
    # Number of complete draws performed; the first result is returned.
    # Values above 1 flatten the running time across calls.
    min_retries: int = 1

    def validate(self) -> None:
        if self.min_retries < 1:
            raise ValueError(f"min_retries must be >= 1, got {self.min_retries}")


def _integral_utility(value: Union[int, float, Fraction], utility_min: int, utility_max: int) -> int:
    """Clamp a utility into [utility_min, utility_max] and check it is integral."""
    exact = Fraction(value)
    exact = max(Fraction(utility_min), min(Fraction(utility_max), exact))
    if exact.denominator != 1:
        raise ValueError(f"Utility {value} is not integral; exact weights need integer utilities")
    return int(exact)


def exponential_mechanism(
    eta: Eta,
    outcomes: Sequence[T],
    utility: Callable[[T], Union[int, float, Fraction]],
    utility_min: int,
    utility_max: int,
    max_outcomes: int,
    rng: Optional[SecureRNG] = None,
    options: Optional[ExponentialOptions] = None
) -> T:
    """
    Select one outcome with probability proportional to base^(z * (u - utility_min)).

    Lower utility is better. Utilities outside [utility_min, utility_max]
    are clamped. The number of random bits, and therefore the running
    time, grows with utility_max - utility_min and max_outcomes.

    Args:
        eta: Budget token
        outcomes: Candidate outcomes (non-empty)
        utility: Utility function over outcomes
        utility_min: Smallest attainable utility
        utility_max: Largest attainable utility
        max_outcomes: Upper bound on len(outcomes) used for precision
        rng: Random number generator (optional)
        options: Mechanism options

    Returns:
        The selected outcome
    """
    options = options or ExponentialOptions()
    options.validate()
    outcomes = list(outcomes)

    if not outcomes:
        raise ValueError("Exponential mechanism needs a non-empty outcome space")
    if utility_min > utility_max:
        raise ValueError(f"utility_min ({utility_min}) must be <= utility_max ({utility_max})")
    if max_outcomes < len(outcomes):
        raise ValueError(
            f"max_outcomes ({max_outcomes}) is smaller than the outcome space ({len(outcomes)})"
        )

    if rng is None:
        rng = get_rng()

    weights: List[Fraction] = [
        eta.weight(_integral_utility(utility(o), utility_min, utility_max) - utility_min)
        for o in outcomes
    ]
    precision = required_precision(eta, utility_max - utility_min, max_outcomes)

    selected: Optional[int] = None
    for _ in range(options.min_retries):
        index = sample_weighted_index(weights, rng, precision)
        if selected is None:
            selected = index

    return outcomes[selected]
