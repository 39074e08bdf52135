"""
Privacy Budget Tokens for Base-2 Exact Mechanisms.

This module handles:
- The Eta budget token consumed by every randomized stage
- Exact per-utility weights derived from a token
- The named set of stage budgets used by one reattribution run

ETA PARAMETERISATION:
=====================

A token is an integer triple (x, y, z) describing

    eta = -z * ln(x / 2^y)

so that the weight of an outcome with utility u is (x / 2^y)^(z * u).
Because the base is a dyadic rational and z*u is an integer, every weight
is an exact Fraction and no floating-point rounding enters sampling.

COMPOSITION:
============

Each pipeline stage receives its own token. Tokens are never summed or
re-derived here; composition accounting belongs to the caller.
"""

import math
import logging
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Dict, Tuple


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Eta:
    """Privacy budget token eta = -z * ln(x / 2^y)."""
    x: int
    y: int
    z: int = 1

    def __post_init__(self):
        for label, value in (("x", self.x), ("y", self.y), ("z", self.z)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"Eta {label} must be an integer, got {value!r}")
        if self.x <= 0:
            raise ValueError(f"Eta x must be > 0, got {self.x}")
        if self.y < 0:
            raise ValueError(f"Eta y must be >= 0, got {self.y}")
        if self.z <= 0:
            raise ValueError(f"Eta z must be > 0, got {self.z}")
        if self.x >= 2 ** self.y:
            raise ValueError(
                f"Eta requires x < 2^y so that the base is below one, got x={self.x}, y={self.y}"
            )

    @classmethod
    def parse(cls, text: str) -> "Eta":
        """
        Parse a token from an 'x,y,z' string (z optional, defaults to 1).

        Args:
            text: Comma-separated integers

        Returns:
            Validated Eta
        """
        parts = [p.strip() for p in text.split(',') if p.strip()]
        if len(parts) not in (2, 3):
            raise ValueError(f"Eta must be given as 'x,y' or 'x,y,z', got {text!r}")
        try:
            values = [int(p) for p in parts]
        except ValueError:
            raise ValueError(f"Eta components must be integers, got {text!r}") from None
        return cls(*values)

    @property
    def base(self) -> Fraction:
        """Exact base x / 2^y of the weight function."""
        return Fraction(self.x, 2 ** self.y)

    @property
    def epsilon(self) -> float:
        """The eta value as a float, -z * ln(x / 2^y)."""
        return -self.z * (math.log(self.x) - self.y * math.log(2))

    @property
    def bits_per_unit(self) -> int:
        """Denominator bits added to a weight per unit of utility."""
        return self.y * self.z

    def weight(self, utility: int) -> Fraction:
        """
        Exact weight (x / 2^y)^(z * utility).

        Args:
            utility: Non-negative integer utility (lower is better)
        """
        if utility < 0:
            raise ValueError(f"utility must be >= 0, got {utility}")
        return self.base ** (self.z * utility)

    def to_str(self) -> str:
        return f"{self.x},{self.y},{self.z}"

    def __repr__(self) -> str:
        return f"Eta({self.x},{self.y},{self.z}; eta={self.epsilon:.4f})"


@dataclass
class BudgetSet:
    """
    Stage budgets for a single run.

    weight:          integer-partition mechanism (weight table)
    partition_bound: Laplace noisy estimates
    sparsity:        optional sparsity control for Laplace bounds
    reference:       historical-distance bounds
    attribution:     exponential-mechanism draws during attribution
    """
    weight: Eta = field(default_factory=lambda: Eta(1, 1, 1))
    partition_bound: Eta = field(default_factory=lambda: Eta(7, 3, 1))
    sparsity: Eta = field(default_factory=lambda: Eta(7, 3, 1))
    reference: Eta = field(default_factory=lambda: Eta(7, 3, 1))
    attribution: Eta = field(default_factory=lambda: Eta(1, 1, 1))

    STAGES: Tuple[str, ...] = field(
        default=("weight", "partition_bound", "sparsity", "reference", "attribution"),
        init=False,
        repr=False,
    )

    def as_dict(self) -> Dict[str, Eta]:
        return {stage: getattr(self, stage) for stage in self.STAGES}

    def describe(self) -> str:
        """Human-readable listing of each stage token."""
        lines = ["Stage budgets:"]
        for stage, eta in self.as_dict().items():
            lines.append(f"  {stage:<16} x,y,z={eta.to_str():<8} eta={eta.epsilon:.4f}")
        return "\n".join(lines)
