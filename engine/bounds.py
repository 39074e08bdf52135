"""
Partition Bounds.

A PartitionBound describes, per rank position of a descending integer
partition, the feasible range [lower[i], upper[i]] of that position's
value and optionally a noisy estimate of it. Bounds are per rank, not
per name.

Constructors:
- naive:                [0, count] for every cell, no estimate
- from_noisy_estimates: Discrete Laplace estimates of each rank
- with_reference:       a public reference partition widened by a noisy
                        L1 distance to the private one
- literal:              PartitionBound(...) built from supplied lists

All constructed bounds are non-increasing, clamped to [0, count] and
feasible (sum(lower) <= count <= sum(upper)). The lists may carry one
trailing zero sentinel beyond `cells`.
"""

import math
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from core.budget import Eta
from core.primitives import SecureRNG, discrete_laplace_vector, get_rng, laplace_scale_fraction


logger = logging.getLogger(__name__)


@dataclass
class PartitionBoundOptions:
    """Options for noisy-estimate bounds."""
    # Probability that a rank falls outside its bound
    beta: float = 0.05
    # Optional second budget spent on a noisy count of non-zero cells
    sparsity_control: Optional[Eta] = None

    def validate(self) -> None:
        if not 0 < self.beta < 1:
            raise ValueError(f"beta must be in (0, 1), got {self.beta}")


def pad_partition(partition: Sequence[int], cells: int) -> np.ndarray:
    """Descending copy of partition truncated or zero-padded to `cells`."""
    values = sorted((int(v) for v in partition), reverse=True)[:cells]
    values.extend([0] * (cells - len(values)))
    return np.array(values, dtype=np.int64)


def _tail_width(eta: Eta, cells: int, beta: float) -> int:
    """
    Half-width w with Pr[|noise| > w] <= beta / cells for every cell.

    Uses Pr[|X| > w] <= 2 exp(-e w) for discrete Laplace with inverse scale e.
    """
    inverse_scale = float(laplace_scale_fraction(eta))
    return int(math.ceil(math.log(2.0 * max(cells, 1) / beta) / inverse_scale))


def _monotone(lower: np.ndarray, upper: np.ndarray, count: int):
    """Clamp to [0, count] and force both sequences to be non-increasing."""
    upper = np.clip(upper, 0, count)
    lower = np.clip(lower, 0, count)
    # A rank can never exceed the rank before it
    upper = np.minimum.accumulate(upper) if len(upper) else upper
    # A rank is never below the rank after it
    lower = np.maximum.accumulate(lower[::-1])[::-1] if len(lower) else lower
    lower = np.minimum(lower, upper)
    return lower, upper


def _make_feasible(lower: np.ndarray, upper: np.ndarray, count: int):
    """Relax bounds until some partition of `count` fits between them."""
    if len(upper) == 0:
        return lower, upper
    if int(upper.sum()) < count:
        logger.warning(
            f"Upper bounds sum to {int(upper.sum())} < count {count}; relaxing the leading cell"
        )
        upper = upper.copy()
        upper[0] = count
    if int(lower.sum()) > count:
        logger.warning(
            f"Lower bounds sum to {int(lower.sum())} > count {count}; dropping lower bounds"
        )
        lower = np.zeros_like(lower)
    return lower, upper


@dataclass
class PartitionBound:
    """Per-rank bounds for a descending integer partition."""
    upper: List[int]
    lower: List[int]
    count: int
    cells: int
    sparsity_control: bool = False
    noisy_estimates: Optional[List[float]] = field(default=None)

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def naive(cls, count: int, cells: Optional[int] = None) -> "PartitionBound":
        """
        Least informative bound: every cell in [0, count].

        Args:
            count: Total count of the partition
            cells: Number of cells (defaults to count)
        """
        if count < 0:
            raise ValueError(f"count must be >= 0, got {count}")
        if cells is None:
            cells = count
        if cells < 0:
            raise ValueError(f"cells must be >= 0, got {cells}")
        return cls(
            upper=[count] * cells,
            lower=[0] * cells,
            count=count,
            cells=cells,
        )

    @classmethod
    def from_noisy_estimates(
        cls,
        count: int,
        cells: Optional[int],
        partition: Sequence[int],
        eta: Eta,
        rng: Optional[SecureRNG] = None,
        options: Optional[PartitionBoundOptions] = None
    ) -> "PartitionBound":
        """
        Bounds around Discrete Laplace estimates of each rank.

        Adding or removing one unit changes exactly one rank of the sorted
        partition by one, so the rank vector has L1 sensitivity 1.

        Args:
            count: Public total count
            cells: Number of cells (defaults to len(partition))
            partition: True partition (any order)
            eta: Budget for the rank estimates
            rng: Random number generator (optional)
            options: Beta and optional sparsity-control budget
        """
        options = options or PartitionBoundOptions()
        options.validate()
        if rng is None:
            rng = get_rng()
        if cells is None:
            cells = len(partition)
        if cells < 0:
            raise ValueError(f"cells must be >= 0, got {cells}")

        true_ranks = pad_partition(partition, cells)
        estimates = true_ranks + discrete_laplace_vector(eta, cells, rng)
        width = _tail_width(eta, cells, options.beta)
        logger.info(f"Noisy-estimate bounds: cells={cells}, half-width={width}")

        lower, upper = _monotone(estimates - width, estimates + width, count)

        if options.sparsity_control is not None:
            nonzero = int(np.count_nonzero(true_ranks))
            noisy_nonzero = nonzero + int(discrete_laplace_vector(options.sparsity_control, 1, rng)[0])
            cutoff = max(0, noisy_nonzero + _tail_width(options.sparsity_control, 1, options.beta))
            logger.info(f"Sparsity control: cells beyond rank {cutoff} bounded to zero")
            if cutoff < cells:
                upper[cutoff:] = 0
                lower[cutoff:] = 0

        lower, upper = _make_feasible(lower, upper, count)

        return cls(
            upper=[int(v) for v in upper],
            lower=[int(v) for v in lower],
            count=count,
            cells=cells,
            sparsity_control=options.sparsity_control is not None,
            noisy_estimates=[float(v) for v in estimates],
        )

    @classmethod
    def with_reference(
        cls,
        count: int,
        reference: Sequence[int],
        partition: Sequence[int],
        eta: Eta,
        rng: Optional[SecureRNG] = None,
        beta: float = 0.05
    ) -> "PartitionBound":
        """
        Bounds from a public reference partition of possibly different length.

        The L1 distance between the (zero-padded) reference and the private
        partition has sensitivity 1; its noisy upper estimate d_hat widens
        every reference rank to [ref[i] - d_hat, ref[i] + d_hat].

        Args:
            count: Public total count
            reference: Public historical partition
            partition: True partition
            eta: Budget for the noisy distance
            rng: Random number generator (optional)
            beta: Probability that the true distance exceeds d_hat
        """
        if not 0 < beta < 1:
            raise ValueError(f"beta must be in (0, 1), got {beta}")
        if rng is None:
            rng = get_rng()

        cells = max(len(reference), len(partition))
        ref = pad_partition(reference, cells)
        true_ranks = pad_partition(partition, cells)

        distance = int(np.abs(ref - true_ranks).sum())
        noisy_distance = distance + int(discrete_laplace_vector(eta, 1, rng)[0])
        d_hat = max(0, noisy_distance + _tail_width(eta, 1, beta))
        logger.info(f"Reference bounds: cells={cells}, noisy distance bound={d_hat}")

        lower, upper = _monotone(ref - d_hat, ref + d_hat, count)
        lower, upper = _make_feasible(lower, upper, count)

        return cls(
            upper=[int(v) for v in upper],
            lower=[int(v) for v in lower],
            count=count,
            cells=cells,
            sparsity_control=False,
            noisy_estimates=[float(v) for v in ref],
        )

    # ------------------------------------------------------------------
    # Invariants
    # ------------------------------------------------------------------

    def validate(self) -> None:
        """Check length, ordering and cell-count invariants."""
        if len(self.upper) != len(self.lower):
            raise ValueError(
                f"upper and lower must have equal length, got {len(self.upper)} and {len(self.lower)}"
            )
        if self.cells < 0 or self.cells > len(self.upper):
            raise ValueError(f"cells ({self.cells}) must be in [0, {len(self.upper)}]")
        for name, seq in (("upper", self.upper), ("lower", self.lower)):
            if any(a < b for a, b in zip(seq, seq[1:])):
                raise ValueError(f"{name} bounds must be non-increasing")
        for i, (lo, hi) in enumerate(zip(self.lower[:self.cells], self.upper[:self.cells])):
            if lo > hi:
                raise ValueError(f"Cell {i}: lower ({lo}) exceeds upper ({hi})")

    def __repr__(self) -> str:
        return (f"PartitionBound(count={self.count}, cells={self.cells}, "
                f"sparsity_control={self.sparsity_control}, "
                f"estimates={'yes' if self.noisy_estimates is not None else 'no'})")
