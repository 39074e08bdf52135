"""
Bound Selection.

Chooses how the per-rank PartitionBound for the private partition is
constructed:

- Naive:              [0, total_count] for each of total_cells cells
- Laplace:            noisy rank estimates under the partition-bound budget,
                      optionally tightened by sparsity control
- HistoricalDistance: a public historical partition widened by a noisy
                      distance under the reference budget
- FromFile:           bounds and estimates read verbatim from BoundRecords

Strategy names are validated at the boundary; unknown names are an error.
Mechanism failures propagate and no partial bound is ever returned.
"""

import logging
from enum import Enum
from typing import Optional, Sequence

from core.budget import BudgetSet
from core.primitives import SecureRNG
from engine.bounds import PartitionBound, PartitionBoundOptions
from reader.records import BoundRecord


logger = logging.getLogger(__name__)


class BoundStrategy(Enum):
    """Partition-bound construction strategies."""
    LAPLACE = "Laplace"
    HISTORICAL_DISTANCE = "HistoricalDistance"
    FROM_FILE = "FromFile"
    NAIVE = "Naive"

    @classmethod
    def parse(cls, name: str) -> "BoundStrategy":
        try:
            return cls(name)
        except ValueError:
            valid = ", ".join(s.value for s in cls)
            raise ValueError(f"No matching partition strategy {name!r}; expected one of: {valid}") from None


def bound_from_records(total_count: int, file_bounds: Sequence[BoundRecord]) -> PartitionBound:
    """
    Literal bound from externally supplied per-record bounds.

    Each column is sorted descending on its own, so entries at a rank
    need not come from the same record. A zero sentinel terminates the
    lower and upper lists; estimates carry no sentinel. Negative lower or
    upper values are raised to zero so the sentinel keeps both lists
    non-increasing.
    """
    negative = sorted(r.name for r in file_bounds if r.lower < 0 or r.upper < 0)
    if negative:
        logger.warning(f"Negative file bounds raised to 0 for: {negative}")
    lower = sorted((max(0, int(r.lower)) for r in file_bounds), reverse=True)
    upper = sorted((max(0, int(r.upper)) for r in file_bounds), reverse=True)
    estimate = sorted((int(r.estimate) for r in file_bounds), reverse=True)
    lower.append(0)
    upper.append(0)
    return PartitionBound(
        upper=upper,
        lower=lower,
        count=total_count,
        cells=len(file_bounds),
        sparsity_control=False,
        noisy_estimates=[float(e) for e in estimate],
    )


def select_bound(
    strategy: Optional[BoundStrategy],
    total_count: int,
    total_cells: int,
    true_partition: Sequence[int],
    budgets: BudgetSet,
    historical_partition: Optional[Sequence[int]] = None,
    file_bounds: Optional[Sequence[BoundRecord]] = None,
    sparsity_control: bool = False,
    rng: Optional[SecureRNG] = None,
    beta: float = 0.05
) -> PartitionBound:
    """
    Build the partition bound for a strategy.

    Args:
        strategy: Bound strategy (None selects Naive)
        total_count: Sum of the private partition
        total_cells: Number of cells in the private partition
        true_partition: Private partition, descending
        budgets: Stage budgets
        historical_partition: Public historical partition (HistoricalDistance)
        file_bounds: Externally supplied bounds (FromFile)
        sparsity_control: Spend the sparsity budget (Laplace)
        rng: Random number generator (optional)
        beta: Tail probability for the noisy strategies

    Returns:
        PartitionBound
    """
    if strategy is None:
        strategy = BoundStrategy.NAIVE
    if isinstance(strategy, str):
        strategy = BoundStrategy.parse(strategy)

    logger.info(f"Selecting partition bound: strategy={strategy.value}, "
                f"count={total_count}, cells={total_cells}")

    if sparsity_control and strategy is not BoundStrategy.LAPLACE:
        logger.warning(f"Sparsity control only applies to Laplace bounds; ignored for {strategy.value}")

    if strategy is BoundStrategy.LAPLACE:
        options = PartitionBoundOptions(beta=beta)
        if sparsity_control:
            options.sparsity_control = budgets.sparsity
        bound = PartitionBound.from_noisy_estimates(
            total_count,
            total_cells,
            true_partition,
            budgets.partition_bound,
            rng=rng,
            options=options,
        )

    elif strategy is BoundStrategy.HISTORICAL_DISTANCE:
        if historical_partition is None:
            raise ValueError("HistoricalDistance bounds require a historical partition")
        reference = sorted((int(v) for v in historical_partition), reverse=True)
        bound = PartitionBound.with_reference(
            total_count,
            reference,
            true_partition,
            budgets.reference,
            rng=rng,
            beta=beta,
        )

    elif strategy is BoundStrategy.FROM_FILE:
        if file_bounds is None:
            raise ValueError("FromFile bounds require bound records")
        bound = bound_from_records(total_count, file_bounds)

    else:
        bound = PartitionBound.naive(total_count, total_cells)

    bound.validate()
    logger.info(f"Partition bound ready: {bound}")
    return bound
