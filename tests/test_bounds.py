"""
Tests for partition bound constructors and bound selection.
"""

import logging

import numpy as np
import pytest

from core.budget import BudgetSet, Eta
from engine.bounds import PartitionBound, PartitionBoundOptions, pad_partition
from engine.selector import BoundStrategy, bound_from_records, select_bound
from reader.records import BoundRecord


def assert_feasible(bound: PartitionBound):
    bound.validate()
    upper = bound.upper[:bound.cells]
    lower = bound.lower[:bound.cells]
    assert all(0 <= v <= bound.count for v in upper + lower)
    assert sum(lower) <= bound.count <= sum(upper)


# ============================================================================
# Constructors
# ============================================================================

def test_pad_partition():
    assert pad_partition([1, 5, 3], 5).tolist() == [5, 3, 1, 0, 0]
    assert pad_partition([1, 5, 3], 2).tolist() == [5, 3]
    assert pad_partition([], 0).tolist() == []


def test_naive_bound():
    bound = PartitionBound.naive(20, 3)
    assert bound.upper == [20, 20, 20]
    assert bound.lower == [0, 0, 0]
    assert bound.cells == 3
    assert bound.noisy_estimates is None
    assert PartitionBound.naive(4).cells == 4

    with pytest.raises(ValueError):
        PartitionBound.naive(-1, 3)


def test_noisy_estimate_bound(rng):
    bound = PartitionBound.from_noisy_estimates(20, 3, [5, 10, 5], Eta(7, 3), rng=rng)
    assert_feasible(bound)
    assert bound.cells == 3
    assert len(bound.upper) == len(bound.lower) == 3
    assert len(bound.noisy_estimates) == 3
    assert not bound.sparsity_control


def test_noisy_estimate_bound_with_sparsity(rng):
    options = PartitionBoundOptions(beta=0.1, sparsity_control=Eta(1, 4))
    bound = PartitionBound.from_noisy_estimates(20, 8, [10, 5, 5], Eta(1, 4), rng=rng, options=options)
    assert_feasible(bound)
    assert bound.sparsity_control
    assert bound.cells == 8


def test_noisy_estimate_bound_rejects_bad_beta(rng):
    with pytest.raises(ValueError):
        PartitionBound.from_noisy_estimates(
            20, 3, [10, 5, 5], Eta(7, 3), rng=rng, options=PartitionBoundOptions(beta=1.5)
        )


def test_reference_bound(rng):
    """Reference partitions of a different length widen to the longer one."""
    bound = PartitionBound.with_reference(20, [9, 6, 4, 1], [10, 5, 5], Eta(7, 3), rng=rng)
    assert_feasible(bound)
    assert bound.cells == 4
    assert bound.noisy_estimates == [9.0, 6.0, 4.0, 1.0]


@pytest.mark.parametrize("kwargs", [
    dict(upper=[5, 6], lower=[0, 0], count=10, cells=2),    # increasing upper
    dict(upper=[5, 5], lower=[0, 1], count=10, cells=2),    # increasing lower
    dict(upper=[5, 2], lower=[3, 3], count=10, cells=2),    # lower above upper
    dict(upper=[5, 5], lower=[0], count=10, cells=1),       # length mismatch
    dict(upper=[5, 5], lower=[0, 0], count=10, cells=3),    # too many cells
])
def test_validate_rejects_malformed_bounds(kwargs):
    with pytest.raises(ValueError):
        PartitionBound(**kwargs).validate()


# ============================================================================
# Selection
# ============================================================================

def test_bound_from_records(bound_records):
    """Columns are sorted independently and terminated by a zero sentinel."""
    bound = bound_from_records(20, bound_records)
    assert bound.upper == [12, 7, 7, 0]
    assert bound.lower == [8, 3, 3, 0]
    assert bound.cells == 3
    assert bound.noisy_estimates == [10.0, 5.0, 4.0]
    assert not bound.sparsity_control
    bound.validate()


def test_bound_from_records_negative_values(caplog):
    """Negative file bounds are raised to zero ahead of the sentinel."""
    file_bounds = [
        BoundRecord("a", 8, 12, 10),
        BoundRecord("b", -2, 7, 5),
        BoundRecord("c", 3, 7, 4),
    ]
    with caplog.at_level(logging.WARNING, logger="engine.selector"):
        bound = select_bound(BoundStrategy.FROM_FILE, 20, 3, [10, 5, 5], BudgetSet(), file_bounds=file_bounds)
    assert bound.lower == [8, 3, 0, 0]
    assert bound.upper == [12, 7, 7, 0]
    assert any("b" in r.message for r in caplog.records)


def test_deterministic_strategies_are_repeatable(bound_records):
    budgets = BudgetSet()
    partition = [10, 5, 5]
    for strategy in (BoundStrategy.NAIVE, BoundStrategy.FROM_FILE):
        first = select_bound(strategy, 20, 3, partition, budgets, file_bounds=bound_records)
        second = select_bound(strategy, 20, 3, partition, budgets, file_bounds=bound_records)
        assert first == second


def test_select_bound_defaults_to_naive():
    bound = select_bound(None, 20, 3, [10, 5, 5], BudgetSet())
    assert bound == PartitionBound.naive(20, 3)


def test_select_bound_parses_names(rng):
    bound = select_bound("Laplace", 20, 3, [10, 5, 5], BudgetSet(), rng=rng)
    assert_feasible(bound)
    assert bound.noisy_estimates is not None

    bound = select_bound("HistoricalDistance", 20, 3, [10, 5, 5], BudgetSet(),
                         historical_partition=[4, 9, 6], rng=rng)
    assert_feasible(bound)
    assert bound.noisy_estimates == [9.0, 6.0, 4.0]


def test_select_bound_errors():
    budgets = BudgetSet()
    with pytest.raises(ValueError, match="No matching partition strategy"):
        select_bound("Bogus", 20, 3, [10, 5, 5], budgets)
    with pytest.raises(ValueError):
        select_bound(BoundStrategy.HISTORICAL_DISTANCE, 20, 3, [10, 5, 5], budgets)
    with pytest.raises(ValueError):
        select_bound(BoundStrategy.FROM_FILE, 20, 3, [10, 5, 5], budgets)


def test_sparsity_warning_for_other_strategies(caplog):
    with caplog.at_level(logging.WARNING, logger="engine.selector"):
        bound = select_bound(BoundStrategy.NAIVE, 20, 3, [10, 5, 5], BudgetSet(), sparsity_control=True)
    assert not bound.sparsity_control
    assert any("Sparsity control" in r.message for r in caplog.records)


def test_laplace_sparsity_spends_sparsity_budget(rng):
    bound = select_bound(BoundStrategy.LAPLACE, 20, 3, [10, 5, 5], BudgetSet(),
                         sparsity_control=True, rng=rng)
    assert bound.sparsity_control
    assert np.all(np.diff(bound.upper) <= 0)
