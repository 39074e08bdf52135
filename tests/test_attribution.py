"""
Tests for basic and scoped attribution.

Attribution must bind a permutation of the protected partition to the
records, report the ideal (non-private) binding alongside it, and leave
the caller's records and partition untouched.
"""

import pytest

from core.budget import Eta
from core.primitives import ExponentialOptions
from engine.attribution import (
    AlignmentError,
    AttributionOptions,
    AttributionStrategy,
    RankDraw,
    attribute_basic,
    attribute_scoped,
    bind_values,
    join_bounds,
    rank_order,
)
from reader.records import BoundRecord, Record


def test_strategy_parse():
    assert AttributionStrategy.parse("Basic") is AttributionStrategy.BASIC
    assert AttributionStrategy.parse("Scoped") is AttributionStrategy.SCOPED
    with pytest.raises(ValueError):
        AttributionStrategy.parse("scoped-ish")


def test_rank_order_breaks_ties_by_name():
    draws = [
        RankDraw(Record("c", 5), 7),
        RankDraw(Record("a", 10), 3),
        RankDraw(Record("b", 5), 7),
    ]
    assert rank_order(draws) == [2, 0, 1]


def test_bind_values():
    """Values follow the draws; ideals follow the true counts."""
    draws = [
        RankDraw(Record("a", 10), 3),
        RankDraw(Record("b", 5), 7),
        RankDraw(Record("c", 5), 7),
    ]
    result = bind_values(draws, [3, 12, 5])
    assert [r.name for r in result] == ["a", "b", "c"]
    assert [r.count for r in result] == [10, 5, 5]
    assert [r.ideal_partition for r in result] == [12, 5, 3]
    assert [r.attributed for r in result] == [3, 12, 5]


def test_basic_attribution_is_a_permutation(rng, records):
    partition = [12, 5, 3]
    before_records = list(records)
    before_partition = list(partition)

    for _ in range(20):
        result = attribute_basic(Eta(1, 1), partition, records, 20, rng=rng)
        assert [r.name for r in result] == ["a", "b", "c"]
        assert [r.ideal_partition for r in result] == [12, 5, 3]
        assert sorted(r.attributed for r in result) == [3, 5, 12]

    assert records == before_records
    assert partition == before_partition


def test_basic_attribution_with_strong_budget(rng, records):
    """With base 1/256 every record draws its own count."""
    for _ in range(10):
        result = attribute_basic(Eta(1, 8), [10, 5, 5], records, 20, rng=rng)
        assert [r.attributed for r in result] == [10, 5, 5]


def test_basic_attribution_longer_partition(rng, records):
    """Only the largest values are bound when the partition has spare cells."""
    result = attribute_basic(Eta(1, 1), [0, 10, 6, 4], records, 20, rng=rng)
    assert sorted(r.attributed for r in result) == [4, 6, 10]
    assert [r.ideal_partition for r in result] == [10, 6, 4]


def test_basic_attribution_options(rng, records):
    options = AttributionOptions(
        public_utility_bound=True,
        exponential=ExponentialOptions(min_retries=2),
    )
    result = attribute_basic(Eta(1, 1), [12, 5, 3], records, 20, rng=rng, options=options)
    assert sorted(r.attributed for r in result) == [3, 5, 12]


def test_partition_shorter_than_records(rng, records):
    with pytest.raises(ValueError):
        attribute_basic(Eta(1, 1), [20], records, 20, rng=rng)


def test_scoped_attribution(rng, records, bound_records):
    partition = [11, 6, 3]
    result = attribute_scoped(Eta(1, 1), partition, records, bound_records, 20, rng=rng)
    assert [r.name for r in result] == ["a", "b", "c"]
    assert [r.ideal_partition for r in result] == [11, 6, 3]
    assert sorted(r.attributed for r in result) == [3, 6, 11]
    assert partition == [11, 6, 3]


def test_scoped_attribution_record_order_does_not_matter(rng, records, bound_records):
    shuffled = list(reversed(bound_records))
    result = attribute_scoped(Eta(1, 8), [10, 5, 5], records, shuffled, 20, rng=rng)
    assert [r.attributed for r in result] == [10, 5, 5]


def test_join_bounds_errors(records, bound_records):
    with pytest.raises(AlignmentError, match="missing bounds"):
        join_bounds(records, bound_records[:2])
    with pytest.raises(AlignmentError):
        join_bounds(records, bound_records + [BoundRecord("d", 0, 1, 0)])
    with pytest.raises(AlignmentError, match="Duplicate"):
        join_bounds(records + [Record("a", 1)], bound_records)
    assert set(join_bounds(records, bound_records)) == {"a", "b", "c"}


def test_scoped_empty_range(rng, records, bound_records):
    bad = bound_records[:2] + [BoundRecord("c", 5, 4, 4)]
    with pytest.raises(ValueError, match="empty"):
        attribute_scoped(Eta(1, 1), [10, 5, 5], records, bad, 20, rng=rng)


def test_alignment_error_is_a_value_error():
    assert issubclass(AlignmentError, ValueError)


def test_equal_counts_take_ideal_values_in_name_order():
    """Ideal values for tied counts follow names, whatever the draws were."""
    draws = [
        RankDraw(Record("b", 5), 1),
        RankDraw(Record("c", 5), 9),
        RankDraw(Record("a", 10), 4),
    ]
    result = bind_values(sorted(draws, key=lambda d: d.record.name), [12, 6, 2])
    assert [r.name for r in result] == ["a", "b", "c"]
    assert [r.ideal_partition for r in result] == [12, 6, 2]
    assert [r.attributed for r in result] == [6, 2, 12]
