"""
Attribution of a Protected Partition to Named Records.

Given a privacy-protected integer partition, each named record receives
one partition value in two phases:

1. Rank selection: records are visited in name order (independent of
   their counts) and an exponential-mechanism draw with utility
   |x - count| produces one value per record. Records are ranked by the
   drawn value descending, ties broken by name ascending.
2. Value binding: the record at rank i receives the i-th largest value of
   the partition. The drawn value itself is never published.

`ideal_partition` is the non-private baseline: the i-th largest partition
value bound to the record with the i-th largest true count.

Basic attribution draws from the whole partition; scoped attribution
draws from the record's own [lower, upper] range, joined by name.

NOTE: utility_max defaults to the maximum of the protected partition,
which depends on private data and changes the running time of each draw
(a timing channel). AttributionOptions.public_utility_bound switches to
the public total count instead.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence

from core.budget import Eta
from core.primitives import ExponentialOptions, SecureRNG, exponential_mechanism, get_rng
from reader.records import BoundRecord, Record, canonical_order


logger = logging.getLogger(__name__)


class AlignmentError(ValueError):
    """Records and bound records cannot be joined by name."""


class AttributionStrategy(Enum):
    """Outcome space used for the rank-selection draws."""
    BASIC = "Basic"
    SCOPED = "Scoped"

    @classmethod
    def parse(cls, name: str) -> "AttributionStrategy":
        try:
            return cls(name)
        except ValueError:
            valid = ", ".join(s.value for s in cls)
            raise ValueError(f"No matching attribution strategy {name!r}; expected one of: {valid}") from None


@dataclass
class AttributedRecord:
    """A record with its baseline and attributed partition values."""
    name: str
    count: int
    ideal_partition: int
    attributed: int


@dataclass
class AttributionOptions:
    """Options shared by basic and scoped attribution."""
    # Use total_count rather than max(partition) as utility_max
    public_utility_bound: bool = False
    exponential: Optional[ExponentialOptions] = None


@dataclass
class RankDraw:
    """Phase-one result for a single record."""
    record: Record
    draw: int


# ============================================================================
# Phases
# ============================================================================

def _utility_max(partition: Sequence[int], total_count: int, options: AttributionOptions) -> int:
    if options.public_utility_bound:
        return total_count
    # Depends on private data: timing channel, kept deliberately
    return max(partition) if partition else total_count


def _draw_for(
    eta: Eta,
    record: Record,
    outcomes: Sequence[int],
    max_outcomes: int,
    utility_max: int,
    rng: SecureRNG,
    options: AttributionOptions
) -> int:
    count = record.count
    return exponential_mechanism(
        eta,
        outcomes,
        lambda x: abs(x - count),
        0,
        utility_max,
        max_outcomes,
        rng,
        options.exponential,
    )


def _check_length(partition: Sequence[int], num_records: int) -> None:
    if len(partition) < num_records:
        raise ValueError(
            f"Partition has {len(partition)} values but {num_records} records need attribution"
        )


def rank_order(draws: Sequence[RankDraw]) -> List[int]:
    """Indices of `draws` ordered by drawn value descending, then name ascending."""
    return sorted(range(len(draws)), key=lambda i: (-draws[i].draw, draws[i].record.name))


def bind_values(draws: Sequence[RankDraw], partition: Sequence[int]) -> List[AttributedRecord]:
    """
    Bind partition values to records by rank.

    Args:
        draws: One phase-one draw per record
        partition: Protected partition (any order)

    Returns:
        Attributed records in canonical order
    """
    _check_length(partition, len(draws))
    values = sorted((int(v) for v in partition), reverse=True)

    attributed = [0] * len(draws)
    for rank, index in enumerate(rank_order(draws)):
        attributed[index] = values[rank]

    # Equal counts take ideal values in name order rather than draw order,
    # which keeps the ideal line descending in canonical output order
    by_count = sorted(range(len(draws)), key=lambda i: -draws[i].record.count)
    results = [
        AttributedRecord(
            name=draws[index].record.name,
            count=draws[index].record.count,
            ideal_partition=values[rank],
            attributed=attributed[index],
        )
        for rank, index in enumerate(by_count)
    ]
    return canonical_order(results)


def _check_unique(names: Sequence[str], label: str) -> None:
    duplicates = sorted(n for n, c in Counter(names).items() if c > 1)
    if duplicates:
        raise AlignmentError(f"Duplicate names in {label}: {duplicates}")


def join_bounds(records: Sequence[Record], bound_records: Sequence[BoundRecord]) -> Dict[str, BoundRecord]:
    """
    Map each record name to its bound record.

    Raises:
        AlignmentError: on duplicate names, or names present in one table only
    """
    _check_unique([r.name for r in records], "records")
    _check_unique([b.name for b in bound_records], "bound records")

    bounds = {b.name: b for b in bound_records}
    names = {r.name for r in records}
    missing = sorted(names - bounds.keys())
    extra = sorted(bounds.keys() - names)
    if missing or extra:
        raise AlignmentError(
            f"Records and bound records are not aligned by name "
            f"(missing bounds: {missing}, unmatched bounds: {extra})"
        )
    return bounds


# ============================================================================
# Attribution Strategies
# ============================================================================

def attribute_basic(
    eta: Eta,
    integer_partition: Sequence[int],
    records: Sequence[Record],
    total_count: int,
    rng: Optional[SecureRNG] = None,
    options: Optional[AttributionOptions] = None
) -> List[AttributedRecord]:
    """
    Attribute a protected partition using the whole partition as outcome space.

    Args:
        eta: Attribution budget, spent once per record
        integer_partition: Protected partition
        records: Named records (not modified)
        total_count: Public total count
        rng: Random number generator (optional)
        options: Attribution options

    Returns:
        Attributed records in canonical order
    """
    options = options or AttributionOptions()
    if rng is None:
        rng = get_rng()

    _check_length(integer_partition, len(records))
    outcomes = list(integer_partition)
    utility_max = _utility_max(outcomes, total_count, options)

    draws = [
        RankDraw(record, _draw_for(eta, record, outcomes, len(outcomes), utility_max, rng, options))
        for record in sorted(records, key=lambda r: r.name)
    ]
    logger.debug(f"Basic attribution: {len(draws)} draws over {len(outcomes)} outcomes")
    return bind_values(draws, integer_partition)


def attribute_scoped(
    eta: Eta,
    integer_partition: Sequence[int],
    records: Sequence[Record],
    bound_records: Sequence[BoundRecord],
    total_count: int,
    rng: Optional[SecureRNG] = None,
    options: Optional[AttributionOptions] = None
) -> List[AttributedRecord]:
    """
    Attribute a protected partition drawing each record from its own bounds.

    Args:
        eta: Attribution budget, spent once per record
        integer_partition: Protected partition
        records: Named records (not modified)
        bound_records: Per-record bounds, joined to records by name
        total_count: Public total count
        rng: Random number generator (optional)
        options: Attribution options

    Returns:
        Attributed records in canonical order
    """
    options = options or AttributionOptions()
    if rng is None:
        rng = get_rng()

    _check_length(integer_partition, len(records))
    bounds = join_bounds(records, bound_records)
    utility_max = _utility_max(list(integer_partition), total_count, options)

    draws = []
    for record in sorted(records, key=lambda r: r.name):
        bound = bounds[record.name]
        outcomes = list(range(bound.lower, bound.upper + 1))
        if not outcomes:
            raise ValueError(
                f"Bound for {record.name!r} is empty: lower={bound.lower}, upper={bound.upper}"
            )
        draws.append(
            RankDraw(record, _draw_for(eta, record, outcomes, len(outcomes), utility_max, rng, options))
        )
    logger.debug(f"Scoped attribution: {len(draws)} draws")
    return bind_values(draws, integer_partition)
