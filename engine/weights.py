"""
Weight Tables for the Integer Partition Mechanism.

The mechanism samples a non-increasing integer partition p of `count`
into `cells` parts, with lower[i] <= p[i] <= upper[i], with probability

    Pr[p] ∝ base^(z * d(p, x)),    d(p, x) = sum_i |p[i] - x[i]|

where x is the true descending partition and base, z come from the Eta
token. The table stores exact suffix weights

    G[i][m][s] = sum_{v = lower[i]}^{m} f_i(v) * W(i + 1, v, s - v)

so that W(i, cap, s), the total weight of all completions of positions
i..cells-1 with values <= cap summing to s, is a single lookup. Sampling
walks the positions left to right drawing each value in proportion to
its completion weight.

Tables are built once per run and reused read-only across trials; only
the arithmetic precision of the uniform draws may be raised.
"""

import logging
from dataclasses import dataclass
from fractions import Fraction
from typing import Dict, List, Optional, Sequence

import numpy as np

from core.budget import Eta
from core.primitives import SecureRNG, get_rng, required_precision, sample_weighted_index
from engine.bounds import PartitionBound, pad_partition


logger = logging.getLogger(__name__)


@dataclass
class ArithmeticConfig:
    """Number of random bits used by each weighted draw."""
    precision: int

    def increase_precision(self, inc: int) -> int:
        """
        Add `inc` bits of precision to subsequent draws.

        Args:
            inc: Non-negative number of extra bits

        Returns:
            The new precision
        """
        if inc < 0:
            raise ValueError(f"Precision increment must be >= 0, got {inc}")
        self.precision += inc
        logger.debug(f"Arithmetic precision increased by {inc} to {self.precision} bits")
        return self.precision


@dataclass
class IntegerPartitionOptions:
    """Options for the integer partition mechanism."""
    # Number of complete draws performed; the first result is returned
    min_retries: int = 1

    def validate(self) -> None:
        if self.min_retries < 1:
            raise ValueError(f"min_retries must be >= 1, got {self.min_retries}")


class WeightTable:
    """Exact suffix weights for sampling partitions within a bound."""

    def __init__(
        self,
        eta: Eta,
        count: int,
        cells: int,
        lower: List[int],
        upper: List[int],
        reference: List[int],
        tables: List[List[List[Fraction]]],
        arithmetic_config: ArithmeticConfig
    ):
        self.eta = eta
        self.count = count
        self.cells = cells
        self.lower = lower
        self.upper = upper
        self.reference = reference
        self._tables = tables
        self.arithmetic_config = arithmetic_config

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_bounds(cls, eta: Eta, bound: PartitionBound, partition: Sequence[int]) -> "WeightTable":
        """
        Build the weight table for a bound and the true partition.

        Args:
            eta: Budget for the integer partition mechanism
            bound: Per-rank bounds
            partition: True partition (any order)

        Returns:
            WeightTable ready for sampling
        """
        bound.validate()
        count, cells = bound.count, bound.cells
        lower = [max(0, int(v)) for v in bound.lower[:cells]]
        upper = [min(count, int(v)) for v in bound.upper[:cells]]
        reference = [int(v) for v in pad_partition(partition, cells)]

        logger.info(f"Building weight table: cells={cells}, count={count}, eta={eta}")

        tables: List[List[List[Fraction]]] = [[] for _ in range(cells)]
        table = cls(
            eta=eta,
            count=count,
            cells=cells,
            lower=lower,
            upper=upper,
            reference=reference,
            tables=tables,
            arithmetic_config=ArithmeticConfig(
                precision=required_precision(eta, 2 * count, count + 1)
            ),
        )

        for i in range(cells - 1, -1, -1):
            lo, hi = lower[i], upper[i]
            rows: List[List[Fraction]] = []
            running = [Fraction(0)] * (count + 1)
            for m in range(lo, hi + 1):
                f_m = table._cell_weight(i, m)
                row = list(running)
                for s in range(m, count + 1):
                    completion = table._suffix(i + 1, m, s - m)
                    if completion:
                        row[s] = row[s] + f_m * completion
                rows.append(row)
                running = row
            tables[i] = rows

        total = table.total_weight()
        if total == 0:
            raise ValueError(
                f"No partition of {count} into {cells} non-increasing cells fits the bounds"
            )
        logger.info(f"Weight table built, precision={table.arithmetic_config.precision} bits")
        return table

    def _cell_weight(self, i: int, value: int) -> Fraction:
        return self.eta.weight(abs(value - self.reference[i]))

    def _suffix(self, i: int, cap: int, remaining: int) -> Fraction:
        """Total weight of completions of positions i.. with values <= cap summing to remaining."""
        if remaining < 0:
            return Fraction(0)
        if i == self.cells:
            return Fraction(1) if remaining == 0 else Fraction(0)
        lo, hi = self.lower[i], self.upper[i]
        m = min(cap, remaining, hi)
        if m < lo:
            return Fraction(0)
        return self._tables[i][m - lo][remaining]

    def total_weight(self) -> Fraction:
        """Normalising constant of the mechanism."""
        return self._suffix(0, self.count, self.count)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def _check_bound(self, bound: PartitionBound) -> None:
        if bound.count != self.count or bound.cells != self.cells:
            raise ValueError(
                f"Bound (count={bound.count}, cells={bound.cells}) does not match the weight table "
                f"(count={self.count}, cells={self.cells})"
            )

    def marginals(self) -> List[Dict[int, Fraction]]:
        """Exact distribution of each rank under the mechanism."""
        total = self.total_weight()
        result: List[Dict[int, Fraction]] = []
        # forward[v][t]: weight of prefixes ending at value v with sum t
        forward: Dict[int, List[Fraction]] = {}
        for i in range(self.cells):
            lo, hi = self.lower[i], self.upper[i]
            current: Dict[int, List[Fraction]] = {}
            if i == 0:
                for v in range(lo, min(hi, self.count) + 1):
                    row = [Fraction(0)] * (self.count + 1)
                    row[v] = self._cell_weight(0, v)
                    current[v] = row
            else:
                # tail[t] accumulates forward[u][t] over u >= v
                tail = [Fraction(0)] * (self.count + 1)
                prev_values = sorted(forward, reverse=True)
                pointer = 0
                for v in range(hi, lo - 1, -1):
                    while pointer < len(prev_values) and prev_values[pointer] >= v:
                        prev_row = forward[prev_values[pointer]]
                        tail = [a + b for a, b in zip(tail, prev_row)]
                        pointer += 1
                    f_v = self._cell_weight(i, v)
                    row = [Fraction(0)] * (self.count + 1)
                    for t in range(v, self.count + 1):
                        if tail[t - v]:
                            row[t] = f_v * tail[t - v]
                    current[v] = row

            marginal: Dict[int, Fraction] = {}
            for v, row in current.items():
                mass = Fraction(0)
                for t, w in enumerate(row):
                    if w:
                        mass += w * self._suffix(i + 1, v, self.count - t)
                if mass:
                    marginal[v] = mass / total
            result.append(marginal)
            forward = current
        return result

    def get_bias(self, bound: PartitionBound, partition: Sequence[int]) -> np.ndarray:
        """
        Expected minus true value for each rank.

        Args:
            bound: Bound the table was built from
            partition: True partition

        Returns:
            Float array of length cells
        """
        self._check_bound(bound)
        truth = pad_partition(partition, self.cells)
        expected = np.array(
            [float(sum(v * p for v, p in marginal.items())) for marginal in self.marginals()],
            dtype=np.float64,
        )
        return expected - truth.astype(np.float64)

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def sample(self, rng: SecureRNG) -> List[int]:
        """Draw one partition."""
        precision = self.arithmetic_config.precision
        result: List[int] = []
        cap, remaining = self.count, self.count
        for i in range(self.cells):
            lo = self.lower[i]
            hi = min(cap, remaining, self.upper[i])
            if hi < lo:
                raise RuntimeError(f"Sampling reached an infeasible state at cell {i}")
            weights = [
                self._cell_weight(i, v) * self._suffix(i + 1, v, remaining - v)
                for v in range(lo, hi + 1)
            ]
            value = lo + sample_weighted_index(weights, rng, precision)
            result.append(value)
            cap, remaining = value, remaining - value
        if remaining != 0:
            raise RuntimeError(f"Sampled partition leaves {remaining} unassigned")
        return result


def integer_partition_mechanism_with_weights(
    weight_table: WeightTable,
    bound: PartitionBound,
    options: Optional[IntegerPartitionOptions] = None,
    rng: Optional[SecureRNG] = None
) -> List[int]:
    """
    Draw one privacy-protected integer partition from a prepared table.

    Args:
        weight_table: Table built by WeightTable.from_bounds
        bound: The bound used to build the table
        options: Mechanism options
        rng: Random number generator (optional)

    Returns:
        Non-increasing list of `cells` integers summing to `count`
    """
    options = options or IntegerPartitionOptions()
    options.validate()
    weight_table._check_bound(bound)
    if rng is None:
        rng = get_rng()

    selected: Optional[List[int]] = None
    for _ in range(options.min_retries):
        draw = weight_table.sample(rng)
        if selected is None:
            selected = draw
    return selected
