"""
Reattribution Pipeline Orchestration.

This module coordinates one run:
1. Read the private records (and historical / bound files when given)
2. Build the partition bound for the selected strategy
3. Build the weight table once and raise its precision once
4. For each trial: draw a protected partition, attribute it to names,
   and emit the result in canonical order

The bound and weight table are shared by all trials; each trial draws a
fresh partition and fresh attribution.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from core.config import Config
from core.memory_monitor import MemoryMonitor
from core.primitives import ExponentialOptions, SecureRNG, get_rng
from engine.attribution import (
    AttributedRecord,
    AttributionOptions,
    AttributionStrategy,
    attribute_basic,
    attribute_scoped,
)
from engine.bounds import PartitionBound
from engine.selector import BoundStrategy, select_bound
from engine.weights import (
    IntegerPartitionOptions,
    WeightTable,
    integer_partition_mechanism_with_weights,
)
from reader.records import (
    BoundRecord,
    Record,
    RowErrorPolicy,
    canonical_order,
    load_bound_records,
    load_records,
    sorted_partition,
)


logger = logging.getLogger(__name__)


@dataclass
class TrialResult:
    """Three aligned sequences in canonical order for one trial."""
    trial: int
    counts: List[int]
    ideals: List[int]
    attributed: List[int]
    names: List[str] = field(default_factory=list)

    @classmethod
    def from_records(cls, trial: int, records: List[AttributedRecord]) -> "TrialResult":
        ordered = canonical_order(records)
        return cls(
            trial=trial,
            counts=[r.count for r in ordered],
            ideals=[r.ideal_partition for r in ordered],
            attributed=[r.attributed for r in ordered],
            names=[r.name for r in ordered],
        )

    def lines(self) -> List[str]:
        """Output lines: true counts, ideal partition, attributed values."""
        return [", ".join(str(v) for v in seq) for seq in (self.counts, self.ideals, self.attributed)]


@dataclass
class PipelineResult:
    """Result of a pipeline execution."""
    success: bool
    total_records: int = 0
    total_count: int = 0
    bad_rows: int = 0
    bound: Optional[PartitionBound] = None
    bias: List[float] = field(default_factory=list)
    trials: List[TrialResult] = field(default_factory=list)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "success": self.success,
            "total_records": self.total_records,
            "total_count": self.total_count,
            "bad_rows": self.bad_rows,
            "num_trials": len(self.trials),
            "duration_seconds": (
                (self.end_time - self.start_time).total_seconds()
                if self.start_time and self.end_time else None
            ),
        }


class ReattributionPipeline:
    """
    Runs bound selection, weight-table construction and the trial loop.

    Data flow:
        records -> partition bound -> weight table -> partition draw
                -> attribution -> canonical output
    """

    def __init__(self, config: Config, rng: Optional[SecureRNG] = None):
        """
        Initialize pipeline.

        Args:
            config: Configuration object
            rng: Random number generator (defaults to the secure RNG)
        """
        self.config = config
        self.rng = rng or get_rng()
        self.budgets = config.privacy.budget_set()
        self.bound_strategy = BoundStrategy.parse(config.run.bounds_strategy)
        self.attribution_strategy = AttributionStrategy.parse(config.run.attribution_strategy)
        self.row_policy = RowErrorPolicy.parse(config.run.on_bad_row)
        self._memory = MemoryMonitor()

        self.records: List[Record] = []
        self.bound_records: Optional[List[BoundRecord]] = None
        self.historical_partition: Optional[List[int]] = None

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def load(self) -> int:
        """Read all input tables. Returns the number of bad rows seen."""
        run = self.config.run
        logger.info(f"Private data input: {run.input_path}")
        loaded = load_records(run.input_path, self.row_policy)
        self.records = loaded.rows
        bad_rows = len(loaded.errors)

        if run.bounds_path:
            logger.info(f"Bound source: {run.bounds_path}")
            bounds = load_bound_records(run.bounds_path, self.row_policy)
            self.bound_records = bounds.rows
            bad_rows += len(bounds.errors)

        if run.historical_path:
            logger.info(f"Historical source: {run.historical_path}")
            history = load_records(run.historical_path, self.row_policy)
            self.historical_partition = sorted_partition(history.rows)
            bad_rows += len(history.errors)

        return bad_rows

    def build_bound(self, partition: List[int]) -> PartitionBound:
        """Partition bound for the configured strategy."""
        return select_bound(
            self.bound_strategy,
            total_count=sum(partition),
            total_cells=len(partition),
            true_partition=partition,
            budgets=self.budgets,
            historical_partition=self.historical_partition,
            file_bounds=self.bound_records,
            sparsity_control=self.config.run.sparsity_control,
            rng=self.rng,
            beta=self.config.privacy.bound_beta,
        )

    def build_weight_table(self, bound: PartitionBound, partition: List[int]) -> WeightTable:
        """Weight table with precision doubled once before sampling."""
        self._memory.checkpoint("before weight table")
        table = WeightTable.from_bounds(self.budgets.weight, bound, partition)
        self._memory.checkpoint("after weight table")
        logger.info(
            f"Weight table memory: +{self._memory.delta_mb('before weight table', 'after weight table'):.1f} MB"
        )
        table.arithmetic_config.increase_precision(table.arithmetic_config.precision)
        return table

    def attribute(self, partition: List[int], total_count: int) -> List[AttributedRecord]:
        """Attribute one protected partition with the configured strategy."""
        privacy = self.config.privacy
        options = AttributionOptions(
            public_utility_bound=privacy.public_utility_bound,
            exponential=ExponentialOptions(min_retries=privacy.exponential_min_retries),
        )
        if self.attribution_strategy is AttributionStrategy.SCOPED:
            if self.bound_records is None:
                raise ValueError("Scoped attribution requires bound records")
            return attribute_scoped(
                self.budgets.attribution, partition, self.records, self.bound_records,
                total_count, rng=self.rng, options=options,
            )
        return attribute_basic(
            self.budgets.attribution, partition, self.records, total_count,
            rng=self.rng, options=options,
        )

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, on_trial: Optional[Callable[[TrialResult], None]] = None) -> PipelineResult:
        """
        Execute the full pipeline.

        Args:
            on_trial: Called with each TrialResult as soon as it is ready

        Returns:
            PipelineResult with every completed trial
        """
        result = PipelineResult(success=False, start_time=datetime.now())
        logger.info(self.budgets.describe())

        result.bad_rows = self.load()
        partition = sorted_partition(self.records)
        total_count = sum(partition)
        result.total_records = len(self.records)
        result.total_count = total_count

        bound = self.build_bound(partition)
        result.bound = bound

        table = self.build_weight_table(bound, partition)
        result.bias = [float(b) for b in table.get_bias(bound, partition)]
        logger.info(f"Bias: {', '.join(f'{b:.4f}' for b in result.bias)}")

        options = IntegerPartitionOptions(min_retries=self.config.privacy.partition_min_retries)
        for trial in range(self.config.run.num_trials):
            protected = integer_partition_mechanism_with_weights(table, bound, options, rng=self.rng)
            attributed = self.attribute(protected, total_count)
            trial_result = TrialResult.from_records(trial, attributed)
            result.trials.append(trial_result)
            logger.info(f"Trial {trial + 1}/{self.config.run.num_trials} complete")
            if on_trial is not None:
                on_trial(trial_result)

        result.success = True
        result.end_time = datetime.now()
        return result
