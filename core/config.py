"""
Configuration management for the Partition Reattribution System.
Handles loading, validation, and access to configuration parameters.
"""

import configparser
import os
import logging
from dataclasses import dataclass, field
from typing import Optional

from core.budget import BudgetSet, Eta
from engine.attribution import AttributionStrategy
from engine.selector import BoundStrategy
from reader.records import RowErrorPolicy


logger = logging.getLogger(__name__)


BOUND_STRATEGIES = tuple(s.value for s in BoundStrategy)
ATTRIBUTION_STRATEGIES = tuple(s.value for s in AttributionStrategy)
ROW_ERROR_POLICIES = tuple(p.value for p in RowErrorPolicy)


@dataclass
class PrivacyConfig:
    """Stage budgets and mechanism settings."""

    # Stage budgets as Eta(x, y, z) tokens
    weight_budget: Eta = field(default_factory=lambda: Eta(1, 1, 1))
    partition_bound_budget: Eta = field(default_factory=lambda: Eta(7, 3, 1))
    sparsity_budget: Eta = field(default_factory=lambda: Eta(7, 3, 1))
    reference_budget: Eta = field(default_factory=lambda: Eta(7, 3, 1))
    attribution_budget: Eta = field(default_factory=lambda: Eta(1, 1, 1))

    # Tail probability for noisy bounds
    bound_beta: float = 0.05

    # utility_max from the public total count instead of the partition maximum
    public_utility_bound: bool = False

    # Complete draws per mechanism call (first result kept)
    exponential_min_retries: int = 1
    partition_min_retries: int = 1

    def validate(self) -> None:
        """Validate privacy configuration."""
        if not 0 < self.bound_beta < 1:
            raise ValueError(f"bound_beta must be in (0, 1), got {self.bound_beta}")
        if self.exponential_min_retries < 1:
            raise ValueError(f"exponential_min_retries must be >= 1, got {self.exponential_min_retries}")
        if self.partition_min_retries < 1:
            raise ValueError(f"partition_min_retries must be >= 1, got {self.partition_min_retries}")

    def budget_set(self) -> BudgetSet:
        """Stage budgets as a BudgetSet."""
        return BudgetSet(
            weight=self.weight_budget,
            partition_bound=self.partition_bound_budget,
            sparsity=self.sparsity_budget,
            reference=self.reference_budget,
            attribution=self.attribution_budget,
        )


@dataclass
class RunConfig:
    """Inputs and strategy selection for one run."""
    input_path: str = ""
    bounds_strategy: str = "Naive"
    attribution_strategy: str = "Basic"
    historical_path: Optional[str] = None
    bounds_path: Optional[str] = None
    num_trials: int = 1
    sparsity_control: bool = False
    on_bad_row: str = "substitute"

    def validate(self) -> None:
        """Validate run configuration."""
        if not self.input_path:
            raise ValueError("input_path must be specified")
        if self.bounds_strategy not in BOUND_STRATEGIES:
            raise ValueError(f"bounds_strategy must be one of {BOUND_STRATEGIES}, got {self.bounds_strategy}")
        if self.attribution_strategy not in ATTRIBUTION_STRATEGIES:
            raise ValueError(
                f"attribution_strategy must be one of {ATTRIBUTION_STRATEGIES}, got {self.attribution_strategy}"
            )
        if self.bounds_strategy == "HistoricalDistance" and not self.historical_path:
            raise ValueError("historical_path is required for HistoricalDistance bounds")
        if self.bounds_strategy == "FromFile" and not self.bounds_path:
            raise ValueError("bounds_path is required for FromFile bounds")
        if self.attribution_strategy == "Scoped" and not self.bounds_path:
            raise ValueError("bounds_path is required for Scoped attribution")
        if self.num_trials < 1:
            raise ValueError(f"num_trials must be >= 1, got {self.num_trials}")
        if self.on_bad_row not in ROW_ERROR_POLICIES:
            raise ValueError(f"on_bad_row must be one of {ROW_ERROR_POLICIES}, got {self.on_bad_row}")


@dataclass
class Config:
    """Main configuration container."""
    privacy: PrivacyConfig = field(default_factory=PrivacyConfig)
    run: RunConfig = field(default_factory=RunConfig)

    def validate(self) -> None:
        """Validate entire configuration."""
        self.privacy.validate()
        self.run.validate()
        logger.info("Configuration validated successfully")

    @classmethod
    def from_ini(cls, config_path: str) -> "Config":
        """Load configuration from INI file."""
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Config file not found: {config_path}")

        parser = configparser.ConfigParser()
        parser.read(config_path, encoding='utf-8')

        config = cls()

        if 'privacy' in parser:
            sec = parser['privacy']

            # Budgets as "x,y,z" triples
            for name in ('weight_budget', 'partition_bound_budget', 'sparsity_budget',
                         'reference_budget', 'attribution_budget'):
                if name in sec:
                    setattr(config.privacy, name, Eta.parse(sec[name]))

            if 'bound_beta' in sec:
                config.privacy.bound_beta = float(sec['bound_beta'])
            if 'public_utility_bound' in sec:
                config.privacy.public_utility_bound = sec.getboolean('public_utility_bound')
            if 'exponential_min_retries' in sec:
                config.privacy.exponential_min_retries = int(sec['exponential_min_retries'])
            if 'partition_min_retries' in sec:
                config.privacy.partition_min_retries = int(sec['partition_min_retries'])

        if 'run' in parser:
            sec = parser['run']
            config.run.input_path = sec.get('input_path', '')
            config.run.bounds_strategy = sec.get('bounds_strategy', 'Naive')
            config.run.attribution_strategy = sec.get('attribution_strategy', 'Basic')
            config.run.historical_path = sec.get('historical_path') or None
            config.run.bounds_path = sec.get('bounds_path') or None
            config.run.num_trials = int(sec.get('num_trials', '1'))
            config.run.sparsity_control = sec.getboolean('sparsity_control', False)
            config.run.on_bad_row = sec.get('on_bad_row', 'substitute')

        logger.info(f"Configuration loaded from {config_path}")
        return config

    def to_ini(self, config_path: str) -> None:
        """Save configuration to INI file."""
        parser = configparser.ConfigParser()

        parser['privacy'] = {
            'weight_budget': self.privacy.weight_budget.to_str(),
            'partition_bound_budget': self.privacy.partition_bound_budget.to_str(),
            'sparsity_budget': self.privacy.sparsity_budget.to_str(),
            'reference_budget': self.privacy.reference_budget.to_str(),
            'attribution_budget': self.privacy.attribution_budget.to_str(),
            'bound_beta': str(self.privacy.bound_beta),
            'public_utility_bound': str(self.privacy.public_utility_bound).lower(),
            'exponential_min_retries': str(self.privacy.exponential_min_retries),
            'partition_min_retries': str(self.privacy.partition_min_retries),
        }

        parser['run'] = {
            'input_path': self.run.input_path,
            'bounds_strategy': self.run.bounds_strategy,
            'attribution_strategy': self.run.attribution_strategy,
            'num_trials': str(self.run.num_trials),
            'sparsity_control': str(self.run.sparsity_control).lower(),
            'on_bad_row': self.run.on_bad_row,
        }
        if self.run.historical_path:
            parser['run']['historical_path'] = self.run.historical_path
        if self.run.bounds_path:
            parser['run']['bounds_path'] = self.run.bounds_path

        with open(config_path, 'w', encoding='utf-8') as f:
            parser.write(f)

        logger.info(f"Configuration saved to {config_path}")
