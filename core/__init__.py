"""
Partition Reattribution System
==============================
Attributes a privacy-protected integer partition to named records.

Stages:
- Bound selection: per-rank bounds for the private partition
- Weight table: exact weights for the integer partition mechanism
- Partition draw: one protected partition per trial
- Attribution: exponential-mechanism ranking, then value binding

All randomized stages use exact rational weights derived from Eta tokens.
"""

__version__ = "1.0.0"

__all__ = [
    # Config
    "Config", "PrivacyConfig", "RunConfig",
    # Budget
    "Eta", "BudgetSet",
    # Pipeline
    "ReattributionPipeline", "PipelineResult", "TrialResult",
]


def __getattr__(name):
    if name in ("Config", "PrivacyConfig", "RunConfig"):
        from . import config
        return getattr(config, name)
    if name in ("Eta", "BudgetSet"):
        from . import budget
        return getattr(budget, name)
    if name in ("ReattributionPipeline", "PipelineResult", "TrialResult"):
        from . import pipeline
        return getattr(pipeline, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
