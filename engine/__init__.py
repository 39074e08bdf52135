"""Partition bounds, weight tables and attribution."""
__all__ = [
    'PartitionBound',
    'WeightTable',
    'select_bound',
    'attribute_basic',
    'attribute_scoped',
]

def __getattr__(name):
    if name == 'PartitionBound':
        from .bounds import PartitionBound
        return PartitionBound
    elif name == 'WeightTable':
        from .weights import WeightTable
        return WeightTable
    elif name == 'select_bound':
        from .selector import select_bound
        return select_bound
    elif name in ('attribute_basic', 'attribute_scoped'):
        from . import attribution
        return getattr(attribution, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
