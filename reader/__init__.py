"""CSV record readers."""
from .records import (
    Record,
    BoundRecord,
    RowError,
    RowErrorPolicy,
    LoadResult,
    load_records,
    load_bound_records,
    sorted_partition,
    canonical_order,
)

__all__ = [
    'Record',
    'BoundRecord',
    'RowError',
    'RowErrorPolicy',
    'LoadResult',
    'load_records',
    'load_bound_records',
    'sorted_partition',
    'canonical_order',
]
