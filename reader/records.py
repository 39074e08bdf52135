"""
Record Store.

Loads named count records (the private target data, or historical data)
and externally supplied per-record bounds from CSV files with a header row:

    name,count
    name,lower,upper,estimate

Rows that fail to parse are reported as RowError entries; the caller's
RowErrorPolicy decides whether they are replaced by a sentinel row,
skipped, or abort the load.
"""

import csv
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Generic, Iterable, List, Optional, Sequence, TypeVar, Union


logger = logging.getLogger(__name__)

R = TypeVar("R")


@dataclass(frozen=True)
class Record:
    """A named entity and its true (private) count."""
    name: str
    count: int


@dataclass(frozen=True)
class BoundRecord:
    """Externally supplied bounds and estimate for one named entity."""
    name: str
    lower: int
    upper: int
    estimate: int


SENTINEL_RECORD = Record(name=" ", count=0)
SENTINEL_BOUND_RECORD = BoundRecord(name=" ", lower=0, upper=0, estimate=0)


class RowErrorPolicy(Enum):
    """What to do with a row that cannot be parsed."""
    SUBSTITUTE = "substitute"  # Replace with the sentinel row
    SKIP = "skip"              # Drop the row
    FAIL = "fail"              # Abort the load

    @classmethod
    def parse(cls, name: str) -> "RowErrorPolicy":
        try:
            return cls(name.strip().lower())
        except ValueError:
            valid = ", ".join(p.value for p in cls)
            raise ValueError(f"Unknown row error policy {name!r}; expected one of: {valid}") from None


@dataclass
class RowError:
    """A row that failed to parse."""
    line: int
    raw: Dict[str, Optional[str]]
    reason: str

    def __str__(self) -> str:
        return f"line {self.line}: {self.reason}"


@dataclass
class LoadResult(Generic[R]):
    """Parsed rows plus the errors encountered while parsing."""
    path: str
    rows: List[R] = field(default_factory=list)
    errors: List[RowError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _field(row: Dict[str, Optional[str]], name: str) -> str:
    value = row.get(name)
    if value is None:
        raise ValueError(f"missing field '{name}'")
    return value


def _integer(row: Dict[str, Optional[str]], name: str, non_negative: bool = False) -> int:
    text = _field(row, name).strip()
    try:
        value = int(text)
    except ValueError:
        raise ValueError(f"field '{name}' is not an integer: {text!r}") from None
    if non_negative and value < 0:
        raise ValueError(f"field '{name}' must be >= 0, got {value}")
    return value


def parse_record(row: Dict[str, Optional[str]]) -> Record:
    """Parse a `name,count` row."""
    return Record(name=_field(row, "name"), count=_integer(row, "count", non_negative=True))


def parse_bound_record(row: Dict[str, Optional[str]]) -> BoundRecord:
    """Parse a `name,lower,upper,estimate` row."""
    return BoundRecord(
        name=_field(row, "name"),
        lower=_integer(row, "lower"),
        upper=_integer(row, "upper"),
        estimate=_integer(row, "estimate"),
    )


def _load(
    path: Union[str, Path],
    parse: Callable[[Dict[str, Optional[str]]], R],
    sentinel: R,
    policy: RowErrorPolicy,
    encoding: str
) -> LoadResult[R]:
    path = str(path)
    if not Path(path).exists():
        raise FileNotFoundError(f"Input file not found: {path}")

    result: LoadResult[R] = LoadResult(path=path)
    with open(path, 'r', encoding=encoding, newline='') as f:
        reader = csv.DictReader(f)
        for row in reader:
            # Handle potential BOM or whitespace in column names
            row = {
                (k.strip().lstrip('\ufeff') if k is not None else None): v
                for k, v in row.items()
            }
            try:
                if None in row:
                    raise ValueError("row has more fields than the header")
                parsed = parse(row)
            except ValueError as e:
                error = RowError(line=reader.line_num, raw=row, reason=str(e))
                result.errors.append(error)
                if policy is RowErrorPolicy.FAIL:
                    raise ValueError(f"{path}: {error}") from e
                logger.warning(f"{path}: {error} ({policy.value})")
                if policy is RowErrorPolicy.SUBSTITUTE:
                    result.rows.append(sentinel)
                continue
            result.rows.append(parsed)

    logger.info(f"Loaded {len(result.rows)} rows from {path} ({len(result.errors)} bad rows)")
    return result


def load_records(
    path: Union[str, Path],
    policy: RowErrorPolicy = RowErrorPolicy.SUBSTITUTE,
    encoding: str = 'utf-8-sig'
) -> LoadResult[Record]:
    """
    Load a `name,count` table.

    Args:
        path: CSV file path
        policy: Handling of rows that fail to parse
        encoding: File encoding (default utf-8-sig to handle BOM)

    Returns:
        LoadResult with Record rows
    """
    return _load(path, parse_record, SENTINEL_RECORD, policy, encoding)


def load_bound_records(
    path: Union[str, Path],
    policy: RowErrorPolicy = RowErrorPolicy.SUBSTITUTE,
    encoding: str = 'utf-8-sig'
) -> LoadResult[BoundRecord]:
    """
    Load a `name,lower,upper,estimate` table.

    Args:
        path: CSV file path
        policy: Handling of rows that fail to parse
        encoding: File encoding (default utf-8-sig to handle BOM)

    Returns:
        LoadResult with BoundRecord rows
    """
    return _load(path, parse_bound_record, SENTINEL_BOUND_RECORD, policy, encoding)


def sorted_partition(records: Iterable[Record]) -> List[int]:
    """Counts of the records, sorted descending."""
    return sorted((r.count for r in records), reverse=True)


def canonical_order(items: Sequence[R]) -> List[R]:
    """New list sorted by count descending, then name ascending."""
    return sorted(items, key=lambda r: (-r.count, r.name))
