#!/usr/bin/env python3
"""
Generate Sample Reattribution Data
==================================
Creates a private `name,count` table together with a historical table and
a per-record bounds table for the same names.

Usage:
    python examples/generate_sample_data.py

    # Or with custom parameters:
    python examples/generate_sample_data.py --num-records 12 --max-count 15 --output-dir data/
"""

import argparse
import csv
import random
import string
import os
from typing import List, Tuple


def generate_names(num_records: int, rng: random.Random) -> List[str]:
    """Unique lowercase names, sorted."""
    names = set()
    while len(names) < num_records:
        names.add(''.join(rng.choices(string.ascii_lowercase, k=6)))
    return sorted(names)


def generate_counts(names: List[str], max_count: int, rng: random.Random) -> List[Tuple[str, int]]:
    """Heavy-tailed counts: a few large cells, many small ones."""
    return [(name, min(max_count, int(rng.paretovariate(1.5)) - 1)) for name in names]


def generate_history(rows: List[Tuple[str, int]], drift: int, rng: random.Random) -> List[Tuple[str, int]]:
    """Previous-period counts within +/- drift of the current ones."""
    return [(name, max(0, count + rng.randint(-drift, drift))) for name, count in rows]


def generate_bounds(rows: List[Tuple[str, int]], width: int, rng: random.Random) -> List[Tuple[str, int, int, int]]:
    """Per-record lower, upper and estimate around each count."""
    bounds = []
    for name, count in rows:
        estimate = max(0, count + rng.randint(-1, 1))
        lower = max(0, estimate - width)
        upper = estimate + width
        bounds.append((name, lower, upper, estimate))
    return bounds


def write_csv(path: str, header: List[str], rows: List[tuple]) -> None:
    with open(path, 'w', encoding='utf-8', newline='') as f:
        writer = csv.writer(f)
        writer.writerow(header)
        writer.writerows(rows)
    print(f"  ✓ {path} ({len(rows)} rows)")


def generate_sample_data(
    output_dir: str,
    num_records: int = 8,
    max_count: int = 12,
    width: int = 2,
    seed: int = 7
) -> dict:
    """
    Write private.csv, history.csv and bounds.csv to output_dir.

    Returns:
        Mapping of table name to written path
    """
    rng = random.Random(seed)
    os.makedirs(output_dir, exist_ok=True)

    names = generate_names(num_records, rng)
    rows = generate_counts(names, max_count, rng)
    paths = {
        "private": os.path.join(output_dir, "private.csv"),
        "history": os.path.join(output_dir, "history.csv"),
        "bounds": os.path.join(output_dir, "bounds.csv"),
    }

    print("Generating sample data...")
    write_csv(paths["private"], ["name", "count"], rows)
    write_csv(paths["history"], ["name", "count"], generate_history(rows, 2, rng))
    write_csv(paths["bounds"], ["name", "lower", "upper", "estimate"], generate_bounds(rows, width, rng))
    return paths


def main():
    parser = argparse.ArgumentParser(
        description="Generate sample private, historical and bounds tables",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--num-records",
        type=int,
        default=8,
        help="Number of named records (default: 8)"
    )
    parser.add_argument(
        "--max-count",
        type=int,
        default=12,
        help="Largest count of any record (default: 12)"
    )
    parser.add_argument(
        "--width",
        type=int,
        default=2,
        help="Half-width of the generated per-record bounds (default: 2)"
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=7,
        help="Random seed (default: 7)"
    )
    parser.add_argument(
        "--output-dir",
        default="data",
        help="Output directory (default: data/)"
    )
    args = parser.parse_args()

    generate_sample_data(
        output_dir=args.output_dir,
        num_records=args.num_records,
        max_count=args.max_count,
        width=args.width,
        seed=args.seed,
    )


if __name__ == "__main__":
    main()
