#!/usr/bin/env python3
"""
Quick Test - Small Scale
========================
Generates a small set of named counts and runs every bound strategy with
both attribution strategies to verify everything works.

Usage:
    python examples/quick_test.py
"""

import os
import sys
import tempfile
from datetime import datetime

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


RUNS = [
    ("Naive", "Basic"),
    ("Laplace", "Basic"),
    ("HistoricalDistance", "Basic"),
    ("FromFile", "Scoped"),
]


def main():
    print("╔════════════════════════════════════════════════════════════╗")
    print("║          Partition Reattribution - Quick Test              ║")
    print("╚════════════════════════════════════════════════════════════╝")
    print(f"\nStarted at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

    try:
        from examples.generate_sample_data import generate_sample_data
        from core.config import Config
        from core.pipeline import ReattributionPipeline

        with tempfile.TemporaryDirectory() as tmpdir:
            print("\n" + "=" * 50)
            print("Step 1: Generating 6 named records...")
            print("=" * 50)
            paths = generate_sample_data(tmpdir, num_records=6, max_count=8, seed=42)

            for bounds_strategy, attribution_strategy in RUNS:
                print("\n" + "=" * 50)
                print(f"Running: bounds={bounds_strategy}, attribution={attribution_strategy}")
                print("=" * 50)

                config = Config()
                config.run.input_path = paths["private"]
                config.run.bounds_strategy = bounds_strategy
                config.run.attribution_strategy = attribution_strategy
                config.run.historical_path = paths["history"]
                config.run.bounds_path = paths["bounds"]
                config.validate()

                result = ReattributionPipeline(config).run()
                if not result.success:
                    print("❌ FAILED!")
                    return 1
                for line in result.trials[0].lines():
                    print(f"   {line}")

        print("\n✅ Quick test passed! The system is working correctly.")
        return 0

    except ImportError as e:
        print(f"\n❌ Import Error: {e}")
        print("   Please install dependencies: pip install -e .")
        return 1
    except Exception as e:
        print(f"\n❌ Error: {e}")
        import traceback
        traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
