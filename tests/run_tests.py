#!/usr/bin/env python3
"""
Test runner for the Parking Booking Ledger tests.

Usage:
    python tests/run_tests.py                      # everything
    python tests/run_tests.py --suite unit         # one directory
    python tests/run_tests.py unit.test_ledger     # one module
    python tests/run_tests.py unit.test_ledger.TestCancelBooking
"""

import argparse
import unittest
import sys
from pathlib import Path

TESTS_DIR = Path(__file__).parent

# Add the project root to the Python path
sys.path.append(str(TESTS_DIR.parent))
sys.path.append(str(TESTS_DIR))


def run_all_tests(suite: str = None, verbosity: int = 2):
    """Discover and run test_*.py under tests/ (or one suite directory)"""
    test_loader = unittest.TestLoader()
    start_dir = TESTS_DIR / suite if suite else TESTS_DIR

    test_suite = test_loader.discover(str(start_dir), pattern='test_*.py', top_level_dir=str(TESTS_DIR))

    test_runner = unittest.TextTestRunner(verbosity=verbosity)
    return test_runner.run(test_suite)


def run_specific_test(test_name: str, verbosity: int = 2):
    """Run a dotted module, class or method name relative to tests/"""
    test_suite = unittest.TestLoader().loadTestsFromName(test_name)
    test_runner = unittest.TextTestRunner(verbosity=verbosity)
    return test_runner.run(test_suite)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run the parking ledger tests")
    parser.add_argument("test_name", nargs="?", help="dotted test name, e.g. unit.test_ledger")
    parser.add_argument("--suite", choices=["unit", "integration"], help="only run one suite")
    parser.add_argument("-q", "--quiet", action="store_true", help="less output")
    args = parser.parse_args(argv)

    verbosity = 1 if args.quiet else 2
    if args.test_name:
        result = run_specific_test(args.test_name, verbosity)
    else:
        result = run_all_tests(args.suite, verbosity)

    return 0 if result.wasSuccessful() else 1


if __name__ == "__main__":
    sys.exit(main())
