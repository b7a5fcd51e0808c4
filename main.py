"""
CLI entry point for tiercache.

Usage:
    python main.py replay workload.yaml --capacity 8
    python main.py metrics workload.yaml
"""

import sys

from tiercache.cli import main

if __name__ == "__main__":
    sys.exit(main())
