#!/usr/bin/env python3
"""
Convenience entry point for Feed Collector when running from a checkout.
See `python run.py --help` for the available actions.
"""
import sys
from pathlib import Path

# Ensure the project root is in the Python path
project_root = Path(__file__).resolve().parent
sys.path.append(str(project_root))

from feed_collector.main import main  # noqa: E402


if __name__ == "__main__":
    sys.exit(main())
