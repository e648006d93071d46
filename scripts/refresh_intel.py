#!/usr/bin/env python3
"""
Entry point used by cron to run one intel refresh and store the fused snapshot.

Usage:
    python3 scripts/refresh_intel.py --output-dir datasets/intel --scope middle_east
"""

from __future__ import annotations

import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from src.services.intel_refresh import main


if __name__ == "__main__":
    raise SystemExit(main())
