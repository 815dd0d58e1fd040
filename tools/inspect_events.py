# Path: tools/inspect_events.py
"""
Print a transition / recovery summary of a monitoring log.

    python tools/inspect_events.py --path logs/monitoring/events.log
"""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from monitoring.tools import main  # noqa: E402


if __name__ == "__main__":
    sys.exit(main())
