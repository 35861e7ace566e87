#!/usr/bin/env python3
"""Import sensor readings from a CSV export into the CU-BEMS database."""

from __future__ import annotations

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from cubems.ingest import main  # noqa: E402

if __name__ == "__main__":
    raise SystemExit(main())
