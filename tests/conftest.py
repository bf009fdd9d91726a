"""
Pytest configuration for Troopz staking tests.

Puts ``src`` on the path so the suite runs from a plain checkout.
"""

import sys
from pathlib import Path

project_root = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(project_root))
src_path = project_root / "src"
sys.path.insert(0, str(src_path))

# Shared staking world builders used across unit, property and integration tests
support = Path(__file__).parent / "troopz_tests" / "support"
if support.exists():
    sys.path.insert(0, str(support))
