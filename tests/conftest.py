"""Pytest configuration.

Tests run from a source checkout without installing the package, and the
azure_mock doubles are imported as a top-level package.
"""

import sys
from pathlib import Path

# natgw_controller lives under src/
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# azure_mock lives beside the tests
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))
