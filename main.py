#!/usr/bin/env python3
"""
Run URLSweep from a source checkout without installing it.
"""

import sys
from pathlib import Path

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from urlsweep.cli import main

if __name__ == "__main__":
    sys.exit(main())
