"""
Player Service Entry Point
==========================

Runs the headless player service from a source checkout, without
installing the package first.

Usage: python player_main.py
"""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent / "src"))

from lxplayer.service import run


if __name__ == "__main__":
    run()
