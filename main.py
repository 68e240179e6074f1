#!/usr/bin/env python3
"""
Main entry point script for the MTG deck engine.

This script can be run directly from the command line to build decks,
check prices and manage orders without installing the package.
"""

import sys
from pathlib import Path

# Add the project directory to Python path
project_dir = Path(__file__).parent
sys.path.insert(0, str(project_dir))

from mtg_deck_engine.cli import main

if __name__ == "__main__":
    main()
