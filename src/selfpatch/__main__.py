"""Main entry point for running selfpatch as a module.

Usage:
    python -m selfpatch --help
    python -m selfpatch run
    python -m selfpatch report "The /remind command never fires"
"""

from __future__ import annotations

from .cli import app

if __name__ == "__main__":
    app()
