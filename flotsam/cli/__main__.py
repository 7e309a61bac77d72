"""
Entry point for running flotsam as a module.

Usage:
    python -m flotsam.cli due
    python -m flotsam.cli review 0a1b-idea.md 4
    python -m flotsam.cli --help
"""
from .main import main

if __name__ == "__main__":
    main()
