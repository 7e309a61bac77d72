"""
flotsam: SM-2 spaced-repetition scheduling for a zk note corpus.

Scheduling state lives in a SQLite store beside the notebook; the notes
themselves are never modified.
"""

__version__ = "0.1.0"
