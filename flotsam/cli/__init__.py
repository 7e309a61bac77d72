"""Command-line interface for flotsam."""
