"""Command-line interface for shode."""
