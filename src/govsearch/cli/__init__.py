"""Command-line interface for govsearch."""
