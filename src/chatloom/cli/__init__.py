"""Command-line interface for chatloom."""
