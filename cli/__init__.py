"""Command-line interface for the billing engine."""
