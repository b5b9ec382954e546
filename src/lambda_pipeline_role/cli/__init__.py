"""Command-line interface for the pipeline role."""
