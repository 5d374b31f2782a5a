"""Command plugins loaded in ``arm`` (resource manager) mode."""
