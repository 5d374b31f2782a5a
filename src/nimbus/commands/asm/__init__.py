"""Command plugins loaded in ``asm`` (service management) mode."""
