"""nimbus - cloud infrastructure management CLI

Philosophy:
- Commands live in plugin modules that register themselves
- The command tree is cached so startup never imports every plugin
- Stubs are promoted to real commands only when dispatched to
- Every command exits through one reporting path

Commands are discovered from ``nimbus.commands`` (plus the configured mode
subtree) and from installed packages exposing a ``nimbus.plugins`` entry point.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
