"""Exception taxonomy for nimbus.

All errors carry ``exit_code = 1``; the CLI never exits with any other
non-zero code.
"""

from typing import Any


class NimbusError(Exception):
    """Base exception for nimbus errors."""

    exit_code = 1


class MissingArgumentError(NimbusError):
    """Raised when an option or positional argument has no value."""

    def __init__(self, name: str, found: str | None = None, node: Any = None):
        self.name = name
        self.found = found
        self.node = node
        if found is not None:
            message = f"option '{name}' argument missing, got '{found}'"
        else:
            message = f"argument '{name}' missing"
        super().__init__(message)


class DispatchError(NimbusError):
    """Raised when argv cannot be resolved to a node of the command tree.

    ``node`` is the deepest node reached; its help is shown to the user.
    """

    def __init__(self, message: str, node: Any = None):
        self.node = node
        super().__init__(message)


class UnknownCategoryError(DispatchError):
    """Raised when the first token names no top-level category or command."""

    def __init__(self, name: str, node: Any = None):
        self.name = name
        super().__init__(f"'{name}' is not a nimbus command. See 'nimbus help'.", node)


class UnknownCommandError(DispatchError):
    """Raised when a token names no child of the current category."""

    def __init__(self, name: str, node: Any = None):
        self.name = name
        super().__init__(f"unknown command '{name}'", node)


class MissingCommandError(DispatchError):
    """Raised when only unrecognized options were given at the root."""

    def __init__(self, unknown: list[str], node: Any = None):
        self.unknown = unknown
        super().__init__(f"no command given (unrecognized: {' '.join(unknown)})", node)


class UnknownOptionError(DispatchError):
    """Raised when an option matches nothing at the resolved command."""

    def __init__(self, option: str, node: Any = None):
        self.option = option
        super().__init__(f"unknown option '{option}'", node)


class PluginError(NimbusError):
    """Raised when a plugin module cannot be loaded or did not register a node."""

    pass


class TreeCacheError(NimbusError):
    """Raised when the plugin tree cache cannot be written."""

    pass


class ConfigError(NimbusError):
    """Raised when configuration operations fail."""

    pass
