"""Logging configuration driven by the global output options.

    (default)   INFO from nimbus, WARNING from everything else
    -v          DEBUG from nimbus
    -vv         DEBUG from every logger, third-party libraries included
    --json      only warnings and errors, so stdout stays machine-readable
"""

import logging

from nimbus.options import LITERAL_SEPARATOR, normalize


def output_flags(argv: list[str]) -> tuple[int, bool]:
    """Count ``-v``/``--verbose`` and detect ``--json`` before any ``--``."""
    verbosity = 0
    json_output = False
    for token in normalize(argv):
        if token == LITERAL_SEPARATOR:
            break
        if token in ("-v", "--verbose"):
            verbosity += 1
        elif token == "--json":
            json_output = True
    return verbosity, json_output


def configure_logging(verbosity: int = 0, json_output: bool = False) -> None:
    """Configure logging for one CLI invocation."""
    if verbosity >= 2:
        root_level = package_level = logging.DEBUG
    elif verbosity == 1:
        root_level, package_level = logging.WARNING, logging.DEBUG
    elif json_output:
        root_level = package_level = logging.WARNING
    else:
        root_level, package_level = logging.WARNING, logging.INFO

    logging.basicConfig(level=root_level, format="%(message)s", force=True)
    logging.getLogger("nimbus").setLevel(package_level)
