"""Command execution with uniform success/error reporting.

Handlers are called as ``handler(*positionals, options, done)``. ``done`` is
a single-shot completion: ``done()`` reports success, ``done(error)``
failure. A handler may also just return (success), raise (failure), or be a
coroutine function, in which case it is run to completion first.

Every outcome ends in one of two exit codes: 0 on success, 1 on any error.
"""

import asyncio
import inspect
import json
import logging
import sys
import traceback
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from types import TracebackType
from typing import Any

import click

from nimbus.errors import MissingArgumentError, PluginError
from nimbus.tree import CommandNode

logger = logging.getLogger(__name__)

DIAGNOSTIC_FILE_NAME = "nimbus.err"


class Completion:
    """Single-shot completion callback handed to command handlers."""

    def __init__(self) -> None:
        self.called = False
        self.error: Any = None

    def __call__(self, error: Any = None) -> None:
        if self.called:
            logger.debug("Command completion already signalled, ignoring")
            return
        self.called = True
        self.error = error


def error_message(error: Any) -> str:
    """Extract a human-readable message from an error of any shape.

    Checks ``message`` then ``Message`` (as attributes or mapping keys). A
    ``Message`` holding a JSON document under ``"#"`` is unwrapped. Falls back
    to ``str()`` and finally to a JSON dump of the error.

    Example:
        >>> error_message({"Message": {"#": '{"message": "Quota exceeded"}'}})
        'Quota exceeded'
    """
    for field_name in ("message", "Message"):
        if isinstance(error, Mapping):
            value = error.get(field_name)
        else:
            value = getattr(error, field_name, None)

        if isinstance(value, Mapping) and isinstance(value.get("#"), str):
            try:
                inner = json.loads(value["#"])
            except ValueError:
                inner = None
            if inner:
                return error_message(inner)
        if value:
            return str(value)

    if isinstance(error, BaseException):
        return str(error) or type(error).__name__
    if isinstance(error, str):
        return error
    try:
        return json.dumps(error, default=repr)
    except (TypeError, ValueError):
        return repr(error)


class ExecutionWrapper:
    """Invoke command handlers and turn their outcome into an exit code."""

    def __init__(self, debug: bool = False, diagnostic_path: Path | None = None):
        """Initialize the wrapper.

        Args:
            debug: Log stack traces as errors instead of debug output
            diagnostic_path: Where to record full error details
                (default: ./nimbus.err)
        """
        self.debug = debug
        self.diagnostic_path = diagnostic_path or Path.cwd() / DIAGNOSTIC_FILE_NAME
        self.json_output = False

    def build_arguments(
        self, command: CommandNode, positionals: list[str], options: dict[str, Any]
    ) -> list[Any]:
        """Allocate declared positionals from options or free tokens.

        A positional named ``name`` takes the ``--name`` option value when
        given (removing it from ``options``), otherwise the next free token.

        Raises:
            MissingArgumentError: A required positional got no value
        """
        free = list(positionals)
        args: list[Any] = []
        for spec in command.args:
            if options.get(spec.key) is not None:
                value = options.pop(spec.key)
                args.append([value] if spec.variadic else value)
            elif spec.variadic:
                if not free and spec.required:
                    raise MissingArgumentError(spec.name, node=command)
                args.append(free)
                free = []
            elif free:
                args.append(free.pop(0))
            elif spec.required:
                raise MissingArgumentError(spec.name, node=command)
            else:
                args.append(None)

        if free:
            logger.debug(f"Ignoring extra arguments: {' '.join(free)}")
        return args

    def execute(
        self, command: CommandNode, positionals: list[str], option_values: dict[str, Any]
    ) -> int:
        """Run ``command``'s handler and report the outcome.

        Returns:
            0 on success, 1 on error
        """
        options = dict(option_values)
        json_output = bool(options.get("json", self.json_output))
        name = command.full_name()
        (logger.debug if json_output else logger.info)(
            f"Executing command {click.style(name, bold=True)}"
        )

        done = Completion()
        try:
            if command.handler is None:
                raise PluginError(f"Command '{name}' has no handler")
            args = self.build_arguments(command, positionals, options)
            result = command.handler(*args, options, done)
            if inspect.iscoroutine(result):
                asyncio.run(result)
            if not done.called:
                done()
        except Exception as e:
            done(e)

        if done.error is None:
            (logger.debug if json_output else logger.info)(
                f"{click.style(name, bold=True)} command {click.style('OK', fg='green', bold=True)}"
            )
            return 0
        return self.report_error(done.error, command, json_output)

    def report_error(
        self, error: Any, command: CommandNode | None = None, json_output: bool | None = None
    ) -> int:
        """Log an error, record its details, and return the exit code (1)."""
        json_output = self.json_output if json_output is None else json_output
        logger.error(error_message(error))
        if isinstance(error, BaseException) and error.__traceback__ is not None:
            stack = "".join(traceback.format_exception(error))
            (logger.error if self.debug else logger.debug)(stack)

        self.record_error(error, json_output)

        if command is not None:
            logger.error(
                f"{click.style(command.full_name(), bold=True)} command "
                f"{click.style('failed', fg='red', bold=True)}"
            )
        return 1

    def record_error(self, error: Any, json_output: bool = False) -> None:
        """Best-effort write of the full error to the diagnostic file."""
        if not isinstance(error, BaseException) or error.__traceback__ is None:
            return
        try:
            with open(self.diagnostic_path, "w") as f:
                f.write(f"{datetime.now()}:\n{error!r}\n")
                f.write("".join(traceback.format_exception(error)))
            (logger.error if json_output else logger.info)(
                f"Error information has been recorded to {self.diagnostic_path.name}"
            )
        except OSError as e:
            logger.warning(f"Cannot save error information: {e}")


class ExceptionGuard:
    """Process-wide last resort for errors escaping the execution wrapper.

    Installed as ``sys.excepthook``; reports through the same path as
    handler errors. The interpreter then exits with status 1.
    """

    def __init__(self, wrapper: ExecutionWrapper):
        self.wrapper = wrapper
        self.previous_hook: Any = None

    @property
    def installed(self) -> bool:
        return sys.excepthook is self

    def install(self) -> None:
        if self.installed:
            return
        self.previous_hook = sys.excepthook
        sys.excepthook = self

    def uninstall(self) -> None:
        if self.installed:
            sys.excepthook = self.previous_hook or sys.__excepthook__

    def handle(self, error: BaseException) -> int:
        return self.wrapper.report_error(error)

    def __call__(
        self,
        exc_type: type[BaseException],
        exc: BaseException,
        tb: TracebackType | None,
    ) -> None:
        if issubclass(exc_type, KeyboardInterrupt):
            (self.previous_hook or sys.__excepthook__)(exc_type, exc, tb)
            return
        self.handle(exc)
