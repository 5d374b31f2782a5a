"""Resolve argv against the command tree.

Resolution walks the tree one level at a time:

    nimbus [globals] vm [globals] endpoint create [options] <args>
           root      category     category command

At every category the tokens are parsed with the options in scope there (the
inherited global options, plus anything the category declares); the first
positional names the next child. Options meant for a deeper node are carried
down as unknown tokens and recognized once that node is reached. Stub nodes
are promoted before they are entered.
"""

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from nimbus.errors import (
    MissingArgumentError,
    MissingCommandError,
    UnknownCategoryError,
    UnknownCommandError,
    UnknownOptionError,
)
from nimbus.options import ParsedArgv, normalize, parse_argv
from nimbus.tree import CommandNode, CommandTree

logger = logging.getLogger(__name__)


class DispatchAction(StrEnum):
    """What the CLI should do with a resolved node."""

    EXECUTE = "execute"
    HELP = "help"
    VERSION = "version"


@dataclass
class DispatchResult:
    """Outcome of a successful resolution.

    Attributes:
        node: Resolved command, or the category/command whose help to show
        action: Execute the command, show help, or print the version
        option_values: Option values for the handler (defaults applied)
        positionals: Free positional tokens for the handler
        explicit_help: Help was asked for with -h/--help
    """

    node: CommandNode
    action: DispatchAction = DispatchAction.EXECUTE
    option_values: dict[str, Any] = field(default_factory=dict)
    positionals: list[str] = field(default_factory=list)
    explicit_help: bool = False


class Dispatcher:
    """Walk the command tree to the node named by argv."""

    def __init__(self, tree: CommandTree):
        self.tree = tree

    def resolve(self, argv: list[str]) -> DispatchResult:
        """Resolve raw command-line tokens.

        Args:
            argv: Tokens after the program name

        Returns:
            DispatchResult for the resolved node

        Raises:
            UnknownCategoryError: First token names nothing at the root
            UnknownCommandError: A token names nothing in its category
            MissingCommandError: Only unrecognized options at the root
            UnknownOptionError: An option matches nothing at the resolved node
            MissingArgumentError: A required-value option has no value
            PluginError: A stub could not be promoted
        """
        node = self.tree.root
        tokens = normalize(argv)
        values: dict[str, Any] = {}

        while True:
            parsed = self._parse(tokens, node)
            values.update(parsed.values)

            if node.is_root and values.get("version"):
                return DispatchResult(node, DispatchAction.VERSION, values)

            if not parsed.positionals:
                if parsed.unknown:
                    if node.is_root:
                        raise MissingCommandError(parsed.unknown, node)
                    raise UnknownOptionError(parsed.unknown[0], node)
                return self._help(node, values)

            name = parsed.positionals[0]
            if name in node.categories:
                node = self.tree.promote(node.categories[name])
                tokens = parsed.forward()
                logger.debug(f"Descending into '{node.full_name()}'")
                continue

            if name in node.commands:
                command = self.tree.promote(node.commands[name])
                return self._resolve_command(command, parsed.forward(), values)

            if node.is_root:
                raise UnknownCategoryError(name, node)
            raise UnknownCommandError(name, node)

    def _parse(self, tokens: list[str], node: CommandNode) -> ParsedArgv:
        try:
            return parse_argv(tokens, node.scope(), context=node)
        except MissingArgumentError as e:
            e.node = node
            raise

    def _resolve_command(
        self, command: CommandNode, tokens: list[str], values: dict[str, Any]
    ) -> DispatchResult:
        parsed = self._parse(tokens, command)
        if parsed.unknown:
            raise UnknownOptionError(parsed.unknown[0], command)

        option_values = command.option_defaults()
        option_values.update(values)
        option_values.update(parsed.values)

        if option_values.pop("help", False):
            return DispatchResult(
                command, DispatchAction.HELP, option_values, parsed.positionals, explicit_help=True
            )

        logger.debug(f"Resolved command '{command.full_name()}'")
        return DispatchResult(command, DispatchAction.EXECUTE, option_values, parsed.positionals)

    def _help(self, node: CommandNode, values: dict[str, Any]) -> DispatchResult:
        explicit = bool(values.pop("help", False))
        return DispatchResult(node, DispatchAction.HELP, values, explicit_help=explicit)
