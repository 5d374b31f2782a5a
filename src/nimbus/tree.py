"""Command tree: categories, commands and their registration API.

Plugin modules expose ``init(cli)`` and build the tree through it:

    def init(cli):
        vm = cli.category("vm", "Commands to manage your virtual machines")

        @vm.command("show <name>", "Show details about a VM")
        @option("-s, --subscription <id>", "the subscription id")
        def show(name, options, done):
            ...

Registration is idempotent: asking for an existing category returns it,
declaring an existing command amends it in place, and redeclaring an option
replaces the earlier declaration with the same flags. A node rehydrated from
the tree cache is a stub (``loaded`` is False) until ``CommandTree.promote``
re-runs the modules that registered it.
"""

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from nimbus.errors import PluginError
from nimbus.options import OptionSpec, option_key

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]


class NodeKind(StrEnum):
    """Capability of a tree node."""

    CATEGORY = "category"
    COMMAND = "command"


@dataclass
class PositionalArg:
    """A positional parameter declared as ``<name>``, ``[name]`` or ``<name...>``."""

    name: str
    required: bool = True
    variadic: bool = False

    @property
    def key(self) -> str:
        return option_key(self.name)

    @classmethod
    def parse(cls, token: str) -> "PositionalArg":
        required = token.startswith("<")
        name = token.strip("<>[]")
        variadic = name.endswith("...")
        if variadic:
            name = name[: -len("...")]
        if not name:
            raise ValueError(f"Invalid argument declaration: '{token}'")
        return cls(name=name, required=required, variadic=variadic)

    def __str__(self) -> str:
        name = f"{self.name}..." if self.variadic else self.name
        return f"<{name}>" if self.required else f"[{name}]"

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "required": self.required, "variadic": self.variadic}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PositionalArg":
        return cls(
            name=data["name"],
            required=data.get("required", True),
            variadic=data.get("variadic", False),
        )


def option(flags: str, description: str = "", default: Any = None) -> Callable[[Handler], Handler]:
    """Attach an option declaration to a command handler.

    Used below ``@node.command(...)``; options keep their top-down order.
    """

    def decorator(handler: Handler) -> Handler:
        if not hasattr(handler, "__nimbus_options__"):
            handler.__nimbus_options__ = []  # type: ignore[attr-defined]
        handler.__nimbus_options__.append(OptionSpec(flags, description, default))  # type: ignore[attr-defined]
        return handler

    return decorator


class CommandNode:
    """A category (grouping) or command (leaf with a handler)."""

    def __init__(
        self,
        name: str,
        kind: NodeKind,
        parent: "CommandNode | None" = None,
        tree: "CommandTree | None" = None,
    ):
        self.name = name
        self.kind = kind
        self.parent = parent
        self.tree = tree if tree is not None else parent.tree if parent else None
        self.description = ""
        self.detailed_description: str | None = None
        self.custom_usage: str | None = None
        self.options: list[OptionSpec] = []
        self.args: list[PositionalArg] = []
        self.categories: dict[str, CommandNode] = {}
        self.commands: dict[str, CommandNode] = {}
        self.handler: Handler | None = None
        self.source_modules: list[str] = []
        self.loaded = True

    def __repr__(self) -> str:
        state = "loaded" if self.loaded else "stub"
        return f"<CommandNode {self.kind} '{self.full_name() or self.name}' ({state})>"

    @property
    def is_root(self) -> bool:
        return self.parent is None

    def full_name(self) -> str:
        """Space-separated path below the root, e.g. ``"vm endpoint create"``."""
        names = []
        node: CommandNode | None = self
        while node is not None and node.parent is not None:
            names.append(node.name)
            node = node.parent
        return " ".join(reversed(names))

    def ancestors(self) -> Iterator["CommandNode"]:
        node = self.parent
        while node is not None:
            yield node
            node = node.parent

    # ------------------------------------------------------------------
    # Registration API
    # ------------------------------------------------------------------

    def category(self, name: str, description: str | None = None) -> "CommandNode":
        """Get or create the child category ``name``.

        A stub category is promoted first so the caller amends the real node.
        """
        node = self.categories.get(name)
        if node is None:
            node = CommandNode(name, NodeKind.CATEGORY, parent=self)
            self.categories[name] = node
            logger.debug(f"Registered category '{node.full_name()}'")
        elif not node.loaded and self.tree is not None:
            self.tree.promote(node)

        node.add_source(self._current_source())
        if description is not None:
            node.description = description
        return node

    def command(
        self,
        declaration: str,
        description: str = "",
        usage: str | None = None,
        detailed_description: str | None = None,
    ) -> Callable[[Handler], Handler]:
        """Declare the command ``"name <required> [optional]"`` under this node.

        Returns a decorator that installs the handler. Declaring a command that
        already exists amends it; the last registration wins.
        """
        name, *arg_tokens = declaration.split()
        node = self.commands.get(name)
        if node is None:
            node = CommandNode(name, NodeKind.COMMAND, parent=self)
            self.commands[name] = node

        node.args = [PositionalArg.parse(token) for token in arg_tokens]
        node.description = description
        node.custom_usage = usage
        node.detailed_description = detailed_description
        node.add_source(self._current_source())

        def decorator(handler: Handler) -> Handler:
            for spec in reversed(getattr(handler, "__nimbus_options__", [])):
                node.add_option(spec.flags, spec.description, spec.default)
            node.handler = handler
            node.loaded = True
            logger.debug(f"Registered command '{node.full_name()}'")
            return handler

        return decorator

    def add_option(
        self,
        flags: str,
        description: str = "",
        default: Any = None,
        inherited: bool = False,
    ) -> OptionSpec:
        """Declare an option, replacing any earlier one with the same long flag."""
        spec = OptionSpec(flags, description, default, inherited)
        self.options = [
            existing
            for existing in self.options
            if not (existing.name == spec.name and existing.long == spec.long)
        ]
        self.options.append(spec)
        return spec

    def add_source(self, module: str | None) -> None:
        if module and module not in self.source_modules:
            self.source_modules.append(module)

    def _current_source(self) -> str | None:
        return self.tree.current_source if self.tree is not None else None

    # ------------------------------------------------------------------
    # Option scope
    # ------------------------------------------------------------------

    def scope(self) -> list[OptionSpec]:
        """Options recognized at this node: its own plus inherited ancestor options."""
        options = list(self.options)
        taken = {flag for spec in options for flag in (spec.short, spec.long) if flag}
        for ancestor in self.ancestors():
            for spec in ancestor.options:
                if spec.inherited and not {spec.short, spec.long} & taken:
                    options.append(spec)
                    taken.update(flag for flag in (spec.short, spec.long) if flag)
        return options

    def option_defaults(self) -> dict[str, Any]:
        return {spec.key: spec.default for spec in self.options if spec.default is not None}

    @property
    def usage(self) -> str:
        if self.custom_usage:
            return self.custom_usage
        if self.kind is NodeKind.CATEGORY:
            return "[options] <command>"
        return " ".join(["[options]", *(str(arg) for arg in self.args)])

    def walk(self) -> Iterator["CommandNode"]:
        """Yield this node and every descendant, commands before sub-categories."""
        yield self
        for child in self.commands.values():
            yield child
        for child in self.categories.values():
            yield from child.walk()


class CommandTree:
    """Process-wide command tree.

    Owns the root node, the global options, and the set of modules whose
    ``init`` already ran in this process.
    """

    def __init__(self, name: str = "nimbus", description: str = ""):
        self.root = CommandNode(name, NodeKind.CATEGORY, tree=self)
        self.root.description = description
        self.loaded_modules: set[str] = set()
        self.loader: Any = None
        self._registering: list[str] = []

        self.global_options = [
            self.root.add_option("-v, --verbose", "use verbose output", inherited=True),
            self.root.add_option("--json", "use json output", inherited=True),
            self.root.add_option("-h, --help", "output usage information", inherited=True),
            self.root.add_option("--version", "output the application version"),
        ]

    def is_global(self, spec: OptionSpec) -> bool:
        """True for the built-in options every tree starts with."""
        return any(spec is builtin for builtin in self.global_options)

    @property
    def current_source(self) -> str | None:
        """Module whose ``init`` is currently registering nodes."""
        return self._registering[-1] if self._registering else None

    @contextmanager
    def registering(self, module: str) -> Iterator[None]:
        self._registering.append(module)
        try:
            yield
        finally:
            self._registering.pop()

    def promote(self, node: CommandNode) -> CommandNode:
        """Load the modules behind a stub and merge their registrations into it.

        Children the stub had from the cache are kept even when the reloaded
        modules do not declare them again. Stub child categories are promoted
        transitively.

        Raises:
            PluginError: No loader is attached, or a stub command was not
                registered again by its modules
        """
        if node.loaded:
            return node
        if self.loader is None:
            raise PluginError(f"Cannot load '{node.full_name()}': no plugin loader attached")

        logger.debug(f"Promoting '{node.full_name()}' from {', '.join(node.source_modules)}")
        if node.kind is NodeKind.CATEGORY:
            node.loaded = True

        for module in list(node.source_modules):
            self.loader.load_module(module)

        if node.kind is NodeKind.COMMAND:
            if not node.loaded:
                raise PluginError(
                    f"Command '{node.full_name()}' is not registered by "
                    f"{', '.join(node.source_modules) or 'any module'}"
                )
            return node

        for child in list(node.categories.values()):
            if not child.loaded:
                self.promote(child)
        return node
