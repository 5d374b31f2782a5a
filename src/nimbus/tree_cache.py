"""Plugin tree cache.

Philosophy:
- The first run imports every plugin module and snapshots the resulting tree
- Later runs rebuild a stub tree from the snapshot without importing anything
- A stub is promoted (its modules imported) only when dispatched to

Cache file: ~/.nimbus/plugins.json (or $NIMBUS_CONFIG_DIR/plugins.json)

A snapshot written by another tool version or for another command mode is
stale. A missing, unreadable or stale snapshot is a cache miss, never an
error: the caller rescans the plugins and saves a fresh one.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from nimbus import __version__
from nimbus.config_manager import DEFAULT_MODE, ConfigManager
from nimbus.errors import TreeCacheError
from nimbus.options import OptionSpec
from nimbus.tree import CommandNode, CommandTree, NodeKind, PositionalArg

logger = logging.getLogger(__name__)

CACHE_FILE_NAME = "plugins.json"


@dataclass
class PluginCacheEntry:
    """Snapshot of one tree node, handler excluded.

    Attributes:
        name: Node name
        kind: Category or command
        description: One-line description
        detailed_description: Long description shown in command help
        usage: Custom usage line, if the command declared one
        options: Serialized ``OptionSpec`` declarations
        args: Serialized ``PositionalArg`` declarations
        modules: Identifiers of the modules that registered the node
        commands: Child commands
        categories: Child categories by name
    """

    name: str
    kind: NodeKind = NodeKind.CATEGORY
    description: str = ""
    detailed_description: str | None = None
    usage: str | None = None
    options: list[dict[str, Any]] = field(default_factory=list)
    args: list[dict[str, Any]] = field(default_factory=list)
    modules: list[str] = field(default_factory=list)
    commands: list["PluginCacheEntry"] = field(default_factory=list)
    categories: dict[str, "PluginCacheEntry"] = field(default_factory=dict)

    @classmethod
    def from_node(cls, node: CommandNode) -> "PluginCacheEntry":
        return cls(
            name=node.name,
            kind=node.kind,
            description=node.description,
            detailed_description=node.detailed_description,
            usage=node.custom_usage,
            options=[spec.to_dict() for spec in node.options],
            args=[arg.to_dict() for arg in node.args],
            modules=list(node.source_modules),
            commands=[cls.from_node(child) for child in node.commands.values()],
            categories={name: cls.from_node(child) for name, child in node.categories.items()},
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "kind": str(self.kind)}
        if self.description:
            data["description"] = self.description
        if self.detailed_description:
            data["detailed_description"] = self.detailed_description
        if self.usage:
            data["usage"] = self.usage
        if self.options:
            data["options"] = self.options
        if self.args:
            data["args"] = self.args
        if self.modules:
            data["modules"] = self.modules[0] if len(self.modules) == 1 else self.modules
        if self.kind is NodeKind.CATEGORY:
            data["commands"] = [command.to_dict() for command in self.commands]
            data["categories"] = {name: entry.to_dict() for name, entry in self.categories.items()}
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PluginCacheEntry":
        modules = data.get("modules", [])
        if isinstance(modules, str):
            modules = [modules]
        return cls(
            name=data["name"],
            kind=NodeKind(data.get("kind", NodeKind.CATEGORY)),
            description=data.get("description", ""),
            detailed_description=data.get("detailed_description"),
            usage=data.get("usage"),
            options=list(data.get("options", [])),
            args=list(data.get("args", [])),
            modules=list(modules),
            commands=[cls.from_dict(child) for child in data.get("commands", [])],
            categories={
                name: cls.from_dict(child) for name, child in data.get("categories", {}).items()
            },
        )

    def to_stub(self, parent: CommandNode) -> CommandNode:
        """Build an unloaded node (and its subtree) under ``parent``."""
        node = CommandNode(self.name, self.kind, parent=parent)
        node.loaded = False
        node.description = self.description
        node.detailed_description = self.detailed_description
        node.custom_usage = self.usage
        node.options = [OptionSpec.from_dict(option) for option in self.options]
        node.args = [PositionalArg.from_dict(arg) for arg in self.args]
        node.source_modules = list(self.modules)
        for command in self.commands:
            node.commands[command.name] = command.to_stub(node)
        for name, category in self.categories.items():
            node.categories[name] = category.to_stub(node)
        return node


class TreeCache:
    """Persist the command tree and rehydrate it as stubs."""

    def __init__(
        self,
        cache_path: Path | None = None,
        version: str = __version__,
        mode: str = DEFAULT_MODE,
    ):
        """Initialize the tree cache.

        Args:
            cache_path: Custom cache file (default: <config dir>/plugins.json)
            version: Tool version stamped into snapshots
            mode: Command mode the tree was built for
        """
        self.cache_path = cache_path or ConfigManager.config_dir() / CACHE_FILE_NAME
        self.version = version
        self.mode = mode

    def snapshot(self, tree: CommandTree) -> dict[str, Any]:
        entry = PluginCacheEntry.from_node(tree.root)
        entry.options = [spec.to_dict() for spec in tree.root.options if not tree.is_global(spec)]
        data = entry.to_dict()
        data["timestamp"] = datetime.now(UTC).isoformat()
        data["version"] = self.version
        data["mode"] = self.mode
        return data

    def save(self, tree: CommandTree) -> dict[str, Any]:
        """Write the tree snapshot atomically with owner-only permissions.

        Raises:
            TreeCacheError: If writing fails
        """
        data = self.snapshot(tree)
        temp_path: Path | None = None
        try:
            self.cache_path.parent.mkdir(parents=True, exist_ok=True)
            temp_path = self.cache_path.with_suffix(".tmp")
            with open(temp_path, "w") as f:
                json.dump(data, f, indent=2)
            os.chmod(temp_path, 0o600)
            temp_path.replace(self.cache_path)
            logger.debug(f"Saved plugin tree cache to {self.cache_path}")
            return data
        except OSError as e:
            if temp_path and temp_path.exists():
                temp_path.unlink()
            raise TreeCacheError(f"Failed to save plugin cache: {e}") from e

    def is_stale(self, data: dict[str, Any]) -> bool:
        if data.get("version") != self.version:
            logger.debug(f"Plugin cache version {data.get('version')} != {self.version}")
            return True
        if data.get("mode") != self.mode:
            logger.debug(f"Plugin cache mode {data.get('mode')} != {self.mode}")
            return True
        return False

    def read_data(self) -> dict[str, Any] | None:
        """Raw snapshot, or None when the file is missing or not valid JSON."""
        if not self.cache_path.exists():
            logger.debug("Plugin cache not found")
            return None
        try:
            with open(self.cache_path) as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.debug(f"Ignoring unreadable plugin cache: {e}")
            return None
        return data if isinstance(data, dict) else None

    def read(self) -> PluginCacheEntry | None:
        """Parsed snapshot. None when missing, malformed or stale."""
        data = self.read_data()
        if data is None or self.is_stale(data):
            return None
        try:
            return PluginCacheEntry.from_dict(data)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.debug(f"Ignoring malformed plugin cache: {e}")
            return None

    def load(self, tree: CommandTree) -> CommandNode | None:
        """Rehydrate the cached tree as stubs under ``tree.root``.

        Returns:
            The populated root, or None on a cache miss (tree untouched)
        """
        entry = self.read()
        if entry is None:
            return None

        root = tree.root
        try:
            commands = [command.to_stub(root) for command in entry.commands]
            categories = {name: category.to_stub(root) for name, category in entry.categories.items()}
            options = [OptionSpec.from_dict(option) for option in entry.options]
        except (ValueError, KeyError, TypeError) as e:
            logger.debug(f"Ignoring plugin cache with invalid declarations: {e}")
            return None

        root.commands.update((command.name, command) for command in commands)
        root.categories.update(categories)
        for spec in options:
            root.add_option(spec.flags, spec.description, spec.default, spec.inherited)

        logger.debug(
            f"Loaded plugin cache: {len(root.categories)} categories, "
            f"{len(root.commands)} root commands"
        )
        return root

    def clear(self) -> bool:
        """Delete the cache file. Returns False when there was none."""
        try:
            self.cache_path.unlink()
        except FileNotFoundError:
            return False
        logger.debug(f"Removed plugin cache {self.cache_path}")
        return True
