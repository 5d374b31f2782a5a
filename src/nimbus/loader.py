"""Plugin discovery and loading.

A plugin is any module exposing ``init(cli)``. First-party plugins live in
``nimbus.commands`` (flat) and ``nimbus.commands.<mode>`` (recursive);
third-party packages declare theirs as entry points in the
``nimbus.plugins`` group:

    [project.entry-points."nimbus.plugins"]
    dns = "nimbus_dns.commands"

Each module's ``init`` runs at most once per process; the set of loaded
modules is kept on the ``CommandTree`` so stub promotion and eager scans
share it.
"""

import importlib
import logging
from dataclasses import dataclass
from importlib import metadata
from pathlib import Path
from types import ModuleType

from nimbus.config_manager import DEFAULT_MODE
from nimbus.errors import PluginError
from nimbus.tree import CommandTree

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "nimbus.plugins"
INIT_FUNCTION = "init"
COMMANDS_PACKAGE = "nimbus.commands"

_SKIPPED_PREFIXES = ("tmp--", "_", ".#")
_SKIPPED_SUFFIXES = ("~", ".bak", ".orig", ".swp")


@dataclass
class RegisteredModule:
    """A discovered module that exposes ``init``."""

    name: str
    module: ModuleType
    path: Path | None = None


def is_plugin_file(path: Path) -> bool:
    """Source modules only: no temporaries, backups or package markers."""
    name = path.name
    if path.suffix != ".py":
        return False
    if name.startswith(_SKIPPED_PREFIXES) or name.endswith(_SKIPPED_SUFFIXES):
        return False
    return True


class PluginLoader:
    """Discover plugin modules and run their ``init`` against a tree."""

    def __init__(
        self,
        tree: CommandTree,
        package: str = COMMANDS_PACKAGE,
        mode: str = DEFAULT_MODE,
    ):
        self.tree = tree
        self.package = package
        self.mode = mode
        tree.loader = self

    @property
    def commands_path(self) -> Path:
        module = importlib.import_module(self.package)
        return Path(next(iter(module.__path__)))

    def available_modes(self) -> list[str]:
        """Mode subtrees present under the commands package."""
        return sorted(
            child.name
            for child in self.commands_path.iterdir()
            if child.is_dir() and (child / "__init__.py").exists()
        )

    def import_module(self, name: str) -> ModuleType:
        try:
            return importlib.import_module(name)
        except Exception as e:
            raise PluginError(f"Failed to import plugin module '{name}': {e}") from e

    def scan(self, root_path: Path, package: str, recursive: bool = False) -> list[RegisteredModule]:
        """Import the plugin modules found under ``root_path``.

        Args:
            root_path: Directory to scan
            package: Dotted package name that ``root_path`` corresponds to
            recursive: Descend into sub-packages

        Returns:
            Modules exposing ``init``, sorted by path

        Raises:
            PluginError: If a module fails to import
        """
        if not root_path.is_dir():
            logger.debug(f"Plugin directory not found: {root_path}")
            return []

        pattern = "**/*.py" if recursive else "*.py"
        paths = sorted(
            path for path in root_path.glob(pattern) if path.is_file() and is_plugin_file(path)
        )

        results = []
        for path in paths:
            relative = path.relative_to(root_path).with_suffix("")
            if any(part.startswith(_SKIPPED_PREFIXES) for part in relative.parts[:-1]):
                continue
            name = ".".join([package, *relative.parts])
            module = self.import_module(name)
            if not callable(getattr(module, INIT_FUNCTION, None)):
                logger.debug(f"Skipping '{name}': no {INIT_FUNCTION}()")
                continue
            results.append(RegisteredModule(name=name, module=module, path=path))

        logger.debug(f"Found {len(results)} plugin modules under {root_path}")
        return results

    def load_module(self, name: str) -> bool:
        """Run ``init`` of module ``name`` unless it already ran in this process.

        Returns:
            True if ``init`` was invoked now

        Raises:
            PluginError: If the module fails to import
        """
        if name in self.tree.loaded_modules:
            return False
        self.tree.loaded_modules.add(name)

        module = self.import_module(name)
        init = getattr(module, INIT_FUNCTION, None)
        if not callable(init):
            logger.debug(f"Module '{name}' has no {INIT_FUNCTION}(), nothing registered")
            return False

        logger.debug(f"Loading plugin module '{name}'")
        with self.tree.registering(name):
            init(self.tree.root)
        return True

    def harvest(self) -> list[RegisteredModule]:
        """Load every first-party plugin: the commands package, then the mode subtree."""
        modules = self.scan(self.commands_path, self.package)
        modules += self.scan(
            self.commands_path / self.mode, f"{self.package}.{self.mode}", recursive=True
        )
        for registered in modules:
            self.load_module(registered.name)
        return modules

    def harvest_extensions(self) -> list[RegisteredModule]:
        """Load plugins declared by installed packages through entry points.

        A broken extension is skipped with a warning; it never prevents the
        first-party commands from working.
        """
        modules = []
        entry_points = sorted(metadata.entry_points(group=ENTRY_POINT_GROUP), key=lambda ep: ep.name)
        for entry_point in entry_points:
            try:
                module = self.import_module(entry_point.module)
            except PluginError as e:
                logger.warning(f"Skipping extension '{entry_point.name}': {e}")
                continue
            if not callable(getattr(module, INIT_FUNCTION, None)):
                logger.debug(f"Skipping extension '{entry_point.name}': no {INIT_FUNCTION}()")
                continue
            modules.append(RegisteredModule(name=entry_point.module, module=module))

        for registered in modules:
            self.load_module(registered.name)
        return modules
