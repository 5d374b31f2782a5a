"""Unit tests for plugin discovery and loading."""

import sys
from importlib.metadata import EntryPoint
from pathlib import Path
from unittest.mock import patch

import pytest

from nimbus.errors import PluginError
from nimbus.loader import ENTRY_POINT_GROUP, PluginLoader, is_plugin_file
from nimbus.tree import CommandTree


def tree_shape(tree):
    return [
        (
            node.full_name(),
            node.kind,
            [spec.flags for spec in node.options],
            [str(arg) for arg in node.args],
            list(node.source_modules),
        )
        for node in tree.root.walk()
    ]


class TestIsPluginFile:
    """Test which files count as plugin modules."""

    @pytest.mark.parametrize("name", ["vm.py", "service_bus.py"])
    def test_source_modules_accepted(self, name):
        assert is_plugin_file(Path(name))

    @pytest.mark.parametrize(
        "name",
        ["__init__.py", "_private.py", "tmp--vm.py", ".#vm.py", "vm.txt", "vm.py~", "vm.py.bak"],
    )
    def test_other_files_skipped(self, name):
        assert not is_plugin_file(Path(name))


class TestHarvest:
    """Test eager loading of first-party plugins."""

    def test_loads_commands_and_mode_subtree(self, loaded_tree):
        assert set(loaded_tree.root.categories) == {"vm", "service"}
        assert "start" in loaded_tree.root.categories["vm"].commands

    def test_skips_private_and_other_mode(self, loaded_tree):
        assert "private" not in loaded_tree.root.categories
        assert "group" not in loaded_tree.root.categories

    def test_arm_mode(self, plugin_package):
        tree = CommandTree()
        PluginLoader(tree, plugin_package, mode="arm").harvest()

        assert set(tree.root.categories) == {"vm", "group"}

    def test_modules_without_init_ignored(self, plugin_package):
        tree = CommandTree()
        modules = PluginLoader(tree, plugin_package).harvest()

        names = [registered.name for registered in modules]
        assert "fakecli.commands.helpers" not in names
        assert names == [
            "fakecli.commands.vm",
            "fakecli.commands.asm.service",
            "fakecli.commands.asm.vmextra",
        ]

    def test_source_modules_recorded(self, loaded_tree):
        vm = loaded_tree.root.categories["vm"]

        assert vm.source_modules == ["fakecli.commands.vm", "fakecli.commands.asm.vmextra"]
        assert vm.commands["start"].source_modules == ["fakecli.commands.asm.vmextra"]

    def test_available_modes(self, plugin_package):
        loader = PluginLoader(CommandTree(), plugin_package)

        assert loader.available_modes() == ["arm", "asm"]

    def test_loader_attached_to_tree(self, plugin_package):
        tree = CommandTree()
        loader = PluginLoader(tree, plugin_package)

        assert tree.loader is loader


class TestLoadModule:
    """Test that each module registers once per process."""

    def test_init_runs_once(self, plugin_package):
        tree = CommandTree()
        loader = PluginLoader(tree, plugin_package)

        assert loader.load_module("fakecli.commands.vm") is True
        assert loader.load_module("fakecli.commands.vm") is False
        assert "fakecli.commands.vm" in tree.loaded_modules

    def test_second_init_does_not_duplicate(self, loaded_tree):
        """Test that running a module's init again leaves the tree unchanged."""
        before = tree_shape(loaded_tree)

        for name in ("fakecli.commands.vm", "fakecli.commands.asm.vmextra"):
            with loaded_tree.registering(name):
                sys.modules[name].init(loaded_tree.root)

        assert tree_shape(loaded_tree) == before

    def test_import_failure_raises_plugin_error(self, plugin_package):
        loader = PluginLoader(CommandTree(), plugin_package)

        with pytest.raises(PluginError, match="fakecli.commands.missing"):
            loader.load_module("fakecli.commands.missing")


class TestHarvestExtensions:
    """Test loading plugins declared as entry points."""

    def test_extension_loaded(self, plugin_package):
        tree = CommandTree()
        loader = PluginLoader(tree, plugin_package)
        entry_points = [EntryPoint(name="dns", value="fakecli.extension", group=ENTRY_POINT_GROUP)]

        with patch("nimbus.loader.metadata.entry_points", return_value=entry_points):
            modules = loader.harvest_extensions()

        assert [registered.name for registered in modules] == ["fakecli.extension"]
        assert tree.root.categories["dns"].source_modules == ["fakecli.extension"]

    def test_broken_extension_skipped(self, plugin_package, caplog):
        tree = CommandTree()
        loader = PluginLoader(tree, plugin_package)
        entry_points = [
            EntryPoint(name="broken", value="fakecli.not_there", group=ENTRY_POINT_GROUP),
            EntryPoint(name="dns", value="fakecli.extension", group=ENTRY_POINT_GROUP),
        ]

        with patch("nimbus.loader.metadata.entry_points", return_value=entry_points):
            loader.harvest_extensions()

        assert "dns" in tree.root.categories
        assert "Skipping extension 'broken'" in caplog.text
