"""
Shared test fixtures and configuration for nimbus CLI tests.

This module provides common fixtures used across all test types:
- An isolated config directory (and working directory) per test
- A throwaway plugin package with categories, commands and a mode subtree
- Trees built from that package, eagerly or from the plugin cache
"""

import importlib
import sys
import textwrap

import pytest

from nimbus.loader import PluginLoader
from nimbus.tree import CommandTree
from nimbus.tree_cache import TreeCache

PLUGIN_PACKAGE = "fakecli.commands"

PLUGIN_FILES = {
    "fakecli/__init__.py": "",
    "fakecli/commands/__init__.py": "",
    "fakecli/commands/asm/__init__.py": "",
    "fakecli/commands/arm/__init__.py": "",
    "fakecli/commands/vm.py": '''
        from nimbus.tree import option

        CALLS = []


        def init(cli):
            vm = cli.category("vm", "Commands to manage your virtual machines")

            @vm.command("list", "List your virtual machines")
            @option("-s, --subscription <id>", "the subscription id")
            def list_vms(options, done):
                CALLS.append(("list", dict(options)))
                done()

            @vm.command("show <name>", "Show one virtual machine")
            def show(name, options, done):
                CALLS.append(("show", name, dict(options)))
                done()

            @vm.command("fail", "Always fails")
            def fail(options, done):
                done(RuntimeError("boom"))

            endpoint = vm.category("endpoint", "Commands to manage VM endpoints")

            @endpoint.command("create <vm-name> <public-port> [local-port]", "Create an endpoint")
            @option("-n, --endpoint-name <name>", "the endpoint name")
            @option("-o, --protocol [protocol]", "tcp or udp", "tcp")
            def create(vm_name, public_port, local_port, options, done):
                CALLS.append(("endpoint create", vm_name, public_port, local_port, dict(options)))
                done()
    ''',
    "fakecli/commands/asm/service.py": '''
        def init(cli):
            service = cli.category("service", "Commands to manage your cloud services")

            @service.command("list", "List your cloud services")
            def list_services(options, done):
                done()
    ''',
    "fakecli/commands/asm/vmextra.py": '''
        def init(cli):
            vm = cli.category("vm")

            @vm.command("start <name>", "Start a virtual machine")
            def start(name, options, done):
                done()
    ''',
    "fakecli/commands/arm/group.py": '''
        def init(cli):
            group = cli.category("group", "Commands to manage resource groups")

            @group.command("list", "List resource groups")
            def list_groups(options, done):
                done()
    ''',
    "fakecli/commands/_private.py": '''
        def init(cli):
            cli.category("private", "Must never be loaded")
    ''',
    "fakecli/commands/helpers.py": '''
        VALUE = 42
    ''',
    "fakecli/extension.py": '''
        def init(cli):
            dns = cli.category("dns", "Commands from an installed extension")

            @dns.command("list", "List DNS zones")
            def list_zones(options, done):
                done()
    ''',
}


# ============================================================================
# ENVIRONMENT FIXTURES
# ============================================================================


@pytest.fixture(autouse=True)
def config_dir(tmp_path, monkeypatch):
    """Isolated config directory for every test.

    Points NIMBUS_CONFIG_DIR at a temporary directory so config.toml and
    plugins.json never touch the real home directory, and runs the test in
    tmp_path so diagnostic files land there.
    """
    directory = tmp_path / "config"
    monkeypatch.setenv("NIMBUS_CONFIG_DIR", str(directory))
    monkeypatch.delenv("NIMBUS_DEBUG", raising=False)
    monkeypatch.chdir(tmp_path)
    return directory


@pytest.fixture(autouse=True)
def restore_excepthook():
    """Undo any exception guard installed during the test."""
    previous = sys.excepthook
    yield
    sys.excepthook = previous


# ============================================================================
# PLUGIN FIXTURES
# ============================================================================


@pytest.fixture
def plugin_package(tmp_path, monkeypatch):
    """Write the fakecli plugin package and make it importable.

    Returns the dotted name of its commands package.
    """
    root = tmp_path / "plugins"
    for relative, source in PLUGIN_FILES.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(source))

    monkeypatch.syspath_prepend(str(root))
    importlib.invalidate_caches()
    yield PLUGIN_PACKAGE

    for name in list(sys.modules):
        if name == "fakecli" or name.startswith("fakecli."):
            del sys.modules[name]


@pytest.fixture
def loaded_tree(plugin_package):
    """Tree with every fakecli plugin loaded eagerly (asm mode)."""
    tree = CommandTree()
    PluginLoader(tree, plugin_package).harvest()
    return tree


@pytest.fixture
def cache(tmp_path):
    """Plugin tree cache in a temporary file."""
    return TreeCache(tmp_path / "plugins.json")


@pytest.fixture
def stub_tree(plugin_package, loaded_tree, cache):
    """Fresh tree rehydrated from a cache of ``loaded_tree``, loader attached."""
    cache.save(loaded_tree)
    tree = CommandTree()
    PluginLoader(tree, plugin_package)
    assert cache.load(tree) is not None
    return tree
