"""Unit tests for the command tree and its registration API."""

import pytest

from nimbus.errors import PluginError
from nimbus.tree import CommandNode, CommandTree, NodeKind, PositionalArg, option


@pytest.fixture
def tree():
    return CommandTree()


class TestPositionalArg:
    """Test positional argument declarations."""

    @pytest.mark.parametrize(
        "token,required,variadic,name",
        [
            ("<name>", True, False, "name"),
            ("[port]", False, False, "port"),
            ("<paths...>", True, True, "paths"),
            ("[extra...]", False, True, "extra"),
        ],
    )
    def test_parse(self, token, required, variadic, name):
        arg = PositionalArg.parse(token)

        assert (arg.name, arg.required, arg.variadic) == (name, required, variadic)
        assert str(arg) == token

    def test_key_uses_underscores(self):
        assert PositionalArg.parse("<vm-name>").key == "vm_name"

    def test_empty_name_rejected(self):
        with pytest.raises(ValueError):
            PositionalArg.parse("<>")


class TestRegistration:
    """Test that registration is idempotent."""

    def test_category_get_or_create(self, tree):
        vm = tree.root.category("vm", "Commands to manage your virtual machines")

        again = tree.root.category("vm")

        assert again is vm
        assert vm.kind is NodeKind.CATEGORY
        assert vm.description == "Commands to manage your virtual machines"

    def test_category_description_updated_when_given(self, tree):
        tree.root.category("vm", "old")
        vm = tree.root.category("vm", "new")

        assert vm.description == "new"

    def test_command_amended_in_place(self, tree):
        vm = tree.root.category("vm")

        @vm.command("show <name>", "first")
        def first(name, options, done):
            pass

        node = vm.commands["show"]

        @vm.command("show <name> [size]", "second")
        def second(name, size, options, done):
            pass

        assert vm.commands["show"] is node
        assert node.handler is second
        assert node.description == "second"
        assert [str(arg) for arg in node.args] == ["<name>", "[size]"]

    def test_option_redeclared_replaces(self, tree):
        vm = tree.root.category("vm")
        vm.add_option("-s, --subscription <id>", "first")
        vm.add_option("-s, --subscription <id>", "second")

        assert len(vm.options) == 1
        assert vm.options[0].description == "second"

    def test_decorated_options_keep_declaration_order(self, tree):
        @tree.root.command("create <name>")
        @option("-l, --location <name>", "the location")
        @option("-s, --subscription <id>", "the subscription id")
        def create(name, options, done):
            pass

        node = tree.root.commands["create"]
        assert [spec.long for spec in node.options] == ["--location", "--subscription"]
        assert node.loaded
        assert node.kind is NodeKind.COMMAND

    def test_source_modules_tracked(self, tree):
        with tree.registering("plugins.vm"):
            tree.root.category("vm")
        with tree.registering("plugins.vmextra"):
            vm = tree.root.category("vm")
        with tree.registering("plugins.vm"):
            tree.root.category("vm")

        assert vm.source_modules == ["plugins.vm", "plugins.vmextra"]
        assert tree.current_source is None


class TestNodeProperties:
    """Test naming, usage and option scope."""

    def test_full_name(self, tree):
        endpoint = tree.root.category("vm").category("endpoint")

        @endpoint.command("create <vm-name>")
        def create(vm_name, options, done):
            pass

        assert endpoint.commands["create"].full_name() == "vm endpoint create"
        assert tree.root.full_name() == ""
        assert tree.root.is_root

    def test_usage(self, tree):
        @tree.root.command("copy <source> [destination]")
        def copy(source, destination, options, done):
            pass

        @tree.root.command("login", usage="[options] <username>")
        def login(options, done):
            pass

        assert tree.root.commands["copy"].usage == "[options] <source> [destination]"
        assert tree.root.commands["login"].usage == "[options] <username>"
        assert tree.root.category("vm").usage == "[options] <command>"

    def test_scope_includes_inherited_globals(self, tree):
        vm = tree.root.category("vm")
        vm.add_option("--dns <name>", "not inherited")

        @vm.command("list")
        def list_vms(options, done):
            pass

        flags = [spec.long for spec in vm.commands["list"].scope()]

        assert "--json" in flags
        assert "--verbose" in flags
        assert "--help" in flags
        assert "--version" not in flags
        assert "--dns" not in flags

    def test_own_option_shadows_inherited_flag(self, tree):
        @tree.root.command("deploy")
        @option("-v, --vm-version <id>", "the image version")
        def deploy(options, done):
            pass

        scope = tree.root.commands["deploy"].scope()
        short_v = [spec for spec in scope if spec.short == "-v"]

        assert len(short_v) == 1
        assert short_v[0].long == "--vm-version"

    def test_option_defaults(self, tree):
        @tree.root.command("create")
        @option("-o, --protocol [protocol]", "tcp or udp", "tcp")
        @option("--no-wait", "do not wait")
        @option("--size <size>", "size")
        def create(options, done):
            pass

        assert tree.root.commands["create"].option_defaults() == {"protocol": "tcp", "wait": True}

    def test_walk_visits_every_node(self, tree):
        vm = tree.root.category("vm")
        vm.category("endpoint")

        @vm.command("list")
        def list_vms(options, done):
            pass

        names = [node.full_name() for node in tree.root.walk()]

        assert names == ["", "vm", "vm list", "vm endpoint"]


class TestPromote:
    """Test promotion guards that do not need a loader."""

    def test_loaded_node_returned_as_is(self, tree):
        vm = tree.root.category("vm")

        assert tree.promote(vm) is vm

    def test_stub_without_loader_raises(self, tree):
        stub = CommandNode("vm", NodeKind.CATEGORY, parent=tree.root)
        stub.loaded = False
        tree.root.categories["vm"] = stub

        with pytest.raises(PluginError, match="no plugin loader"):
            tree.promote(stub)
