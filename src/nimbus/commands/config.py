"""config commands for nimbus CLI.

Manage the local settings stored in ~/.nimbus/config.toml and the command
mode that selects which mode subtree of plugins is loaded.
"""

import json
import logging

import click
from rich.console import Console
from rich.table import Table

from nimbus.config_manager import ConfigManager
from nimbus.errors import ConfigError
from nimbus.tree import CommandNode
from nimbus.tree_cache import TreeCache

logger = logging.getLogger(__name__)


def init(cli: CommandNode) -> None:
    config = cli.category("config", "Commands to manage your local settings")

    @config.command("list", "Display config settings")
    def list_settings(options: dict, done) -> None:
        current = ConfigManager.load_config()
        if options.get("json"):
            click.echo(json.dumps(current.to_dict(), indent=2))
            return

        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Setting", style="cyan")
        table.add_column("Value")
        table.add_row("mode", current.mode)
        for name, value in sorted(current.settings.items()):
            table.add_row(name, value)
        Console().print(table)

    @config.command("set <name> <value>", "Update a config setting")
    def set_setting(name: str, value: str, options: dict, done) -> None:
        ConfigManager.set_setting(name, value)
        logger.info(f"Setting '{name}' to value '{value}'")
        done()

    @config.command("delete <name>", "Delete a config setting")
    def delete_setting(name: str, options: dict, done) -> None:
        if not ConfigManager.delete_setting(name):
            done(ConfigError(f"Setting '{name}' does not exist"))
            return
        logger.info(f"Setting '{name}' has been deleted")
        done()

    @config.command("mode <mode>", "Set the command mode (asm or arm)")
    def set_mode(mode: str, options: dict, done) -> None:
        """Switch the mode subtree of plugins loaded on the next run.

        The plugin tree cache belongs to the previous mode and is cleared.
        """
        ConfigManager.set_mode(mode, cli.tree.loader.available_modes())
        TreeCache().clear()
        logger.info(f"New mode is {mode}")
