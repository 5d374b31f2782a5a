"""plugin commands for nimbus CLI: inspect the command tree and its cache."""

import json
import logging

import click
from rich.console import Console
from rich.table import Table

from nimbus.tree import CommandNode
from nimbus.tree_cache import TreeCache

logger = logging.getLogger(__name__)


def init(cli: CommandNode) -> None:
    plugin = cli.category("plugin", "Commands to inspect the command plugins")

    @plugin.command("list", "List categories and commands with the modules behind them")
    def list_plugins(options: dict, done) -> None:
        rows = [
            {
                "name": node.full_name(),
                "kind": str(node.kind),
                "modules": node.source_modules,
                "loaded": node.loaded,
            }
            for node in cli.walk()
            if not node.is_root
        ]
        if options.get("json"):
            click.echo(json.dumps(rows, indent=2))
            return

        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Name", style="cyan")
        table.add_column("Kind")
        table.add_column("Modules")
        table.add_column("State")
        for row in rows:
            state = "[green]loaded[/green]" if row["loaded"] else "[dim]stub[/dim]"
            table.add_row(row["name"], row["kind"], "\n".join(row["modules"]), state)
        Console().print(table)

    cache = plugin.category("cache", "Commands to manage the plugin tree cache")

    @cache.command("show", "Show where the plugin cache lives and when it was built")
    def show_cache(options: dict, done) -> None:
        tree_cache = TreeCache()
        data = tree_cache.read_data() or {}
        info = {
            "path": str(tree_cache.cache_path),
            "exists": tree_cache.cache_path.exists(),
            "timestamp": data.get("timestamp"),
            "version": data.get("version"),
            "mode": data.get("mode"),
        }
        if options.get("json"):
            click.echo(json.dumps(info, indent=2))
            return
        for key, value in info.items():
            click.echo(f"{key:<10} {value if value is not None else '-'}")

    @cache.command("clear", "Delete the plugin cache so the next run rescans plugins")
    def clear_cache(options: dict, done) -> None:
        if TreeCache().clear():
            logger.info("Plugin cache cleared")
        else:
            logger.info("No plugin cache to clear")
