"""help command for nimbus CLI."""

import json

import click

from nimbus.errors import NimbusError
from nimbus.help import help_json, render_help
from nimbus.tree import CommandNode


def init(cli: CommandNode) -> None:
    """Register the help command on the root of the tree."""

    @cli.command("help [command...]", "Display help for a given command")
    def help_command(command: list[str], options: dict, done) -> None:
        """Show help for the root, a category, or a command.

        \b
        Examples:
            nimbus help              # Show general help
            nimbus help vm           # Show help for the vm category
            nimbus help vm list      # Show help for vm list
            nimbus help --json       # Dump the whole command tree
        """
        node = cli
        for name in command:
            if name in node.categories:
                node = cli.tree.promote(node.categories[name])
            elif name in node.commands:
                node = node.commands[name]
            else:
                raise NimbusError(f"Unknown command name {' '.join(command)}")

        if options.get("json"):
            click.echo(json.dumps(help_json(node), indent=2))
        else:
            click.echo(render_help(node, show_more=node.is_root))
        done()
