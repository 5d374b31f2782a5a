"""Help rendering for the command tree.

Root help lists root commands and a summary of categories (one level deep,
every level with ``--help``). Category help lists its commands and those of
every nested category. Command help shows the description, the usage line
and the options in scope. Stubs render from their cached declarations, so
help never needs to import a plugin.
"""

import textwrap
from typing import Any

import click

from nimbus import __version__
from nimbus.tree import CommandNode, NodeKind

SUMMARY_MIN_WIDTH = 14


def render_help(node: CommandNode, show_more: bool = False) -> str:
    """Render the help text for any node of the tree."""
    if node.is_root:
        return _root_help(node, show_more)
    if node.kind is NodeKind.CATEGORY:
        return _category_help(node)
    return _command_help(node)


def _command_rows(node: CommandNode) -> list[tuple[str, str]]:
    return [
        (f"{command.full_name()} {command.usage}", command.description)
        for command in node.commands.values()
    ]


def _write_usage(formatter: click.HelpFormatter, prog: str, args: str) -> None:
    """Write the usage line, wrapping only between argument specs."""
    prefix = f"Usage: {prog} "
    indent = " " * formatter.current_indent
    width = max(formatter.width - formatter.current_indent - len(prefix), 20)
    lines = textwrap.wrap(args, width, break_on_hyphens=False, break_long_words=False) or [""]
    formatter.write(f"{indent}{prefix}{lines[0]}\n")
    for line in lines[1:]:
        formatter.write(f"{indent}{' ' * len(prefix)}{line}\n")


def _write_options(formatter: click.HelpFormatter, node: CommandNode) -> None:
    rows = [(spec.flags, spec.description) for spec in node.scope()]
    if rows:
        with formatter.section("Options"):
            formatter.write_dl(rows)


def _summary(node: CommandNode, depth: int) -> list[CommandNode]:
    categories = []
    for category in node.categories.values():
        categories.append(category)
        if depth != 0:
            categories.extend(_summary(category, depth - 1))
    return categories


def _root_help(root: CommandNode, show_more: bool) -> str:
    formatter = click.HelpFormatter()
    if root.description:
        formatter.write_text(root.description)
        formatter.write_paragraph()
    formatter.write_text(f"Tool version {__version__}")
    formatter.write_paragraph()
    _write_usage(formatter, root.name, "[options] <command> [<subcommand> ...] [args]")

    if root.commands:
        with formatter.section("Commands"):
            formatter.write_dl(_command_rows(root))

    categories = sorted(_summary(root, -1 if show_more else 0), key=lambda c: c.full_name())
    if categories:
        width = max([SUMMARY_MIN_WIDTH, *(len(c.full_name()) for c in categories)])
        with formatter.section("Categories"):
            formatter.write_dl(
                [(category.full_name(), category.description) for category in categories],
                col_max=width + 2,
            )

    _write_options(formatter, root)
    return formatter.getvalue()


def _write_category_commands(formatter: click.HelpFormatter, node: CommandNode) -> None:
    for category in node.categories.values():
        with formatter.section(category.description or category.full_name()):
            rows = _command_rows(category)
            if rows:
                formatter.write_dl(rows)
            else:
                formatter.write_text(category.full_name())
        _write_category_commands(formatter, category)


def _category_help(node: CommandNode) -> str:
    formatter = click.HelpFormatter()
    if node.description:
        formatter.write_text(node.description)
        formatter.write_paragraph()
    _write_usage(formatter, f"{node.tree.root.name} {node.full_name()}", node.usage)

    if node.commands:
        with formatter.section("Commands"):
            formatter.write_dl(_command_rows(node))
    _write_category_commands(formatter, node)

    _write_options(formatter, node)
    return formatter.getvalue()


def _command_help(node: CommandNode) -> str:
    formatter = click.HelpFormatter()
    description = node.detailed_description or node.description
    if description:
        formatter.write_text(description)
        formatter.write_paragraph()
    _write_usage(formatter, f"{node.tree.root.name} {node.full_name()}", node.usage)
    _write_options(formatter, node)
    return formatter.getvalue()


def help_json(node: CommandNode) -> dict[str, Any]:
    """Machine-readable help for ``node`` and everything below it."""
    result: dict[str, Any] = {}
    if node.categories:
        result["categories"] = {name: help_json(child) for name, child in node.categories.items()}
    if node.commands:
        result["commands"] = [
            {
                "name": command.full_name(),
                "description": command.description,
                "options": [spec.to_dict() for spec in command.scope()],
                "usage": command.usage,
            }
            for command in node.commands.values()
        ]
    return result
