"""nimbus CLI entry point.

Click parses nothing here: the raw argv is handed to the ``Dispatcher``,
which resolves it against the plugin command tree. The tree comes from the
plugin cache when one is valid, otherwise from a full plugin scan that is
then cached for the next run.

Commands:
    help          Display help for a given command
    config        Manage local settings and the command mode
    plugin        Inspect the command plugins and their cache
    <plugins>     Anything registered by nimbus.commands or an extension
"""

import logging
import os

import click
from click.shell_completion import CompletionItem

from nimbus import __version__
from nimbus.completion import complete
from nimbus.config_manager import ConfigManager
from nimbus.dispatcher import DispatchAction, Dispatcher
from nimbus.errors import DispatchError, MissingArgumentError, NimbusError, TreeCacheError
from nimbus.executor import ExceptionGuard, ExecutionWrapper
from nimbus.help import render_help
from nimbus.loader import COMMANDS_PACKAGE, PluginLoader
from nimbus.logging_setup import configure_logging, output_flags
from nimbus.tree import CommandTree
from nimbus.tree_cache import TreeCache

logger = logging.getLogger(__name__)

PROGRAM_NAME = "nimbus"
DEBUG_ENV = "NIMBUS_DEBUG"
DESCRIPTION = "Manage your cloud services from the command line"


def debug_enabled() -> bool:
    return os.environ.get(DEBUG_ENV, "") not in ("", "0")


class NimbusCli:
    """One CLI invocation: the command tree and everything that acts on it."""

    def __init__(
        self,
        package: str = COMMANDS_PACKAGE,
        cache: TreeCache | None = None,
        debug: bool | None = None,
        install_guard: bool = True,
    ):
        """Initialize the CLI.

        Args:
            package: Dotted name of the first-party commands package
            cache: Plugin tree cache (default: built in ``initialize``)
            debug: Report stack traces as errors and let crashes propagate
                (default: ``$NIMBUS_DEBUG``)
            install_guard: Install the process-wide exception guard
        """
        self.debug = debug_enabled() if debug is None else debug
        self.tree = CommandTree(PROGRAM_NAME, DESCRIPTION)
        self.executor = ExecutionWrapper(debug=self.debug)
        self.guard = ExceptionGuard(self.executor)
        if install_guard and not self.debug:
            self.guard.install()
        self.loader = PluginLoader(self.tree, package)
        self.dispatcher = Dispatcher(self.tree)
        self.cache = cache

    def initialize(self) -> None:
        """Select the command mode and populate the tree."""
        self.loader.mode = ConfigManager.get_mode(self.loader.available_modes())
        if self.cache is None:
            self.cache = TreeCache(mode=self.loader.mode)
        else:
            self.cache.mode = self.loader.mode
        self.harvest_plugins()

    def harvest_plugins(self) -> bool:
        """Populate the tree from the cache, or scan every plugin and cache it.

        Returns:
            True on a cache hit
        """
        if self.cache is not None and self.cache.load(self.tree) is not None:
            return True

        logger.debug("Scanning plugin modules")
        self.loader.harvest()
        self.loader.harvest_extensions()
        if self.cache is not None:
            try:
                self.cache.save(self.tree)
            except TreeCacheError as e:
                logger.warning(str(e))
        return False

    def run(self, argv: list[str]) -> int:
        """Resolve and run one command line.

        Returns:
            Exit code: 0 on success, 1 on any error
        """
        try:
            result = self.dispatcher.resolve(argv)
        except (DispatchError, MissingArgumentError) as e:
            logger.error(str(e))
            if e.node is not None:
                click.echo(render_help(e.node))
            return e.exit_code

        if result.action is DispatchAction.VERSION:
            click.echo(__version__)
            return 0
        if result.action is DispatchAction.HELP:
            click.echo(render_help(result.node, show_more=result.explicit_help))
            return 0

        return self.executor.execute(result.node, result.positionals, result.option_values)

    def complete(self, line: str) -> list[str]:
        return complete(self.tree, line)


class NimbusCommand(click.Command):
    """Click command that leaves argv untouched for the dispatcher.

    Shell completion goes through click (``_NIMBUS_COMPLETE=bash_source``);
    candidates come from the command tree rather than click parameters.
    """

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        ctx.args = list(args)
        return []

    def shell_complete(self, ctx: click.Context, incomplete: str) -> list[CompletionItem]:
        nimbus_cli = NimbusCli(install_guard=False)
        line = " ".join([PROGRAM_NAME, *ctx.args, incomplete])
        try:
            nimbus_cli.initialize()
            candidates = nimbus_cli.complete(line)
        except NimbusError as e:
            logger.debug(f"Completion unavailable: {e}")
            return []
        return [CompletionItem(candidate) for candidate in candidates]


@click.command(
    cls=NimbusCommand,
    name=PROGRAM_NAME,
    context_settings={"help_option_names": [], "ignore_unknown_options": True},
)
@click.pass_context
def main(ctx: click.Context) -> None:
    """Manage your cloud services from the command line."""
    argv = list(ctx.args)
    verbosity, json_output = output_flags(argv)
    configure_logging(verbosity, json_output)

    nimbus_cli = NimbusCli()
    nimbus_cli.executor.json_output = json_output

    try:
        nimbus_cli.initialize()
        exit_code = nimbus_cli.run(argv)
    except Exception as e:
        if nimbus_cli.debug:
            raise
        exit_code = nimbus_cli.guard.handle(e)

    ctx.exit(exit_code)


if __name__ == "__main__":
    main()
