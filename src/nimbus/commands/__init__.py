"""Built-in command plugins.

Every module here (and in the configured mode subtree) exposing ``init(cli)``
is loaded by ``nimbus.loader.PluginLoader``.
"""
