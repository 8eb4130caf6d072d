"""Built-in CLI sub-commands for reqflow.

* :mod:`~reqflow.commands.cache` -- inspect, sweep, and clear the
  persistent response cache used by the verb commands.

Each module exports a :class:`typer.Typer` sub-application that
:mod:`reqflow.app` attaches to the root command tree.
"""
