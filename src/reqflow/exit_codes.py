"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~reqflow.exceptions.ReqflowError` subclass.
Shell scripts wrapping the ``reqflow`` command can inspect the exit code to
tell a cancelled request from a network failure without parsing stderr.

Example::

    $ reqflow get https://api.example.com/users --retries 2
    $ echo $?
    6   # EXIT_NETWORK_ERROR -- every attempt failed to connect
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or an unknown config option."""

EXIT_HTTP_STATUS = 3
"""The server answered with a status outside the 2xx range."""

EXIT_CANCELLED = 4
"""The request was cancelled through its cancel token."""

EXIT_TIMEOUT = 5
"""An attempt exceeded its deadline and no retries were left."""

EXIT_NETWORK_ERROR = 6
"""A network-level error occurred (DNS failure, connection refused, reset)."""

EXIT_INTERRUPTED = 130
"""The process received SIGINT."""
