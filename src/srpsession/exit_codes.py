"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~srpsession.exceptions.SrpSessionError` subclass.
Shell wrappers can inspect the exit code of the ``srpsession`` CLI to tell
a rejected password apart from an unreachable server without parsing stderr.

Example::

    $ srpsession session login work
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- the server rejected the credentials
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_AUTH_FAILURE = 3
"""Authentication failed or the session is no longer usable."""

EXIT_SERVER_ERROR = 5
"""The remote API answered with an error payload."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, TLS failure, connection reset)."""

EXIT_CRYPTO_ERROR = 8
"""The server supplied SRP parameters that failed the sanity checks."""

EXIT_PROTOCOL_ERROR = 9
"""The server response did not match the expected protocol (shape or server proof)."""
