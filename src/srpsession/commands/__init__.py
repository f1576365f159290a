"""Built-in CLI sub-commands for srpsession.

* :mod:`~srpsession.commands.profile` -- create, list, show and remove
  account profiles.
* :mod:`~srpsession.commands.session` -- log in, inspect, refresh and log
  out sessions, and send authenticated requests.

Each module exports a :class:`typer.Typer` sub-application registered on
the root app in :mod:`srpsession.app`.
"""
