"""CLI package for salesqueue.

The main Typer app is created in app.py; importing the command modules
registers their commands on it.
"""

import salesqueue.cli.commands_digest  # noqa: F401, E402
import salesqueue.cli.commands_filters  # noqa: F401, E402
import salesqueue.cli.commands_serve  # noqa: F401, E402
from salesqueue.cli.app import app

__all__ = ["app"]
