"""
Logging setup for the command line.

Library modules only create module loggers (logging.getLogger(__name__));
the CLI installs a rich handler once at startup.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(verbose: int = 0) -> None:
    """
    verbose: 0 -> WARNING, 1 -> INFO, 2+ -> DEBUG
    """
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )
