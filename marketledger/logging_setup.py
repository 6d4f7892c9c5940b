"""Logging setup for the CLI entry point.

Library modules only create module loggers; the process entry point decides
handlers and levels. Records are rendered through Rich on stderr.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(level: str = "INFO") -> None:
    """Attach a Rich handler to the ``marketledger`` logger at *level*.

    Unknown level names fall back to INFO. Calling this more than once only
    adjusts the level.
    """
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO

    root = logging.getLogger("marketledger")
    root.setLevel(resolved)
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        root.addHandler(
            RichHandler(console=Console(stderr=True), show_path=False, markup=False)
        )
