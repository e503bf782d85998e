from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


# Diagnostics go to stderr so stdout stays clean JSON for consumers.
console = Console(stderr=True)


def setup_logging(level: str | int = "WARNING") -> None:
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING

    root = logging.getLogger("session_scraper")
    root.setLevel(level)
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        root.addHandler(RichHandler(console=console, show_path=False, rich_tracebacks=True))
    root.propagate = False
