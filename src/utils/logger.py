"""
Console logging using Rich for colored output.

Log records still go through the standard logging module; this module
only provides the themed console and the handler that renders to it.
"""

import logging
import sys
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

# Define custom theme for consistent coloring
custom_theme = Theme({
    "success": "bold green",
    "error": "bold red",
    "warning": "bold yellow",
    "info": "bold cyan",
    "header": "bold magenta",
    "metric": "bold blue",
    "dim": "dim white",
    "logging.level.warning": "bold yellow",
    "logging.level.error": "bold red",
})

# Force color output even when not in interactive terminal (for systemd logs)
console = Console(theme=custom_theme, file=sys.stdout, force_terminal=True)


def build_console_handler(level: int = logging.INFO, target: Optional[Console] = None) -> RichHandler:
    """
    Create a logging handler that renders records on the themed console.

    Args:
        level: Minimum level shown on the console
        target: Console to render to (defaults to the shared console)

    Returns:
        Configured RichHandler
    """
    handler = RichHandler(
        console=target or console,
        show_path=False,
        rich_tracebacks=True,
        log_time_format="%Y-%m-%d %H:%M:%S",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(name)s | %(message)s"))
    return handler


def banner(title: str, lines: Optional[List[str]] = None, target: Optional[Console] = None) -> None:
    """Print a startup banner on the console."""
    out = target or console
    out.rule(f"[header]{title}")
    for line in lines or []:
        out.print(f"  {line}", style="info")
    out.rule()
