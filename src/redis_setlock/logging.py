"""Logging configuration for redis-setlock.

Everything the tool says goes to stderr so the guarded command keeps
exclusive use of stdout.
"""

import logging
import sys
from enum import IntEnum
from typing import TextIO

from rich.console import Console
from rich.logging import RichHandler


class LogLevel(IntEnum):
    """Log level enumeration."""

    QUIET = logging.WARNING
    NORMAL = logging.INFO
    VERBOSE = logging.DEBUG


def configure_logging(
    verbosity: int = 0,
    quiet: bool = False,
    no_color: bool = False,
    stream: TextIO | None = None,
) -> Console:
    """Configure logging based on CLI options.

    Args:
        verbosity: Number of -v flags (0=normal, 1=debug, 2+=debug with time and source)
        quiet: Only report warnings and errors (takes precedence over verbosity)
        no_color: Disable colored output
        stream: Output stream for logs (defaults to the current sys.stderr)

    Returns:
        Configured Rich console the handler writes to

    Note:
        Flag precedence: quiet > verbosity
    """
    if quiet:
        level = LogLevel.QUIET
    elif verbosity >= 1:
        level = LogLevel.VERBOSE
    else:
        level = LogLevel.NORMAL

    console = Console(
        file=stream if stream is not None else sys.stderr,
        force_terminal=False if no_color else None,
        no_color=no_color,
    )

    detailed = verbosity >= 2
    handler = RichHandler(
        console=console,
        show_time=detailed,
        show_path=detailed,
    )

    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[handler],
        force=True,
    )

    return console
