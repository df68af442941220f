"""
Logging setup using Rich.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler


_configured = False


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging with a Rich console handler.

    Safe to call more than once; only the first call installs the handler.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
    """
    global _configured
    if _configured:
        logging.getLogger().setLevel(getattr(logging, level.upper(), logging.INFO))
        return

    console = Console(stderr=True)
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(
                console=console,
                show_time=True,
                show_path=False,
                rich_tracebacks=True,
                markup=False,
            )
        ],
    )

    # Reduce noise from third-party libraries
    for name in ("httpx", "httpcore", "websockets", "uvicorn.access", "asyncio"):
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True
