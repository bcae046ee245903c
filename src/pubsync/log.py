"""Logging setup for CLI runs"""

import logging


def configure_logging(level: str | int = logging.INFO, force: bool = False) -> None:
    """Initialise the root logger with a terse format for CLI output.

    level accepts a logging constant or a name such as 'DEBUG'. Pass force=True
    to reconfigure an already-initialised root logger.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
    # Per-request lines from httpx would drown the run summary.
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
