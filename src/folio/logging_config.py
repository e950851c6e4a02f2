"""
Logging setup for Folio.

One call decides the level (CLI flags first, then the ``[logging]`` section
of ``folio.toml``) and installs a stderr handler plus an optional log file.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

CONSOLE_FORMAT = "%(message)s"
DETAILED_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Loggers that stay at WARNING or above unless debugging
NOISY_LOGGERS = ("werkzeug",)


def resolve_log_level(
    quiet: bool = False,
    verbose: bool = False,
    debug: bool = False,
    configured: Optional[str] = None,
) -> int:
    """
    Pick the log level for a run.

    Args:
        quiet: ``-q`` was given; errors only.
        verbose: ``-v`` was given; INFO and above.
        debug: ``--debug`` was given; everything. Beats the other flags.
        configured: Level name from the config file, used when no flag is set.
            Unknown names fall back to WARNING.

    Returns:
        A ``logging`` level constant.
    """
    if debug:
        return logging.DEBUG
    if quiet:
        return logging.ERROR
    if verbose:
        return logging.INFO
    if configured:
        level = logging.getLevelName(configured.strip().upper())
        if isinstance(level, int):
            return level
    return logging.WARNING


def _file_handler(log_file: Path, level: int) -> Optional[logging.Handler]:
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(str(log_file), encoding="utf-8")
    except OSError as e:
        logging.getLogger(__name__).warning(f"Not logging to {log_file}: {e}")
        return None
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(DETAILED_FORMAT))
    return handler


def configure_logging(level: int = logging.WARNING, log_file: Optional[Path] = None) -> None:
    """
    Install Folio's handlers on the root logger, replacing any earlier ones.

    Console output is the bare message except at DEBUG, where timestamps and
    logger names are added. The log file always gets the detailed format.
    """
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    root.setLevel(level)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(logging.Formatter(DETAILED_FORMAT if level <= logging.DEBUG else CONSOLE_FORMAT))
    root.addHandler(console)

    if log_file is not None:
        handler = _file_handler(log_file, level)
        if handler is not None:
            root.addHandler(handler)

    logging.getLogger("folio").setLevel(level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level if level <= logging.DEBUG else max(level, logging.WARNING))
