"""Console logging for tipsy.

Every module logs to a child of the ``all`` logger. ``init_logger`` attaches a
single handler that prints ``[HH:MM:SS] [LEVEL] message`` lines to stdout
through a rich Console, colored by level.
"""

import logging
import sys
from datetime import datetime

from rich.console import Console
from rich.text import Text

ROOT_LOGGER = "all"

DRY_RUN = 25
logging.addLevelName(DRY_RUN, "DRY-RUN")

LEVEL_STYLES = {
    logging.DEBUG: ("DEBUG", "dim"),
    logging.INFO: ("INFO", "bold blue"),
    DRY_RUN: ("DRY-RUN", "bold cyan"),
    logging.WARNING: ("WARN", "bold yellow"),
    logging.ERROR: ("ERROR", "bold red"),
    logging.CRITICAL: ("ERROR", "bold red"),
}


class ConsoleHandler(logging.Handler):
    def __init__(self, console: Console | None = None):
        super().__init__()
        self.console = console or Console(file=sys.stdout)

    def emit(self, record: logging.LogRecord):
        try:
            label, style = LEVEL_STYLES.get(record.levelno, (record.levelname, ""))
            stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
            line = Text(f"[{stamp}] [{label}] {self.format(record)}", style=style)
            self.console.print(line, soft_wrap=True, highlight=False)
        except Exception:
            self.handleError(record)


def init_logger(verbose: bool = False, console: Console | None = None) -> logging.Logger:
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        if isinstance(handler, ConsoleHandler):
            logger.removeHandler(handler)
    handler = ConsoleHandler(console)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    return logger


def dry_run(logger: logging.Logger, msg: str):
    logger.log(DRY_RUN, msg)
