from __future__ import annotations

import logging
from typing import Optional


# Custom verbosity levels used to implement fixelcorr output modes.
# STATUS: minimal milestones (quiet mode)
# INFO: standard user-facing output
# DETAIL/VERBOSE: extra per-stage detail
STATUS = 25
DETAIL = 15
VERBOSE = 12

OUTPUT_MODE_LEVELS = {
    "quiet": STATUS,
    "standard": logging.INFO,
    "verbose": VERBOSE,
    "debug": logging.DEBUG,
}


_LEVELS_REGISTERED = False


def ensure_custom_levels_registered() -> None:
    global _LEVELS_REGISTERED
    if _LEVELS_REGISTERED:
        return

    logging.addLevelName(STATUS, "STATUS")
    logging.addLevelName(DETAIL, "DETAIL")
    logging.addLevelName(VERBOSE, "VERBOSE")

    _LEVELS_REGISTERED = True


class FixelFormatter(logging.Formatter):
    """Console formatting shared by every fixelcorr command.

    - INFO:    "FIXEL: <message>"
    - others:  "FIXEL [LEVEL]: <message>"
    """

    def format(self, record: logging.LogRecord) -> str:
        prefix = "FIXEL"
        if record.levelno == logging.INFO:
            return f"{prefix}: {record.getMessage()}"
        return f"{prefix} [{record.levelname}]: {record.getMessage()}"


def log_banner(
    title: str,
    *,
    logger: Optional[logging.Logger] = None,
    level: int = logging.INFO,
) -> None:
    """Log a formatted section banner."""
    ensure_custom_levels_registered()
    lg = logger or logging.getLogger()
    border = "# " + ("-" * 79) + " #"
    lg.log(level, border)
    lg.log(level, f"# {str(title).center(79)} #")
    lg.log(level, border)
