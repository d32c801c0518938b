"""Progress bars for matching and projection.

Bars go to stderr and are shown on an interactive terminal only, unless
``FIXELCORR_PROGRESS`` or the quiet output mode says otherwise.
"""

from __future__ import annotations

import os
import sys
from typing import Any, Optional

from tqdm import tqdm


PROGRESS_ENV = "FIXELCORR_PROGRESS"
BAR_FORMAT = "|{bar:50}| {n_fmt}/{total_fmt} {desc} [{elapsed} < {remaining}]"

# Set by configure_logging(); None defers to the environment.
_forced: Optional[bool] = None


def set_progress_enabled(enabled: Optional[bool]) -> None:
    global _forced
    _forced = enabled


def _env_setting() -> Optional[bool]:
    raw = os.environ.get(PROGRESS_ENV, "").strip().lower()
    if raw in {"1", "true", "yes", "on"}:
        return True
    if raw in {"0", "false", "no", "off"}:
        return False
    return None


def is_progress_enabled(explicit: Optional[bool] = None) -> bool:
    """Whether a progress bar would be drawn.

    The first decided setting wins: ``explicit``, the run-wide setting from
    the output mode, ``FIXELCORR_PROGRESS``, then whether stderr is a TTY.
    """
    for setting in (explicit, _forced, _env_setting()):
        if setting is not None:
            return bool(setting)
    try:
        return sys.stderr.isatty()
    except (AttributeError, ValueError):
        return False


def make_progress_bar(
    *,
    total: int,
    desc: str,
    colour: Optional[str] = None,
    enabled: Optional[bool] = None,
    **kwargs: Any,
) -> tqdm:
    """A tqdm bar over ``total`` work units (x-slabs or target fixels)."""
    kwargs.setdefault("bar_format", BAR_FORMAT)
    return tqdm(
        total=int(total),
        desc=str(desc),
        ascii=True,
        colour=colour,
        disable=not is_progress_enabled(enabled),
        **kwargs,
    )
