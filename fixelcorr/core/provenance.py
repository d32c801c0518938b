"""Provenance records embedded alongside fixelcorr outputs.

Provenance should never abort a computation.
"""

from __future__ import annotations

import importlib
import platform
import sys
from datetime import datetime, timezone
from typing import Any


def _safe_version(mod_name: str) -> str:
    try:
        mod = importlib.import_module(mod_name)
    except ImportError:
        return "unavailable"
    return getattr(mod, "__version__", "unknown")


def collect_provenance(**extra: Any) -> dict[str, Any]:
    """Return a JSON-serialisable description of the current run environment."""
    from fixelcorr._version import __version__

    record: dict[str, Any] = {
        "fixelcorr_version": __version__,
        "created_utc": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "python": sys.version.split()[0],
        "platform": platform.platform(),
        "packages": {
            "numpy": _safe_version("numpy"),
            "scipy": _safe_version("scipy"),
            "nibabel": _safe_version("nibabel"),
            "joblib": _safe_version("joblib"),
        },
    }
    record.update(extra)
    return record
