"""Angular penalty lookup table.

The penalty for a pair of fixel orientations with absolute dot product ``dp``
is ``tan(arccos(dp))``: zero for identical orientations, diverging as the
orientations approach orthogonality.
"""

from __future__ import annotations

import numpy as np


DEFAULT_RESOLUTION = 1000


class DP2Cost:
    """Fast evaluation of the angular penalty by linear table interpolation.

    Parameters
    ----------
    resolution : int
        Number of bins spanning ``dp`` in [0, 1].

    Notes
    -----
    The table carries one padding entry beyond ``dp = 1`` so that the upper
    interpolation neighbour always exists; ``dp = 1`` then evaluates to 0
    without a boundary branch.
    """

    def __init__(self, resolution: int = DEFAULT_RESOLUTION) -> None:
        resolution = int(resolution)
        if resolution < 1:
            raise ValueError(f"DP2Cost resolution must be >= 1; got {resolution}")
        self.resolution = resolution
        dp = np.arange(resolution + 1, dtype=np.float64) / resolution
        with np.errstate(over="ignore"):
            table = np.tan(np.arccos(dp))
        self.table = np.concatenate([table, [0.0]])
        self.table.setflags(write=False)

    def __call__(self, dp):
        dp_arr = np.asarray(dp, dtype=np.float64)
        assert np.all((dp_arr >= 0.0) & (dp_arr <= 1.0)), "dot product must lie within [0, 1]"
        position = dp_arr * self.resolution
        lower = np.floor(position).astype(np.intp)
        mu = position - lower
        result = (1.0 - mu) * self.table[lower] + mu * self.table[lower + 1]
        if result.ndim == 0:
            return float(result)
        return result

    def exact(self, dp):
        """Reference evaluation without the lookup table."""
        return np.tan(np.arccos(np.asarray(dp, dtype=np.float64)))
