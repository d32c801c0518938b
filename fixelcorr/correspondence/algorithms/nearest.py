from __future__ import annotations

import math
from typing import Any

import numpy as np

from fixelcorr.core.validation import ConfigurationError
from fixelcorr.correspondence.algorithms.base import CorrespondenceAlgorithm
from fixelcorr.correspondence.fixel import Voxel, VoxelFixels


DEFAULT_MAX_ANGLE = 45.0


class Nearest(CorrespondenceAlgorithm):
    """Assign each target fixel its closest source fixel within an angular threshold.

    Every other source fixel in the voxel is ignored, so each target fixel
    receives at most one source fixel. Among equally close source fixels the
    lowest index wins.
    """

    name = "nearest"

    def __init__(self, max_angle: float = DEFAULT_MAX_ANGLE) -> None:
        super().__init__()
        max_angle = float(max_angle)
        if not 0.0 <= max_angle <= 90.0:
            raise ConfigurationError(
                f"Invalid maximum angle for algorithm 'nearest': {max_angle}\n"
                f"Must lie within [0, 90] degrees."
            )
        self.max_angle = max_angle
        self.dp_threshold = math.cos(math.radians(max_angle))

    def describe(self) -> dict[str, Any]:
        return {"algorithm": self.name, "max_angle": self.max_angle}

    def __call__(self, voxel: Voxel, source: VoxelFixels, target: VoxelFixels) -> list[list[int]]:
        result: list[list[int]] = [[] for _ in range(len(target))]
        if not len(source) or not len(target):
            return result
        dp = np.clip(np.abs(target.directions @ source.directions.T), 0.0, 1.0)
        for t in range(len(target)):
            s = int(np.argmax(dp[t]))
            # angle < max_angle  <=>  |dot| > cos(max_angle)
            if dp[t, s] > self.dp_threshold:
                result[t] = [s]
        return result
