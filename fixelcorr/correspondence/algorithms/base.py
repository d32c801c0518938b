from __future__ import annotations

import abc
import os
from typing import Any, Optional

import numpy as np

from fixelcorr.core import io
from fixelcorr.correspondence.fixel import Voxel, VoxelFixels


class CorrespondenceAlgorithm(abc.ABC):
    """Per-voxel fixel correspondence.

    Calling an algorithm with the source and target fixels of one voxel
    returns, for every target fixel, the list of (voxel-local) source fixel
    indices assigned to it. The result depends only on the two fixel sets;
    the only side effect is writing the voxel's entry of the optional cost
    volume, which each voxel owns exclusively.
    """

    name: str = ""
    records_cost: bool = False

    def __init__(self) -> None:
        self.cost_volume: Optional[np.ndarray] = None

    def allocate_cost_volume(self, shape: tuple[int, int, int]) -> None:
        if not self.records_cost:
            raise NotImplementedError(f"Algorithm '{self.name}' does not compute a cost function")
        self.cost_volume = np.zeros(tuple(int(x) for x in shape), dtype=np.float32)

    def _record_cost(self, voxel: Voxel, cost: float) -> None:
        if self.cost_volume is not None:
            self.cost_volume[voxel] = cost

    def export_cost_volume(self, path: str | os.PathLike, affine: Any) -> Optional[str]:
        if self.cost_volume is None:
            return None
        return io.save_volume(self.cost_volume, path, affine)

    def describe(self) -> dict[str, Any]:
        return {"algorithm": self.name}

    @abc.abstractmethod
    def __call__(self, voxel: Voxel, source: VoxelFixels, target: VoxelFixels) -> list[list[int]]:
        raise NotImplementedError
