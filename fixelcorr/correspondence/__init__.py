"""Fixel correspondence: matching algorithms, mapping and projection."""

from __future__ import annotations

from fixelcorr.correspondence.dp2cost import DP2Cost
from fixelcorr.correspondence.fixel import Fixel, FixelDataset, VoxelFixels
from fixelcorr.correspondence.mapping import Mapping
from fixelcorr.correspondence.matcher import Matcher
from fixelcorr.correspondence.projector import METRICS, FillSettings, Projector

__all__ = [
    "DP2Cost",
    "Fixel",
    "FixelDataset",
    "VoxelFixels",
    "Mapping",
    "Matcher",
    "METRICS",
    "FillSettings",
    "Projector",
]
