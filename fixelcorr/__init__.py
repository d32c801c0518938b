"""fixelcorr public package.

Fixel-to-fixel correspondence matching and projection of fixel-wise
quantitative data between two fixel datasets defined on a shared voxel grid.
"""

from __future__ import annotations

from ._version import __version__

__all__ = ["__version__"]
