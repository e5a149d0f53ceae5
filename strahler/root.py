"""strahler.root – protect a user-chosen root region from pruning."""

from __future__ import annotations

from typing import Sequence

import numpy as np
from scipy import ndimage

from .dataclass import InvalidRegion
from .topology import analyze

__all__ = ["isolate", "count_intrinsic_junctions", "restore"]


def _in_plane_cross(ndim: int) -> np.ndarray:
    """4-neighbourhood in the last two axes (per slice for 3-D)."""
    cross = ndimage.generate_binary_structure(2, 1)
    return cross if ndim == 2 else cross[None, :, :]


def _is_area(region: np.ndarray) -> bool:
    """True when at least one voxel has all its in-plane 4-neighbours inside."""
    eroded = ndimage.binary_erosion(
        region, structure=_in_plane_cross(region.ndim), border_value=1
    )
    return bool(eroded.any())


def isolate(mask: np.ndarray, region: np.ndarray) -> np.ndarray:
    """Return the part of the skeleton inside *region*.

    Raises
    ------
    InvalidRegion
        If *region* has the wrong shape, is not an area (empty, a line or a
        point), or covers the whole image so that nothing lies outside it.
    """
    skel = np.asarray(mask, dtype=bool)
    area = np.asarray(region, dtype=bool)
    if area.shape != skel.shape:
        raise InvalidRegion(
            f"root region shape {area.shape} does not match mask shape {skel.shape}"
        )
    if area.all():
        raise InvalidRegion(
            "root region covers the whole image; nothing outside it can be cleared"
        )
    if not _is_area(area):
        raise InvalidRegion("root region must be an area, not a line or a point")
    return skel & area


def count_intrinsic_junctions(
    root: np.ndarray, *, spacing: Sequence[float] | None = None
) -> int:
    """Junctions of the isolated root, summed over all of its trees."""
    return analyze(root, spacing=spacing).n_junctions


def restore(working: np.ndarray, root: np.ndarray) -> np.ndarray:
    """Voxel-wise OR of the root back into the working mask."""
    return np.logical_or(working, root)
