"""Reusable voxel-skeleton helpers shared across the package."""

from __future__ import annotations

from itertools import product
from typing import List, Sequence, Tuple

import igraph as ig
import numpy as np
from skimage.morphology import skeletonize

from .dataclass import InvalidInput

__all__ = [
    "thin",
    "as_binary",
    "as_spacing",
    "as_reference",
    "voxel_graph",
    "edge_array",
]


def thin(mask: np.ndarray) -> np.ndarray:
    """Collapse a binary mask to a one-voxel-wide skeleton.

    Lee's medial-surface thinning is used for 2-D and 3-D alike; it keeps
    endpoints and only deletes simple points, so thinning an existing skeleton
    is a no-op apart from redundant corner voxels.
    """
    skel = np.asarray(mask, dtype=bool)
    if not skel.any():
        return skel.copy()
    return skeletonize(skel, method="lee").astype(bool)


def as_binary(mask) -> np.ndarray:
    """Return a boolean copy of *mask* or raise :class:`InvalidInput`."""
    arr = np.asarray(mask)
    if arr.ndim not in (2, 3):
        raise InvalidInput(f"expected a 2-D or 3-D mask, got {arr.ndim}-D")
    if arr.dtype == bool:
        return arr.copy()
    values = np.unique(arr)
    if values.size > 2 or (values.size == 2 and values[0] != 0):
        raise InvalidInput(
            f"mask is not binary ({values.size} distinct values); "
            "threshold it before the analysis"
        )
    return arr != 0


def as_spacing(spacing: Sequence[float] | None, ndim: int) -> np.ndarray:
    """Voxel size per axis as a float array (ones when *spacing* is None)."""
    if spacing is None:
        return np.ones(ndim, dtype=np.float64)
    sp = np.asarray(spacing, dtype=np.float64)
    if sp.shape != (ndim,):
        raise InvalidInput(f"spacing must have {ndim} entries, got {sp.size}")
    if np.any(sp <= 0):
        raise InvalidInput("spacing entries must be positive")
    return sp


def as_reference(reference, shape: Tuple[int, ...]) -> np.ndarray:
    """Grayscale reference volume as float64, same shape as the skeleton."""
    ref = np.asarray(reference, dtype=np.float64)
    if ref.shape != tuple(shape):
        raise InvalidInput(
            f"reference volume shape {ref.shape} does not match mask shape {tuple(shape)}"
        )
    return ref


# -----------------------------------------------------------------------------
# voxel adjacency
# -----------------------------------------------------------------------------


def _half_offsets(ndim: int) -> List[Tuple[int, ...]]:
    """Neighbour offsets of full connectivity, one of each +/- pair."""
    zero = (0,) * ndim
    return [o for o in product((-1, 0, 1), repeat=ndim) if o > zero]


def voxel_graph(
    mask: np.ndarray, *, spacing: Sequence[float] | None = None
) -> Tuple[np.ndarray, ig.Graph]:
    """Return ``(coords, graph)`` of the foreground voxels.

    ``coords[i]`` is the array index of vertex *i*.  Edges join voxels that
    touch under full connectivity (8 in 2-D, 26 in 3-D) and carry the
    calibrated step length as ``weight``.
    """
    skel = np.asarray(mask, dtype=bool)
    step = as_spacing(spacing, skel.ndim)

    coords = np.argwhere(skel)
    index = np.full(skel.shape, -1, dtype=np.int64)
    index[tuple(coords.T)] = np.arange(len(coords), dtype=np.int64)
    padded = np.pad(index, 1, mode="constant", constant_values=-1)

    src: List[np.ndarray] = []
    dst: List[np.ndarray] = []
    weights: List[np.ndarray] = []
    for off in _half_offsets(skel.ndim):
        view = padded[tuple(slice(1 + o, 1 + o + n) for o, n in zip(off, skel.shape))]
        hit = (index >= 0) & (view >= 0)
        src.append(index[hit])
        dst.append(view[hit])
        length = float(np.linalg.norm(np.multiply(off, step)))
        weights.append(np.full(int(hit.sum()), length))

    edges = np.column_stack([np.concatenate(src), np.concatenate(dst)])
    g = ig.Graph(n=len(coords), edges=edges.tolist(), directed=False)
    if g.ecount():
        g.es["weight"] = np.concatenate(weights).tolist()
    return coords, g


def edge_array(g: ig.Graph) -> Tuple[np.ndarray, np.ndarray]:
    """Edge list as an ``(E, 2)`` int array plus the matching weight vector."""
    edges = np.asarray(g.get_edgelist(), dtype=np.int64).reshape(-1, 2)
    if g.ecount() == 0:
        return edges, np.zeros(0, dtype=np.float64)
    return edges, np.asarray(g.es["weight"], dtype=np.float64)
