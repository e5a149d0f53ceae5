"""strahler.dx – voxel-level diagnostics for a single skeleton mask
"""
import numpy as np
from scipy import ndimage

from .core import thin, voxel_graph
from .topology import _first_cycle, branch_graph
from .topology import cyclomatic_number as _cyclomatic

__all__ = [
    "degree_map",
    "endpoints",
    "junction_voxels",
    "n_trees",
    "cyclomatic_number",
    "acyclicity",
    "is_thin",
]

# -----------------------------------------------------------------------------
# 1. degree-related helpers
# -----------------------------------------------------------------------------


def degree_map(mask: np.ndarray) -> np.ndarray:
    """Number of foreground neighbours of every foreground voxel (0 elsewhere).

    Neighbourhood is full connectivity: 8 in 2-D, 26 in 3-D.
    """
    skel = np.asarray(mask, dtype=bool)
    coords, g = voxel_graph(skel)
    out = np.zeros(skel.shape, dtype=np.int64)
    out[tuple(coords.T)] = g.degree()
    return out


def _voxels_where(mask: np.ndarray, select) -> np.ndarray:
    skel = np.asarray(mask, dtype=bool)
    deg = degree_map(skel)
    return np.argwhere(skel & select(deg))


def endpoints(mask: np.ndarray) -> np.ndarray:
    """Coordinates of voxels with exactly one neighbour."""
    return _voxels_where(mask, lambda d: d == 1)


def junction_voxels(mask: np.ndarray) -> np.ndarray:
    """Coordinates of voxels with three or more neighbours."""
    return _voxels_where(mask, lambda d: d >= 3)


# -----------------------------------------------------------------------------
# 2. connectivity & cycles
# -----------------------------------------------------------------------------


def n_trees(mask: np.ndarray) -> int:
    """Number of connected skeletons (full connectivity)."""
    skel = np.asarray(mask, dtype=bool)
    structure = ndimage.generate_binary_structure(skel.ndim, skel.ndim)
    return int(ndimage.label(skel, structure=structure)[1])


def cyclomatic_number(mask: np.ndarray) -> int:
    """Independent cycles of the branch graph (0 for a forest)."""
    g, _ = branch_graph(mask)
    return _cyclomatic(g)


def acyclicity(mask: np.ndarray, *, return_cycle: bool = False):
    """Check that the skeleton is a *forest* (|E| = |V| − components).

    If a cycle exists and ``return_cycle`` is *True*, the coordinates of the
    slab voxels along one cycle are returned instead.
    """
    g, coords = branch_graph(mask)
    acyclic = _cyclomatic(g) == 0
    if acyclic or not return_cycle:
        return acyclic
    cycle = _first_cycle(g)
    voxels = np.concatenate([g.es[eid]["voxels"] for eid in cycle])
    return coords[voxels]


def is_thin(mask: np.ndarray) -> bool:
    """True when thinning leaves the mask unchanged."""
    skel = np.asarray(mask, dtype=bool)
    return bool(np.array_equal(thin(skel), skel))
