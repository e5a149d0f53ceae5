"""strahler.order – order map and per-order statistics."""

from __future__ import annotations

from typing import List, Sequence

import numpy as np
from scipy import ndimage

from .core import voxel_graph
from .dataclass import OrderStats

__all__ = ["build_order_map", "iteration_stack", "order_statistics"]

MARKER = 255


def _stack(snapshots) -> np.ndarray:
    stack = np.asarray(snapshots, dtype=bool)
    if stack.ndim not in (3, 4) or stack.shape[0] == 0:
        raise ValueError("expected a non-empty stack of 2-D or 3-D snapshots")
    return stack


def _junction_index(junction_voxels, ndim: int):
    if junction_voxels is None:
        return None
    jv = np.asarray(junction_voxels, dtype=np.int64).reshape(-1, ndim)
    return tuple(jv.T) if jv.size else None


def build_order_map(snapshots, junction_voxels=None) -> np.ndarray:
    """Per-voxel count of the snapshots the voxel is present in.

    A voxel pruned after round *k* is present in snapshots 1..k, so the count
    is the last round it survived.  Junction voxels are set to 0.
    """
    stack = _stack(snapshots)
    order_map = np.count_nonzero(stack, axis=0).astype(np.int32)
    idx = _junction_index(junction_voxels, order_map.ndim)
    if idx is not None:
        order_map[idx] = 0
    return order_map


def iteration_stack(snapshots, junction_voxels=None) -> np.ndarray:
    """Snapshots as 0/255 slices plus one slice marking the junction voxels."""
    stack = _stack(snapshots)
    out = np.zeros((stack.shape[0] + 1,) + stack.shape[1:], dtype=np.uint8)
    out[:-1][stack] = MARKER
    idx = _junction_index(junction_voxels, stack.ndim - 1)
    if idx is not None:
        out[-1][idx] = MARKER
    return out


def _path_length(mask: np.ndarray, spacing) -> float:
    _, g = voxel_graph(mask, spacing=spacing)
    return float(np.sum(g.es["weight"])) if g.ecount() else 0.0


def order_statistics(
    order_map: np.ndarray, *, spacing: Sequence[float] | None = None
) -> List[OrderStats]:
    """Branch counts and ramification ratios for orders 1..max.

    ``n_branches`` of order *k* is the number of connected components of
    ``order_map == k``.  ``ramification_ratio[k] = n[k] / n[k + 1]``; it is NaN
    for the highest order and wherever the next order has no branch.
    """
    order_map = np.asarray(order_map)
    max_order = int(order_map.max()) if order_map.size else 0
    structure = ndimage.generate_binary_structure(order_map.ndim, order_map.ndim)

    counts: List[int] = []
    lengths: List[float] = []
    voxels: List[int] = []
    for k in range(1, max_order + 1):
        slab = order_map == k
        _, n = ndimage.label(slab, structure=structure)
        counts.append(int(n))
        voxels.append(int(slab.sum()))
        lengths.append(_path_length(slab, spacing) / n if n else float("nan"))

    stats = []
    for i, n in enumerate(counts):
        nxt = counts[i + 1] if i + 1 < len(counts) else 0
        ratio = n / nxt if nxt else float("nan")
        stats.append(
            OrderStats(
                order=i + 1,
                n_branches=n,
                ramification_ratio=float(ratio),
                mean_branch_length=float(lengths[i]),
                n_voxels=voxels[i],
            )
        )
    return stats
