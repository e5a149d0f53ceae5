"""strahler.topology – branch graph of a voxel skeleton.

A skeleton is collapsed into an undirected multigraph whose vertices are
junction clusters, endpoints, isolated voxels and ring anchors, and whose edges
are the branches (runs of slab voxels) between them.  :func:`analyze` measures
that graph, optionally breaking its cycles first, or strips its terminal
branches.
"""

from __future__ import annotations

from typing import Dict, List, Sequence, Tuple

import igraph as ig
import numpy as np
from scipy.spatial import KDTree

from .core import as_reference, edge_array, voxel_graph
from .dataclass import INTENSITY_LOOP_MODES, LOOP_MODES, TopologyReport

__all__ = [
    "analyze",
    "branch_graph",
    "cyclomatic_number",
]

JUNCTION = "junction"
END = "end"
ISOLATED = "isolated"
RING = "ring"

_EMPTY = np.zeros(0, dtype=np.int64)


# -----------------------------------------------------------------------------
# helpers
# -----------------------------------------------------------------------------


def _group_labels(n: int, edges: np.ndarray, keep: np.ndarray) -> Tuple[np.ndarray, int]:
    """Label connected groups of the *keep* vertices; -1 elsewhere."""
    sel = keep[edges[:, 0]] & keep[edges[:, 1]] if edges.size else np.zeros(0, bool)
    g = ig.Graph(n=n, edges=edges[sel].tolist(), directed=False)
    membership = np.asarray(g.components().membership, dtype=np.int64)
    labels = np.full(n, -1, dtype=np.int64)
    uniq, inverse = np.unique(membership[keep], return_inverse=True)
    labels[keep] = inverse.ravel()
    return labels, int(uniq.size)


def _split_by_label(labels: np.ndarray, n_groups: int) -> List[np.ndarray]:
    """Vertex ids of every group, ordered by group label."""
    if n_groups == 0:
        return []
    idx = np.flatnonzero(labels >= 0)
    order = idx[np.argsort(labels[idx], kind="stable")]
    bounds = np.cumsum(np.bincount(labels[idx], minlength=n_groups))[:-1]
    return np.split(order, bounds)


def _mean_intensity(voxels: np.ndarray, coords: np.ndarray, reference) -> float:
    if reference is None or voxels.size == 0:
        return float("nan")
    return float(reference[tuple(coords[voxels].T)].mean())


def cyclomatic_number(g: ig.Graph) -> int:
    """Number of independent cycles, |E| - |V| + components."""
    return g.ecount() - g.vcount() + len(g.components())


# -----------------------------------------------------------------------------
# graph construction
# -----------------------------------------------------------------------------


def branch_graph(
    mask: np.ndarray,
    *,
    spacing: Sequence[float] | None = None,
    reference: np.ndarray | None = None,
) -> Tuple[ig.Graph, np.ndarray]:
    """Collapse a voxel skeleton into its branch graph.

    Voxels are classified by their number of neighbours: 0 isolated,
    1 endpoint, 2 slab, 3+ junction.  Touching junction voxels form one
    junction node.  Every connected run of slab voxels becomes one edge between
    the nodes it touches; a run touching nothing is a ring and gets an anchor
    vertex with a self-loop.  Endpoints adjacent to a node without slab voxels
    in between yield voxel-less edges.

    Returns
    -------
    graph, coords
        ``graph.vs`` carries ``kind`` and ``voxels``; ``graph.es`` carries
        ``voxels`` (slab voxels), ``length`` (calibrated, including the steps
        onto its end nodes) and ``intensity`` (mean reference value of the
        slab voxels, NaN without reference).  Voxel ids index into *coords*.
    """
    coords, gv = voxel_graph(mask, spacing=spacing)
    n = len(coords)
    edges, weights = edge_array(gv)
    deg = np.asarray(gv.degree(), dtype=np.int64)

    is_junction = deg >= 3
    is_slab = deg == 2
    end_idx = np.flatnonzero(deg == 1)
    iso_idx = np.flatnonzero(deg == 0)

    cluster, n_clusters = _group_labels(n, edges, is_junction)
    run, n_runs = _group_labels(n, edges, is_slab)

    # node id of every non-slab voxel: clusters, then endpoints, then isolated
    node_of = np.full(n, -1, dtype=np.int64)
    node_of[is_junction] = cluster[is_junction]
    node_of[end_idx] = n_clusters + np.arange(end_idx.size)
    node_of[iso_idx] = n_clusters + end_idx.size + np.arange(iso_idx.size)
    kinds = [JUNCTION] * n_clusters + [END] * end_idx.size + [ISOLATED] * iso_idx.size
    node_voxels = _split_by_label(cluster, n_clusters)
    node_voxels += [np.asarray([v], dtype=np.int64) for v in end_idx]
    node_voxels += [np.asarray([v], dtype=np.int64) for v in iso_idx]

    # accumulate run lengths and the nodes each run touches
    ra, rb = run[edges[:, 0]], run[edges[:, 1]]
    na, nb = node_of[edges[:, 0]], node_of[edges[:, 1]]
    run_length = np.zeros(n_runs, dtype=np.float64)
    inner = (ra >= 0) & (rb >= 0)
    np.add.at(run_length, ra[inner], weights[inner])

    a_side = (ra >= 0) & (nb >= 0)
    b_side = (rb >= 0) & (na >= 0)
    touch_run = np.concatenate([ra[a_side], rb[b_side]])
    touch_node = np.concatenate([nb[a_side], na[b_side]])
    np.add.at(run_length, touch_run, np.concatenate([weights[a_side], weights[b_side]]))

    touches: Dict[int, List[int]] = {}
    for r, nd in zip(touch_run.tolist(), touch_node.tolist()):
        touches.setdefault(r, []).append(nd)

    run_voxels = _split_by_label(run, n_runs)
    branch_edges: List[Tuple[int, int]] = []
    branch_voxels: List[np.ndarray] = []
    branch_length: List[float] = []

    for r in range(n_runs):
        ends = touches.get(r, [])
        if not ends:
            # closed ring without any node: anchor it on a fresh vertex
            kinds.append(RING)
            node_voxels.append(_EMPTY)
            u = v = len(kinds) - 1
        elif len(set(ends)) == 1:
            u = v = ends[0]
        else:
            u, v = ends[0], next(e for e in ends if e != ends[0])
        branch_edges.append((u, v))
        branch_voxels.append(run_voxels[r])
        branch_length.append(float(run_length[r]))

    direct = (na >= 0) & (nb >= 0) & (na != nb)
    for u, v, w in zip(na[direct].tolist(), nb[direct].tolist(), weights[direct].tolist()):
        branch_edges.append((u, v))
        branch_voxels.append(_EMPTY)
        branch_length.append(float(w))

    g = ig.Graph(n=len(kinds), edges=branch_edges, directed=False)
    if g.vcount():
        g.vs["kind"] = kinds
        g.vs["voxels"] = node_voxels
    if g.ecount():
        g.es["voxels"] = branch_voxels
        g.es["length"] = branch_length
        g.es["intensity"] = [_mean_intensity(vx, coords, reference) for vx in branch_voxels]
    return g, coords


# -----------------------------------------------------------------------------
# cycle resolution
# -----------------------------------------------------------------------------


def _first_cycle(g: ig.Graph) -> List[int] | None:
    """Edge ids of one cycle of *g*, or None for a forest."""
    tree_eids = g.spanning_tree(return_tree=False)
    in_tree = set(tree_eids)
    for eid in range(g.ecount()):
        if eid in in_tree:
            continue
        u, v = g.es[eid].tuple
        if u == v:
            return [eid]
        tree = ig.Graph(
            n=g.vcount(), edges=[g.es[i].tuple for i in tree_eids], directed=False
        )
        path = tree.get_shortest_paths(u, to=v, output="epath")[0]
        return [eid] + [int(tree_eids[i]) for i in path]
    return None


def _central_voxel(voxels: np.ndarray, coords: np.ndarray) -> int:
    """Voxel halfway along a slab run."""
    if voxels.size <= 2:
        return int(voxels[0])
    pts = coords[voxels]
    pairs = KDTree(pts).query_pairs(r=1.0, p=np.inf, output_type="ndarray")
    chain = ig.Graph(n=len(pts), edges=pairs.tolist(), directed=False)
    deg = chain.degree()
    start = deg.index(1) if 1 in deg else 0
    order = chain.bfs(start)[0]
    return int(voxels[order[len(order) // 2]])


def _darkest_voxel(voxels: np.ndarray, coords: np.ndarray, reference) -> int:
    values = reference[tuple(coords[voxels].T)]
    return int(voxels[int(np.argmin(values))])


def _cut_voxel(
    g: ig.Graph, cycle: List[int], coords: np.ndarray, loop_mode: str, reference
) -> int | None:
    """Pick the slab voxel whose removal breaks *cycle*."""
    cuttable = [eid for eid in cycle if g.es[eid]["voxels"].size]
    if not cuttable:
        return None
    if loop_mode == "shortest_branch":
        eid = min(cuttable, key=lambda i: g.es[i]["length"])
        return _central_voxel(g.es[eid]["voxels"], coords)
    if loop_mode == "lowest_intensity_branch":
        eid = min(cuttable, key=lambda i: g.es[i]["intensity"])
        return _darkest_voxel(g.es[eid]["voxels"], coords, reference)
    voxels = np.concatenate([g.es[i]["voxels"] for i in cuttable])
    return _darkest_voxel(voxels, coords, reference)


def _resolve_cycles(
    skel: np.ndarray,
    g: ig.Graph,
    coords: np.ndarray,
    *,
    loop_mode: str,
    reference,
    spacing,
) -> Tuple[np.ndarray, ig.Graph, np.ndarray, int]:
    """Break every cycle by deleting one slab voxel per cycle."""
    out = skel.copy()
    n_cut = 0
    # deleting one slab voxel of a cycle lowers the cyclomatic number by one
    for _ in range(cyclomatic_number(g)):
        cycle = _first_cycle(g)
        if cycle is None:
            break
        voxel = _cut_voxel(g, cycle, coords, loop_mode, reference)
        if voxel is None:
            break
        out[tuple(coords[voxel])] = False
        n_cut += 1
        g, coords = branch_graph(out, spacing=spacing, reference=reference)
    return out, g, coords, n_cut


# -----------------------------------------------------------------------------
# terminal-branch pruning
# -----------------------------------------------------------------------------


def _prune_terminal(
    skel: np.ndarray, g: ig.Graph, coords: np.ndarray, *, keep_longest: bool
) -> np.ndarray:
    """Remove every branch that ends in an endpoint.

    Junction voxels always stay.  With *keep_longest* each tree keeps its
    longest terminal branch (and isolated voxels survive).
    """
    if g.vcount() == 0:
        return skel.copy()
    kinds = g.vs["kind"]
    terminal = [
        e.index for e in g.es if kinds[e.source] == END or kinds[e.target] == END
    ]

    keep = set()
    if keep_longest:
        membership = g.components().membership
        best: Dict[int, int] = {}
        for eid in terminal:
            tree = membership[g.es[eid].source]
            if tree not in best or g.es[eid]["length"] > g.es[best[tree]]["length"]:
                best[tree] = eid
        keep = set(best.values())

    drop: List[np.ndarray] = []
    for eid in terminal:
        if eid in keep:
            continue
        e = g.es[eid]
        drop.append(e["voxels"])
        for vid in {e.source, e.target}:
            if kinds[vid] == END:
                drop.append(g.vs[vid]["voxels"])
    if not keep_longest:
        drop.extend(v["voxels"] for v in g.vs.select(kind=ISOLATED))

    out = skel.copy()
    if drop:
        idx = np.concatenate(drop)
        out[tuple(coords[idx].T)] = False
    return out


# -----------------------------------------------------------------------------
# public API
# -----------------------------------------------------------------------------


def _report(g: ig.Graph, coords: np.ndarray, **extra) -> TopologyReport:
    membership = np.asarray(g.components().membership, dtype=np.int64)
    n_trees = int(membership.max()) + 1 if membership.size else 0
    kinds = np.asarray(g.vs["kind"] if g.vcount() else [], dtype=object)

    is_junction = kinds == JUNCTION
    is_end = (kinds == END) | (kinds == ISOLATED)
    tree_junctions = np.bincount(membership[is_junction], minlength=n_trees)
    tree_endpoints = np.bincount(membership[is_end], minlength=n_trees)

    j_vox = [g.vs[int(i)]["voxels"] for i in np.flatnonzero(is_junction)]
    j_idx = np.sort(np.concatenate(j_vox)) if j_vox else _EMPTY
    lengths = np.asarray(g.es["length"], dtype=np.float64) if g.ecount() else np.zeros(0)

    return TopologyReport(
        tree_junctions=tree_junctions.astype(np.int64),
        tree_endpoints=tree_endpoints.astype(np.int64),
        junction_voxels=coords[j_idx].reshape(-1, coords.shape[1]),
        branch_lengths=lengths,
        **extra,
    )


def analyze(
    mask: np.ndarray,
    *,
    loop_mode: str = "none",
    reference: np.ndarray | None = None,
    prune_ends: bool = False,
    keep_longest: bool = False,
    spacing: Sequence[float] | None = None,
) -> TopologyReport:
    """Measure a skeleton or strip its terminal branches.

    Parameters
    ----------
    mask
        Binary 2-D or 3-D skeleton.
    loop_mode
        ``"none"`` leaves cycles in place.  Any other mode from
        :data:`~strahler.dataclass.LOOP_MODES` first breaks every cycle; the
        report then describes the cycle-free skeleton, which is returned as
        ``report.mask``.  Ignored when ``prune_ends`` is set.
    reference
        Grayscale volume of the mask's shape; required by the intensity modes.
    prune_ends
        Return the skeleton without its terminal branches as ``report.mask``.
        The counts describe the skeleton before pruning.
    keep_longest
        While pruning, spare the longest terminal branch of every tree.
    spacing
        Voxel size per axis for branch lengths.
    """
    if loop_mode not in LOOP_MODES:
        raise ValueError(f"Unknown loop mode '{loop_mode}'.")
    skel = np.asarray(mask, dtype=bool)
    ref = None if reference is None else as_reference(reference, skel.shape)
    if loop_mode in INTENSITY_LOOP_MODES and ref is None and not prune_ends:
        raise ValueError(f"loop mode '{loop_mode}' needs a reference volume")

    g, coords = branch_graph(skel, spacing=spacing, reference=ref)

    if prune_ends:
        pruned = _prune_terminal(skel, g, coords, keep_longest=keep_longest)
        return _report(g, coords, mask=pruned)

    if loop_mode != "none" and cyclomatic_number(g) > 0:
        out, g, coords, n_cut = _resolve_cycles(
            skel, g, coords, loop_mode=loop_mode, reference=ref, spacing=spacing
        )
        return _report(g, coords, mask=out, cycles_cut=n_cut)

    return _report(g, coords)
