"""strahler.prune – iterative terminal-branch pruning and Strahler ordering."""

import time
from contextlib import contextmanager
from importlib import metadata as _metadata
from typing import Callable, List

import numpy as np

from . import dx, root
from .core import as_binary, as_reference, as_spacing, thin
from .dataclass import (
    CANCELLED,
    CONVERGED,
    EMPTY_SKELETON,
    LOOP_DETECTED,
    MAX_ROUNDS_REACHED,
    RUNNING,
    InvalidInput,
    StrahlerConfig,
    StrahlerResult,
)
from .order import build_order_map, iteration_stack, order_statistics
from .topology import analyze

_STRAHLER_VERSION = _metadata.version("strahler")

__all__ = ["strahler_order"]


@contextmanager
def _stage(label: str, *, verbose: bool):
    """Uniform verbose/timing helper; yields a ``log(msg)`` callback."""
    if not verbose:
        yield lambda *_: None
        return

    PAD = 39  # keeps the ASCII arrow alignment consistent
    prefix = "[strahler]"
    print(f"{prefix} {label:<{PAD}} …", end="", flush=True)
    t0 = time.perf_counter()
    _msgs: list[str] = []

    def log(msg: str) -> None:
        _msgs.append(str(msg))

    try:
        yield log
    finally:
        dt = time.perf_counter() - t0
        print(f" {dt:.2f} s")
        for msg in _msgs:
            print(f"      └─ {msg}")


def _check_inputs(skel: np.ndarray, config: StrahlerConfig, reference):
    """Boundary validation of everything that depends on the mask's shape."""
    as_spacing(config.spacing, skel.ndim)
    if reference is not None:
        reference = as_reference(reference, skel.shape)
    if config.needs_reference and reference is None:
        raise InvalidInput(
            f"loop mode '{config.loop_mode}' needs a grayscale reference volume"
        )
    return reference


def strahler_order(
    mask: np.ndarray,
    config: StrahlerConfig | None = None,
    *,
    reference: np.ndarray | None = None,
    should_stop: Callable[[], bool] | None = None,
    verbose: bool = False,
) -> StrahlerResult:
    """Strahler order of every voxel of a tree-like skeleton.

    Each round re-thins the working mask, records it as a snapshot, measures
    its junctions and strips its terminal branches.  The loop ends when no
    net junction is left (``"converged"``), when the net junction count stops
    changing (``"loop_detected"``, an unresolved cycle), when the skeleton is
    empty (``"empty_skeleton"``), after ``config.max_rounds`` rounds
    (``"max_rounds_reached"``) or when *should_stop* returns True at a round
    boundary (``"cancelled"``).  None of these raise; the snapshots gathered so
    far are always turned into an order map and a warning is added for every
    state other than ``"converged"``.

    Parameters
    ----------
    mask
        Binary 2-D or 3-D image of the structure.  It is thinned before the
        root region is applied, so a skeleton is not strictly required.
    config
        :class:`~strahler.dataclass.StrahlerConfig`; defaults apply when None.
    reference
        Grayscale volume for the intensity-guided loop modes.
    should_stop
        Polled before every round after the first; True aborts cleanly.
    verbose
        Print progress messages.

    Returns
    -------
    StrahlerResult

    Raises
    ------
    InvalidInput
        Non-binary mask, mismatched reference/spacing, intensity loop mode
        without reference.
    InvalidRegion
        Unusable ``config.root_region``.
    """
    config = config or StrahlerConfig()
    skel = as_binary(mask)
    reference = _check_inputs(skel, config, reference)
    # root isolation and junction counts must see the same skeleton as round 1
    skel = thin(skel)
    warnings: List[str] = []

    if verbose:
        _global_start = time.perf_counter()
        print(
            f"[strahler] starting analysis ({skel.ndim}-D {skel.shape}, "
            f"{int(skel.sum()):,} skeleton voxels, max {config.max_rounds} rounds)"
        )

    # root protection ---------------------------------------------------
    root_mask = None
    root_junctions = 0
    if config.root_region is not None:
        with _stage("↳  isolate protected root", verbose=verbose) as log:
            root_mask = root.isolate(skel, config.root_region)
            if not root_mask.any():
                warnings.append(
                    "root region contains no skeleton branches; "
                    "pruning proceeds without root protection"
                )
                root_mask = None
            else:
                root_junctions = root.count_intrinsic_junctions(
                    root_mask, spacing=config.spacing
                )
                log(f"{int(root_mask.sum()):,} root voxels, {root_junctions} junctions")
                if root_junctions:
                    warnings.append(
                        f"protected root contains {root_junctions} junction(s); "
                        "orders near the root are distorted"
                    )
    keep_longest = config.infer_root and root_mask is None

    working = skel
    if config.loop_mode == "none":
        n_loops = dx.cyclomatic_number(skel)
        if n_loops:
            warnings.append(
                f"skeleton contains {n_loops} loop(s) and loop mode is 'none'; "
                "pruning will stop at the first unresolved loop"
            )

    # pruning rounds ----------------------------------------------------
    snapshots: List[np.ndarray] = []
    trajectory: List[int] = []
    junction_voxels = np.zeros((0, skel.ndim), dtype=np.int64)
    initial_endpoints = 0
    previous = None
    state = RUNNING

    for r in range(1, config.max_rounds + 1):
        if r > 1 and should_stop is not None and should_stop():
            state = CANCELLED
            warnings.append(f"analysis cancelled before round {r}")
            break

        with _stage(f"↳  round {r}", verbose=verbose) as log:
            working = thin(working)
            snapshots.append(working.copy())

            report = analyze(
                working,
                loop_mode=config.loop_mode,
                reference=reference,
                spacing=config.spacing,
            )
            if r == 1:
                junction_voxels = report.junction_voxels
                initial_endpoints = report.n_endpoints
            if report.n_trees == 0:
                state = EMPTY_SKELETON
                warnings.append(f"skeleton is empty at round {r}; no branches left")
                break
            if report.mask is not None:
                working = report.mask
                log(f"{report.cycles_cut} loop(s) cut ({config.loop_mode})")

            net = report.n_junctions - root_junctions
            trajectory.append(net)
            log(f"{report.n_junctions} junctions (net {net}), {report.n_trees} tree(s)")

            if previous is not None and net == previous:
                state = LOOP_DETECTED
                warnings.append(
                    f"net junction count stuck at {net} in round {r}; "
                    "the skeleton contains a loop that pruning cannot resolve"
                )
                break

            before = int(working.sum())
            working = analyze(
                working,
                prune_ends=True,
                keep_longest=keep_longest,
                spacing=config.spacing,
            ).mask
            if root_mask is not None:
                working = root.restore(working, root_mask)
            log(f"{before - int(working.sum()):,} voxels pruned")

            if net <= 0:
                state = CONVERGED
                break
            if r >= config.max_rounds:
                state = MAX_ROUNDS_REACHED
                warnings.append(
                    f"stopped after {r} rounds with {net} junction(s) left; "
                    "increase max_rounds for the full order range"
                )
                break
            previous = net

    # order map & statistics --------------------------------------------
    with _stage("↳  build order map", verbose=verbose) as log:
        order_map = build_order_map(snapshots, junction_voxels)
        stack = iteration_stack(snapshots, junction_voxels)
        log(f"max order {int(order_map.max())}")

    with _stage("↳  per-order statistics", verbose=verbose):
        statistics = order_statistics(order_map, spacing=config.spacing)

    if verbose:
        total = time.perf_counter() - _global_start
        print(f"{'TOTAL':<49}… {total:.2f} s ({len(snapshots)} rounds, {state})")
        for msg in warnings:
            print(f"      └─ warning: {msg}")

    return StrahlerResult(
        order_map=order_map,
        snapshots=np.asarray(snapshots, dtype=bool),
        iteration_stack=stack,
        junction_voxels=junction_voxels,
        junction_trajectory=trajectory,
        state=state,
        statistics=statistics,
        warnings=warnings,
        root_junctions=root_junctions,
        initial_endpoints=initial_endpoints,
        meta={
            "strahler_version": _STRAHLER_VERSION,
            "analyzed_at": time.strftime("%Y-%m-%dT%H:%M:%S"),
            "unit": config.unit,
            "loop_mode": config.loop_mode,
            "max_rounds": config.max_rounds,
        },
    )
