"""strahler.dataclass – configuration, reports and results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

import numpy as np

__all__ = [
    "LOOP_MODES",
    "INTENSITY_LOOP_MODES",
    "InvalidInput",
    "InvalidRegion",
    "StrahlerConfig",
    "TopologyReport",
    "OrderStats",
    "StrahlerResult",
]

LOOP_MODES = (
    "none",
    "shortest_branch",
    "lowest_intensity_voxel",
    "lowest_intensity_branch",
)
INTENSITY_LOOP_MODES = ("lowest_intensity_voxel", "lowest_intensity_branch")

# termination states of the pruning engine
RUNNING = "running"
CONVERGED = "converged"
LOOP_DETECTED = "loop_detected"
EMPTY_SKELETON = "empty_skeleton"
MAX_ROUNDS_REACHED = "max_rounds_reached"
CANCELLED = "cancelled"


class InvalidInput(ValueError):
    """Input rejected before any pruning round runs."""


class InvalidRegion(InvalidInput):
    """Root region is not a usable area of the image."""


# -----------------------------------------------------------------------------
# configuration
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class StrahlerConfig:
    """
    Immutable options of one Strahler analysis.

    max_rounds   : int            Cap on pruning rounds (>= 1).
    loop_mode    : str            Cycle-resolution strategy, one of ``LOOP_MODES``.
    root_region  : ndarray | None Boolean area whose skeleton part is never pruned.
    infer_root   : bool           Keep the longest terminal branch of every tree
                                  (ignored when ``root_region`` is given).
    spacing      : tuple | None   Voxel size per axis, used for branch lengths.
    unit         : str            Unit of ``spacing``.
    """

    max_rounds: int = 10
    loop_mode: str = "none"
    root_region: np.ndarray | None = field(default=None, compare=False)
    infer_root: bool = True
    spacing: Tuple[float, ...] | None = None
    unit: str = "px"

    def __post_init__(self):
        if (
            isinstance(self.max_rounds, bool)
            or not isinstance(self.max_rounds, (int, np.integer))
            or self.max_rounds < 1
        ):
            raise ValueError(f"max_rounds must be an integer >= 1, got {self.max_rounds!r}")
        if self.loop_mode not in LOOP_MODES:
            raise ValueError(
                f"Unknown loop mode '{self.loop_mode}' (use one of {', '.join(LOOP_MODES)})."
            )

    @property
    def needs_reference(self) -> bool:
        return self.loop_mode in INTENSITY_LOOP_MODES


# -----------------------------------------------------------------------------
# per-pass topology report
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class TopologyReport:
    """
    Outcome of one topology-analyzer pass.

    tree_junctions  : (T,) int64     Junction count of every tree.
    tree_endpoints  : (T,) int64     Endpoint count of every tree.
    junction_voxels : (K, ndim) int  Coordinates of all junction voxels.
    branch_lengths  : (B,) float64   Calibrated length of every branch.
    mask            : ndarray | None Cycle-resolved (measurement) or pruned mask.
    cycles_cut      : int            Number of cycles broken before measuring.
    """

    tree_junctions: np.ndarray
    tree_endpoints: np.ndarray
    junction_voxels: np.ndarray
    branch_lengths: np.ndarray
    mask: np.ndarray | None = None
    cycles_cut: int = 0

    @property
    def n_trees(self) -> int:
        return int(len(self.tree_junctions))

    @property
    def n_junctions(self) -> int:
        return int(self.tree_junctions.sum())

    @property
    def n_endpoints(self) -> int:
        return int(self.tree_endpoints.sum())

    @property
    def n_branches(self) -> int:
        return int(len(self.branch_lengths))


# -----------------------------------------------------------------------------
# results
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class OrderStats:
    """One row of the Strahler table."""

    order: int
    n_branches: int
    ramification_ratio: float
    mean_branch_length: float
    n_voxels: int


@dataclass
class StrahlerResult:
    """
    Everything one analysis produces.

    ``snapshots`` holds one boolean mask per completed round (index 0 is round
    1).  ``iteration_stack`` repeats them as 0/255 slices and appends a final
    slice marking the junction voxels of the first round.
    """

    order_map: np.ndarray
    snapshots: np.ndarray
    iteration_stack: np.ndarray
    junction_voxels: np.ndarray
    junction_trajectory: List[int]
    state: str
    statistics: List[OrderStats]
    warnings: List[str] = field(default_factory=list)
    root_junctions: int = 0
    initial_endpoints: int = 0
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def n_rounds(self) -> int:
        return int(self.snapshots.shape[0])

    @property
    def max_order(self) -> int:
        return int(self.order_map.max()) if self.order_map.size else 0

    def table(self) -> List[Dict[str, Any]]:
        """Statistics as one dict per order, lowest order first."""
        unit = self.meta.get("unit", "px")
        return [
            {
                "order": s.order,
                "n_branches": s.n_branches,
                "ramification_ratio": s.ramification_ratio,
                "mean_branch_length": s.mean_branch_length,
                "n_voxels": s.n_voxels,
                "unit": unit,
            }
            for s in self.statistics
        ]

    def __repr__(self) -> str:
        return (
            f"StrahlerResult(state={self.state!r}, rounds={self.n_rounds}, "
            f"max_order={self.max_order}, shape={self.order_map.shape}, "
            f"warnings={len(self.warnings)})"
        )
