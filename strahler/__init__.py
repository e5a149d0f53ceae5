from . import dx, order, root
from .core import thin
from .dataclass import (
    LOOP_MODES,
    InvalidInput,
    InvalidRegion,
    OrderStats,
    StrahlerConfig,
    StrahlerResult,
    TopologyReport,
)
from .prune import strahler_order
from .topology import analyze

__all__ = [
    "strahler_order",
    "StrahlerConfig",
    "StrahlerResult",
    "OrderStats",
    "TopologyReport",
    "InvalidInput",
    "InvalidRegion",
    "LOOP_MODES",
    "analyze",
    "thin",
    "dx",
    "order",
    "root",
]
