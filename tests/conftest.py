"""
Synthetic skeletons shared by the test modules.

All shapes are drawn with straight or diagonal runs only, so they are already
one voxel wide and thinning leaves them untouched.
"""

import numpy as np
import pytest

# Y: junction at (10, 15); two short diagonal arms, one long vertical trunk
Y_JUNCTION = (10, 15)
Y_LEFT = [(10 - k, 15 - k) for k in range(1, 4)]
Y_RIGHT = [(10 - k, 15 + k) for k in range(1, 6)]
Y_TRUNK = [(10 + k, 15) for k in range(1, 13)]

# diamond ring centred at (15, 20) with radius 4, plus a tail on each side
RING_CENTER = (15, 20)
RING_RADIUS = 4
RING_LEFT_TAIL = [(15, 16 - k) for k in range(1, 9)]
RING_RIGHT_TAIL = [(15, 24 + k) for k in range(1, 4)]


def draw(shape, points):
    mask = np.zeros(shape, dtype=bool)
    for p in points:
        mask[p] = True
    return mask


def diamond(center, radius):
    cr, cc = center
    pts = []
    for dr in range(-radius, radius + 1):
        dc = radius - abs(dr)
        pts.append((cr + dr, cc - dc))
        pts.append((cr + dr, cc + dc))
    return sorted(set(pts))


# ---------------------------------------------------------------------
# fixtures
# ---------------------------------------------------------------------
@pytest.fixture
def line_2d():
    return draw((10, 25), [(5, c) for c in range(3, 21)])


@pytest.fixture
def y_2d():
    return draw((30, 30), [Y_JUNCTION, *Y_LEFT, *Y_RIGHT, *Y_TRUNK])


@pytest.fixture
def y_3d():
    vol = np.zeros((5, 30, 30), dtype=bool)
    vol[2] = draw((30, 30), [Y_JUNCTION, *Y_LEFT, *Y_RIGHT, *Y_TRUNK])
    return vol


@pytest.fixture
def double_y():
    """Trunk -> J1 -> (short right arm, left arm -> J2 -> two short twigs)."""
    pts = [(20, 15)]                                   # J1
    pts += [(20 + k, 15) for k in range(1, 11)]        # trunk
    pts += [(20 - k, 15 + k) for k in range(1, 4)]     # right arm
    pts += [(20 - k, 15 - k) for k in range(1, 6)]     # left arm, ends in J2 (15, 10)
    pts += [(15 - k, 10) for k in range(1, 5)]         # twig north of J2
    pts += [(15 + k, 10 - k) for k in range(1, 4)]     # twig south-west of J2
    return draw((35, 30), pts)


@pytest.fixture
def ring():
    return draw((30, 40), diamond(RING_CENTER, RING_RADIUS))


@pytest.fixture
def ring_with_tails():
    pts = diamond(RING_CENTER, RING_RADIUS) + RING_LEFT_TAIL + RING_RIGHT_TAIL
    return draw((30, 40), pts)


@pytest.fixture
def y_parts():
    return {
        "junction": Y_JUNCTION,
        "left": Y_LEFT,
        "right": Y_RIGHT,
        "trunk": Y_TRUNK,
    }


@pytest.fixture
def ring_parts():
    return {
        "center": RING_CENTER,
        "radius": RING_RADIUS,
        "voxels": diamond(RING_CENTER, RING_RADIUS),
        "left_tail": RING_LEFT_TAIL,
        "right_tail": RING_RIGHT_TAIL,
    }
