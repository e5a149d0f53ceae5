import numpy as np
import pytest

from strahler import root
from strahler.dataclass import InvalidInput, InvalidRegion


def _box(shape, rows, cols):
    region = np.zeros(shape, bool)
    region[rows[0] : rows[1], cols[0] : cols[1]] = True
    return region


def test_isolate_keeps_only_voxels_inside_the_region(y_2d, y_parts):
    region = _box(y_2d.shape, (18, 30), (0, 30))
    rmask = root.isolate(y_2d, region)
    expected = {p for p in y_parts["trunk"] if p[0] >= 18}
    assert set(map(tuple, np.argwhere(rmask))) == expected
    assert not (rmask & ~y_2d).any()  # root ⊆ skeleton


def test_isolate_rejects_whole_image(y_2d):
    with pytest.raises(InvalidRegion):
        root.isolate(y_2d, np.ones_like(y_2d))


def test_isolate_rejects_empty_region(y_2d):
    with pytest.raises(InvalidRegion):
        root.isolate(y_2d, np.zeros_like(y_2d))


def test_isolate_rejects_line_region(y_2d):
    region = np.zeros_like(y_2d)
    region[20, :] = True
    with pytest.raises(InvalidRegion):
        root.isolate(y_2d, region)


def test_isolate_rejects_shape_mismatch(y_2d):
    with pytest.raises(InvalidRegion):
        root.isolate(y_2d, np.ones((5, 5), bool))


def test_invalid_region_is_invalid_input():
    assert issubclass(InvalidRegion, InvalidInput)
    assert issubclass(InvalidRegion, ValueError)


def test_isolate_3d_region_per_slice(y_3d):
    region = np.zeros_like(y_3d)
    region[2, 18:, :] = True
    rmask = root.isolate(y_3d, region)
    assert rmask.sum() == 5


def test_intrinsic_junctions_of_plain_root(y_2d):
    rmask = root.isolate(y_2d, _box(y_2d.shape, (18, 30), (0, 30)))
    assert root.count_intrinsic_junctions(rmask) == 0


def test_intrinsic_junctions_of_root_around_the_junction(y_2d):
    rmask = root.isolate(y_2d, _box(y_2d.shape, (6, 14), (10, 22)))
    assert root.count_intrinsic_junctions(rmask) == 1


def test_restore_is_or_and_idempotent(y_2d):
    rmask = root.isolate(y_2d, _box(y_2d.shape, (18, 30), (0, 30)))
    working = np.zeros_like(y_2d)
    working[10, 15] = True
    once = root.restore(working, rmask)
    twice = root.restore(once, rmask)
    assert np.array_equal(once, working | rmask)
    assert np.array_equal(once, twice)
