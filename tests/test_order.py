import copy

import numpy as np
import pytest

from strahler.order import build_order_map, iteration_stack, order_statistics


def _y_snapshots(y_2d, y_parts):
    second = np.zeros_like(y_2d)
    for p in [y_parts["junction"], *y_parts["trunk"]]:
        second[p] = True
    return [y_2d.copy(), second]


# ---------------------------------------------------------------------
# order map
# ---------------------------------------------------------------------
def test_order_is_last_round_survived(y_2d, y_parts):
    om = build_order_map(_y_snapshots(y_2d, y_parts))
    assert all(om[p] == 1 for p in y_parts["left"] + y_parts["right"])
    assert all(om[p] == 2 for p in y_parts["trunk"])
    assert om[y_parts["junction"]] == 2
    assert om[0, 0] == 0


def test_junction_voxels_are_zeroed(y_2d, y_parts):
    om = build_order_map(_y_snapshots(y_2d, y_parts), [y_parts["junction"]])
    assert om[y_parts["junction"]] == 0


def test_build_is_pure(y_2d, y_parts):
    snaps = _y_snapshots(y_2d, y_parts)
    kept = copy.deepcopy(snaps)
    a = build_order_map(snaps, [y_parts["junction"]])
    b = build_order_map(snaps, [y_parts["junction"]])
    assert np.array_equal(a, b)
    for s, k in zip(snaps, kept):
        assert np.array_equal(s, k)


def test_empty_junction_set_is_allowed(y_2d, y_parts):
    om = build_order_map(_y_snapshots(y_2d, y_parts), np.zeros((0, 2), int))
    assert om[y_parts["junction"]] == 2


def test_empty_stack_raises():
    with pytest.raises(ValueError):
        build_order_map([])


def test_iteration_stack_appends_junction_marker(y_2d, y_parts):
    stack = iteration_stack(_y_snapshots(y_2d, y_parts), [y_parts["junction"]])
    assert stack.shape == (3, *y_2d.shape)
    assert stack.dtype == np.uint8
    assert set(np.unique(stack[0]).tolist()) == {0, 255}
    assert np.array_equal(stack[0] == 255, y_2d)
    assert np.argwhere(stack[-1]).tolist() == [list(y_parts["junction"])]


# ---------------------------------------------------------------------
# statistics
# ---------------------------------------------------------------------
def test_statistics_of_y(y_2d, y_parts):
    om = build_order_map(_y_snapshots(y_2d, y_parts), [y_parts["junction"]])
    stats = order_statistics(om)
    assert [s.order for s in stats] == [1, 2]
    assert [s.n_branches for s in stats] == [2, 1]
    assert stats[0].ramification_ratio == pytest.approx(2.0)
    assert np.isnan(stats[1].ramification_ratio)
    assert stats[0].n_voxels == 8
    assert stats[1].n_voxels == 12
    assert stats[0].mean_branch_length == pytest.approx(3 * np.sqrt(2))
    assert stats[1].mean_branch_length == pytest.approx(11.0)


def test_statistics_respect_spacing():
    om = np.zeros((3, 10), np.int32)
    om[1, 1:6] = 1
    stats = order_statistics(om, spacing=(1.0, 2.0))
    assert stats[0].mean_branch_length == pytest.approx(8.0)


def test_statistics_with_a_missing_order():
    om = np.zeros((5, 20), np.int32)
    om[1, 0:3] = 1
    om[1, 5:8] = 1
    om[3, 0:10] = 3
    stats = order_statistics(om)
    assert [s.n_branches for s in stats] == [2, 0, 1]
    assert np.isnan(stats[0].ramification_ratio)  # nothing of order 2
    assert stats[1].ramification_ratio == 0.0
    assert np.isnan(stats[1].mean_branch_length)
    assert np.isnan(stats[2].ramification_ratio)


def test_statistics_of_empty_map():
    assert order_statistics(np.zeros((4, 4), np.int32)) == []


def test_statistics_use_full_connectivity():
    om = np.zeros((5, 5), np.int32)
    om[0, 0] = om[1, 1] = om[2, 2] = 1  # diagonal run is one branch
    stats = order_statistics(om)
    assert stats[0].n_branches == 1
    assert stats[0].mean_branch_length == pytest.approx(2 * np.sqrt(2))


def test_statistics_on_3d_map():
    om = np.zeros((3, 4, 10), np.int32)
    om[1, 1, 0:4] = 1
    om[1, 1, 5:9] = 2
    om[0, 3, 0:2] = 1
    stats = order_statistics(om)
    assert [s.n_branches for s in stats] == [2, 1]
    assert stats[0].ramification_ratio == pytest.approx(2.0)
