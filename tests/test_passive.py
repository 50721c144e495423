import numpy as np
import pytest

from heattopo.core.passive import PassiveMasks


def test_empty_masks_make_everything_designable():
    masks = PassiveMasks.empty(6)
    assert masks.n_elements == 6
    assert masks.designable.all()


def test_designable_excludes_every_flag():
    masks = PassiveMasks([1, 0, 0, 0], [0, 1, 0, 0], [0, 0, 1, 0])
    np.testing.assert_array_equal(masks.designable, [False, False, False, True])


def test_overlapping_masks_are_rejected():
    with pytest.raises(ValueError, match="overlap"):
        PassiveMasks([1, 0, 0], [1, 0, 0], [0, 0, 0])
    with pytest.raises(ValueError, match="element 2"):
        PassiveMasks([0, 0, 0], [0, 0, 1], [0, 0, 1])


def test_non_binary_flags_are_rejected():
    with pytest.raises(ValueError, match="0/1"):
        PassiveMasks([0, 0.5, 0], [0, 0, 0], [0, 0, 0])


def test_length_mismatch_is_rejected():
    with pytest.raises(ValueError):
        PassiveMasks([0, 0], [0, 0, 0], [0, 0, 0])
    with pytest.raises(ValueError):
        PassiveMasks.empty(4).check_size(5)
