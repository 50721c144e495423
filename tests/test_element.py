import numpy as np
import pytest

from heattopo.core.element import (
    compute_element_matrix,
    gauss_points_weights,
    reference_element_coordinates,
    shape_function_derivatives,
)


def test_unit_square_matches_closed_form():
    ke = compute_element_matrix(reference_element_coordinates([1.0, 1.0]))
    expected = np.array([
        [ 4, -1, -2, -1],
        [-1,  4, -1, -2],
        [-2, -1,  4, -1],
        [-1, -2, -1,  4],
    ]) / 6.0
    np.testing.assert_allclose(ke, expected, atol=1e-14)


def test_unit_cube_diagonal_and_row_sums():
    ke = compute_element_matrix(reference_element_coordinates([1.0, 1.0, 1.0]))
    assert ke.shape == (8, 8)
    np.testing.assert_allclose(np.diag(ke), np.full(8, 1.0 / 3.0), atol=1e-14)
    np.testing.assert_allclose(ke.sum(axis=1), 0.0, atol=1e-14)


@pytest.mark.parametrize("spacing", [[1.0, 1.0], [2.0, 0.5], [0.3, 0.7, 1.1], [1.0, 1.0, 1.0]])
@pytest.mark.parametrize("reduced", [False, True])
def test_element_matrix_symmetric_with_constant_null_space(spacing, reduced):
    ke = compute_element_matrix(reference_element_coordinates(spacing), reduced_integration=reduced)
    np.testing.assert_allclose(ke, ke.T, atol=1e-13)
    np.testing.assert_allclose(ke @ np.ones(ke.shape[0]), 0.0, atol=1e-13)


def test_distorted_quad_is_symmetric_and_positive_on_gradients():
    coords = np.array([[0.0, 0.0], [1.2, 0.1], [1.0, 0.9], [-0.1, 1.1]])
    ke = compute_element_matrix(coords)
    np.testing.assert_allclose(ke, ke.T, atol=1e-13)
    # linear temperature field has positive energy
    t = coords[:, 0]
    assert t @ ke @ t > 0.0


def test_stretched_element_scales_conductances():
    # for an axis-aligned dx x dy cell the x-coupling scales with dy/dx
    ke_wide = compute_element_matrix(reference_element_coordinates([2.0, 1.0]))
    t = np.array([0.0, 1.0, 1.0, 0.0])  # unit jump in x
    # flux energy of a unit jump over width 2 and height 1: (1/2)^2 * area 2 = 0.5
    assert t @ ke_wide @ t == pytest.approx(0.5)


def test_degenerate_element_raises():
    collinear = np.array([[0.0, 0.0], [1.0, 0.0], [2.0, 0.0], [3.0, 0.0]])
    with pytest.raises(ValueError, match="Degenerate element"):
        compute_element_matrix(collinear)


def test_clockwise_element_raises():
    clockwise = np.array([[0.0, 0.0], [0.0, 1.0], [1.0, 1.0], [1.0, 0.0]])
    with pytest.raises(ValueError, match="det\\(J\\)"):
        compute_element_matrix(clockwise)


def test_bad_coordinate_shape_raises():
    with pytest.raises(ValueError):
        compute_element_matrix(np.zeros((3, 2)))


def test_gauss_rule_support():
    pts, wts = gauss_points_weights(2)
    assert wts.sum() == pytest.approx(2.0)
    assert pts[1] == pytest.approx(1.0 / np.sqrt(3.0))
    with pytest.raises(ValueError):
        gauss_points_weights(3)


def test_shape_function_derivatives_sum_to_zero():
    dN = shape_function_derivatives([0.2, -0.4, 0.7])
    assert dN.shape == (3, 8)
    np.testing.assert_allclose(dN.sum(axis=1), 0.0, atol=1e-15)
