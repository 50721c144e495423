"""
Isoparametric Q1 element conductivity matrices.

This module computes the constant element conductivity matrix of the
structured grid, for 4-node quadrilaterals (2D) and 8-node hexahedra (3D),
with a single dimension-generic quadrature loop.

The thermal conductivity is left out (unit isotropic tensor): the conductivity
contrast comes entirely from the SIMP interpolation applied during assembly.
"""

from __future__ import annotations
from itertools import product
from typing import Sequence, Tuple

import numpy as np

# Corner signs of the reference cell [-1, 1]^d in element node order:
# counter-clockwise in the xy-plane starting at the lower-left corner,
# then the same ring on the +z face.
QUAD4_CORNERS = np.array([
    [-1, -1],
    [ 1, -1],
    [ 1,  1],
    [-1,  1],
], dtype=float)

HEX8_CORNERS = np.array([
    [-1, -1, -1],
    [ 1, -1, -1],
    [ 1,  1, -1],
    [-1,  1, -1],
    [-1, -1,  1],
    [ 1, -1,  1],
    [ 1,  1,  1],
    [-1,  1,  1],
], dtype=float)

_CORNERS = {2: QUAD4_CORNERS, 3: HEX8_CORNERS}


def gauss_points_weights(n_points: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    1D Gauss-Legendre points and weights on [-1, 1].

    Parameters
    ----------
    n_points : int
        Number of integration points (1 or 2).

    Raises
    ------
    ValueError
        If `n_points` is not 1 or 2.
    """
    if n_points == 1:
        return np.array([0.0]), np.array([2.0])
    elif n_points == 2:
        gp = 1.0 / np.sqrt(3.0)
        return np.array([-gp, gp]), np.array([1.0, 1.0])
    else:
        raise ValueError(f"Unsupported number of Gauss points: {n_points}. "
                         f"'n_points' must be 1 or 2.")


def corner_signs(dim: int) -> np.ndarray:
    """Reference-cell corner signs (nen, dim) for a Q1 element in `dim` dimensions."""
    try:
        return _CORNERS[dim]
    except KeyError:
        raise ValueError(f"Q1 elements exist in 2D and 3D only, got dim={dim}") from None


def shape_function_derivatives(point: Sequence[float]) -> np.ndarray:
    """
    Derivatives of the bilinear/trilinear shape functions at a reference point.

    Parameters
    ----------
    point : (dim,) sequence
        Reference coordinates (xi, eta[, zeta]).

    Returns
    -------
    dN : np.ndarray, shape (dim, nen)
        dN[a, i] = dN_i / dxi_a.
    """
    point = np.asarray(point, dtype=float)
    dim = point.size
    signs = corner_signs(dim)
    scale = 0.5 ** dim

    # (1 + s_i * xi_a) for every node i and axis a
    factors = 1.0 + signs * point[None, :]  # (nen, dim)
    dN = np.empty((dim, signs.shape[0]))
    for a in range(dim):
        others = np.prod(np.delete(factors, a, axis=1), axis=1)
        dN[a] = scale * signs[:, a] * others
    return dN


def _adjugate_2x2(J: np.ndarray) -> Tuple[np.ndarray, float]:
    """Adjugate and determinant of a 2x2 matrix (inverse = adj / det)."""
    detJ = J[0, 0] * J[1, 1] - J[0, 1] * J[1, 0]
    adj = np.array([
        [ J[1, 1], -J[0, 1]],
        [-J[1, 0],  J[0, 0]],
    ])
    return adj, detJ


def _adjugate_3x3(J: np.ndarray) -> Tuple[np.ndarray, float]:
    """Adjugate and determinant of a 3x3 matrix (cofactor expansion)."""
    detJ = (J[0, 0] * (J[1, 1] * J[2, 2] - J[2, 1] * J[1, 2])
            - J[0, 1] * (J[1, 0] * J[2, 2] - J[2, 0] * J[1, 2])
            + J[0, 2] * (J[1, 0] * J[2, 1] - J[2, 0] * J[1, 1]))
    adj = np.array([
        [ (J[1, 1] * J[2, 2] - J[2, 1] * J[1, 2]),
         -(J[0, 1] * J[2, 2] - J[0, 2] * J[2, 1]),
          (J[0, 1] * J[1, 2] - J[0, 2] * J[1, 1])],
        [-(J[1, 0] * J[2, 2] - J[1, 2] * J[2, 0]),
          (J[0, 0] * J[2, 2] - J[0, 2] * J[2, 0]),
         -(J[0, 0] * J[1, 2] - J[0, 2] * J[1, 0])],
        [ (J[1, 0] * J[2, 1] - J[1, 1] * J[2, 0]),
         -(J[0, 0] * J[2, 1] - J[0, 1] * J[2, 0]),
          (J[0, 0] * J[1, 1] - J[1, 0] * J[0, 1])],
    ])
    return adj, detJ


def compute_element_matrix(coords: np.ndarray, reduced_integration: bool = False) -> np.ndarray:
    """
    Compute the element conductivity matrix ke = int(B^T * k * B * det(J)) with k = I.

    Parameters
    ----------
    coords : np.ndarray, shape (4, 2) or (8, 3)
        Physical nodal coordinates in element node order (lower-left corner
        first, counter-clockwise, then the +z layer).
    reduced_integration : bool
        False: 2x2[x2] Gauss points. True: one point per axis.

    Returns
    -------
    ke : np.ndarray, shape (nen, nen)
        Symmetric element matrix; multiply by the interpolated conductivity.

    Raises
    ------
    ValueError
        On a malformed coordinate array or a degenerate (det(J) <= 0) element.
    """
    coords = np.asarray(coords, dtype=float)
    if coords.ndim != 2 or coords.shape not in ((4, 2), (8, 3)):
        raise ValueError(
            f"Expected (4, 2) quad4 or (8, 3) hex8 coordinates, got shape {coords.shape}"
        )
    nen, dim = coords.shape
    adjugate = _adjugate_2x2 if dim == 2 else _adjugate_3x3
    kcond = np.eye(dim)

    points, weights = gauss_points_weights(1 if reduced_integration else 2)

    ke = np.zeros((nen, nen))
    for idx in product(range(points.size), repeat=dim):
        point = points[list(idx)]
        dN = shape_function_derivatives(point)  # (dim, nen)

        # Jacobian of the coordinate map: J[a, b] = dN_a . X_b
        J = dN @ coords
        adj, detJ = adjugate(J)
        if not detJ > 0.0:
            raise ValueError(
                f"Degenerate element: det(J) = {detJ:.3e} at Gauss point {tuple(point)}"
            )
        invJ = adj / detJ

        B = invJ @ dN  # (dim, nen) gradient operator
        weight = np.prod(weights[list(idx)]) * detJ
        ke += weight * (B.T @ kcond @ B)

    return ke


def reference_element_coordinates(spacing: Sequence[float]) -> np.ndarray:
    """
    Corner coordinates of the axis-aligned cell [0, dx] x [0, dy] (x [0, dz]).

    Parameters
    ----------
    spacing : sequence of float
        Element spacing (dx, dy) or (dx, dy, dz).
    """
    spacing = np.asarray(spacing, dtype=float)
    signs = corner_signs(spacing.size)
    return 0.5 * (signs + 1.0) * spacing[None, :]
