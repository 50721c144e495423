import numpy as np
import pytest
import scipy.sparse.linalg as spla

from heattopo.core.config import LoadConfig, ProblemConfig, SolverConfig
from heattopo.core.mesh import StructuredMesh
from heattopo.core.passive import PassiveMasks
from heattopo.core.physics import LinearHeatConduction


def _make_physics(counts=(5, 5), n_levels=3, rtol=1e-10, **kwargs):
    cfg = ProblemConfig(solver=SolverConfig(n_levels=n_levels, rtol=rtol), **kwargs)
    mesh = StructuredMesh(counts)
    return mesh, LinearHeatConduction(mesh, config=cfg)


def test_end_to_end_5x5_symmetric_and_increasing_from_clamp():
    mesh, physics = _make_physics()
    # unit spacing, x in [0, 4]: the clamp window selects the single node (2, 0)
    np.testing.assert_array_equal(np.flatnonzero(physics.dirichlet == 0.0), [2])

    u = physics.solve_state(np.ones(mesh.n_elements), 1e-9, 1.0, 3.0)
    assert physics.last_solve_info.converged
    grid = u.reshape(5, 5)  # (y, x)

    np.testing.assert_allclose(grid, grid[:, ::-1], rtol=1e-7, atol=1e-14)
    assert grid[0, 2] == 0.0
    assert np.all(np.delete(u, 2) > 0.0)

    # along the clamped edge, away from the patch
    assert grid[0, 2] < grid[0, 3] < grid[0, 4]
    # along the symmetry axis, away from the patch
    assert np.all(np.diff(grid[:, 2]) > 0.0)
    assert u.max() == pytest.approx(grid[4, 0])


def test_end_to_end_3d_is_mirror_symmetric():
    mesh, physics = _make_physics(counts=(5, 3, 5), n_levels=2)
    assert np.count_nonzero(physics.dirichlet == 0.0) == 1
    u = physics.solve_state(np.ones(mesh.n_elements), 1e-9, 1.0, 3.0)
    grid = u.reshape(5, 3, 5)  # (z, y, x)
    np.testing.assert_allclose(grid, grid[:, :, ::-1], rtol=1e-7, atol=1e-14)
    np.testing.assert_allclose(grid, grid[::-1, :, :], rtol=1e-7, atol=1e-14)
    # rises along x away from the single clamped node
    assert grid[2, 0, 2] < grid[2, 0, 3] < grid[2, 0, 4]

    K = physics.assembler.assemble(
        np.ones(mesh.n_elements), 1e-9, 1.0, 3.0, dirichlet=physics.dirichlet
    )
    u_ref = spla.spsolve(K.tocsc(), physics.rhs)
    np.testing.assert_allclose(u, u_ref, rtol=1e-7, atol=1e-14)


def test_evaluate_objective_equals_load_times_temperature():
    mesh, physics = _make_physics(counts=(9, 5))
    x = np.random.default_rng(0).uniform(0.2, 1.0, mesh.n_elements)
    res = physics.evaluate(x, 1e-9, 1.0, 3.0, 0.5)
    assert res.objective == pytest.approx(physics.rhs @ physics.u, rel=1e-8)
    assert res.dfdx.shape == (mesh.n_elements,)
    assert np.all(res.dfdx < 0.0)


def test_second_solve_is_warm_started():
    mesh, physics = _make_physics(counts=(9, 5), rtol=1e-5)
    x = np.full(mesh.n_elements, 0.5)
    physics.solve_state(x, 1e-9, 1.0, 3.0)
    assert physics.last_solve_info.iterations > 0
    physics.solve_state(x, 1e-9, 1.0, 3.0)
    assert physics.last_solve_info.iterations <= 1


def test_solve_state_returns_copy():
    mesh, physics = _make_physics()
    u = physics.solve_state(np.ones(mesh.n_elements), 1e-9, 1.0, 3.0)
    u[:] = -1.0
    assert np.all(physics.u >= 0.0)


def test_element_matrix_uses_mesh_spacing():
    cfg = ProblemConfig(solver=SolverConfig(n_levels=1))
    mesh = StructuredMesh((3, 3), extent=[(0.0, 4.0), (0.0, 1.0)])
    physics = LinearHeatConduction(mesh, config=cfg)
    # dx = 2, dy = 0.5: a unit jump in x carries energy (1/2)^2 * 1
    t = np.array([0.0, 1.0, 1.0, 0.0])
    assert t @ physics.ke @ t == pytest.approx(0.25)
    with pytest.raises(ValueError):
        physics.ke[0, 0] = 1.0


def test_imported_geometry_problem():
    mesh = StructuredMesh((9, 5))
    n = mesh.n_elements
    void, solid = np.zeros(n), np.zeros(n)
    solid[:8] = 1   # bottom row of elements is a clamped heat sink
    void[-1] = 1
    passive = PassiveMasks(void, solid, np.zeros(n))
    cfg = ProblemConfig(
        load=LoadConfig(import_geometry=True),
        solver=SolverConfig(n_levels=3),
    )
    physics = LinearHeatConduction(mesh, passive, cfg)
    # both bottom node rows are clamped
    assert np.all(physics.dirichlet[:18] == 0.0)
    assert np.all(physics.dirichlet[18:] == 1.0)

    x = np.full(n, 0.5)
    x[void == 1] = 0.0
    x[solid == 1] = 1.0
    res = physics.evaluate(x, 1e-9, 1.0, 3.0, 0.5)
    assert res.n_designable == n - 9
    assert res.constraint == pytest.approx(0.0)
    assert res.dfdx[-1] == 1e9
    assert np.all(res.dfdx[:8] == -1e9)


def test_passive_size_mismatch_raises():
    mesh = StructuredMesh((5, 5))
    with pytest.raises(ValueError):
        LinearHeatConduction(mesh, PassiveMasks.empty(3))
