import numpy as np
import pytest

from heattopo.core.config import ProblemConfig, RestartConfig, SolverConfig
from heattopo.core.mesh import StructuredMesh
from heattopo.core.physics import LinearHeatConduction
from heattopo.utils.restart import RestartStore


def _make_physics(restart: RestartConfig):
    cfg = ProblemConfig(solver=SolverConfig(n_levels=3), restart=restart)
    mesh = StructuredMesh((9, 5))
    return mesh, LinearHeatConduction(mesh, config=cfg)


def test_restart_store_alternates_between_two_files(tmp_path):
    store = RestartStore(tmp_path)
    first = store.write(np.arange(3.0))
    second = store.write(np.arange(3.0) + 10)
    third = store.write(np.arange(3.0) + 20)
    assert first.name == "RestartSol00.npy"
    assert second.name == "RestartSol01.npy"
    assert third == first
    np.testing.assert_allclose(RestartStore.read(second, 3), [10, 11, 12])
    np.testing.assert_allclose(RestartStore.read(first, 3), [20, 21, 22])
    assert not list(tmp_path.glob("*.tmp"))


def test_restart_read_missing_file_returns_none(tmp_path):
    assert RestartStore.read(tmp_path / "nothing.npy", 4) is None


def test_restart_read_size_mismatch_raises(tmp_path):
    path = RestartStore(tmp_path).write(np.zeros(5))
    with pytest.raises(ValueError, match="expected 4"):
        RestartStore.read(path, 4)


def test_write_restart_requires_enabled_restart():
    mesh, physics = _make_physics(RestartConfig(enabled=False))
    with pytest.raises(RuntimeError):
        physics.write_restart_files()


def test_restart_snapshot_warm_starts_next_run(tmp_path):
    mesh, first = _make_physics(RestartConfig(enabled=True, workdir=str(tmp_path)))
    x = np.full(mesh.n_elements, 0.5)
    first.solve_state(x, 1e-9, 1.0, 3.0)
    path = first.write_restart_files()
    assert path == tmp_path / "RestartSol00.npy"

    _, second = _make_physics(RestartConfig(
        enabled=True, workdir=str(tmp_path), restart_file=str(path),
    ))
    u = second.solve_state(x, 1e-9, 1.0, 3.0)
    assert second.last_solve_info.iterations == 0
    np.testing.assert_allclose(u, first.u)


def test_only_load_design_skips_state_snapshot(tmp_path):
    mesh, first = _make_physics(RestartConfig(enabled=True, workdir=str(tmp_path)))
    x = np.full(mesh.n_elements, 0.5)
    first.solve_state(x, 1e-9, 1.0, 3.0)
    path = first.write_restart_files()

    _, second = _make_physics(RestartConfig(
        enabled=True, workdir=str(tmp_path), restart_file=str(path), only_load_design=True,
    ))
    second.solve_state(x, 1e-9, 1.0, 3.0)
    assert second.last_solve_info.iterations > 0


def test_missing_restart_file_falls_back_to_zero_guess(tmp_path):
    mesh, physics = _make_physics(RestartConfig(
        enabled=True, workdir=str(tmp_path), restart_file=str(tmp_path / "missing.npy"),
    ))
    physics.solve_state(np.full(mesh.n_elements, 0.5), 1e-9, 1.0, 3.0)
    assert physics.last_solve_info.converged
