from pathlib import Path

import pytest

from heattopo.core.config import (
    LoadConfig,
    MeshConfig,
    ProblemConfig,
    SIMPConfig,
    SolverConfig,
    load_config,
)

DEFAULT_YAML = Path(__file__).resolve().parents[1] / "config" / "default.yaml"


def test_defaults():
    cfg = ProblemConfig()
    assert cfg.simp == SIMPConfig(emin=1e-9, emax=1.0, penal=3.0, volfrac=0.5)
    assert cfg.mesh.nodes == (65, 33)
    assert cfg.mesh.dim == 2
    assert cfg.load.load_intensity == 0.001
    assert cfg.load.clamp_window == (0.375, 0.625)
    assert cfg.solver.n_levels == 4
    assert cfg.solver.restart == 100 and cfg.solver.max_iter == 200
    assert cfg.solver.rtol == 1e-5
    assert cfg.restart.enabled is False


def test_shipped_yaml_matches_defaults():
    assert load_config(DEFAULT_YAML) == ProblemConfig()


def test_from_dict_overrides_and_keeps_defaults():
    cfg = ProblemConfig.from_dict({
        "mesh": {"nodes": [9, 5, 5], "extent": [[0, 2], [0, 1], [0, 1]]},
        "solver": {"n_levels": 2},
    })
    assert cfg.mesh.nodes == (9, 5, 5)
    assert cfg.mesh.dim == 3
    assert cfg.solver.n_levels == 2
    assert cfg.solver.rtol == SolverConfig().rtol
    assert cfg.load == LoadConfig()


def test_from_dict_rejects_unknown_entries():
    with pytest.raises(KeyError, match="sections"):
        ProblemConfig.from_dict({"optimizer": {}})
    with pytest.raises(KeyError, match="simp"):
        ProblemConfig.from_dict({"simp": {"penalty": 3.0}})


def test_from_dict_accepts_empty_input():
    assert ProblemConfig.from_dict(None) == ProblemConfig()
    assert ProblemConfig.from_dict({"load": None}) == ProblemConfig()


def test_mesh_config_validation():
    with pytest.raises(ValueError):
        MeshConfig(nodes=(5,), extent=((0, 1),))
    with pytest.raises(ValueError):
        MeshConfig(nodes=(5, 5), extent=((0, 1),))


def test_load_config_from_tmp_yaml(tmp_path):
    path = tmp_path / "cfg.yaml"
    path.write_text("simp:\n  volfrac: 0.3\nrestart:\n  enabled: true\n  workdir: out\n", encoding="utf-8")
    cfg = load_config(path)
    assert cfg.simp.volfrac == 0.3
    assert cfg.restart.enabled is True
    assert cfg.restart.workdir == "out"
