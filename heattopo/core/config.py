"""
Configuration dataclasses for heattopo.

This module contains all configuration classes for the SIMP interpolation,
the structured mesh, the heat load / boundary conditions, the multigrid
preconditioned state solver and the restart snapshots.

Defaults follow the PETSc topology-optimization heat-conduction setup
(Aage, Andreassen, Lazarov 2013; heat variant by Zhang 2020).
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Tuple

from heattopo.utils.io_utils import load_yaml


@dataclass
class SIMPConfig:
    """SIMP conductivity interpolation settings.

    Attributes
    ----------
    emin : float
        Void conductivity floor (keeps K non-singular).
    emax : float
        Solid conductivity.
    penal : float
        SIMP penalization exponent.
    volfrac : float
        Target volume fraction of the designable region.
    """
    emin: float = 1e-9
    emax: float = 1.0
    penal: float = 3.0
    volfrac: float = 0.5


@dataclass
class MeshConfig:
    """Structured grid definition.

    Attributes
    ----------
    nodes : tuple of int
        Node count per axis, (nx, ny) or (nx, ny, nz).
    extent : tuple of (float, float)
        Bounding box per axis, ((xmin, xmax), (ymin, ymax)[, (zmin, zmax)]).
    """
    nodes: Tuple[int, ...] = (65, 33)
    extent: Tuple[Tuple[float, float], ...] = ((0.0, 2.0), (0.0, 1.0))

    def __post_init__(self) -> None:
        self.nodes = tuple(int(n) for n in self.nodes)
        self.extent = tuple((float(lo), float(hi)) for lo, hi in self.extent)
        if len(self.nodes) not in (2, 3):
            raise ValueError(f"MeshConfig.nodes must have 2 or 3 entries, got {self.nodes}")
        if len(self.extent) != len(self.nodes):
            raise ValueError(
                f"MeshConfig.extent has {len(self.extent)} axes but nodes has {len(self.nodes)}"
            )

    @property
    def dim(self) -> int:
        return len(self.nodes)


@dataclass
class LoadConfig:
    """Heat load and Dirichlet boundary settings.

    Attributes
    ----------
    load_intensity : float
        Body heat load intensity.
    import_geometry : bool
        If True, loads and clamps are read from the passive masks instead of
        the built-in geometric predicate.
    clamp_window : (float, float)
        Fractional window of the domain extent (x, and z in 3D) on the ymin face
        where the temperature is clamped.
    eps_factor : float
        Point-location tolerance as a fraction of the smallest element spacing.
    reduced_integration : bool
        Use one Gauss point per axis for the element matrix.
    """
    load_intensity: float = 0.001
    import_geometry: bool = False
    clamp_window: Tuple[float, float] = (0.375, 0.625)
    eps_factor: float = 0.05
    reduced_integration: bool = False

    def __post_init__(self) -> None:
        self.clamp_window = (float(self.clamp_window[0]), float(self.clamp_window[1]))


@dataclass
class SolverConfig:
    """Multigrid preconditioned FGMRES settings.

    Attributes
    ----------
    n_levels : int
        Number of grid levels in the multigrid hierarchy (1 = no coarsening).
    rtol, atol, dtol : float
        Relative, absolute and divergence tolerances of the outer iteration.
    restart : int
        Krylov restart length of the outer iteration.
    max_iter : int
        Cap on the total outer iterations; hitting it is not an error.
    coarse_rtol : float
        Relative tolerance of the coarse-grid GMRES solve.
    coarse_restart, coarse_max_iter : int
        Restart length and iteration cap of the coarse-grid solve.
    smooth_sweeps : int
        SOR sweeps per pre-/post-smoothing step.
    sor_omega : float
        SOR relaxation factor (1.0 = Gauss-Seidel).
    """
    n_levels: int = 4
    rtol: float = 1e-5
    atol: float = 1e-50
    dtol: float = 1e5
    restart: int = 100
    max_iter: int = 200
    coarse_rtol: float = 1e-8
    coarse_restart: int = 30
    coarse_max_iter: int = 30
    smooth_sweeps: int = 4
    sor_omega: float = 1.0


@dataclass
class RestartConfig:
    """Restart snapshot settings.

    Attributes
    ----------
    enabled : bool
        Write/read restart snapshots of the temperature field.
    workdir : str
        Directory holding RestartSol00.npy / RestartSol01.npy.
    restart_file : str
        Snapshot to warm-start the first solve from ("" = none).
    only_load_design : bool
        Skip reading the state snapshot even if restart is enabled.
    """
    enabled: bool = False
    workdir: str = "."
    restart_file: str = ""
    only_load_design: bool = False


@dataclass
class ProblemConfig:
    """Top-level configuration holding all inputs.

    Attributes
    ----------
    simp : SIMPConfig
    mesh : MeshConfig
    load : LoadConfig
    solver : SolverConfig
    restart : RestartConfig
    """
    simp: SIMPConfig = field(default_factory=SIMPConfig)
    mesh: MeshConfig = field(default_factory=MeshConfig)
    load: LoadConfig = field(default_factory=LoadConfig)
    solver: SolverConfig = field(default_factory=SolverConfig)
    restart: RestartConfig = field(default_factory=RestartConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> "ProblemConfig":
        """Build a config from a nested dict (e.g. parsed YAML).

        Missing sections/keys fall back to defaults; unknown ones raise KeyError.
        """
        data = dict(data or {})
        sections = {f.name: f for f in fields(cls)}
        unknown = set(data) - set(sections)
        if unknown:
            raise KeyError(f"Unknown config sections: {sorted(unknown)}")

        kwargs: Dict[str, Any] = {}
        for name, section in data.items():
            section_cls = sections[name].default_factory  # type: ignore[misc]
            kwargs[name] = _section_from_dict(section_cls, section or {}, name)
        return cls(**kwargs)


def _section_from_dict(section_cls, values: Dict[str, Any], name: str):
    allowed = {f.name for f in fields(section_cls)}
    unknown = set(values) - allowed
    if unknown:
        raise KeyError(f"Unknown keys in config section '{name}': {sorted(unknown)}")
    return section_cls(**values)


def load_config(path: str | Path) -> ProblemConfig:
    """Load a ProblemConfig from a YAML file."""
    return ProblemConfig.from_dict(load_yaml(path))
