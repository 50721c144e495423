"""
Linear steady-state heat conduction for SIMP topology optimization.

`LinearHeatConduction` ties the pieces together for the optimization driver:

- element matrix computed once from the spacing of the first element,
- heat load and Dirichlet mask built once,
- per design update: assemble K(x), rebind the solver session, solve with the
  previous temperature field as initial guess,
- objective / constraint / sensitivities from the solved field,
- optional alternating restart snapshots of the temperature field.
"""

from __future__ import annotations
from pathlib import Path
from typing import Optional

import numpy as np

from heattopo.core.assembly import ConductivityAssembler
from heattopo.core.config import ProblemConfig
from heattopo.core.element import compute_element_matrix, reference_element_coordinates
from heattopo.core.mesh import DistributedMesh, element_spacing
from heattopo.core.passive import PassiveMasks
from heattopo.core.sensitivity import SensitivityResult, evaluate_sensitivities
from heattopo.core.solver import SolveInfo, StateSolver
from heattopo.utils.logging_utils import get_logger
from heattopo.utils.restart import RestartStore

logger = get_logger(__name__)


class LinearHeatConduction:
    """
    Heat-conduction state and sensitivity provider.

    Parameters
    ----------
    mesh : DistributedMesh
        Structured mesh of the design domain.
    passive : PassiveMasks, optional
        Passive-region flags; none passive if omitted.
    config : ProblemConfig, optional
        Load, solver and restart settings (defaults if omitted).

    Attributes
    ----------
    ke : np.ndarray
        Element conductivity matrix (read-only).
    rhs, dirichlet : np.ndarray
        Heat load (with clamped entries zeroed) and mask vector N.
    u : np.ndarray
        Current temperature field, reused as initial guess.
    last_solve_info : SolveInfo or None
    """

    def __init__(
        self,
        mesh: DistributedMesh,
        passive: Optional[PassiveMasks] = None,
        config: Optional[ProblemConfig] = None,
    ) -> None:
        self.mesh = mesh
        self.config = config or ProblemConfig()
        n_el = mesh.element_connectivity().shape[0]
        self.passive = passive if passive is not None else PassiveMasks.empty(n_el)
        self.passive.check_size(n_el)

        spacing = element_spacing(mesh)
        self.ke = compute_element_matrix(
            reference_element_coordinates(spacing),
            reduced_integration=self.config.load.reduced_integration,
        )
        self.ke.setflags(write=False)

        self.assembler = ConductivityAssembler(mesh, self.ke)
        rhs, N = self.assembler.build_load_and_bc(self.config.load, self.passive)
        self.dirichlet = N
        self.rhs = rhs * N

        self.u = np.zeros(mesh.n_nodes)
        self.solver = StateSolver(mesh, self.config.solver)
        self.last_solve_info: Optional[SolveInfo] = None
        self._restart = RestartStore(self.config.restart.workdir)
        self._first_solve = True

        logger.info(
            "Heat conduction problem: %dD, nodes %s, %d elements, %d clamped node(s), "
            "total load %.4e",
            mesh.dim, tuple(mesh.node_counts), mesh.n_elements,
            int(np.count_nonzero(N == 0.0)), mesh.allreduce_sum(float(self.rhs.sum())),
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    def solve_state(
        self,
        x_phys: np.ndarray,
        emin: float,
        emax: float,
        penal: float,
    ) -> np.ndarray:
        """Assemble K(x_phys) and solve for the temperature field."""
        if self._first_solve:
            self._first_solve = False
            self._maybe_load_restart()

        K = self.assembler.assemble(x_phys, emin, emax, penal, dirichlet=self.dirichlet)
        u, info = self.solver.solve(K, self.rhs, self.u)
        self.u = u
        self.last_solve_info = info
        logger.info(
            "State solver: iter: %i, rerr.: %e, time: %f",
            info.iterations, info.relative_residual, info.elapsed,
        )
        return u.copy()

    def evaluate(
        self,
        x_phys: np.ndarray,
        emin: float,
        emax: float,
        penal: float,
        volfrac: float,
        passive: Optional[PassiveMasks] = None,
    ) -> SensitivityResult:
        """Solve the state, then objective, constraint and their gradients."""
        passive = passive if passive is not None else self.passive
        u = self.solve_state(x_phys, emin, emax, penal)
        result = evaluate_sensitivities(
            self.mesh, self.ke, u, x_phys, emin, emax, penal, volfrac, passive
        )
        logger.info(
            "Objective %.6e, volume constraint %.4e (%d designable elements)",
            result.objective, result.constraint, int(result.n_designable),
        )
        return result

    # ------------------------------------------------------------------
    # Restart
    # ------------------------------------------------------------------
    def _maybe_load_restart(self) -> None:
        rcfg = self.config.restart
        if not rcfg.enabled or rcfg.only_load_design or not rcfg.restart_file:
            return
        u = RestartStore.read(rcfg.restart_file, self.mesh.n_nodes)
        if u is not None:
            self.u = u
            logger.info("Initial temperature field loaded from %s", rcfg.restart_file)

    def write_restart_files(self) -> Path:
        """Snapshot the temperature field, alternating between two files."""
        if not self.config.restart.enabled:
            raise RuntimeError("Restart snapshots are disabled (restart.enabled is False)")
        Path(self.config.restart.workdir).mkdir(parents=True, exist_ok=True)
        return self._restart.write(self.u)
