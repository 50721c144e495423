"""
Multigrid preconditioned state solver.

`StateSolver` is a session object: the first solve builds the coarsening
hierarchy of the structured mesh and the grid-transfer operators; every later
solve only rebinds the new conductivity matrix (same sparsity pattern) and
re-derives the Galerkin coarse operators and smoother factors.

Outer iteration: restarted flexible GMRES (right preconditioning, the
preconditioned directions are stored so the preconditioner may vary).
Preconditioner: one multigrid V-cycle with SOR smoothing and a GMRES coarse
solve.
"""

from __future__ import annotations
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla
from scipy.linalg import solve_triangular

from heattopo.core.config import SolverConfig
from heattopo.core.mesh import DistributedMesh
from heattopo.utils.logging_utils import get_logger

logger = get_logger(__name__)

CONVERGED_REASONS = ("rtol", "atol", "zero_rhs")


@dataclass
class SolveInfo:
    """Diagnostics of one state solve.

    Attributes
    ----------
    iterations : int
        Outer (FGMRES) iterations performed.
    residual_norm : float
        True residual norm ||b - K u|| of the returned iterate.
    relative_residual : float
        residual_norm / ||b|| (0 for a zero right-hand side).
    converged : bool
        True if a tolerance was met.
    reason : str
        One of "rtol", "atol", "max_it", "diverged", "zero_rhs".
    elapsed : float
        Wall time of the solve in seconds.
    """
    iterations: int
    residual_norm: float
    relative_residual: float
    converged: bool
    reason: str
    elapsed: float


@dataclass
class _Level:
    A: sp.csr_matrix
    lower: sp.csr_matrix  # tril(A, -1) + D / omega
    upper: sp.csr_matrix  # triu(A, 1) + D / omega
    P: Optional[sp.csr_matrix] = None  # prolongation from the next coarser level


class StateSolver:
    """
    Restarted FGMRES with a geometric multigrid V-cycle preconditioner.

    Parameters
    ----------
    mesh : DistributedMesh
        Finest mesh; coarser levels are obtained with `mesh.coarsen()`.
    config : SolverConfig
        Tolerances, restart lengths, hierarchy depth and smoother settings.
    """

    def __init__(self, mesh: DistributedMesh, config: Optional[SolverConfig] = None) -> None:
        self.mesh = mesh
        self.config = config or SolverConfig()
        self._meshes: Optional[List[DistributedMesh]] = None
        self._prolongations: List[sp.csr_matrix] = []
        self._levels: List[_Level] = []

    @property
    def state(self) -> str:
        return "ready" if self._meshes is not None else "uninitialized"

    @property
    def n_levels(self) -> int:
        return self.config.n_levels

    @property
    def level_sizes(self) -> List[int]:
        if self._meshes is None:
            return []
        return [m.n_nodes for m in self._meshes]

    # ------------------------------------------------------------------
    # Setup / rebind
    # ------------------------------------------------------------------
    def setup(self) -> None:
        """Build the mesh hierarchy and prolongation operators (once)."""
        cfg = self.config
        n_levels = self.n_levels
        if n_levels < 1:
            raise ValueError(f"Multigrid needs at least one level, got n_levels={n_levels}")

        meshes = [self.mesh]
        for level in range(1, n_levels):
            try:
                meshes.append(meshes[-1].coarsen())
            except ValueError as exc:
                raise ValueError(
                    f"Cannot build a {n_levels}-level hierarchy: coarsening level {level - 1} "
                    f"failed ({exc})"
                ) from exc

        self._prolongations = [
            meshes[l].interpolation(meshes[l + 1]) for l in range(len(meshes) - 1)
        ]
        self._meshes = meshes

        logger.info(
            "State solver: FGMRES(restart=%d, rtol=%.1e, atol=%.1e, dtol=%.1e, max_iter=%d), "
            "multigrid V-cycle with %d level(s), %d SOR sweep(s) (omega=%.2f), "
            "coarse GMRES(restart=%d, rtol=%.1e, max_iter=%d)",
            cfg.restart, cfg.rtol, cfg.atol, cfg.dtol, cfg.max_iter,
            n_levels, cfg.smooth_sweeps, cfg.sor_omega,
            cfg.coarse_restart, cfg.coarse_rtol, cfg.coarse_max_iter,
        )
        for level, m in enumerate(meshes):
            logger.debug("  level %d: nodes %s (%d dofs)", level, tuple(m.node_counts), m.n_nodes)

    def rebind(self, K: sp.spmatrix) -> None:
        """Attach a new fine-grid matrix and refresh coarse operators / smoothers."""
        if self._meshes is None:
            self.setup()
        n = self.mesh.n_nodes
        if K.shape != (n, n):
            raise ValueError(f"Matrix shape {K.shape} does not match {n} mesh nodes")

        A = sp.csr_matrix(K)
        levels = []
        for l in range(len(self._meshes)):
            P = self._prolongations[l] if l < len(self._prolongations) else None
            levels.append(self._make_level(A, P))
            if P is not None:
                # Galerkin coarse operator
                A = (P.T @ A @ P).tocsr()
        self._levels = levels

    def _make_level(self, A: sp.csr_matrix, P: Optional[sp.csr_matrix]) -> _Level:
        diag = A.diagonal()
        if np.any(diag <= 0.0):
            bad = int(np.flatnonzero(diag <= 0.0)[0])
            raise ValueError(f"Non-positive diagonal entry {diag[bad]:.3e} at row {bad}")
        D = sp.diags(diag / self.config.sor_omega)
        lower = (sp.tril(A, k=-1) + D).tocsr()
        upper = (sp.triu(A, k=1) + D).tocsr()
        lower.sort_indices()
        upper.sort_indices()
        return _Level(A=A, lower=lower, upper=upper, P=P)

    # ------------------------------------------------------------------
    # Solve
    # ------------------------------------------------------------------
    def solve(
        self,
        K: sp.spmatrix,
        rhs: np.ndarray,
        u0: Optional[np.ndarray] = None,
    ) -> Tuple[np.ndarray, SolveInfo]:
        """
        Solve K u = rhs, warm-started from `u0` (zeros if None).

        Non-convergence is not an error: the last iterate is returned and
        `SolveInfo.converged` is False.
        """
        t0 = time.perf_counter()
        self.rebind(K)
        cfg = self.config

        b = np.asarray(rhs, dtype=float)
        n = self.mesh.n_nodes
        if b.shape != (n,):
            raise ValueError(f"Right-hand side has shape {b.shape}, expected ({n},)")
        x0 = np.zeros(n) if u0 is None else np.array(u0, dtype=float)
        if x0.shape != (n,):
            raise ValueError(f"Initial guess has shape {x0.shape}, expected ({n},)")

        b_norm = float(np.linalg.norm(b))
        if b_norm == 0.0:
            info = SolveInfo(0, 0.0, 0.0, True, "zero_rhs", time.perf_counter() - t0)
            return np.zeros(n), info

        A = self._levels[0].A
        u, its, res, reason = self._fgmres(
            lambda v: A @ v, b, x0, self.precondition,
            rtol=cfg.rtol, atol=cfg.atol, dtol=cfg.dtol,
            restart=cfg.restart, maxit=cfg.max_iter,
        )
        info = SolveInfo(
            iterations=its,
            residual_norm=res,
            relative_residual=res / b_norm,
            converged=reason in CONVERGED_REASONS,
            reason=reason,
            elapsed=time.perf_counter() - t0,
        )
        if not info.converged:
            logger.warning(
                "State solver did not converge (%s): %d iterations, rel. residual %.3e",
                reason, its, info.relative_residual,
            )
        return u, info

    def precondition(self, r: np.ndarray) -> np.ndarray:
        """Apply one V-cycle to the residual `r`."""
        if not self._levels:
            raise RuntimeError("StateSolver.precondition called before a matrix was bound")
        return self._vcycle(0, r)

    def _vcycle(self, level: int, b: np.ndarray) -> np.ndarray:
        lv = self._levels[level]
        if level == len(self._levels) - 1:
            return self._coarse_solve(lv, b)

        sweeps = self.config.smooth_sweeps
        x = np.zeros_like(b)
        for _ in range(sweeps):
            x += spla.spsolve_triangular(lv.lower, b - lv.A @ x, lower=True)

        r_coarse = lv.P.T @ (b - lv.A @ x)
        x += lv.P @ self._vcycle(level + 1, r_coarse)

        for _ in range(sweeps):
            x += spla.spsolve_triangular(lv.upper, b - lv.A @ x, lower=False)
        return x

    def _coarse_solve(self, lv: _Level, b: np.ndarray) -> np.ndarray:
        cfg = self.config
        if not np.any(b):
            return np.zeros_like(b)
        n = b.size

        def ssor(r):
            y = spla.spsolve_triangular(lv.lower, r, lower=True)
            return y + spla.spsolve_triangular(lv.upper, r - lv.A @ y, lower=False)

        M = spla.LinearOperator((n, n), matvec=ssor, dtype=float)
        # scipy counts restart cycles, not inner iterations
        cycles = max(1, int(np.ceil(cfg.coarse_max_iter / cfg.coarse_restart)))
        x, _ = spla.gmres(
            lv.A, b, x0=np.zeros(n), rtol=cfg.coarse_rtol, atol=0.0,
            restart=min(cfg.coarse_restart, cfg.coarse_max_iter), maxiter=cycles, M=M,
        )
        return x

    @staticmethod
    def _fgmres(
        A: Callable[[np.ndarray], np.ndarray],
        b: np.ndarray,
        x0: np.ndarray,
        M: Callable[[np.ndarray], np.ndarray],
        rtol: float = 1e-5,
        atol: float = 1e-50,
        dtol: float = 1e5,
        restart: int = 100,
        maxit: int = 200,
    ) -> Tuple[np.ndarray, int, float, str]:
        """
        Restarted flexible GMRES with right preconditioning.

        A : callable(x) -> y
        M : callable(r) -> z, may change between iterations
        Returns (x, iterations, true residual norm, reason).
        """
        x = x0.copy()
        n = b.size
        b_norm = float(np.linalg.norm(b))
        r = b - A(x)
        beta = float(np.linalg.norm(r))
        r0_norm = beta
        target = max(rtol * b_norm, atol)
        total = 0

        while True:
            if beta <= target:
                return x, total, beta, "rtol" if beta <= rtol * b_norm else "atol"
            if not np.isfinite(beta) or beta > dtol * max(r0_norm, b_norm):
                return x, total, beta, "diverged"
            if total >= maxit:
                return x, total, beta, "max_it"

            m = min(restart, maxit - total)
            V = np.zeros((m + 1, n))
            Z = np.zeros((m, n))
            H = np.zeros((m + 1, m))
            cs = np.zeros(m)
            sn = np.zeros(m)
            g = np.zeros(m + 1)
            g[0] = beta
            V[0] = r / beta

            k = 0
            for j in range(m):
                Z[j] = M(V[j])
                w = A(Z[j])
                # modified Gram-Schmidt
                for i in range(j + 1):
                    H[i, j] = np.dot(w, V[i])
                    w -= H[i, j] * V[i]
                h_next = float(np.linalg.norm(w))
                H[j + 1, j] = h_next
                if h_next > 0.0:
                    V[j + 1] = w / h_next

                # previous Givens rotations, then a new one to zero H[j+1, j]
                for i in range(j):
                    tmp = cs[i] * H[i, j] + sn[i] * H[i + 1, j]
                    H[i + 1, j] = -sn[i] * H[i, j] + cs[i] * H[i + 1, j]
                    H[i, j] = tmp
                denom = float(np.hypot(H[j, j], H[j + 1, j]))
                cs[j] = H[j, j] / denom
                sn[j] = H[j + 1, j] / denom
                H[j, j] = denom
                H[j + 1, j] = 0.0
                g[j + 1] = -sn[j] * g[j]
                g[j] = cs[j] * g[j]

                k = j + 1
                total += 1
                if abs(g[j + 1]) <= target or h_next == 0.0:
                    break

            y = solve_triangular(H[:k, :k], g[:k])
            x += Z[:k].T @ y
            r = b - A(x)
            beta = float(np.linalg.norm(r))
