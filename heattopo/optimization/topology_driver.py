"""Topology optimization problem driver for SIMP thermal-compliance minimization.

This module provides the HeatProblemDriver class which wraps LinearHeatConduction
and exposes MMA-compatible callbacks for thermal compliance + volume constraint.
"""

import numpy as np
from typing import Callable, Tuple, Dict, Optional

from heattopo.core import LinearHeatConduction, SIMPConfig, SensitivityResult


class HeatProblemDriver:
    """Builds MMA callbacks for SIMP thermal compliance + volume constraint.

    Notes
    -----
    - Objective: f(x) = Σ_e (Emin + x_e^p (Emax-Emin)) u_e^T KE u_e over designable elements.
    - Sensitivity: df/dx_e = -p x_e^{p-1} (Emax-Emin) u_e^T KE u_e; ±1e9 on passive elements.
    - Constraint: g(x) = mean designable density - volfrac ≤ 0.
    """
    def __init__(
        self,
        physics: LinearHeatConduction,
        simp: Optional[SIMPConfig] = None,
        x_bounds: Tuple[float, float] = (0.0, 1.0),
    ) -> None:
        self.physics = physics
        self.simp = simp or physics.config.simp
        self.x_bounds = (float(x_bounds[0]), float(x_bounds[1]))
        self.n_evaluations = 0

    def initial_design(self) -> np.ndarray:
        """volfrac on designable elements, 0 on void, 1 on solid / loaded elements."""
        passive = self.physics.passive
        x0 = np.full(passive.n_elements, float(self.simp.volfrac))
        x0[passive.void == 1] = 0.0
        x0[(passive.solid == 1) | (passive.loaded == 1)] = 1.0
        return x0

    def build_callbacks(self) -> Tuple[
        Callable[[np.ndarray], float],   # f0
        Callable[[np.ndarray], np.ndarray],  # df0
        Callable[[np.ndarray], np.ndarray],  # f
        Callable[[np.ndarray], np.ndarray],  # df
        np.ndarray, np.ndarray, np.ndarray   # x0, xmin, xmax
    ]:
        simp = self.simp
        x0 = self.initial_design()
        xmin = np.full_like(x0, self.x_bounds[0])
        xmax = np.full_like(x0, self.x_bounds[1])

        # last evaluation, keyed by the density vector it was computed for
        cache: Dict[str, object] = {}

        def evaluate(x: np.ndarray) -> SensitivityResult:
            x = np.clip(np.asarray(x, dtype=float), self.x_bounds[0], self.x_bounds[1])
            key = x.tobytes()
            if cache.get("key") != key:
                cache["result"] = self.physics.evaluate(
                    x, simp.emin, simp.emax, simp.penal, simp.volfrac
                )
                cache["key"] = key
                self.n_evaluations += 1
            return cache["result"]

        def f0(x: np.ndarray) -> float:
            """Thermal compliance objective."""
            return float(evaluate(x).objective)

        def df0(x: np.ndarray) -> np.ndarray:
            """SIMP derivative with passive-region saturation."""
            return evaluate(x).dfdx.copy()

        def f(x: np.ndarray) -> np.ndarray:
            """Single volume-fraction constraint."""
            return np.array([evaluate(x).constraint], dtype=float)

        def df(x: np.ndarray) -> np.ndarray:
            """Gradient of the volume constraint, shape (1, n)."""
            return np.array([evaluate(x).dgdx], dtype=float)

        return f0, df0, f, df, x0, xmin, xmax
