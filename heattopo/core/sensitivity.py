"""
Objective, volume constraint and their sensitivities.

Objective (thermal compliance) over the designable elements:

    f = sum_e (Emin + x_e^p (Emax - Emin)) * u_e^T KE u_e

with df/dx_e = -p x_e^(p-1) (Emax - Emin) * u_e^T KE u_e.

Passive elements get a saturating sensitivity instead of a gradient:
+1e9 for fixed-void, -1e9 for fixed-solid and always-loaded elements.
"""

from __future__ import annotations
from dataclasses import dataclass

import numpy as np

from heattopo.core.assembly import simp_derivative, simp_interpolation
from heattopo.core.mesh import DistributedMesh
from heattopo.core.passive import PassiveMasks

PASSIVE_SENSITIVITY = 1e9


@dataclass
class SensitivityResult:
    """Objective / constraint values and gradients for one density field.

    Attributes
    ----------
    objective : float
    dfdx : np.ndarray, shape (n_elements,)
    constraint : float
        Mean designable density minus the target volume fraction.
    dgdx : np.ndarray, shape (n_elements,)
    n_designable : float
        Global number of designable elements.
    """
    objective: float
    dfdx: np.ndarray
    constraint: float
    dgdx: np.ndarray
    n_designable: float


def element_energies(mesh: DistributedMesh, ke: np.ndarray, u: np.ndarray) -> np.ndarray:
    """u_e^T KE u_e for every local element, shape (n_elements,)."""
    edof = mesh.element_connectivity()
    ue = np.asarray(u, dtype=float)[edof]   # (ne, nen)
    v = ue @ ke.T                            # (ne, nen)
    return np.einsum("ij,ij->i", ue, v)


def evaluate_sensitivities(
    mesh: DistributedMesh,
    ke: np.ndarray,
    u: np.ndarray,
    x_phys: np.ndarray,
    emin: float,
    emax: float,
    penal: float,
    volfrac: float,
    passive: PassiveMasks,
) -> SensitivityResult:
    """
    Compute (f, df/dx, g, dg/dx) from a solved temperature field.

    Raises
    ------
    ValueError
        On size mismatches, or when no element is designable.
    """
    x_phys = np.asarray(x_phys, dtype=float)
    n_local = mesh.element_connectivity().shape[0]
    if x_phys.shape != (n_local,):
        raise ValueError(f"Density field has shape {x_phys.shape}, expected ({n_local},)")
    passive.check_size(n_local)
    u = np.asarray(u, dtype=float)
    if u.shape != (mesh.n_nodes,):
        raise ValueError(f"Temperature field has shape {u.shape}, expected ({mesh.n_nodes},)")

    design = passive.designable
    energy = element_energies(mesh, ke, u)

    local_obj = float(np.sum(simp_interpolation(x_phys[design], emin, emax, penal) * energy[design]))
    objective = mesh.allreduce_sum(local_obj)

    dfdx = np.zeros(n_local)
    dfdx[design] = -simp_derivative(x_phys[design], emin, emax, penal) * energy[design]
    # passive overrides; masks are disjoint
    dfdx[passive.void == 1] = PASSIVE_SENSITIVITY
    dfdx[(passive.solid == 1) | (passive.loaded == 1)] = -PASSIVE_SENSITIVITY

    n_total = mesh.allreduce_sum(float(n_local))
    n_designable = (
        n_total
        - mesh.allreduce_sum(float(passive.void.sum()))
        - mesh.allreduce_sum(float(passive.solid.sum()))
        - mesh.allreduce_sum(float(passive.loaded.sum()))
    )
    if n_designable <= 0:
        raise ValueError(
            f"No designable elements: {int(n_total)} elements, all flagged passive"
        )

    volume = mesh.allreduce_sum(float(x_phys[design].sum()))
    constraint = volume / n_designable - volfrac

    dgdx = np.zeros(n_local)
    dgdx[design] = 1.0 / n_designable

    return SensitivityResult(
        objective=objective,
        dfdx=dfdx,
        constraint=constraint,
        dgdx=dgdx,
        n_designable=n_designable,
    )
