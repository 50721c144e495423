"""
Global conductivity matrix and heat-load assembly.

K(x) = sum_e (Emin + x_e^p (Emax - Emin)) * KE, scattered into a CSR matrix
whose sparsity pattern (element couplings plus the full diagonal) is computed
once, so every re-assembly reuses the same structure.

Dirichlet conditions are imposed algebraically with the mask vector N
(1 = free, 0 = clamped):

    K <- diag(N) K diag(N) + diag(1 - N),    RHS <- RHS * N

which keeps the sparsity pattern fixed across optimization iterations.
"""

from __future__ import annotations
from typing import Optional, Tuple

import numpy as np
import scipy.sparse as sp

from heattopo.core.config import LoadConfig
from heattopo.core.mesh import DistributedMesh, InsertMode, element_spacing
from heattopo.core.passive import PassiveMasks


def simp_interpolation(x: np.ndarray, emin: float, emax: float, penal: float) -> np.ndarray:
    """SIMP conductivity Emin + x^p (Emax - Emin)."""
    x = np.asarray(x, dtype=float)
    return emin + np.power(x, penal) * (emax - emin)


def simp_derivative(x: np.ndarray, emin: float, emax: float, penal: float) -> np.ndarray:
    """d/dx of the SIMP conductivity: p x^(p-1) (Emax - Emin)."""
    x = np.asarray(x, dtype=float)
    return penal * np.power(x, penal - 1.0) * (emax - emin)


class ConductivityAssembler:
    """
    Scatter-adds SIMP-scaled element matrices into a fixed CSR pattern.

    Parameters
    ----------
    mesh : DistributedMesh
        Provides connectivity (local numbering) and node counts.
    ke : (nen, nen) float
        Element conductivity matrix shared by all elements.
    """

    def __init__(self, mesh: DistributedMesh, ke: np.ndarray) -> None:
        self.mesh = mesh
        self.ke = np.array(ke, dtype=float)
        self.ke.setflags(write=False)
        self.edof = mesh.element_connectivity()
        self.n_elements, self.nen = self.edof.shape
        if self.ke.shape != (self.nen, self.nen):
            raise ValueError(
                f"Element matrix shape {self.ke.shape} does not match {self.nen} nodes per element"
            )
        self.n_nodes = mesh.coordinates().shape[0]

        self._pattern, self._scatter, self._diag_idx, self._data_rows = self._precompute_pattern_and_scatter()

    @property
    def nnz(self) -> int:
        return self._pattern.nnz

    def _precompute_pattern_and_scatter(self) -> Tuple[sp.csr_matrix, np.ndarray, np.ndarray, np.ndarray]:
        """
        Build the CSR sparsity pattern and the element -> data index map.

        Returns:
            pattern: csr_matrix with sorted indices and zero data.
            scatter: (n_elements, nen * nen) positions in pattern.data where
                     (factor_e * KE).ravel(order="C") is added.
            diag_idx: (n_nodes,) data positions of the diagonal entries.
            data_rows: (nnz,) row index of every stored entry.
        """
        n = self.n_nodes
        nen = self.nen
        elem_rows = np.repeat(self.edof, nen, axis=1).ravel()
        elem_cols = np.tile(self.edof, (1, nen)).ravel()
        diag = np.arange(n, dtype=np.int64)

        rows = np.concatenate([elem_rows, diag])
        cols = np.concatenate([elem_cols, diag])
        pattern = sp.coo_matrix(
            (np.ones(rows.size, dtype=np.int8), (rows, cols)), shape=(n, n)
        ).tocsr()
        pattern.sum_duplicates()
        pattern.sort_indices()
        pattern = pattern.astype(np.float64)
        pattern.data[:] = 0.0

        indptr, indices = pattern.indptr, pattern.indices
        data_rows = np.repeat(np.arange(n, dtype=np.int64), np.diff(indptr))
        # row-major CSR with sorted columns: keys are already ascending
        csr_keys = data_rows * n + indices.astype(np.int64)

        elem_keys = elem_rows.astype(np.int64) * n + elem_cols.astype(np.int64)
        scatter = np.searchsorted(csr_keys, elem_keys).reshape(self.n_elements, nen * nen)
        diag_idx = np.searchsorted(csr_keys, diag * n + diag)
        return pattern, scatter, diag_idx, data_rows

    def assemble(
        self,
        x_phys: np.ndarray,
        emin: float,
        emax: float,
        penal: float,
        dirichlet: Optional[np.ndarray] = None,
    ) -> sp.csr_matrix:
        """
        Assemble K(x); if `dirichlet` (mask N) is given, eliminate clamped nodes.

        Parameters
        ----------
        x_phys : (n_elements,) float
            Physical densities in [0, 1].
        emin, emax, penal : float
            SIMP interpolation parameters.
        dirichlet : (n_nodes,) float, optional
            Mask vector N (1 free, 0 clamped).
        """
        x_phys = np.asarray(x_phys, dtype=float)
        if x_phys.shape != (self.n_elements,):
            raise ValueError(
                f"Density field has shape {x_phys.shape}, expected ({self.n_elements},)"
            )

        factor = simp_interpolation(x_phys, emin, emax, penal)
        contrib = factor[:, None] * self.ke.ravel()[None, :]
        data = np.bincount(
            self._scatter.ravel(), weights=contrib.ravel(), minlength=self.nnz
        )

        if dirichlet is not None:
            N = self._check_nodal(dirichlet, "Dirichlet mask")
            # K = N' K N, as two diagonal scalings
            data *= N[self._data_rows] * N[self._pattern.indices]
            # K = K + diag(1 - N)
            data[self._diag_idx] += 1.0 - N

        return sp.csr_matrix(
            (data, self._pattern.indices.copy(), self._pattern.indptr.copy()),
            shape=self._pattern.shape,
        )

    def build_load_and_bc(
        self,
        load: LoadConfig,
        passive: Optional[PassiveMasks] = None,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Heat load vector and Dirichlet mask for the chosen load mode.

        Default geometry: uniform body load (load_intensity / nen per element node);
        a window of nodes on the ymin face is clamped.
        Imported geometry: elements with void == 0 load each of their nodes with
        load_intensity; nodes of elements with solid == 1 are clamped.

        Returns
        -------
        rhs : (n_nodes,) float
        N : (n_nodes,) float
        """
        rhs = np.zeros(self.n_nodes)
        N = np.ones(self.n_nodes)

        if load.import_geometry:
            if passive is None:
                raise ValueError("Imported-geometry load mode requires passive masks")
            passive.check_size(self.n_elements)
            loaded = self.edof[passive.void == 0]
            with self.mesh.vector_assembly(rhs, InsertMode.ADD) as local:
                np.add.at(local, loaded.ravel(), load.load_intensity)
            clamped = self.edof[passive.solid == 1]
            with self.mesh.vector_assembly(N, InsertMode.INSERT) as local:
                local[clamped.ravel()] = 0.0
        else:
            with self.mesh.vector_assembly(rhs, InsertMode.ADD) as local:
                np.add.at(local, self.edof.ravel(), load.load_intensity / self.nen)
            clamped_nodes = self._clamped_window(load)
            with self.mesh.vector_assembly(N, InsertMode.INSERT) as local:
                local[clamped_nodes] = 0.0

        return rhs, N

    def _clamped_window(self, load: LoadConfig) -> np.ndarray:
        """Nodes on the ymin face inside the fractional clamp window (x, and z in 3D)."""
        coords = self.mesh.coordinates()
        bbox = self.mesh.bounding_box
        eps = load.eps_factor * float(np.min(element_spacing(self.mesh)))
        lo, hi = load.clamp_window

        mask = np.abs(coords[:, 1] - bbox[1][0]) < eps
        window_axes = (0, 2) if self.mesh.dim == 3 else (0,)
        for axis in window_axes:
            amin, amax = bbox[axis]
            length = amax - amin
            mask &= coords[:, axis] >= amin + lo * length - eps
            mask &= coords[:, axis] <= amin + hi * length + eps
        return np.flatnonzero(mask)

    def _check_nodal(self, vec: np.ndarray, name: str) -> np.ndarray:
        vec = np.asarray(vec, dtype=float)
        if vec.shape != (self.n_nodes,):
            raise ValueError(f"{name} has shape {vec.shape}, expected ({self.n_nodes},)")
        return vec


def assemble_matrix_and_load(
    assembler: ConductivityAssembler,
    x_phys: np.ndarray,
    emin: float,
    emax: float,
    penal: float,
    load: LoadConfig,
    passive: Optional[PassiveMasks] = None,
) -> Tuple[sp.csr_matrix, np.ndarray, np.ndarray]:
    """One-shot K, RHS and N with Dirichlet elimination applied."""
    rhs, N = assembler.build_load_and_bc(load, passive)
    K = assembler.assemble(x_phys, emin, emax, penal, dirichlet=N)
    return K, rhs * N, N
