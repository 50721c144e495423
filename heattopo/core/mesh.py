"""
Structured mesh adapter.

`DistributedMesh` is the interface the heat-conduction core consumes from the
mesh / domain-decomposition layer. `StructuredMesh` implements it for a uniform
axis-aligned Q1 grid held by a single partition (local == global, no ghosts).

Node numbering is x fastest, then y, then z:
    node = i + j * nnx + k * nnx * nny
Elements use the same scheme over element indices, and each element lists its
corners counter-clockwise in the xy-plane starting at the lower-left corner,
followed by the same ring on the +z face.
"""

from __future__ import annotations
from contextlib import contextmanager
from enum import Enum
from typing import Iterator, Optional, Sequence, Tuple

import numpy as np
import scipy.sparse as sp


class InsertMode(Enum):
    """How local contributions are reconciled into a global vector."""
    ADD = "add"
    INSERT = "insert"


class DistributedMesh:
    """Abstract interface for the structured (possibly partitioned) mesh.

    Expected responsibilities:
    - counts and geometry of the grid at this refinement level
    - element -> node connectivity in local (ghost-extended) numbering
    - local -> global node index mapping
    - coarsening and grid-transfer (prolongation) operators for multigrid
    - scoped scatter of local vector contributions (additive / insert)
    - global sum reductions
    """

    @property
    def dim(self) -> int:
        raise NotImplementedError("Subclass must implement dim")

    @property
    def node_counts(self) -> Tuple[int, ...]:
        raise NotImplementedError("Subclass must implement node_counts")

    @property
    def element_counts(self) -> Tuple[int, ...]:
        return tuple(n - 1 for n in self.node_counts)

    @property
    def n_nodes(self) -> int:
        return int(np.prod(self.node_counts))

    @property
    def n_elements(self) -> int:
        return int(np.prod(self.element_counts))

    @property
    def nodes_per_element(self) -> int:
        return 2 ** self.dim

    @property
    def bounding_box(self) -> Tuple[Tuple[float, float], ...]:
        raise NotImplementedError("Subclass must implement bounding_box")

    def coordinates(self) -> np.ndarray:
        """Local (ghost-extended) nodal coordinates, shape (n_local_nodes, dim)."""
        raise NotImplementedError("Subclass must implement coordinates")

    def element_connectivity(self) -> np.ndarray:
        """Local element -> local node indices, shape (n_local_elements, nen)."""
        raise NotImplementedError("Subclass must implement element_connectivity")

    def local_to_global(self) -> np.ndarray:
        """Global node index of every local node."""
        raise NotImplementedError("Subclass must implement local_to_global")

    def coarsen(self) -> "DistributedMesh":
        """Return the next coarser mesh of the same geometry."""
        raise NotImplementedError("Subclass must implement coarsen")

    def interpolation(self, coarse: "DistributedMesh") -> sp.csr_matrix:
        """Prolongation operator (n_nodes x coarse.n_nodes) from `coarse` to this mesh."""
        raise NotImplementedError("Subclass must implement interpolation")

    def vector_assembly(self, vec: np.ndarray, mode: InsertMode):
        """Context manager yielding a local buffer that is reconciled into `vec` on exit."""
        raise NotImplementedError("Subclass must implement vector_assembly")

    def allreduce_sum(self, value: float) -> float:
        """Sum a scalar over all partitions."""
        raise NotImplementedError("Subclass must implement allreduce_sum")


class StructuredMesh(DistributedMesh):
    """Uniform Q1 grid owned by a single partition.

    Parameters
    ----------
    node_counts : sequence of int
        Nodes per axis, (nnx, nny) or (nnx, nny, nnz); at least 2 per axis.
    extent : sequence of (float, float), optional
        Bounding box per axis; defaults to unit spacing from the origin.

    Notes
    -----
    `coordinates()` and `element_connectivity()` return read-only views. They
    stay valid until the next call that mutates the mesh
    (`set_uniform_coordinates`), which replaces the coordinate array.
    """

    def __init__(
        self,
        node_counts: Sequence[int],
        extent: Optional[Sequence[Tuple[float, float]]] = None,
    ) -> None:
        self._node_counts = tuple(int(n) for n in node_counts)
        if len(self._node_counts) not in (2, 3):
            raise ValueError(f"StructuredMesh supports 2D and 3D grids, got {self._node_counts}")
        if min(self._node_counts) < 2:
            raise ValueError(f"Every axis needs at least 2 nodes, got {self._node_counts}")

        if extent is None:
            extent = [(0.0, float(n - 1)) for n in self._node_counts]
        self._connectivity = self._build_connectivity()
        self._connectivity.setflags(write=False)
        self.set_uniform_coordinates(extent)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(nodes={self._node_counts}, box={self._bbox})"

    # ------------------------------------------------------------------
    # Geometry / topology
    # ------------------------------------------------------------------
    @property
    def dim(self) -> int:
        return len(self._node_counts)

    @property
    def node_counts(self) -> Tuple[int, ...]:
        return self._node_counts

    @property
    def bounding_box(self) -> Tuple[Tuple[float, float], ...]:
        return self._bbox

    def set_uniform_coordinates(self, extent: Sequence[Tuple[float, float]]) -> None:
        """Place the nodes uniformly in the box; invalidates earlier coordinate views."""
        bbox = tuple((float(lo), float(hi)) for lo, hi in extent)
        if len(bbox) != self.dim:
            raise ValueError(f"Extent has {len(bbox)} axes, mesh is {self.dim}D")
        for axis, (lo, hi) in enumerate(bbox):
            if not hi > lo:
                raise ValueError(f"Empty extent on axis {axis}: ({lo}, {hi})")
        self._bbox = bbox

        axes = [np.linspace(lo, hi, n) for (lo, hi), n in zip(bbox, self._node_counts)]
        # meshgrid in reversed order so that x varies fastest in the flattened arrays
        grids = np.meshgrid(*axes[::-1], indexing="ij")
        coords = np.stack([g.ravel() for g in grids[::-1]], axis=1)
        coords.setflags(write=False)
        self._coords = coords

    def coordinates(self) -> np.ndarray:
        return self._coords

    def element_connectivity(self) -> np.ndarray:
        return self._connectivity

    def local_to_global(self) -> np.ndarray:
        return np.arange(self.n_nodes, dtype=np.int64)

    def _build_connectivity(self) -> np.ndarray:
        """Vectorized corner lookup on the (z, y, x)-shaped node index grid."""
        shape = self._node_counts[::-1]
        idx = np.arange(int(np.prod(shape)), dtype=np.int64).reshape(shape)

        if self.dim == 2:
            n0 = idx[:-1, :-1]
            n1 = idx[:-1, 1:]
            n2 = idx[1:, 1:]
            n3 = idx[1:, :-1]
            corners = [n0, n1, n2, n3]
        else:
            n0 = idx[:-1, :-1, :-1]
            n1 = idx[:-1, :-1, 1:]
            n2 = idx[:-1, 1:, 1:]
            n3 = idx[:-1, 1:, :-1]
            n4 = idx[1:, :-1, :-1]
            n5 = idx[1:, :-1, 1:]
            n6 = idx[1:, 1:, 1:]
            n7 = idx[1:, 1:, :-1]
            corners = [n0, n1, n2, n3, n4, n5, n6, n7]
        return np.stack([c.ravel() for c in corners], axis=1)

    # ------------------------------------------------------------------
    # Multigrid support
    # ------------------------------------------------------------------
    def can_coarsen(self) -> bool:
        return all(n >= 3 and (n - 1) % 2 == 0 for n in self._node_counts)

    def coarsen(self) -> "StructuredMesh":
        """Halve the element count on every axis (factor-2 vertex-nested coarsening)."""
        if not self.can_coarsen():
            raise ValueError(
                f"Cannot coarsen grid with nodes {self._node_counts}: every axis needs "
                f"an even element count >= 2"
            )
        coarse_counts = tuple((n - 1) // 2 + 1 for n in self._node_counts)
        return StructuredMesh(coarse_counts, self._bbox)

    def interpolation(self, coarse: DistributedMesh) -> sp.csr_matrix:
        """Q1 prolongation from `coarse` (nested, factor 2) to this mesh."""
        expected = tuple((n - 1) // 2 + 1 for n in self._node_counts)
        if tuple(coarse.node_counts) != expected or not self.can_coarsen():
            raise ValueError(
                f"Mesh {coarse.node_counts} is not the factor-2 coarsening of {self._node_counts}"
            )
        P = None
        # Kronecker order: the slowest axis on the left
        for n_fine, n_coarse in zip(self._node_counts[::-1], expected[::-1]):
            P1 = _interpolation_1d(n_fine, n_coarse)
            P = P1 if P is None else sp.kron(P, P1, format="csr")
        return P.tocsr()

    # ------------------------------------------------------------------
    # Vector reconciliation / reductions
    # ------------------------------------------------------------------
    @contextmanager
    def vector_assembly(self, vec: np.ndarray, mode: InsertMode) -> Iterator[np.ndarray]:
        """Scoped local buffer for scattering into `vec`.

        ADD: the buffer starts at zero and is summed into `vec` on exit.
        INSERT: the buffer starts as a copy of `vec` and overwrites it on exit.
        If the block raises, nothing is written back.
        """
        if vec.shape != (self.n_nodes,):
            raise ValueError(f"Vector of shape {vec.shape} does not match {self.n_nodes} nodes")
        l2g = self.local_to_global()
        if mode is InsertMode.ADD:
            local = np.zeros(l2g.size, dtype=vec.dtype)
        else:
            local = vec[l2g].copy()
        yield local
        if mode is InsertMode.ADD:
            np.add.at(vec, l2g, local)
        else:
            vec[l2g] = local

    def allreduce_sum(self, value: float) -> float:
        return float(value)


def element_spacing(mesh: DistributedMesh) -> np.ndarray:
    """Spacing (dx, dy[, dz]) of the uniform grid, taken from the first element."""
    coords = mesh.coordinates()
    e0 = mesh.element_connectivity()[0]
    spacing = [
        coords[e0[1], 0] - coords[e0[0], 0],
        coords[e0[2], 1] - coords[e0[1], 1],
    ]
    if mesh.dim == 3:
        spacing.append(coords[e0[4], 2] - coords[e0[0], 2])
    return np.array(spacing)


def _interpolation_1d(n_fine: int, n_coarse: int) -> sp.csr_matrix:
    """Linear interpolation (n_fine x n_coarse) for vertex-nested 1D grids."""
    rows, cols, vals = [], [], []
    for i in range(n_fine):
        if i % 2 == 0:
            rows.append(i)
            cols.append(i // 2)
            vals.append(1.0)
        else:
            rows += [i, i]
            cols += [i // 2, i // 2 + 1]
            vals += [0.5, 0.5]
    return sp.csr_matrix((vals, (rows, cols)), shape=(n_fine, n_coarse))
