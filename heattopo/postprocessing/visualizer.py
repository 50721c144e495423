"""Results visualization module.

Plots of element densities and nodal temperatures on the structured grid.
3D fields are shown as the mid-plane slice normal to z. All methods accept
data-only inputs and do not mutate state.
"""

from pathlib import Path
from typing import Optional, Tuple

import numpy as np
import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402


class ResultsVisualizer:
    """Image writers for density and temperature fields.

    Parameters
    ----------
    node_counts : tuple of int
        Nodes per axis of the structured grid (x fastest numbering).
    extent : tuple of (float, float)
        Bounding box per axis.
    """
    def __init__(self, node_counts: Tuple[int, ...], extent: Tuple[Tuple[float, float], ...]) -> None:
        self.node_counts = tuple(int(n) for n in node_counts)
        self.extent = tuple((float(lo), float(hi)) for lo, hi in extent)

    def _plane(self, values: np.ndarray, counts: Tuple[int, ...]) -> np.ndarray:
        """Reshape a flat x-fastest field to (ny, nx), taking the z mid-plane in 3D."""
        grid = np.asarray(values, dtype=float).reshape(counts[::-1])
        if grid.ndim == 3:
            grid = grid[grid.shape[0] // 2]
        return grid

    def _imshow(self, grid: np.ndarray, title: str, cmap: str, path: Path,
                vmin: Optional[float] = None, vmax: Optional[float] = None) -> Path:
        (x0, x1), (y0, y1) = self.extent[0], self.extent[1]
        fig, ax = plt.subplots(figsize=(8, 8 * (y1 - y0) / (x1 - x0) + 1))
        im = ax.imshow(grid, origin="lower", extent=(x0, x1, y0, y1), cmap=cmap,
                       vmin=vmin, vmax=vmax, interpolation="nearest")
        fig.colorbar(im, ax=ax, shrink=0.8)
        ax.set_title(title)
        ax.set_xlabel("x")
        ax.set_ylabel("y")
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(path, dpi=120, bbox_inches="tight")
        plt.close(fig)
        return path

    def plot_density(self, x_phys: np.ndarray, path: Path) -> Path:
        """Element density image (white = void, black = solid)."""
        counts = tuple(n - 1 for n in self.node_counts)
        grid = self._plane(x_phys, counts)
        return self._imshow(grid, "Density", "gray_r", path, vmin=0.0, vmax=1.0)

    def plot_temperature(self, u: np.ndarray, path: Path) -> Path:
        """Nodal temperature image."""
        grid = self._plane(u, self.node_counts)
        return self._imshow(grid, "Temperature", "inferno", path)
