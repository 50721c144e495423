"""Alternating restart snapshots of the temperature field."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import numpy as np

from heattopo.utils.io_utils import atomic_save_array, load_array
from heattopo.utils.logging_utils import get_logger

logger = get_logger(__name__)

RESTART_NAMES = ("RestartSol00.npy", "RestartSol01.npy")


class RestartStore:
    """Writes the state vector to one of two files, alternating on every call.

    A crash while one file is being written leaves the previous snapshot in the
    other file intact. The first write goes to RestartSol00.npy.
    """

    def __init__(self, workdir: str | Path) -> None:
        self.workdir = Path(workdir)
        self._flip = True

    @property
    def paths(self) -> tuple[Path, Path]:
        return self.workdir / RESTART_NAMES[0], self.workdir / RESTART_NAMES[1]

    def write(self, u: np.ndarray) -> Path:
        self._flip = not self._flip
        path = self.paths[1] if self._flip else self.paths[0]
        atomic_save_array(path, u)
        logger.debug("Restart snapshot written to %s", path)
        return path

    @staticmethod
    def read(path: str | Path, expected_size: int) -> Optional[np.ndarray]:
        """Read a snapshot; None if the file does not exist.

        Raises ValueError if the stored vector does not match expected_size.
        """
        path = Path(path)
        if not path.is_file():
            logger.warning("Restart file %s NOT FOUND", path)
            return None
        u = np.asarray(load_array(path), dtype=float).ravel()
        if u.size != expected_size:
            raise ValueError(
                f"Restart file {path} holds {u.size} entries, expected {expected_size}"
            )
        return u
