"""General IO helpers for configuration, tabular results, and arrays."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd
import yaml


def load_yaml(path: str | Path) -> dict:
    """Load a YAML file into a dictionary."""
    with open(path, "r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def save_json(obj: Any, path: str | Path) -> None:
    """Serialize an object to JSON with indentation."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        json.dump(obj, handle, indent=2)


def save_csv(df_or_arr: Any, path: str | Path) -> None:
    """Persist a pandas DataFrame or array-like object as CSV."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if hasattr(df_or_arr, "to_csv"):
        index_label = getattr(getattr(df_or_arr, "index", None), "name", None)
        df_or_arr.to_csv(path, index=True, index_label=index_label)
    else:
        pd.DataFrame(df_or_arr).to_csv(path, index=False)


def load_array(path: str | Path) -> np.ndarray:
    """Load a .npy array from disk."""
    return np.load(Path(path), allow_pickle=False)


def atomic_save_array(path: str | Path, arr: np.ndarray) -> Path:
    """Atomically write an array as .npy by using a temporary file swap."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with tmp_path.open("wb") as handle:
        np.save(handle, np.asarray(arr), allow_pickle=False)
    tmp_path.replace(path)
    return path
