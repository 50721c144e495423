from __future__ import annotations

import argparse
from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from heattopo.core import LinearHeatConduction, PassiveMasks, ProblemConfig, StructuredMesh, load_config
from heattopo.postprocessing import ResultsVisualizer
from heattopo.utils.io_utils import load_array, save_csv, save_json
from heattopo.utils.logging_utils import get_logger, set_package_level

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="heattopo heat-conduction topology optimization CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(sub):
        sub.add_argument("--config", default=None, help="YAML config (built-in defaults if omitted)")
        sub.add_argument("--log-level", default=None)
        sub.add_argument("--output", default="results")
        sub.add_argument("--density", default=None, help=".npy element densities (default: volfrac)")
        sub.add_argument("--passive-void", default=None, help=".npy 0/1 fixed-void flags")
        sub.add_argument("--passive-solid", default=None, help=".npy 0/1 fixed-solid flags")
        sub.add_argument("--passive-loaded", default=None, help=".npy 0/1 always-loaded flags")
        sub.add_argument("--plot", action="store_true", help="Write density / temperature PNGs")
        return sub

    add_common(subparsers.add_parser("solve", help="Solve the temperature field for one density"))
    add_common(subparsers.add_parser("evaluate", help="Solve and compute objective / sensitivities"))

    return parser


def _load_mask(path: Optional[str], n_elements: int) -> np.ndarray:
    if path is None:
        return np.zeros(n_elements)
    return load_array(path)


def _setup(args: argparse.Namespace):
    cfg = load_config(args.config) if args.config else ProblemConfig()
    mesh = StructuredMesh(cfg.mesh.nodes, cfg.mesh.extent)
    n_el = mesh.n_elements
    passive = PassiveMasks(
        _load_mask(args.passive_void, n_el),
        _load_mask(args.passive_solid, n_el),
        _load_mask(args.passive_loaded, n_el),
    )
    passive.check_size(n_el)

    if args.density is not None:
        x_phys = np.asarray(load_array(args.density), dtype=float).ravel()
    else:
        x_phys = np.full(n_el, cfg.simp.volfrac)
    if x_phys.size != n_el:
        raise ValueError(f"Density file holds {x_phys.size} values, mesh has {n_el} elements")
    return cfg, mesh, passive, x_phys


def run(args: argparse.Namespace) -> dict:
    """Execute one CLI command; returns the summary written to summary.json."""
    cfg, mesh, passive, x_phys = _setup(args)
    out = Path(args.output)
    out.mkdir(parents=True, exist_ok=True)

    physics = LinearHeatConduction(mesh, passive, cfg)
    simp = cfg.simp
    summary = {
        "command": args.command,
        "dim": cfg.mesh.dim,
        "nodes": list(mesh.node_counts),
        "n_elements": mesh.n_elements,
    }

    if args.command == "solve":
        u = physics.solve_state(x_phys, simp.emin, simp.emax, simp.penal)
    else:
        result = physics.evaluate(x_phys, simp.emin, simp.emax, simp.penal, simp.volfrac)
        u = physics.u
        summary.update({
            "objective": result.objective,
            "constraint": result.constraint,
            "n_designable": result.n_designable,
        })
        table = pd.DataFrame({
            "density": x_phys,
            "dfdx": result.dfdx,
            "dgdx": result.dgdx,
        })
        table.index.name = "element"
        save_csv(table, out / "sensitivities.csv")

    info = physics.last_solve_info
    summary.update({
        "iterations": info.iterations,
        "residual_norm": info.residual_norm,
        "relative_residual": info.relative_residual,
        "converged": info.converged,
        "reason": info.reason,
        "elapsed": info.elapsed,
        "max_temperature": float(np.max(u)),
    })

    np.save(out / "temperature.npy", u)
    if cfg.restart.enabled:
        summary["restart_file"] = str(physics.write_restart_files())
    if args.plot:
        vis = ResultsVisualizer(mesh.node_counts, mesh.bounding_box)
        vis.plot_density(x_phys, out / "density.png")
        vis.plot_temperature(u, out / "temperature.png")
    save_json(summary, out / "summary.json")
    logger.info("Results written to %s", out)
    return summary


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.log_level:
        set_package_level(args.log_level)

    if args.command in ("solve", "evaluate"):
        run(args)
    else:
        parser.error(f"Unknown command {args.command}")


if __name__ == "__main__":
    main()
