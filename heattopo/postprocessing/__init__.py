"""Postprocessing module for visualization.

Exports
-------
ResultsVisualizer : Density and temperature field plots
"""

from .visualizer import ResultsVisualizer

__all__ = ["ResultsVisualizer"]
