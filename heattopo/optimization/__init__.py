"""Optimization problem drivers module.

Exports
-------
HeatProblemDriver : MMA-style callbacks (thermal compliance + volume constraint)
"""

from .topology_driver import HeatProblemDriver

__all__ = ["HeatProblemDriver"]
