"""
heattopo - Heat-conduction physics for SIMP topology optimization
================================================================

Element conductivity kernel, conductivity assembly with Dirichlet masking,
multigrid preconditioned state solver and objective / volume-constraint
sensitivities on structured Q1 grids.
"""

__version__ = "1.0.0"
