"""Heat-conduction core: element kernel, mesh adapter, assembly, solver, sensitivities."""

from .config import (
    SIMPConfig,
    MeshConfig,
    LoadConfig,
    SolverConfig,
    RestartConfig,
    ProblemConfig,
    load_config,
)
from .element import compute_element_matrix
from .mesh import DistributedMesh, StructuredMesh, InsertMode
from .passive import PassiveMasks
from .assembly import ConductivityAssembler, assemble_matrix_and_load
from .solver import StateSolver, SolveInfo
from .sensitivity import SensitivityResult, evaluate_sensitivities, PASSIVE_SENSITIVITY
from .physics import LinearHeatConduction

__all__ = [
    'SIMPConfig',
    'MeshConfig',
    'LoadConfig',
    'SolverConfig',
    'RestartConfig',
    'ProblemConfig',
    'load_config',
    'compute_element_matrix',
    'DistributedMesh',
    'StructuredMesh',
    'InsertMode',
    'PassiveMasks',
    'ConductivityAssembler',
    'assemble_matrix_and_load',
    'StateSolver',
    'SolveInfo',
    'SensitivityResult',
    'evaluate_sensitivities',
    'PASSIVE_SENSITIVITY',
    'LinearHeatConduction',
]
