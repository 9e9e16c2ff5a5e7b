from .parameters import SimulationParameters
from .particles import ParticleSystem
from .grid import Grid
from .interpolation import InterpolationWeights
from .rigid_disk import RigidDisk
from .mpm_solver import MPMSolver
from .scenario import setup_simulation
from .errors import MPMError, ConfigurationError, SimulationFailedError, DegenerateContactError

__all__ = [
    'SimulationParameters',
    'ParticleSystem',
    'Grid',
    'InterpolationWeights',
    'RigidDisk',
    'MPMSolver',
    'setup_simulation',
    'MPMError',
    'ConfigurationError',
    'SimulationFailedError',
    'DegenerateContactError',
]
