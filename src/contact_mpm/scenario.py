import logging

import numpy as np
from scipy.stats import qmc

from .grid import Grid
from .particles import ParticleSystem
from .rigid_disk import RigidDisk
from .mpm_solver import MPMSolver
from .parameters import SimulationParameters
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


def generate_particle_positions(grid: Grid, spacing=0.5, sampling="grid", seed=None):
    """
    Sample points over the whole grid domain. Returns an (n, 2) NumPy array.

    ``"grid"`` places ``1/spacing`` points per cell and direction, symmetric
    inside each cell. ``"poisson"`` draws Poisson-disk points whose minimum
    distance is ``spacing * grid_space``.
    """
    if sampling == "grid":
        return _regular_positions(grid, spacing)
    elif sampling == "poisson":
        return _poisson_disk_positions(grid, spacing, seed)
    raise ConfigurationError(f"Unknown particle sampling '{sampling}'.")


def _regular_positions(grid: Grid, spacing):
    per_cell = int(round(1.0 / spacing))
    if per_cell < 1:
        raise ConfigurationError(f"Particle spacing {spacing} is larger than a cell.")

    h = grid.grid_space
    offsets = (np.arange(per_cell) + 0.5) / per_cell
    xs = grid.origin[0] + h * (np.arange(grid.nx - 1)[:, None] + offsets[None, :]).ravel()
    ys = grid.origin[1] + h * (np.arange(grid.ny - 1)[:, None] + offsets[None, :]).ravel()

    X, Y = np.meshgrid(xs, ys, indexing="ij")
    return np.stack([X.ravel(), Y.ravel()], axis=1)


def _poisson_disk_positions(grid: Grid, spacing, seed=None):
    if spacing <= 0.0:
        raise ConfigurationError(f"Particle spacing must be positive, got {spacing}.")

    # Sample the unit square scaled to the longer side so the radius stays isotropic
    length = max(grid.extent)
    sampler = qmc.PoissonDisk(d=2, radius=spacing * grid.grid_space / length, seed=seed)
    points = sampler.fill_space() * length

    inside = (points[:, 0] < grid.extent[0]) & (points[:, 1] < grid.extent[1])
    return points[inside] + np.asarray(grid.origin)


def geostatic_stresses(heights, ground_level, density, gravity, poissons_ratio):
    """
    At-rest stress of a layer under its own weight: vertical stress from the
    overburden, horizontal (and out-of-plane) stress through K0 = nu/(1-nu).
    """
    heights = np.asarray(heights, dtype=np.float64)
    sigma_y = -density * gravity * (ground_level - heights)
    sigma_x = poissons_ratio / (1.0 - poissons_ratio) * sigma_y

    stresses = np.zeros((heights.shape[0], 3, 3))
    stresses[:, 0, 0] = sigma_x
    stresses[:, 1, 1] = sigma_y
    stresses[:, 2, 2] = sigma_x
    return stresses


def create_ground(grid: Grid, params: SimulationParameters):
    positions = generate_particle_positions(
        grid, params.particle_spacing, sampling=params.particle_sampling, seed=params.sampling_seed
    )
    # Every sampled point gets the same share of the domain, counted before filtering
    volume = grid.volume / len(positions)

    positions = positions[positions[:, 1] < params.ground_level]
    if len(positions) == 0:
        raise ConfigurationError("No particles left after filtering to the ground region.")

    particle_system = ParticleSystem(
        positions,
        volume,
        params.initial_density,
        body_force=(0.0, -params.gravity),
        device=params.device,
    )
    particle_system.set_stresses(
        geostatic_stresses(
            positions[:, 1],
            params.ground_level,
            params.initial_density,
            params.gravity,
            params.poissons_ratio,
        )
    )
    return particle_system


def create_disk(params: SimulationParameters):
    return RigidDisk(
        position=params.disk_position,
        velocity=params.disk_velocity,
        radius=params.disk_radius,
        penalty_stiffness=params.penalty_stiffness,
        friction_coefficient=params.friction_coefficient,
    )


def setup_simulation(params: SimulationParameters = None):
    if params is None:
        params = SimulationParameters()
    params.validate()

    grid = Grid(extent=params.domain_extent, grid_space=params.grid_space, device=params.device)
    particle_system = create_ground(grid, params)
    disk = create_disk(params)

    logger.info(
        "Scenario: %d particles, grid %d x %d (h = %g), %s",
        particle_system.num_particles, grid.nx, grid.ny, grid.grid_space, disk,
    )
    return MPMSolver(particle_system, grid, disk, params)
