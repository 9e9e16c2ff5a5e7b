import logging
import math

import numpy as np

from .particles import ParticleSystem
from .grid import Grid
from .interpolation import InterpolationWeights
from .rigid_disk import RigidDisk
from .parameters import SimulationParameters
from .errors import ConfigurationError, SimulationFailedError, DegenerateContactError

logger = logging.getLogger(__name__)


def save_points(start_time, end_time, fps):
    """Evenly spaced output times in [start_time, end_time], fps per simulated second."""
    count = int(round((end_time - start_time) * fps)) + 1
    return list(np.linspace(start_time, end_time, count))


class MPMSolver:
    """
    Explicit MPM step loop for the disk contact problem.

    One step: timestep from the CFL condition, weights, P2G (with contact),
    boundary conditions, G2P (with the stress update), disk advance.
    """
    def __init__(self, particle_system: ParticleSystem, grid: Grid, disk: RigidDisk, params: SimulationParameters):
        if particle_system.num_particles == 0:
            raise ConfigurationError("No particles to simulate.")

        self.particle_system = particle_system
        self.grid = grid
        self.disk = disk
        self.params = params
        self.weights = InterpolationWeights(particle_system.num_particles, device=particle_system.device)

        self.lame_lambda = params.lame_lambda
        self.shear_modulus = params.shear_modulus

        self.time = 0.0
        self.step = 0
        self.timestep = 0.0

    def compute_timestep(self):
        vmax = self.particle_system.max_wave_speed(self.lame_lambda, self.shear_modulus)
        if math.isnan(vmax) or math.isinf(vmax):
            logger.error("Non-finite particle velocity at step %d", self.step)
            raise SimulationFailedError(f"Non-finite wave speed at step {self.step} (t = {self.time:.6g}).")
        if vmax <= 0.0:
            raise ConfigurationError("Maximum wave speed is zero; cannot choose a stable timestep.")
        return self.params.courant_number * self.grid.grid_space / vmax

    def rasterize_particles_to_grid(self, timestep):
        self.grid.transfer_from_particles(self.particle_system, self.weights, self.disk)
        if self.grid.has_degenerate_contact():
            raise DegenerateContactError(
                f"Particle at the disk center {self.disk.position} at step {self.step}."
            )
        self.grid.update_velocity(self.disk, timestep)

    def update_particles(self, timestep):
        self.particle_system.update_from_grid(
            self.grid,
            self.weights,
            timestep,
            self.lame_lambda,
            self.shear_modulus,
            self.params.yield_stress,
        )

    def check_divergence(self):
        bad = self.particle_system.count_non_finite()
        if bad > 0:
            logger.error("Divergence detected: %d bad particles at step %d", bad, self.step)
            raise SimulationFailedError(
                f"{bad} particles with NaN/Inf position or stress at step {self.step} (t = {self.time:.6g})."
            )

    def run_time_step(self):
        timestep = self.compute_timestep()
        self.timestep = timestep

        self.weights.update(self.particle_system, self.grid)
        self.rasterize_particles_to_grid(timestep)
        self.grid.apply_boundary_conditions()
        self.update_particles(timestep)

        self.disk.advance(timestep)

        self.time += timestep
        self.step += 1

        if self.step % self.params.divergence_check_interval == 0:
            self.check_divergence()

        logger.debug("step %d: t = %.6g, dt = %.3e", self.step, self.time, timestep)
        return timestep

    def run(self, end_time=None, callback=None):
        """
        Step until ``end_time`` (defaults to the configured horizon).

        ``callback(solver)`` is invoked on the first step past each save point.
        Returns the summed external (contact) force on the grid at the end.
        """
        if end_time is None:
            end_time = self.params.end_time
        if end_time <= 0:
            raise ConfigurationError(f"End time must be positive, got {end_time!r}.")

        pending = [t for t in save_points(0.0, end_time, self.params.fps) if t >= self.time]

        logger.info(
            "Running %d particles on a %d x %d grid from t = %.4g to t = %.4g",
            self.particle_system.num_particles, self.grid.nx, self.grid.ny, self.time, end_time,
        )

        while self.time < end_time:
            self.run_time_step()

            if pending and self.time > pending[0]:
                pending.pop(0)
                if callback is not None:
                    callback(self)

            if self.step % self.params.progress_log_interval == 0:
                logger.info("step %d: t = %.4f / %.4f, dt = %.3e", self.step, self.time, end_time, self.timestep)

        self.check_divergence()
        force = self.grid.total_external_force()
        logger.info("Finished after %d steps, total contact force %s", self.step, force)
        return force
