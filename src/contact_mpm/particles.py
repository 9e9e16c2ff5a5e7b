import logging

import numpy as np
import warp as wp

from .constitutive import vonmises_model, symmetric, von_mises_stress, deviatoric_strain

logger = logging.getLogger(__name__)


@wp.kernel
def transfer_grid_to_particles_kernel(
    # Gather only: particles read nodes, nothing is written to the grid
    node_indices: wp.array2d(dtype=int),
    weights: wp.array2d(dtype=float),
    weight_gradients: wp.array2d(dtype=wp.vec2),
    grid_velocities: wp.array(dtype=wp.vec2),
    particle_positions: wp.array(dtype=wp.vec2),
    particle_velocities: wp.array(dtype=wp.vec2),
    particle_velocity_gradients: wp.array(dtype=wp.mat22),
    particle_volumes: wp.array(dtype=float),
    particle_deformation_gradients: wp.array(dtype=wp.mat33),
    particle_stresses: wp.array(dtype=wp.mat33),
    particle_strains: wp.array(dtype=wp.mat33),
    lame_lambda: float,
    shear_modulus: float,
    yield_stress: float,
    timestep: float):

    tid = wp.tid()

    velocity = wp.vec2(0.0, 0.0)
    velocity_gradient = wp.mat22(0.0, 0.0, 0.0, 0.0)

    for k in range(node_indices.shape[1]):
        node_idx = node_indices[tid, k]
        if node_idx >= 0:
            node_velocity = grid_velocities[node_idx]
            velocity += weights[tid, k] * node_velocity  # PIC
            velocity_gradient += wp.outer(node_velocity, weight_gradients[tid, k])

    particle_velocities[tid] = velocity
    particle_velocity_gradients[tid] = velocity_gradient
    particle_positions[tid] = particle_positions[tid] + velocity * timestep

    # Incremental displacement gradient, plane strain
    g = velocity_gradient * timestep
    grad_u = wp.mat33(
        g[0, 0], g[0, 1], 0.0,
        g[1, 0], g[1, 1], 0.0,
        0.0, 0.0, 0.0,
    )
    increment = wp.identity(3, dtype=wp.float32) + grad_u

    particle_stresses[tid] = vonmises_model(particle_stresses[tid], grad_u, lame_lambda, shear_modulus, yield_stress)
    particle_volumes[tid] = particle_volumes[tid] * wp.determinant(increment)
    particle_strains[tid] = particle_strains[tid] + symmetric(grad_u)
    particle_deformation_gradients[tid] = increment @ particle_deformation_gradients[tid]

@wp.kernel
def max_wave_speed_kernel(
    particle_masses: wp.array(dtype=float),
    particle_volumes: wp.array(dtype=float),
    particle_velocities: wp.array(dtype=wp.vec2),
    p_wave_modulus: float,
    max_speed: wp.array(dtype=float),
    non_finite: wp.array(dtype=int)):

    tid = wp.tid()
    density = particle_masses[tid] / particle_volumes[tid]
    speed = wp.sqrt(p_wave_modulus / density) + wp.length(particle_velocities[tid])
    if wp.isnan(speed) or wp.isinf(speed):
        wp.atomic_add(non_finite, 0, 1)
    else:
        wp.atomic_max(max_speed, 0, speed)

@wp.kernel
def count_non_finite_kernel(
    particle_positions: wp.array(dtype=wp.vec2),
    particle_stresses: wp.array(dtype=wp.mat33),
    count: wp.array(dtype=int)):

    tid = wp.tid()
    x = particle_positions[tid]
    s = particle_stresses[tid]
    s_norm = wp.ddot(s, s)

    if wp.isnan(x[0]) or wp.isnan(x[1]) or wp.isinf(x[0]) or wp.isinf(x[1]) or wp.isnan(s_norm) or wp.isinf(s_norm):
        wp.atomic_add(count, 0, 1)


class ParticleSystem:
    """
    Material points in structure-of-arrays layout.

    Masses and radii are fixed after construction; volumes follow the
    Jacobian of every increment. Deformation gradients start at identity.
    """
    def __init__(self, positions, volumes, density, body_force=(0.0, 0.0), velocities=None, device=None):
        positions_np = np.asarray(positions, dtype=np.float32).reshape(-1, 2)
        num_particles = positions_np.shape[0]
        volumes_np = np.broadcast_to(np.asarray(volumes, dtype=np.float32), (num_particles,)).copy()

        self.num_particles = num_particles
        self.device = device

        self.positions = wp.array(positions_np, dtype=wp.vec2, device=device)
        self.volumes = wp.array(volumes_np, dtype=float, device=device)
        self.masses = wp.array(density * volumes_np, dtype=float, device=device)
        self.radii = wp.array(np.sqrt(volumes_np) / 2.0, dtype=float, device=device)

        if velocities is None:
            self.velocities = wp.zeros(num_particles, dtype=wp.vec2, device=device)
        else:
            velocities_np = np.broadcast_to(np.asarray(velocities, dtype=np.float32), (num_particles, 2)).copy()
            self.velocities = wp.array(velocities_np, dtype=wp.vec2, device=device)

        body_forces_np = np.tile(np.asarray(body_force, dtype=np.float32), (num_particles, 1))
        self.body_forces = wp.array(body_forces_np, dtype=wp.vec2, device=device)

        identity = np.tile(np.eye(3, dtype=np.float32), (num_particles, 1, 1))
        self.velocity_gradients = wp.zeros(num_particles, dtype=wp.mat22, device=device)
        self.deformation_gradients = wp.array(identity, dtype=wp.mat33, device=device)
        self.stresses = wp.zeros(num_particles, dtype=wp.mat33, device=device)
        self.strains = wp.zeros(num_particles, dtype=wp.mat33, device=device)

        self._max_speed = wp.zeros(1, dtype=float, device=device)
        self._non_finite = wp.zeros(1, dtype=int, device=device)
        logger.debug("%d particles, total mass %g", num_particles, float(density * volumes_np.sum()))

    def set_stresses(self, stresses):
        stresses_np = np.asarray(stresses, dtype=np.float32).reshape(self.num_particles, 3, 3)
        self.stresses = wp.array(stresses_np, dtype=wp.mat33, device=self.device)

    def update_from_grid(self, grid, weights, timestep, lame_lambda, shear_modulus, yield_stress):
        wp.launch(
            kernel=transfer_grid_to_particles_kernel,
            dim=self.num_particles,
            inputs=[
                weights.node_indices,
                weights.weights,
                weights.weight_gradients,
                grid.velocities,
                self.positions,
                self.velocities,
                self.velocity_gradients,
                self.volumes,
                self.deformation_gradients,
                self.stresses,
                self.strains,
                lame_lambda,
                shear_modulus,
                yield_stress,
                timestep,
            ],
            device=self.device,
        )

    def max_wave_speed(self, lame_lambda, shear_modulus):
        """
        Max over particles of dilatational wave speed plus particle speed.
        NaN if any particle produced a non-finite speed.
        """
        self._max_speed.zero_()
        self._non_finite.zero_()
        wp.launch(
            kernel=max_wave_speed_kernel,
            dim=self.num_particles,
            inputs=[
                self.masses,
                self.volumes,
                self.velocities,
                lame_lambda + 2.0 * shear_modulus,
                self._max_speed,
                self._non_finite,
            ],
            device=self.device,
        )
        if self._non_finite.numpy()[0] > 0:
            return float("nan")
        return float(self._max_speed.numpy()[0])

    def count_non_finite(self):
        self._non_finite.zero_()
        wp.launch(
            kernel=count_non_finite_kernel,
            dim=self.num_particles,
            inputs=[self.positions, self.stresses, self._non_finite],
            device=self.device,
        )
        return int(self._non_finite.numpy()[0])

    def total_mass(self):
        return float(self.masses.numpy().astype(np.float64).sum())

    def von_mises_stress(self):
        return von_mises_stress(self.stresses.numpy())

    def deviatoric_strain(self):
        return deviatoric_strain(self.strains.numpy())
