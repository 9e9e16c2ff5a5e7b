import logging

import numpy as np
import warp as wp

from .particles import ParticleSystem
from .interpolation import InterpolationWeights
from .rigid_disk import contact_force_normal, contact_force_tangent

wp.init()

logger = logging.getLogger(__name__)


@wp.kernel
def initialize_positions_kernel(
    positions: wp.array(dtype=wp.vec2),
    origin: wp.vec2,
    grid_space: float,
    ny: int):

    tid = wp.tid()  # Flat node index

    ix = tid // ny
    iy = tid % ny

    positions[tid] = origin + wp.vec2(float(ix), float(iy)) * grid_space

@wp.kernel
def clear_kernel(
    grid_mass: wp.array(dtype=float),
    grid_momentum: wp.array(dtype=wp.vec2),
    grid_internal_forces: wp.array(dtype=wp.vec2),
    grid_external_forces: wp.array(dtype=wp.vec2),
):
    tid = wp.tid()
    grid_mass[tid] = 0.0
    grid_momentum[tid] = wp.vec2(0.0, 0.0)
    grid_internal_forces[tid] = wp.vec2(0.0, 0.0)
    grid_external_forces[tid] = wp.vec2(0.0, 0.0)

@wp.kernel
def transfer_particles_to_grid_kernel(
    # Scatter: many particles write to one node, so every write is atomic
    particle_positions: wp.array(dtype=wp.vec2),
    particle_masses: wp.array(dtype=float),
    particle_volumes: wp.array(dtype=float),
    particle_radii: wp.array(dtype=float),
    particle_velocities: wp.array(dtype=wp.vec2),
    particle_velocity_gradients: wp.array(dtype=wp.mat22),
    particle_stresses: wp.array(dtype=wp.mat33),
    particle_body_forces: wp.array(dtype=wp.vec2),
    node_indices: wp.array2d(dtype=int),
    weights: wp.array2d(dtype=float),
    weight_gradients: wp.array2d(dtype=wp.vec2),
    grid_positions: wp.array(dtype=wp.vec2),
    grid_mass: wp.array(dtype=float),
    grid_momentum: wp.array(dtype=wp.vec2),
    grid_internal_forces: wp.array(dtype=wp.vec2),
    grid_external_forces: wp.array(dtype=wp.vec2),
    disk_position: wp.vec2,
    disk_radius: float,
    penalty_stiffness: float,
    contact_flags: wp.array(dtype=int)):

    tid = wp.tid()

    particle_pos = particle_positions[tid]
    particle_mass = particle_masses[tid]
    particle_volume = particle_volumes[tid]
    particle_vel = particle_velocities[tid]
    velocity_gradient = particle_velocity_gradients[tid]
    body_force = particle_body_forces[tid]

    # Plane strain: only the in-plane block of the stress acts on the grid
    s = particle_stresses[tid]
    stress = wp.mat22(s[0, 0], s[0, 1], s[1, 0], s[1, 1])

    if wp.length(particle_pos - disk_position) == 0.0:
        contact_flags[0] = 1
    normal_force = contact_force_normal(particle_pos, particle_radii[tid], disk_position, disk_radius, penalty_stiffness)

    for k in range(node_indices.shape[1]):
        node_idx = node_indices[tid, k]
        if node_idx >= 0:
            weight = weights[tid, k]
            weight_gradient = weight_gradients[tid, k]

            # Taylor (affine) momentum transfer
            momentum = weight * particle_mass * (particle_vel + velocity_gradient @ (grid_positions[node_idx] - particle_pos))
            internal_force = -particle_volume * (stress @ weight_gradient) + weight * particle_mass * body_force

            wp.atomic_add(grid_mass, node_idx, weight * particle_mass)
            wp.atomic_add(grid_momentum, node_idx, momentum)
            wp.atomic_add(grid_internal_forces, node_idx, internal_force)
            wp.atomic_add(grid_external_forces, node_idx, weight * normal_force)

@wp.kernel
def update_grid_velocity_kernel(
    grid_mass: wp.array(dtype=float),
    grid_inv_mass: wp.array(dtype=float),
    grid_momentum: wp.array(dtype=wp.vec2),
    grid_internal_forces: wp.array(dtype=wp.vec2),
    grid_external_forces: wp.array(dtype=wp.vec2),
    grid_velocities_n: wp.array(dtype=wp.vec2),
    grid_velocities: wp.array(dtype=wp.vec2),
    disk_velocity: wp.vec2,
    friction_coefficient: float,
    timestep: float):

    tid = wp.tid()
    mass = grid_mass[tid]

    inv_mass = float(0.0)
    if mass != 0.0:
        inv_mass = 1.0 / mass
    grid_inv_mass[tid] = inv_mass

    velocity_n = grid_momentum[tid] * inv_mass
    grid_velocities_n[tid] = velocity_n

    # Internal forces first; friction then sees the updated sliding velocity
    velocity = velocity_n + grid_internal_forces[tid] * inv_mass * timestep

    external_force = grid_external_forces[tid]
    external_force += contact_force_tangent(external_force, velocity - disk_velocity, mass, timestep, friction_coefficient)
    grid_external_forces[tid] = external_force

    grid_velocities[tid] = velocity + external_force * inv_mass * timestep

@wp.kernel
def apply_boundary_conditions_kernel(
    grid_velocities: wp.array(dtype=wp.vec2),
    nx: int,
    ny: int):

    tid = wp.tid()
    ix = tid // ny
    iy = tid % ny

    velocity = grid_velocities[tid]

    # Left/right walls: slip, horizontal motion blocked
    if ix == 0 or ix == nx - 1:
        velocity = wp.vec2(0.0, velocity[1])
    # Bottom/top: fixed
    if iy == 0 or iy == ny - 1:
        velocity = wp.vec2(0.0, 0.0)

    grid_velocities[tid] = velocity


class Grid:
    """
    Regular 2D background grid stored as flat arrays; node ``(ix, iy)`` lives
    at index ``ix * ny + iy``.
    """
    def __init__(self, extent, grid_space, origin=(0.0, 0.0), device=None):
        self.grid_space = float(grid_space)
        self.origin = (float(origin[0]), float(origin[1]))
        self.extent = (float(extent[0]), float(extent[1]))
        self.device = device

        self.nx = int(round(self.extent[0] / self.grid_space)) + 1
        self.ny = int(round(self.extent[1] / self.grid_space)) + 1
        self.num_nodes = self.nx * self.ny

        n = self.num_nodes
        self.positions = wp.zeros(n, dtype=wp.vec2, device=device)
        self.mass = wp.zeros(n, dtype=float, device=device)
        self.inv_mass = wp.zeros(n, dtype=float, device=device)
        self.momentum = wp.zeros(n, dtype=wp.vec2, device=device)
        self.internal_forces = wp.zeros(n, dtype=wp.vec2, device=device)
        self.external_forces = wp.zeros(n, dtype=wp.vec2, device=device)
        self.velocities = wp.zeros(n, dtype=wp.vec2, device=device)
        self.velocities_n = wp.zeros(n, dtype=wp.vec2, device=device)

        # Raised by P2G when a particle coincides with the disk center
        self.contact_flags = wp.zeros(1, dtype=int, device=device)

        wp.launch(
            kernel=initialize_positions_kernel,
            dim=n,
            inputs=[self.positions, wp.vec2(*self.origin), self.grid_space, self.ny],
            device=device,
        )
        logger.debug("Grid %d x %d nodes, spacing %g", self.nx, self.ny, self.grid_space)

    @property
    def volume(self):
        return self.extent[0] * self.extent[1]

    def node_index(self, ix, iy):
        return ix * self.ny + iy

    def clear(self):
        wp.launch(
            kernel=clear_kernel,
            dim=self.num_nodes,
            inputs=[self.mass, self.momentum, self.internal_forces, self.external_forces],
            device=self.device,
        )
        self.contact_flags.zero_()

    def transfer_from_particles(self, particle_system: ParticleSystem, weights: InterpolationWeights, disk):
        # Accumulate mass, momentum, internal and normal contact forces
        self.clear()

        wp.launch(
            kernel=transfer_particles_to_grid_kernel,
            dim=particle_system.num_particles,
            inputs=[
                particle_system.positions,
                particle_system.masses,
                particle_system.volumes,
                particle_system.radii,
                particle_system.velocities,
                particle_system.velocity_gradients,
                particle_system.stresses,
                particle_system.body_forces,
                weights.node_indices,
                weights.weights,
                weights.weight_gradients,
                self.positions,
                self.mass,
                self.momentum,
                self.internal_forces,
                self.external_forces,
                wp.vec2(*disk.position),
                disk.radius,
                disk.penalty_stiffness,
                self.contact_flags,
            ],
            device=self.device,
        )

    def update_velocity(self, disk, timestep):
        wp.launch(
            kernel=update_grid_velocity_kernel,
            dim=self.num_nodes,
            inputs=[
                self.mass,
                self.inv_mass,
                self.momentum,
                self.internal_forces,
                self.external_forces,
                self.velocities_n,
                self.velocities,
                wp.vec2(*disk.velocity),
                disk.friction_coefficient,
                timestep,
            ],
            device=self.device,
        )

    def apply_boundary_conditions(self):
        wp.launch(
            kernel=apply_boundary_conditions_kernel,
            dim=self.num_nodes,
            inputs=[self.velocities, self.nx, self.ny],
            device=self.device,
        )

    def has_degenerate_contact(self):
        return bool(self.contact_flags.numpy()[0])

    def total_mass(self):
        return float(self.mass.numpy().astype(np.float64).sum())

    def total_external_force(self):
        return self.external_forces.numpy().astype(np.float64).sum(axis=0)

    def boundary_node_mask(self):
        """Boolean masks (walls, floor_and_ceiling) over the flat node array."""
        ix, iy = np.divmod(np.arange(self.num_nodes), self.ny)
        walls = (ix == 0) | (ix == self.nx - 1)
        floor_and_ceiling = (iy == 0) | (iy == self.ny - 1)
        return walls, floor_and_ceiling
