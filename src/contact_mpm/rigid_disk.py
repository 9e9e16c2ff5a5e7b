import numpy as np
import warp as wp


@wp.func
def contact_force_normal(
    position: wp.vec2,
    radius: float,
    disk_position: wp.vec2,
    disk_radius: float,
    penalty_stiffness: float) -> wp.vec2:
    """
    Linear penalty force pushing a particle of radius ``radius`` out of the disk.
    One-sided: zero as soon as the particle no longer overlaps.
    """
    d = position - disk_position
    gap = disk_radius - (wp.length(d) - radius)
    if gap > 0.0:
        return penalty_stiffness * gap * wp.normalize(d)
    return wp.vec2(0.0, 0.0)

@wp.func
def contact_force_tangent(
    normal_force: wp.vec2,
    relative_velocity: wp.vec2,
    mass: float,
    timestep: float,
    friction_coefficient: float) -> wp.vec2:
    """
    Coulomb friction capped at the cone boundary.

    The sticking force cancels the tangential relative velocity in one step;
    if it exceeds mu * |f_n| it is scaled down onto the cone (sliding).
    """
    fn_norm = wp.length(normal_force)
    if fn_norm == 0.0:
        return wp.vec2(0.0, 0.0)

    n = normal_force / fn_norm
    sticking_force = -mass * (relative_velocity - wp.dot(relative_velocity, n) * n) / timestep

    ft_norm = wp.length(sticking_force)
    if ft_norm == 0.0:
        return sticking_force
    return wp.min(1.0, friction_coefficient * fn_norm / ft_norm) * sticking_force


@wp.kernel
def contact_normal_kernel(
    positions: wp.array(dtype=wp.vec2),
    radii: wp.array(dtype=float),
    disk_position: wp.vec2,
    disk_radius: float,
    penalty_stiffness: float,
    forces: wp.array(dtype=wp.vec2)):

    tid = wp.tid()
    forces[tid] = contact_force_normal(positions[tid], radii[tid], disk_position, disk_radius, penalty_stiffness)

@wp.kernel
def contact_tangent_kernel(
    normal_forces: wp.array(dtype=wp.vec2),
    relative_velocities: wp.array(dtype=wp.vec2),
    masses: wp.array(dtype=float),
    timestep: float,
    friction_coefficient: float,
    forces: wp.array(dtype=wp.vec2)):

    tid = wp.tid()
    forces[tid] = contact_force_tangent(normal_forces[tid], relative_velocities[tid], masses[tid], timestep, friction_coefficient)


class RigidDisk:
    """
    Rigid disk driven with a prescribed velocity.

    position/velocity are plain host tuples; kernels get them by value, so the
    state seen by one step is a snapshot and only ``advance`` mutates it.
    """
    def __init__(self, position, velocity, radius, penalty_stiffness, friction_coefficient=0.6):
        self.position = (float(position[0]), float(position[1]))
        self.velocity = (float(velocity[0]), float(velocity[1]))
        self.radius = float(radius)
        self.penalty_stiffness = float(penalty_stiffness)
        self.friction_coefficient = float(friction_coefficient)

    def set_velocity(self, velocity):
        self.velocity = (float(velocity[0]), float(velocity[1]))

    def advance(self, timestep):
        self.position = (
            self.position[0] + self.velocity[0] * timestep,
            self.position[1] + self.velocity[1] * timestep,
        )

    def normal_forces(self, positions, radii, device=None):
        """Penalty forces on the given points, (n, 2) NumPy."""
        positions_np = np.asarray(positions, dtype=np.float32).reshape(-1, 2)
        radii_np = np.asarray(radii, dtype=np.float32).reshape(-1)
        n = positions_np.shape[0]
        forces = wp.zeros(n, dtype=wp.vec2, device=device)
        wp.launch(
            kernel=contact_normal_kernel,
            dim=n,
            inputs=[
                wp.array(positions_np, dtype=wp.vec2, device=device),
                wp.array(radii_np, dtype=float, device=device),
                wp.vec2(*self.position),
                self.radius,
                self.penalty_stiffness,
                forces,
            ],
            device=device,
        )
        return forces.numpy()

    def tangent_forces(self, normal_forces, relative_velocities, masses, timestep, device=None):
        """Friction forces for the given normal forces and sliding velocities, (n, 2) NumPy."""
        normal_np = np.asarray(normal_forces, dtype=np.float32).reshape(-1, 2)
        velocities_np = np.asarray(relative_velocities, dtype=np.float32).reshape(-1, 2)
        masses_np = np.asarray(masses, dtype=np.float32).reshape(-1)
        n = normal_np.shape[0]
        forces = wp.zeros(n, dtype=wp.vec2, device=device)
        wp.launch(
            kernel=contact_tangent_kernel,
            dim=n,
            inputs=[
                wp.array(normal_np, dtype=wp.vec2, device=device),
                wp.array(velocities_np, dtype=wp.vec2, device=device),
                wp.array(masses_np, dtype=float, device=device),
                timestep,
                self.friction_coefficient,
                forces,
            ],
            device=device,
        )
        return forces.numpy()

    def __repr__(self):
        return f"RigidDisk(position={self.position}, velocity={self.velocity}, radius={self.radius})"
