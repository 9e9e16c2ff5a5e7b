import warp as wp

from .constants import STENCIL_SIZE


@wp.func
def N(x: float) -> float:
    # Uniform quadratic B-spline
    abs_x = wp.abs(x)
    if abs_x < 0.5:
        return 0.75 - abs_x * abs_x
    elif abs_x < 1.5:
        return 0.5 * (1.5 - abs_x) * (1.5 - abs_x)
    return 0.0

@wp.func
def N_prime(x: float) -> float:
    abs_x = wp.abs(x)
    if abs_x < 0.5:
        return -2.0 * x
    elif abs_x < 1.5:
        return -wp.sign(x) * (1.5 - abs_x)
    return 0.0


@wp.kernel
def update_weights_kernel(
    particle_positions: wp.array(dtype=wp.vec2),
    grid_origin: wp.vec2,
    grid_space: float,
    nx: int,
    ny: int,
    node_indices: wp.array2d(dtype=int),
    weights: wp.array2d(dtype=float),
    weight_gradients: wp.array2d(dtype=wp.vec2)):

    tid = wp.tid()
    particle_pos = particle_positions[tid]

    # Particle position in grid units
    xi = (particle_pos - grid_origin) / grid_space
    base_x = int(wp.floor(xi[0] - 0.5))
    base_y = int(wp.floor(xi[1] - 0.5))

    near_bounds = int(0)
    moment = wp.mat33(0.0)

    for i in range(3):
        for j in range(3):
            k = i * 3 + j
            ix = base_x + i
            iy = base_y + j

            if ix < 0 or ix >= nx or iy < 0 or iy >= ny:
                near_bounds = 1
                node_indices[tid, k] = -1
                weights[tid, k] = 0.0
                weight_gradients[tid, k] = wp.vec2(0.0, 0.0)
            else:
                dx = xi[0] - float(ix)
                dy = xi[1] - float(iy)
                weight = N(dx) * N(dy)

                node_indices[tid, k] = ix * ny + iy
                weights[tid, k] = weight
                weight_gradients[tid, k] = wp.vec2(
                    (1.0 / grid_space) * N_prime(dx) * N(dy),
                    (1.0 / grid_space) * N(dx) * N_prime(dy),
                )

                # Linear basis P = [1, x_i - x_p] for the correction moment
                P = wp.vec3(1.0, -dx * grid_space, -dy * grid_space)
                moment += weight * wp.outer(P, P)

    # Kernel correction: restore linear completeness where the stencil is cut by the boundary
    if near_bounds == 1:
        moment_inv = wp.inverse(moment)
        for i in range(3):
            for j in range(3):
                k = i * 3 + j
                if node_indices[tid, k] >= 0:
                    dx = xi[0] - float(base_x + i)
                    dy = xi[1] - float(base_y + j)
                    P = wp.vec3(1.0, -dx * grid_space, -dy * grid_space)
                    wq = weights[tid, k] * (moment_inv @ P)
                    weights[tid, k] = wq[0]
                    weight_gradients[tid, k] = wp.vec2(wq[1], wq[2])


class InterpolationWeights:
    """
    Particle-node interpolation relation, recomputed from scratch every step.

    For particle ``p`` and stencil slot ``k`` (0..8), ``node_indices[p, k]`` is
    the flat grid node index (or -1 outside the grid), with weight
    ``weights[p, k]`` and gradient ``weight_gradients[p, k]``.
    """
    def __init__(self, num_particles, device=None):
        self.num_particles = num_particles
        self.device = device
        self.node_indices = wp.full((num_particles, STENCIL_SIZE), -1, dtype=int, device=device)
        self.weights = wp.zeros((num_particles, STENCIL_SIZE), dtype=float, device=device)
        self.weight_gradients = wp.zeros((num_particles, STENCIL_SIZE), dtype=wp.vec2, device=device)

    def update(self, particle_system, grid):
        if particle_system.num_particles != self.num_particles:
            raise ValueError("Particle count changed since the weights were allocated.")

        wp.launch(
            kernel=update_weights_kernel,
            dim=self.num_particles,
            inputs=[
                particle_system.positions,
                wp.vec2(*grid.origin),
                grid.grid_space,
                grid.nx,
                grid.ny,
                self.node_indices,
                self.weights,
                self.weight_gradients,
            ],
            device=self.device,
        )

    def weight_sums(self):
        """Per-particle sum of weights; 1 up to round-off for a valid relation."""
        return self.weights.numpy().sum(axis=1)
