import math

import numpy as np
import pytest
import warp as wp

from contact_mpm import (
    Grid,
    MPMSolver,
    ParticleSystem,
    RigidDisk,
    ConfigurationError,
    SimulationFailedError,
    DegenerateContactError,
    setup_simulation,
)
from contact_mpm.mpm_solver import save_points


@pytest.fixture
def solver(coarse_params):
    return setup_simulation(coarse_params)


def test_save_points():
    points = save_points(0.0, 2.0, 20)
    assert len(points) == 41
    assert points[0] == 0.0
    assert points[-1] == pytest.approx(2.0)
    assert np.diff(points) == pytest.approx(np.full(40, 0.05))


def test_initial_timestep_follows_wave_speed(solver, coarse_params):
    wave_speed = math.sqrt((coarse_params.lame_lambda + 2.0 * coarse_params.shear_modulus) / coarse_params.initial_density)
    assert solver.compute_timestep() == pytest.approx(coarse_params.grid_space / wave_speed, rel=1e-5)


def test_single_step(solver, coarse_params):
    start = solver.disk.position
    dt = solver.run_time_step()

    assert dt > 0.0
    assert solver.step == 1
    assert solver.time == pytest.approx(dt)
    assert solver.disk.position[1] == pytest.approx(start[1] + coarse_params.disk_velocity[1] * dt)
    assert solver.grid.total_mass() == pytest.approx(solver.particle_system.total_mass(), rel=1e-4)

    velocities = solver.grid.velocities.numpy()
    walls, floor_and_ceiling = solver.grid.boundary_node_mask()
    assert np.all(velocities[walls, 0] == 0.0)
    assert np.all(velocities[floor_and_ceiling] == 0.0)


def test_short_run(solver, coarse_params):
    visits = []
    force = solver.run(end_time=0.005, callback=lambda s: visits.append(s.time))

    assert solver.time >= 0.005
    assert force.shape == (2,)
    assert np.all(np.isfinite(force))
    assert solver.particle_system.count_non_finite() == 0

    # fps = 20 gives one save point (t = 0) inside 5 ms
    assert len(visits) == 1
    assert visits[0] > 0.0


def test_callback_fires_once_per_save_point(coarse_params):
    solver = setup_simulation(coarse_params.replace(fps=1000.0))
    visits = []
    solver.run(end_time=0.005, callback=lambda s: visits.append(s.time))

    expected = [t for t in save_points(0.0, 0.005, 1000.0) if t < solver.time]
    assert len(visits) == len(expected)
    assert all(later > earlier for earlier, later in zip(visits, visits[1:]))


def test_runs_are_deterministic(coarse_params):
    first = setup_simulation(coarse_params)
    second = setup_simulation(coarse_params)
    for _ in range(5):
        first.run_time_step()
        second.run_time_step()

    assert first.time == second.time
    np.testing.assert_array_equal(first.particle_system.positions.numpy(), second.particle_system.positions.numpy())
    np.testing.assert_array_equal(first.particle_system.stresses.numpy(), second.particle_system.stresses.numpy())


def test_non_positive_end_time(solver):
    with pytest.raises(ConfigurationError):
        solver.run(end_time=0.0)


def test_non_finite_velocity_fails_timestep(solver):
    velocities = solver.particle_system.velocities.numpy()
    velocities[3] = [np.nan, 0.0]
    solver.particle_system.velocities = wp.array(velocities, dtype=wp.vec2, device=solver.particle_system.device)

    with pytest.raises(SimulationFailedError):
        solver.run_time_step()


def test_non_finite_stress_fails_divergence_check(solver):
    stresses = solver.particle_system.stresses.numpy()
    stresses[7, 1, 1] = np.inf
    solver.particle_system.set_stresses(stresses)

    assert solver.particle_system.count_non_finite() == 1
    with pytest.raises(SimulationFailedError):
        solver.check_divergence()


def test_particle_at_disk_center(coarse_params, device):
    grid = Grid(extent=(0.1, 0.1), grid_space=0.01, device=device)
    particle_system = ParticleSystem([[0.05, 0.05], [0.02, 0.02]], 2.5e-5, 1e3, device=device)
    disk = RigidDisk(position=(0.05, 0.05), velocity=(0.0, 0.0), radius=0.01, penalty_stiffness=1e6)
    solver = MPMSolver(particle_system, grid, disk, coarse_params)

    with pytest.raises(DegenerateContactError):
        solver.run_time_step()
    assert issubclass(DegenerateContactError, SimulationFailedError)


def test_zero_wave_speed_is_a_configuration_error(coarse_params, device):
    grid = Grid(extent=(0.1, 0.1), grid_space=0.01, device=device)
    particle_system = ParticleSystem([[0.05, 0.05]], 2.5e-5, 1e3, device=device)
    disk = RigidDisk(position=(1.0, 1.0), velocity=(0.0, 0.0), radius=0.01, penalty_stiffness=1e6)
    solver = MPMSolver(particle_system, grid, disk, coarse_params)

    solver.lame_lambda = solver.shear_modulus = 0.0
    with pytest.raises(ConfigurationError):
        solver.compute_timestep()
