import os

import numpy as np
import pytest
from PIL import Image

from contact_mpm import setup_simulation
from contact_mpm.rendering import save_rendered_frame, save_simulation_state, load_simulation_state
from contact_mpm.rendering.utils import colormap


def test_colormap_ends():
    colours = colormap([0.0, 0.5, 1.0])
    assert colours.shape == (3, 3)
    assert colours.dtype == np.uint8
    assert colours[0][2] > colours[0][0]
    assert colours[2][0] > colours[2][2]


@pytest.mark.parametrize("field", ["von_mises", "deviatoric_strain"])
def test_frame_is_written(coarse_params, tmp_path, field):
    solver = setup_simulation(coarse_params)
    path = save_rendered_frame(str(tmp_path / "frames"), 3, solver, pixels_per_meter=500, field=field)

    assert os.path.basename(path) == "frame_0003.png"
    with Image.open(path) as image:
        assert image.size == (101, 161)


def test_unknown_field(coarse_params, tmp_path):
    solver = setup_simulation(coarse_params)
    with pytest.raises(ValueError):
        save_rendered_frame(str(tmp_path), 0, solver, field="pressure")


def test_state_round_trip(coarse_params, tmp_path):
    solver = setup_simulation(coarse_params)
    for _ in range(3):
        solver.run_time_step()
    state_path = str(tmp_path / "state.pkl")
    save_simulation_state(7, solver, state_path)

    restored = setup_simulation(coarse_params)
    assert load_simulation_state(restored, state_path) == 7
    assert restored.step == 3
    assert restored.time == solver.time
    assert restored.disk.position == solver.disk.position
    np.testing.assert_array_equal(restored.particle_system.positions.numpy(), solver.particle_system.positions.numpy())
    np.testing.assert_array_equal(restored.particle_system.stresses.numpy(), solver.particle_system.stresses.numpy())

    # Continuing from the restored state matches continuing the saved solver
    solver.run_time_step()
    restored.run_time_step()
    np.testing.assert_array_equal(restored.particle_system.velocities.numpy(), solver.particle_system.velocities.numpy())


def test_state_particle_count_mismatch(coarse_params, tmp_path):
    solver = setup_simulation(coarse_params)
    state_path = str(tmp_path / "state.pkl")
    save_simulation_state(0, solver, state_path)

    other = setup_simulation(coarse_params.replace(ground_height=6.0))
    with pytest.raises(ValueError):
        load_simulation_state(other, state_path)
