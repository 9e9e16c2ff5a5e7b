import logging
import os
import pickle

import numpy as np
import warp as wp
from PIL import Image, ImageDraw

logger = logging.getLogger(__name__)


def colormap(values, vmin=None, vmax=None):
    """Blue -> white -> red ramp, returns (n, 3) uint8 colours."""
    values = np.asarray(values, dtype=np.float64)
    if vmin is None:
        vmin = float(values.min()) if values.size else 0.0
    if vmax is None:
        vmax = float(values.max()) if values.size else 1.0
    span = vmax - vmin if vmax > vmin else 1.0
    t = np.clip((values - vmin) / span, 0.0, 1.0)[:, None]

    blue = np.array([59, 76, 192], dtype=np.float64)
    white = np.array([221, 221, 221], dtype=np.float64)
    red = np.array([180, 4, 38], dtype=np.float64)
    colours = np.where(t < 0.5, blue + (white - blue) * (2.0 * t), white + (red - white) * (2.0 * t - 1.0))
    return colours.astype(np.uint8)


def save_rendered_frame(frames_dir, frame_id, solver, pixels_per_meter=2000, field="von_mises"):
    """
    Draw particles coloured by von Mises stress (or deviatoric strain) and the
    disk outline into ``frames_dir/frame_XXXX.png``.
    """
    os.makedirs(frames_dir, exist_ok=True)

    grid = solver.grid
    disk = solver.disk
    particle_system = solver.particle_system

    width = int(round(grid.extent[0] * pixels_per_meter)) + 1
    height = int(round(grid.extent[1] * pixels_per_meter)) + 1

    positions = particle_system.positions.numpy()
    if field == "von_mises":
        values = 1e-3 * particle_system.von_mises_stress()  # kPa
    elif field == "deviatoric_strain":
        values = particle_system.deviatoric_strain()
    else:
        raise ValueError(f"Unknown field '{field}'.")
    colours = colormap(values)

    image = Image.new("RGB", (width, height), (255, 255, 255))
    draw = ImageDraw.Draw(image)

    def to_pixels(x, y):
        # Image origin is top-left
        return ((x - grid.origin[0]) * pixels_per_meter, height - 1 - (y - grid.origin[1]) * pixels_per_meter)

    radius_px = max(1.0, 0.25 * grid.grid_space * pixels_per_meter)
    for (x, y), colour in zip(positions, colours):
        px, py = to_pixels(x, y)
        draw.ellipse([px - radius_px, py - radius_px, px + radius_px, py + radius_px], fill=tuple(int(c) for c in colour))

    cx, cy = to_pixels(*disk.position)
    r = disk.radius * pixels_per_meter
    draw.ellipse([cx - r, cy - r, cx + r, cy + r], outline=(0, 0, 0), width=2)

    frame_path = os.path.join(frames_dir, f"frame_{frame_id:04d}.png")
    image.save(frame_path)
    logger.debug("Saved frame %s", frame_path)
    return frame_path


def save_simulation_state(frame_id, solver, file_path="simulation_state.pkl"):
    particle_system = solver.particle_system
    state = {
        "frame_id": frame_id,
        "time": solver.time,
        "step": solver.step,
        "num_particles": particle_system.num_particles,
        "positions": particle_system.positions.numpy(),
        "velocities": particle_system.velocities.numpy(),
        "velocity_gradients": particle_system.velocity_gradients.numpy(),
        "masses": particle_system.masses.numpy(),
        "volumes": particle_system.volumes.numpy(),
        "radii": particle_system.radii.numpy(),
        "deformation_gradients": particle_system.deformation_gradients.numpy(),
        "stresses": particle_system.stresses.numpy(),
        "strains": particle_system.strains.numpy(),
        "body_forces": particle_system.body_forces.numpy(),
        "disk_position": solver.disk.position,
        "disk_velocity": solver.disk.velocity,
    }
    with open(file_path, "wb") as f:
        pickle.dump(state, f)
    logger.info("Simulation state saved at frame %d (t = %.4f)", frame_id, solver.time)


def load_simulation_state(solver, file_path="simulation_state.pkl"):
    with open(file_path, "rb") as f:
        state = pickle.load(f)

    particle_system = solver.particle_system
    if state["num_particles"] != particle_system.num_particles:
        raise ValueError(
            f"Saved state has {state['num_particles']} particles, solver has {particle_system.num_particles}."
        )

    device = particle_system.device
    particle_system.positions = wp.array(state["positions"], dtype=wp.vec2, device=device)
    particle_system.velocities = wp.array(state["velocities"], dtype=wp.vec2, device=device)
    particle_system.velocity_gradients = wp.array(state["velocity_gradients"], dtype=wp.mat22, device=device)
    particle_system.masses = wp.array(state["masses"], dtype=float, device=device)
    particle_system.volumes = wp.array(state["volumes"], dtype=float, device=device)
    particle_system.radii = wp.array(state["radii"], dtype=float, device=device)
    particle_system.deformation_gradients = wp.array(state["deformation_gradients"], dtype=wp.mat33, device=device)
    particle_system.stresses = wp.array(state["stresses"], dtype=wp.mat33, device=device)
    particle_system.strains = wp.array(state["strains"], dtype=wp.mat33, device=device)
    particle_system.body_forces = wp.array(state["body_forces"], dtype=wp.vec2, device=device)

    solver.disk.position = tuple(state["disk_position"])
    solver.disk.velocity = tuple(state["disk_velocity"])
    solver.time = state["time"]
    solver.step = state["step"]

    logger.info("Simulation state loaded from frame %d (t = %.4f)", state["frame_id"], solver.time)
    return state["frame_id"]
