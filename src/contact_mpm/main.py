import argparse
import logging
import os

from .parameters import SimulationParameters
from .scenario import setup_simulation
from .logging_config import setup_logging
from .rendering.utils import save_rendered_frame, save_simulation_state, load_simulation_state

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    defaults = SimulationParameters()
    parser = argparse.ArgumentParser(description="Elastoplastic ground pushed by a rigid disk (explicit MPM).")
    parser.add_argument("--grid-space", type=float, default=defaults.grid_space, help="Grid spacing h (m).")
    parser.add_argument("--end-time", type=float, default=defaults.end_time, help="Simulated time span (s).")
    parser.add_argument("--fps", type=float, default=defaults.fps, help="Snapshots per simulated second.")
    parser.add_argument("--sampling", choices=("grid", "poisson"), default=defaults.particle_sampling,
                        help="Particle sampling of the ground.")
    parser.add_argument("--device", type=str, default=defaults.device, help="Warp device, e.g. cpu or cuda:0.")
    parser.add_argument("--output-dir", type=str, default=os.path.join("output", "rigid_body_contact"))
    parser.add_argument("--no-frames", action="store_true", help="Do not write PNG frames.")
    parser.add_argument("--state-every", type=int, default=20, help="Save restart state every N frames (0 disables).")
    parser.add_argument("--resume", type=str, default=None, help="Restart state file to continue from.")
    parser.add_argument("--log-level", type=str, default="INFO")
    parser.add_argument("--log-file", type=str, default=None)
    return parser.parse_args(argv)


def run_simulation(args):
    """Build the disk scenario from parsed CLI arguments, run it and return the total contact force."""
    params = SimulationParameters().replace(
        grid_space=args.grid_space,
        end_time=args.end_time,
        fps=args.fps,
        particle_sampling=args.sampling,
        device=args.device,
    )
    solver = setup_simulation(params)

    frames_dir = os.path.join(args.output_dir, "frames")
    state_path = os.path.join(args.output_dir, "simulation_state.pkl")
    os.makedirs(args.output_dir, exist_ok=True)

    frame_id = 0
    if args.resume:
        frame_id = load_simulation_state(solver, args.resume) + 1

    def on_save_point(solver):
        nonlocal frame_id
        if not args.no_frames:
            save_rendered_frame(frames_dir, frame_id, solver)
        if args.state_every > 0 and frame_id % args.state_every == 0:
            save_simulation_state(frame_id, solver, state_path)
        frame_id += 1

    force = solver.run(params.end_time, callback=on_save_point)
    logger.info("Sum of contact forces on the grid: [%.3f, %.3f]", force[0], force[1])
    return force


def main(argv=None):
    args = parse_args(argv)
    setup_logging(getattr(logging, args.log_level.upper(), logging.INFO), args.log_file)
    run_simulation(args)


if __name__ == "__main__":
    main()
