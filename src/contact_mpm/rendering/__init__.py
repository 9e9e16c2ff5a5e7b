from .utils import save_rendered_frame, save_simulation_state, load_simulation_state

__all__ = [
    'save_rendered_frame',
    'save_simulation_state',
    'load_simulation_state',
]
