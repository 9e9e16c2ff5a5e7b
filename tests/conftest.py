import numpy as np
import pytest
import warp as wp

from contact_mpm import SimulationParameters

wp.init()


@pytest.fixture
def device():
    return "cpu"


@pytest.fixture
def coarse_params(device):
    # Small, fast version of the disk scenario
    return SimulationParameters(grid_space=0.02, end_time=0.01, device=device)


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
