"""
Simulation parameters
=====================
Plain numeric configuration for the disk contact scenario. Defaults come from
``constants``; derived quantities (Lame parameters, geometry) are properties so
they always follow the primary values.
"""
from __future__ import annotations

from dataclasses import dataclass, asdict
import dataclasses
import logging
import math
from typing import Optional, Tuple

from .constants import *
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimulationParameters:
    grid_space: float = GRID_SPACE
    end_time: float = END_TIME
    gravity: float = GRAVITY
    courant_number: float = COURANT_NUMBER

    youngs_modulus: float = YOUNGS_MODULUS
    poissons_ratio: float = POISSONS_RATIO
    yield_stress: float = YIELD_STRESS
    initial_density: float = INITIAL_DENSITY

    disk_diameter: float = DISK_DIAMETER
    disk_start_height: float = DISK_START_HEIGHT
    disk_speed: float = DISK_SPEED
    ground_height: float = GROUND_HEIGHT
    domain_width: float = DOMAIN_WIDTH
    domain_height: float = DOMAIN_HEIGHT

    penalty_stiffness: float = PENALTY_STIFFNESS
    friction_coefficient: float = FRICTION_COEFFICIENT

    particle_spacing: float = PARTICLE_SPACING
    particle_sampling: str = PARTICLE_SAMPLING
    sampling_seed: Optional[int] = SAMPLING_SEED
    fps: float = FPS
    divergence_check_interval: int = DIVERGENCE_CHECK_INTERVAL
    progress_log_interval: int = PROGRESS_LOG_INTERVAL
    device: Optional[str] = DEVICE

    @property
    def lame_lambda(self) -> float:
        E, nu = self.youngs_modulus, self.poissons_ratio
        return E * nu / ((1.0 + nu) * (1.0 - 2.0 * nu))

    @property
    def shear_modulus(self) -> float:
        return self.youngs_modulus / (2.0 * (1.0 + self.poissons_ratio))

    @property
    def disk_radius(self) -> float:
        return 0.5 * self.disk_diameter

    @property
    def ground_level(self) -> float:
        """Height H of the free surface of the ground."""
        return self.ground_height * self.disk_diameter

    @property
    def domain_extent(self) -> Tuple[float, float]:
        D = self.disk_diameter
        return (self.domain_width * D, self.domain_height * D)

    @property
    def disk_position(self) -> Tuple[float, float]:
        return (0.0, self.disk_start_height * self.disk_diameter)

    @property
    def disk_velocity(self) -> Tuple[float, float]:
        return (0.0, -self.disk_speed * self.disk_diameter)

    def replace(self, **overrides) -> "SimulationParameters":
        return dataclasses.replace(self, **overrides)

    def to_dict(self) -> dict:
        return asdict(self)

    def validate(self) -> None:
        """Raise ``ConfigurationError`` for values the physics cannot run with."""
        positive = {
            "grid_space": self.grid_space,
            "end_time": self.end_time,
            "courant_number": self.courant_number,
            "youngs_modulus": self.youngs_modulus,
            "initial_density": self.initial_density,
            "disk_diameter": self.disk_diameter,
            "particle_spacing": self.particle_spacing,
            "fps": self.fps,
            "divergence_check_interval": self.divergence_check_interval,
            "progress_log_interval": self.progress_log_interval,
        }
        for name, value in positive.items():
            if not (math.isfinite(value) and value > 0):
                raise ConfigurationError(f"'{name}' must be positive, got {value!r}.")

        non_negative = {
            "gravity": self.gravity,
            "yield_stress": self.yield_stress,
            "penalty_stiffness": self.penalty_stiffness,
            "friction_coefficient": self.friction_coefficient,
        }
        for name, value in non_negative.items():
            if not (math.isfinite(value) and value >= 0):
                raise ConfigurationError(f"'{name}' must be non-negative, got {value!r}.")

        if not -1.0 < self.poissons_ratio < 0.5:
            raise ConfigurationError(
                f"'poissons_ratio' must lie in (-1, 0.5), got {self.poissons_ratio!r}."
            )
        if self.particle_sampling not in ("grid", "poisson"):
            raise ConfigurationError(
                f"'particle_sampling' must be 'grid' or 'poisson', got {self.particle_sampling!r}."
            )
        if self.ground_height > self.domain_height:
            raise ConfigurationError("Ground surface lies above the top of the grid.")

        logger.debug("Parameters validated: %s", self)
