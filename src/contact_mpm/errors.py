class MPMError(Exception):
    """Base class for errors raised by the contact MPM engine."""


class ConfigurationError(MPMError, ValueError):
    """The scenario cannot be run as configured (reported before stepping)."""


class SimulationFailedError(MPMError, RuntimeError):
    """The explicit integration diverged (NaN/Inf in the particle state)."""


class DegenerateContactError(SimulationFailedError):
    """A particle sits exactly on the disk center, so the contact normal is undefined."""
