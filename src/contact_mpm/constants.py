# Scenario defaults: elastoplastic ground pushed by a rigid disk

GRID_SPACE = 0.004          # Grid spacing (m)
END_TIME = 5.0              # Simulated time span (s)
GRAVITY = 9.81              # Gravity acceleration (m/s^2)
COURANT_NUMBER = 1.0

YOUNGS_MODULUS = 1e6        # Young's modulus (Pa)
POISSONS_RATIO = 0.49       # Poisson's ratio, nearly incompressible
YIELD_STRESS = 1e3          # von Mises yield stress (Pa)
INITIAL_DENSITY = 1e3       # kg/m^3

DISK_DIAMETER = 0.04        # D
DISK_START_HEIGHT = 7.5     # in units of D
DISK_SPEED = 0.25           # downward, in units of D per second
GROUND_HEIGHT = 7.0         # in units of D
DOMAIN_WIDTH = 5.0          # in units of D
DOMAIN_HEIGHT = 8.0         # in units of D

PENALTY_STIFFNESS = 1e6     # Contact penalty coefficient (N/m)
FRICTION_COEFFICIENT = 0.6

PARTICLE_SPACING = 0.5      # Particle spacing relative to grid spacing
PARTICLE_SAMPLING = "grid"  # "grid" (2x2 per cell) or "poisson" (Poisson-disk)
SAMPLING_SEED = 0
FPS = 20                    # Snapshots per simulated second
DIVERGENCE_CHECK_INTERVAL = 100
PROGRESS_LOG_INTERVAL = 1000

STENCIL_SIZE = 9            # 3x3 nodes for the quadratic B-spline

DEVICE = None               # None picks the Warp default device
