import math

# Gravitational constant in km^3 kg^-1 s^-2
DEFAULT_G = 6.67384e-20

# Simulated seconds per real second before the warp factor is applied
SIM_SECONDS_PER_REAL_SECOND = 1.0

# Longest single integration step in simulated seconds
MAX_DELTA_T = 100.0

# Warp factor range and the multiplier used by speed-up / slow-down
WARP_SCALE = 1.25
MIN_WARP = 0.25
MAX_WARP = 4.0

FULL_REVOLUTION = 2.0 * math.pi

# Spin axis of an untilted body, and the axis tilt rotates about
DEFAULT_ROT_AXIS = (0.0, 1.0, 0.0)
DEFAULT_TILT_AXIS = (1.0, 0.0, 0.0)

CELESTIAL_SPHERE_NAME = "Celestial Sphere"
DEFAULT_SPHERE_RADIUS = 1.0

# Initial positions closer than this (scaled units) count as coincident
COINCIDENT_DISTANCE = 1e-9
