"""Shared defaults for the tpxcoin project."""

# Default edges per pixel axis (Timepix 256 x 256 sensor)
N_PIXELS = 256

# Default number of radial edges
N_RADIAL = 128

CARTESIAN = "cartesian"
RADIAL = "radial"
GEOMETRIES = (CARTESIAN, RADIAL)

# Coordinate columns per geometry, in histogram axis order
GEOMETRY_COLUMNS = {
    CARTESIAN: ("x", "y"),
    RADIAL: ("r",),
}

SHOT_COLUMN = "shot"

# Out-of-range coordinate handling
REJECT = "reject"
CLAMP = "clamp"
BOUNDARY_POLICIES = (REJECT, CLAMP)

POISSON = "poisson"
BINOMIAL = "binomial"
BACKGROUND_MODELS = (POISSON, BINOMIAL)
