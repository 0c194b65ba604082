# -- Boot-Time Constants for PBF Fluid Simulation -- #

'''
Default configuration values for the position-based fluids simulation.

These are the boot-time constants of the simulation core. Runtime
tunables (rest density, epsilon, support radius, ...) start from these
values and are then owned by the ParameterStore.

References:
-----------
Macklin & Muller (2013) -- Position Based Fluids
Stanford CS348C PA1 (2016) -- PBF parameter choices
'''

#--------------------------------------------------------------------#
# -- Particle Pool and Spatial Hash -- #
#--------------------------------------------------------------------#

# Worker group size used to size the particle pool
workGroupSize: int = 1536

# Number of particles N (fixed for the lifetime of a simulation)
particleCount: int = workGroupSize * 10

# Maximum neighbors recorded per particle M (hard cap, silent truncation)
maxNeighbors: int = 500

# Sentinel marking an empty bucket head or the end of a bucket chain
NONE: int = 0xFFFFFFFF

# Large primes for the spatial hash (Teschner et al. 2003)
hashPrimes: tuple[int, int, int] = (73856093, 19349663, 83492791)

#--------------------------------------------------------------------#
# -- Timestep Control -- #
#--------------------------------------------------------------------#

# Substeps S per rendered frame
substeps: int = 2

# Constraint solver iterations K per substep (fixed, no early exit)
solverIterations: int = 4

# Maximum substep delta (roughly 1/120 s)
maxDeltaTime: float = 0.0083

#--------------------------------------------------------------------#
# -- Fluid Parameters -- #
#--------------------------------------------------------------------#

# Rest density rho_0
restDensity: float = 600.0

# Kernel support radius h (also the spatial hash cell size)
supportRadius: float = 0.5

# Constraint force mixing / relaxation epsilon
relaxationEpsilon: float = 6000.0

# Pressure radius as a fraction of the support radius (delta_q / h)
pressureRadiusRatio: float = 0.1

# Tensile instability strength k and exponent n for s_corr
tensileStrength: float = 0.01
tensileExponent: int = 4

# XSPH velocity smoothing coefficient c
xsphCoefficient: float = 0.003

# Vorticity confinement epsilon
vorticityEpsilon: float = 0.0013

# Offset applied when a particle is pushed back inside the domain
collisionEpsilon: float = 0.0001

# Gravitational acceleration (y up)
gravity: tuple[float, float, float] = (0.0, -9.8, 0.0)

#--------------------------------------------------------------------#
# -- Initial Condition -- #
#--------------------------------------------------------------------#

# Half-extent of the random initialization cube (10 x 10 x 10 centered at 0)
cubeHalfExtent: float = 5.0

# Initial particle color (blue)
initialColor: tuple[float, float, float] = (0.0, 0.0, 1.0)

# Speed at which a particle's color saturates to white
colorSpeedScale: float = 10.0
