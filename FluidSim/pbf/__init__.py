# -- PBF Engine Package -- #

'''
Core position-based fluids engine.

Provides the particle pool, parameter store, parallel dispatch,
spatial hash neighbor search, smoothing kernels, the PBF constraint
solver, and the substep loop.
'''

from FluidSim.pbf.protocols import SimulationConfig, FrameSnapshot, SubstepStage, ConstraintSolver
from FluidSim.pbf.particles import ParticleState
from FluidSim.pbf.parameters import FluidParameters, ParameterStore
from FluidSim.pbf.dispatch import AtomicCounter, AtomicIndexArray, WorkerDispatcher
from FluidSim.pbf.neighborSearch import SpatialHashGrid, NeighborList, NeighborFinder
from FluidSim.pbf.pbfSolver import PbfSolver
from FluidSim.pbf.simulationLoop import SimulationLoop
