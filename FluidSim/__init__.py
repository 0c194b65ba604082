# -- FluidSim Package -- #

'''
Position-based fluid simulation over a lock-free spatial hash.

A fixed pool of particles is re-hashed every substep into bucket
chains, each particle gathers bounded neighbor lists from its 27
surrounding cells, and a fixed-iteration PBF solver enforces
incompressibility.
'''

__version__ = '0.1.0'

from FluidSim.pbf.protocols import SimulationConfig, FrameSnapshot
from FluidSim.pbf.simulationLoop import SimulationLoop
from FluidSim.scenarios.randomCube import RandomCubeConfig
from FluidSim.export.frameExporter import FrameExporter
