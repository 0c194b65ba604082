# -- Simulation Scenarios Package -- #

'''
Pre-configured initial conditions for the PBF simulation.
'''

from FluidSim.scenarios.randomCube import RandomCubeConfig, createRandomCube
