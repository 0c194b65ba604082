# -- PBF Simulation Protocols -- #

'''
Configuration, snapshot dataclasses and solver protocol for the
position-based fluids simulation.

SimulationConfig holds the boot-time constants (pool size, hash size,
neighbor cap, substep and iteration counts). FrameSnapshot is the only
view external readers get of the particle buffers, and it is produced
once a frame's final Integrate stage has completed.
'''

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from typing import Protocol, TYPE_CHECKING

import numpy as np

from FluidSim import constants as const

if TYPE_CHECKING:
    from FluidSim.pbf.particles import ParticleState
    from FluidSim.pbf.parameters import FluidParameters
    from FluidSim.pbf.neighborSearch import NeighborList


######################################################################
# -- Simulation Configuration -- #
######################################################################

@dataclass
class SimulationConfig:
    '''
    Boot-time configuration for a PBF simulation.

    Parameters:
    -----------
    particleCount : int
        Number of particles N
    hashTableSize : int | None
        Number of hash buckets H (defaults to N)
    maxNeighbors : int
        Neighbor list capacity M per particle
    substeps : int
        Substeps S per frame
    solverIterations : int
        Constraint solver iterations K per substep
    restDensity : float
        Initial rest density rho_0
    supportRadius : float
        Initial kernel support radius h (spatial hash cell size)
    relaxationEpsilon : float
        Initial constraint relaxation epsilon
    maxDeltaTime : float
        Maximum substep delta
    vorticityEpsilon : float
        Initial vorticity confinement epsilon
    xsphCoefficient : float
        Initial XSPH smoothing coefficient
    tensileStrength : float
        Initial s_corr strength k
    tensileExponent : int
        s_corr exponent n
    collisionEpsilon : float
        Push-back offset at the domain walls
    gravity : np.ndarray
        Gravity vector
    cubeHalfExtent : float
        Half-extent of the random initialization cube
    boundsMin : np.ndarray | None
        Lower corner of the collision box (defaults to -cubeHalfExtent)
    boundsMax : np.ndarray | None
        Upper corner of the collision box (defaults to +cubeHalfExtent)
    seed : int | None
        Random seed for the initial particle layout
    workerThreads : int
        Threads used by the dispatcher (1 = sequential scan)
    '''

    particleCount: int = const.particleCount
    hashTableSize: int | None = None
    maxNeighbors: int = const.maxNeighbors
    substeps: int = const.substeps
    solverIterations: int = const.solverIterations
    restDensity: float = const.restDensity
    supportRadius: float = const.supportRadius
    relaxationEpsilon: float = const.relaxationEpsilon
    maxDeltaTime: float = const.maxDeltaTime
    vorticityEpsilon: float = const.vorticityEpsilon
    xsphCoefficient: float = const.xsphCoefficient
    tensileStrength: float = const.tensileStrength
    tensileExponent: int = const.tensileExponent
    collisionEpsilon: float = const.collisionEpsilon
    gravity: np.ndarray = field(default_factory=lambda: np.array(const.gravity))
    cubeHalfExtent: float = const.cubeHalfExtent
    boundsMin: np.ndarray | None = None
    boundsMax: np.ndarray | None = None
    seed: int | None = None
    workerThreads: int = 1

    def __post_init__(self) -> None:
        if self.hashTableSize is None:
            self.hashTableSize = self.particleCount
        self.gravity = np.asarray(self.gravity, dtype=np.float64)
        if self.boundsMin is None:
            self.boundsMin = np.full(3, -self.cubeHalfExtent)
        if self.boundsMax is None:
            self.boundsMax = np.full(3, self.cubeHalfExtent)
        self.boundsMin = np.asarray(self.boundsMin, dtype=np.float64)
        self.boundsMax = np.asarray(self.boundsMax, dtype=np.float64)
        self.validate()

    def validate(self) -> None:
        '''
        Reject configurations the simulation core cannot run.

        Raises:
        -------
        ValueError : If a count or physical parameter is out of range
        '''
        for name in ('particleCount', 'hashTableSize', 'maxNeighbors',
                     'substeps', 'solverIterations', 'workerThreads'):
            value = getattr(self, name)
            if value < 1:
                raise ValueError(f'{name} must be at least 1, got {value}')
        for name in ('restDensity', 'supportRadius', 'relaxationEpsilon', 'maxDeltaTime'):
            value = getattr(self, name)
            if value <= 0.0:
                raise ValueError(f'{name} must be positive, got {value}')
        if np.any(self.boundsMax <= self.boundsMin):
            raise ValueError('boundsMax must exceed boundsMin on every axis')

    @classmethod
    def fromJson(cls, configPath: str) -> SimulationConfig:
        '''
        Load configuration from a JSON file.

        Reads the 'simulation', 'pbf', and 'domain' sections.
        Missing keys fall back to the module defaults.

        Parameters:
        -----------
        configPath : str
            Path to the JSON configuration file

        Returns:
        --------
        SimulationConfig : Loaded configuration
        '''
        with open(configPath, 'r') as f:
            data = json.load(f)

        simSection = data.get('simulation', {})
        pbfSection = data.get('pbf', {})
        domainSection = data.get('domain', {})

        halfExtent = domainSection.get('cubeHalfExtent', const.cubeHalfExtent)

        return cls(
            particleCount=simSection.get('particleCount', const.particleCount),
            hashTableSize=simSection.get('hashTableSize'),
            maxNeighbors=simSection.get('maxNeighbors', const.maxNeighbors),
            substeps=simSection.get('substeps', const.substeps),
            solverIterations=simSection.get('solverIterations', const.solverIterations),
            maxDeltaTime=simSection.get('maxDeltaTime', const.maxDeltaTime),
            seed=simSection.get('seed'),
            workerThreads=simSection.get('workerThreads', 1),
            restDensity=pbfSection.get('restDensity', const.restDensity),
            supportRadius=pbfSection.get('supportRadius', const.supportRadius),
            relaxationEpsilon=pbfSection.get('epsilon', const.relaxationEpsilon),
            vorticityEpsilon=pbfSection.get('vorticityEpsilon', const.vorticityEpsilon),
            xsphCoefficient=pbfSection.get('xsph', const.xsphCoefficient),
            tensileStrength=pbfSection.get('tensileStrength', const.tensileStrength),
            tensileExponent=pbfSection.get('tensileExponent', const.tensileExponent),
            collisionEpsilon=pbfSection.get('collisionEpsilon', const.collisionEpsilon),
            gravity=np.array(domainSection.get('gravity', const.gravity)),
            cubeHalfExtent=halfExtent,
            boundsMin=domainSection.get('boundsMin'),
            boundsMax=domainSection.get('boundsMax'),
        )


######################################################################
# -- Substep Stages -- #
######################################################################

class SubstepStage(enum.Enum):
    '''Stages of one substep, in the order they must run.'''

    CLEAR = 'clear'
    HASH = 'hash'
    FIND_NEIGHBORS = 'findNeighbors'
    SOLVE = 'solve'
    INTEGRATE = 'integrate'


######################################################################
# -- Frame Snapshot -- #
######################################################################

@dataclass(frozen=True)
class FrameSnapshot:
    '''
    Read-only view of the particle buffers after a completed frame.

    Arrays are copies with the writeable flag cleared, so renderers
    can hold on to them while the next frame mutates the live buffers.

    Parameters:
    -----------
    frame : int
        Index of the completed frame (1-based)
    simulationTime : float
        Running simulation time after the frame
    substepDeltas : tuple[float, ...]
        Clamped dt consumed by each substep of the frame
    positions : np.ndarray
        Particle positions, shape (N, 3)
    velocities : np.ndarray
        Particle velocities, shape (N, 3)
    colors : np.ndarray
        Particle colors, shape (N, 3)
    '''

    frame: int
    simulationTime: float
    substepDeltas: tuple[float, ...]
    positions: np.ndarray
    velocities: np.ndarray
    colors: np.ndarray

    @property
    def nParticles(self) -> int:
        '''Number of particles in the snapshot.'''
        return self.positions.shape[0]

    def maxSpeed(self) -> float:
        '''Maximum particle speed in the snapshot.'''
        if self.nParticles == 0:
            return 0.0
        return float(np.max(np.linalg.norm(self.velocities, axis=1)))


######################################################################
# -- Constraint Solver Protocol -- #
######################################################################

class ConstraintSolver(Protocol):
    '''
    Protocol for the fixed-iteration density constraint solver.

    The simulation loop calls predict() at the start of the Hash stage
    (particles are hashed by predicted position), solveIteration()
    exactly K times per substep, and finalize() once during the
    Integrate stage.
    '''

    def predict(self, particles: ParticleState, params: FluidParameters, dt: float) -> None:
        '''Apply external forces and write predicted positions.'''
        ...

    def solveIteration(
        self,
        particles: ParticleState,
        neighbors: NeighborList,
        params: FluidParameters,
    ) -> None:
        '''Run one full density constraint iteration on predicted positions.'''
        ...

    def finalize(
        self,
        particles: ParticleState,
        neighbors: NeighborList,
        params: FluidParameters,
        dt: float,
    ) -> None:
        '''Collision response, velocity update, vorticity, XSPH and commit.'''
        ...
