# -- PBF Particle State -- #

'''
Per-particle attribute buffers for position-based fluids.

Positions are double-buffered: `positions` holds the committed state
from the previous substep and `predictedPositions` holds the tentative
positions the constraint solver iterates on. The pool is created once
and never resized; particle i always lives at row i.
'''

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from FluidSim import constants as const


@dataclass
class ParticleState:
    '''
    Fixed-size PBF particle pool.

    Vector quantities have shape (N, 3), scalars shape (N,).

    Parameters:
    -----------
    positions : np.ndarray
        Committed positions from the previous substep
    predictedPositions : np.ndarray
        Tentative positions during constraint solving
    velocities : np.ndarray
        Particle velocities
    colors : np.ndarray
        RGB colors in [0, 1] (visualization only)
    lambdas : np.ndarray
        Density constraint multipliers
    '''

    positions: np.ndarray
    predictedPositions: np.ndarray
    velocities: np.ndarray
    colors: np.ndarray
    lambdas: np.ndarray

    @property
    def nParticles(self) -> int:
        '''Number of particles N.'''
        return self.positions.shape[0]

    def kineticEnergy(self) -> float:
        '''
        Total kinetic energy assuming unit particle mass.

        KE = (1/2) * sum_i |v_i|^2

        Returns:
        --------
        float : Kinetic energy
        '''
        return 0.5 * float(np.sum(self.velocities * self.velocities))

    def maxSpeed(self) -> float:
        '''Maximum velocity magnitude.'''
        if self.nParticles == 0:
            return 0.0
        return float(np.max(np.linalg.norm(self.velocities, axis=1)))

    @classmethod
    def createRandomCube(
        cls,
        nParticles: int,
        halfExtent: float = const.cubeHalfExtent,
        seed: int | None = None,
    ) -> ParticleState:
        '''
        Scatter particles uniformly inside an axis-aligned cube.

        The cube is centered at the origin with side 2 * halfExtent.
        Velocities start at rest and colors at the initial blue.

        Parameters:
        -----------
        nParticles : int
            Number of particles N
        halfExtent : float
            Half the cube side length
        seed : int | None
            Seed for the random generator (None for nondeterministic)

        Returns:
        --------
        ParticleState : Initialized particle pool
        '''
        rng = np.random.default_rng(seed)
        positions = rng.uniform(-halfExtent, halfExtent, size=(nParticles, 3))

        return cls(
            positions=positions,
            predictedPositions=positions.copy(),
            velocities=np.zeros((nParticles, 3)),
            colors=np.tile(np.array(const.initialColor), (nParticles, 1)),
            lambdas=np.zeros(nParticles),
        )

    @classmethod
    def fromPositions(cls, positions: np.ndarray) -> ParticleState:
        '''
        Build a particle pool at rest from explicit positions.

        Parameters:
        -----------
        positions : np.ndarray
            Initial positions, shape (N, 3)

        Returns:
        --------
        ParticleState : Initialized particle pool
        '''
        positions = np.array(positions, dtype=np.float64).reshape(-1, 3)
        nParticles = positions.shape[0]

        return cls(
            positions=positions,
            predictedPositions=positions.copy(),
            velocities=np.zeros((nParticles, 3)),
            colors=np.tile(np.array(const.initialColor), (nParticles, 1)),
            lambdas=np.zeros(nParticles),
        )
