# -- Position Based Fluids Constraint Solver -- #

'''
Reference constraint solver for position-based fluids.

Enforces the per-particle density constraint

    C_i = rho_i / rho_0 - 1,    rho_i = sum_j W_poly6(x*_i - x*_j, h)

by iteratively projecting the predicted positions x*. Each iteration
computes the Lagrange multipliers

    lambda_i = -C_i / (sum_k |grad_k C_i|^2 + epsilon)

and applies the position correction (Jacobi style, all particles at once)

    dp_i = (1/rho_0) sum_j (lambda_i + lambda_j + s_corr) grad W_spiky(x*_i - x*_j, h)
    s_corr = -k (W_poly6(r) / W_poly6(delta_q))^n

Once per substep, after the K iterations, finalize() resolves collisions
against the domain box, derives velocities from the position change,
adds vorticity confinement and XSPH smoothing, and commits x <- x*.

All pair computations are vectorized over the flattened neighbor lists.
Particle mass is taken as 1.

References:
-----------
Macklin & Muller (2013) -- Position Based Fluids
Monaghan (2000) -- SPH without a tensile instability
Fedkiw et al. (2001) -- Visual Simulation of Smoke (vorticity confinement)
Schechter & Bridson (2012) -- Ghost SPH (XSPH viscosity)
'''

from __future__ import annotations

import numpy as np

from FluidSim import constants as const
from FluidSim.pbf.protocols import SimulationConfig
from FluidSim.pbf.parameters import FluidParameters
from FluidSim.pbf.particles import ParticleState
from FluidSim.pbf.neighborSearch import NeighborList
from FluidSim.pbf.kernels import poly6Batch, spikyGradientBatch


class PbfSolver:
    '''
    Fixed-iteration PBF density constraint solver.

    Parameters:
    -----------
    config : SimulationConfig
        Supplies gravity, the collision box and the collision epsilon
    '''

    def __init__(self, config: SimulationConfig) -> None:
        self._gravity = np.asarray(config.gravity, dtype=np.float64)
        self._boundsMin = np.asarray(config.boundsMin, dtype=np.float64)
        self._boundsMax = np.asarray(config.boundsMax, dtype=np.float64)
        self._collisionEpsilon = config.collisionEpsilon

        self._pairs: tuple[np.ndarray, np.ndarray] | None = None
        self._pairsKey: tuple[int, int] | None = None
        self._densities: np.ndarray | None = None

    ######################################################################
    # -- Prediction -- #
    ######################################################################

    def predict(self, particles: ParticleState, params: FluidParameters, dt: float) -> None:
        '''
        Apply gravity and write predicted positions.

        v <- v + g * dt
        x* <- x + v * dt

        Parameters:
        -----------
        particles : ParticleState
            Particle pool
        params : FluidParameters
            Current parameters (unused by prediction)
        dt : float
            Substep size
        '''
        particles.velocities += self._gravity * dt
        np.multiply(particles.velocities, dt, out=particles.predictedPositions)
        particles.predictedPositions += particles.positions

    ######################################################################
    # -- Constraint Iteration -- #
    ######################################################################

    def solveIteration(
        self,
        particles: ParticleState,
        neighbors: NeighborList,
        params: FluidParameters,
    ) -> None:
        '''
        One full density constraint projection on predicted positions.

        Parameters:
        -----------
        particles : ParticleState
            Particle pool (predictedPositions and lambdas updated)
        neighbors : NeighborList
            Neighbor lists built this substep
        params : FluidParameters
            Current parameters
        '''
        x = particles.predictedPositions
        n = particles.nParticles
        h = params.supportRadius
        invRho0 = 1.0 / params.restDensity

        iIdx, jIdx = self._pairsFor(neighbors)
        if len(iIdx) == 0:
            particles.lambdas[:] = 0.0
            return

        rVec = x[iIdx] - x[jIdx]
        dist = np.linalg.norm(rVec, axis=1)

        # Density (self pairs included via the neighbor lists)
        wij = poly6Batch(dist, h, params.poly6)
        density = np.bincount(iIdx, weights=wij, minlength=n)
        self._densities = density
        constraint = density * invRho0 - 1.0

        # Constraint gradients w.r.t. neighbors and the particle itself
        gradW = spikyGradientBatch(rVec, dist, h, params.spiky) * invRho0
        gradSqNeighbors = np.bincount(iIdx, weights=np.sum(gradW * gradW, axis=1), minlength=n)
        gradSelf = np.zeros((n, 3))
        np.add.at(gradSelf, iIdx, gradW)
        gradSqSum = gradSqNeighbors + np.sum(gradSelf * gradSelf, axis=1)

        lambdas = -constraint / (gradSqSum + params.relaxationEpsilon)
        particles.lambdas[:] = lambdas

        # Artificial pressure (tensile instability correction)
        if params.tensileStrength > 0.0 and params.tensileCorrection > 0.0:
            sCorr = -params.tensileStrength * np.power(
                wij / params.tensileCorrection, params.tensileExponent
            )
        else:
            sCorr = np.zeros_like(wij)

        coeff = lambdas[iIdx] + lambdas[jIdx] + sCorr
        deltaP = np.zeros((n, 3))
        np.add.at(deltaP, iIdx, coeff[:, np.newaxis] * gradW)

        x += deltaP

    ######################################################################
    # -- Substep Finalization -- #
    ######################################################################

    def finalize(
        self,
        particles: ParticleState,
        neighbors: NeighborList,
        params: FluidParameters,
        dt: float,
    ) -> None:
        '''
        Collision response, velocity update, vorticity, XSPH and commit.

        Parameters:
        -----------
        particles : ParticleState
            Particle pool
        neighbors : NeighborList
            Neighbor lists built this substep
        params : FluidParameters
            Current parameters
        dt : float
            Substep size (velocities are kept when dt is zero)
        '''
        self._resolveCollisions(particles)

        if dt > 0.0:
            particles.velocities[:] = (particles.predictedPositions - particles.positions) / dt

            iIdx, jIdx = self._pairsFor(neighbors)
            if len(iIdx) > 0:
                self._applyVorticityConfinement(particles, iIdx, jIdx, params, dt)
                self._applyXsph(particles, iIdx, jIdx, params)

        particles.positions[:] = particles.predictedPositions
        self._updateColors(particles)

    def _resolveCollisions(self, particles: ParticleState) -> None:
        '''Push predicted positions back inside the domain box.'''
        eps = self._collisionEpsilon
        np.clip(
            particles.predictedPositions,
            self._boundsMin + eps,
            self._boundsMax - eps,
            out=particles.predictedPositions,
        )

    def _applyVorticityConfinement(
        self,
        particles: ParticleState,
        iIdx: np.ndarray,
        jIdx: np.ndarray,
        params: FluidParameters,
        dt: float,
    ) -> None:
        '''
        Re-inject rotational energy lost to numerical damping.

        omega_i = sum_j (v_j - v_i) x grad W(x_i - x_j)
        eta_i   = sum_j |omega_j| grad W(x_i - x_j)
        f_i     = epsilon_vort * (eta_i / |eta_i|) x omega_i
        '''
        if params.vorticityEpsilon <= 0.0:
            return

        n = particles.nParticles
        x = particles.predictedPositions
        v = particles.velocities
        h = params.supportRadius

        rVec = x[iIdx] - x[jIdx]
        dist = np.linalg.norm(rVec, axis=1)
        gradW = spikyGradientBatch(rVec, dist, h, params.spiky)

        omega = np.zeros((n, 3))
        np.add.at(omega, iIdx, np.cross(v[jIdx] - v[iIdx], gradW))
        omegaMag = np.linalg.norm(omega, axis=1)

        eta = np.zeros((n, 3))
        np.add.at(eta, iIdx, omegaMag[jIdx][:, np.newaxis] * gradW)
        etaMag = np.linalg.norm(eta, axis=1)

        valid = etaMag > 1e-12
        normal = np.zeros((n, 3))
        normal[valid] = eta[valid] / etaMag[valid][:, np.newaxis]

        force = params.vorticityEpsilon * np.cross(normal, omega)
        v += force * dt

    def _applyXsph(
        self,
        particles: ParticleState,
        iIdx: np.ndarray,
        jIdx: np.ndarray,
        params: FluidParameters,
    ) -> None:
        '''
        XSPH velocity smoothing.

        v_i <- v_i + c * sum_j (v_j - v_i) W_poly6(x_i - x_j)
        '''
        if params.xsphCoefficient <= 0.0:
            return

        n = particles.nParticles
        x = particles.predictedPositions
        v = particles.velocities

        dist = np.linalg.norm(x[iIdx] - x[jIdx], axis=1)
        wij = poly6Batch(dist, params.supportRadius, params.poly6)

        correction = np.zeros((n, 3))
        np.add.at(correction, iIdx, (v[jIdx] - v[iIdx]) * wij[:, np.newaxis])
        v += params.xsphCoefficient * correction

    def _updateColors(self, particles: ParticleState) -> None:
        '''Fade from blue to white with particle speed.'''
        speed = np.linalg.norm(particles.velocities, axis=1)
        t = np.clip(speed / const.colorSpeedScale, 0.0, 1.0)
        particles.colors[:, 0] = t
        particles.colors[:, 1] = t
        particles.colors[:, 2] = 1.0

    ######################################################################
    # -- Helpers -- #
    ######################################################################

    def _pairsFor(self, neighbors: NeighborList) -> tuple[np.ndarray, np.ndarray]:
        '''Flattened pairs of the neighbor lists, cached per rebuild.'''
        key = (id(neighbors), neighbors.generation)
        if self._pairs is None or self._pairsKey != key:
            self._pairs = neighbors.toPairs()
            self._pairsKey = key
        return self._pairs

    def maxDensityError(self, restDensity: float) -> float:
        '''
        Largest relative density error from the most recent iteration.

        Returns:
        --------
        float : max |rho_i - rho_0| / rho_0 (0 before the first iteration)
        '''
        if self._densities is None or len(self._densities) == 0:
            return 0.0
        return float(np.max(np.abs(self._densities - restDensity)) / restDensity)
