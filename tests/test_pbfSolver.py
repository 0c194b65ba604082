# -- PBF Constraint Solver Tests -- #

from __future__ import annotations

import numpy as np
import pytest

from FluidSim.pbf.protocols import SimulationConfig
from FluidSim.pbf.particles import ParticleState
from FluidSim.pbf.parameters import ParameterStore
from FluidSim.pbf.pbfSolver import PbfSolver
from FluidSim.pbf.kernels import poly6Batch, spikyGradientBatch
from FluidSim.pbf.neighborSearch import NeighborList


def latticeParticles(nSide: int = 5, spacing: float = 0.1) -> ParticleState:
    axis = np.arange(nSide) * spacing
    grid = np.stack(np.meshgrid(axis, axis, axis, indexing='ij'), axis=-1).reshape(-1, 3)
    return ParticleState.fromPositions(grid - grid.mean(axis=0))


######################################################################
# -- Kernels -- #
######################################################################

def testPoly6VanishesOutsideSupport():
    values = poly6Batch(np.array([0.0, 0.25, 0.5, 0.6]), 0.5, 800.0)

    assert values[0] == pytest.approx(800.0 * 0.25 ** 3)
    assert values[1] > 0.0
    assert values[2] == 0.0
    assert values[3] == 0.0


def testSpikyGradientPointsTowardNeighbor():
    rVec = np.array([[0.2, 0.0, 0.0], [0.0, 0.0, 0.0], [0.7, 0.0, 0.0]])
    dist = np.linalg.norm(rVec, axis=1)

    grad = spikyGradientBatch(rVec, dist, 0.5, -916.7)

    # Negative coefficient: gradient opposes x_i - x_j
    assert grad[0, 0] < 0.0
    assert grad[0, 0] == pytest.approx(-916.7 * 0.3 ** 2)
    np.testing.assert_array_equal(grad[1], 0.0)
    np.testing.assert_array_equal(grad[2], 0.0)


######################################################################
# -- Solver Stages -- #
######################################################################

def testPredictAppliesGravity():
    config = SimulationConfig(particleCount=8)
    particles = ParticleState.fromPositions(np.zeros((8, 3)))
    params = ParameterStore(config).snapshot()

    PbfSolver(config).predict(particles, params, 0.01)

    np.testing.assert_allclose(particles.velocities[:, 1], -0.098)
    np.testing.assert_allclose(particles.predictedPositions[:, 1], -0.00098)
    np.testing.assert_array_equal(particles.positions, 0.0)


def testCompressedBlockExpandsWithoutDrift(neighborSearch):
    config = SimulationConfig(particleCount=125, restDensity=10.0)
    params = ParameterStore(config).snapshot()
    particles = latticeParticles()
    _, neighbors = neighborSearch(particles.predictedPositions, radius=params.supportRadius)

    solver = PbfSolver(config)
    before = particles.predictedPositions.copy()
    solver.solveIteration(particles, neighbors, params)
    after = particles.predictedPositions

    assert np.all(particles.lambdas < 0.0)
    assert np.ptp(after[:, 0]) > np.ptp(before[:, 0])
    np.testing.assert_allclose(after.mean(axis=0), before.mean(axis=0), atol=1e-10)
    assert solver.maxDensityError(params.restDensity) > 0.0


def testCoincidentParticlesStayFinite(neighborSearch):
    config = SimulationConfig(particleCount=2)
    params = ParameterStore(config).snapshot()
    particles = ParticleState.fromPositions(np.zeros((2, 3)))
    _, neighbors = neighborSearch(particles.predictedPositions, radius=params.supportRadius)

    solver = PbfSolver(config)
    solver.solveIteration(particles, neighbors, params)
    solver.finalize(particles, neighbors, params, 0.005)

    assert np.all(np.isfinite(particles.positions))
    assert np.all(np.isfinite(particles.velocities))


def testEmptyNeighborListsLeavePositions():
    config = SimulationConfig(particleCount=3)
    params = ParameterStore(config).snapshot()
    particles = ParticleState.fromPositions(np.eye(3))

    PbfSolver(config).solveIteration(particles, NeighborList(3, 4), params)

    np.testing.assert_array_equal(particles.predictedPositions, np.eye(3))
    np.testing.assert_array_equal(particles.lambdas, 0.0)


def testFinalizeClampsToBoxAndDerivesVelocity():
    config = SimulationConfig(particleCount=2, boundsMin=np.full(3, -1.0), boundsMax=np.full(3, 1.0))
    params = ParameterStore(config).snapshot()
    particles = ParticleState.fromPositions(np.array([[0.0, 0.0, 0.0], [0.9, 0.0, 0.0]]))
    particles.predictedPositions[:] = [[0.0, -3.0, 0.0], [0.9, 0.0, 0.01]]

    PbfSolver(config).finalize(particles, NeighborList(2, 4), params, 0.1)

    eps = config.collisionEpsilon
    np.testing.assert_allclose(particles.positions[0], [0.0, -1.0 + eps, 0.0])
    np.testing.assert_allclose(particles.velocities[0], [0.0, (-1.0 + eps) / 0.1, 0.0])
    np.testing.assert_allclose(particles.velocities[1], [0.0, 0.0, 0.1])


def testFinalizeWithZeroDeltaKeepsVelocities():
    config = SimulationConfig(particleCount=1)
    params = ParameterStore(config).snapshot()
    particles = ParticleState.fromPositions(np.zeros((1, 3)))
    particles.velocities[:] = [[1.0, 2.0, 3.0]]
    particles.predictedPositions[:] = [[0.5, 0.0, 0.0]]

    PbfSolver(config).finalize(particles, NeighborList(1, 4), params, 0.0)

    np.testing.assert_array_equal(particles.velocities, [[1.0, 2.0, 3.0]])
    np.testing.assert_array_equal(particles.positions, [[0.5, 0.0, 0.0]])


def testColorsFadeWithSpeed():
    config = SimulationConfig(particleCount=2)
    params = ParameterStore(config).snapshot()
    particles = ParticleState.fromPositions(np.zeros((2, 3)))
    particles.predictedPositions[:] = [[0.0, 0.0, 0.0], [0.0, 0.0, 1.0]]

    PbfSolver(config).finalize(particles, NeighborList(2, 4), params, 0.05)

    np.testing.assert_allclose(particles.colors[0], [0.0, 0.0, 1.0])
    np.testing.assert_allclose(particles.colors[1], [1.0, 1.0, 1.0])


def testDensityErrorShrinksWithEachIteration(neighborSearch):
    config = SimulationConfig(particleCount=512, restDensity=100.0)
    params = ParameterStore(config).snapshot()
    particles = latticeParticles(nSide=8)
    _, neighbors = neighborSearch(particles.predictedPositions, radius=params.supportRadius)

    solver = PbfSolver(config)
    errors = []
    for _ in range(2 * config.solverIterations):
        solver.solveIteration(particles, neighbors, params)
        errors.append(solver.maxDensityError(params.restDensity))

    assert np.all(np.diff(errors) <= 0.0)
    assert errors[-1] < errors[0]
