# -- Diagnostics Tests -- #

from __future__ import annotations

import numpy as np

from FluidSim import constants as const
from FluidSim.pbf.diagnostics import computeHashStats, computeNeighborStats, countMissedNeighbors
from FluidSim.pbf.neighborSearch import NeighborList, SpatialHashGrid


def testHashStatsOfCleanBuild(randomPositions, neighborSearch):
    grid, _ = neighborSearch(randomPositions, radius=0.3, hashTableSize=101)
    stats = computeHashStats(grid)

    assert stats.isConsistent
    assert stats.insertions == len(randomPositions)
    assert stats.chainedParticles == len(randomPositions)
    assert 0 < stats.nonEmptyBuckets <= 101
    assert stats.maxChainLength >= len(randomPositions) // 101
    assert stats.maxChainCount >= 1


def testHashStatsDetectCycles():
    grid = SpatialHashGrid(4, 3, 0.5)
    grid.clear()
    grid.heads[0] = 0
    grid.nextNodes[0] = 1
    grid.nextNodes[1] = 0

    stats = computeHashStats(grid)

    assert stats.cyclicChains == 1
    assert not stats.isConsistent


def testHashStatsDetectInvalidLinks():
    grid = SpatialHashGrid(4, 3, 0.5)
    grid.clear()
    grid.heads[1] = 2
    grid.nextNodes[2] = 17

    stats = computeHashStats(grid)

    assert stats.invalidLinks == 1
    assert not stats.isConsistent


def testNeighborStats():
    neighbors = NeighborList(4, 3)
    neighbors.write(0, [0, 1, 2, 3])
    neighbors.write(1, [1])
    neighbors.write(2, [2, 0])

    stats = computeNeighborStats(neighbors)

    assert stats.maxCount == 3
    assert stats.saturatedCount == 1
    assert stats.invalidCount == 0
    assert stats.meanCount == 1.5


def testMissedNeighborsReported():
    positions = np.array([[0.0, 0.0, 0.0], [0.1, 0.0, 0.0], [2.0, 0.0, 0.0]])
    neighbors = NeighborList(3, 4)
    neighbors.write(0, [0])
    neighbors.write(1, [1, 0])
    neighbors.write(2, [2])

    # Particle 0 is missing particle 1
    assert countMissedNeighbors(positions, neighbors, 0.5) == 1

    neighbors.write(0, [0, 1])
    assert countMissedNeighbors(positions, neighbors, 0.5) == 0
    assert const.NONE not in neighbors.neighborsOf(0)
