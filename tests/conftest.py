# -- Shared Test Fixtures -- #

from __future__ import annotations

import numpy as np
import pytest

from FluidSim.pbf.dispatch import WorkerDispatcher
from FluidSim.pbf.neighborSearch import NeighborFinder, NeighborList, SpatialHashGrid


def buildNeighborSearch(
    positions: np.ndarray,
    radius: float,
    hashTableSize: int | None = None,
    capacity: int = 500,
    nThreads: int = 1,
    order: np.ndarray | None = None,
) -> tuple[SpatialHashGrid, NeighborList]:
    '''Clear, hash and query a grid over fixed positions.'''
    n = positions.shape[0]
    grid = SpatialHashGrid(hashTableSize or n, n, radius)
    neighbors = NeighborList(n, capacity)
    finder = NeighborFinder(grid, neighbors)

    grid.clear()
    neighbors.reset()
    grid.bindPositions(positions)

    dispatcher = WorkerDispatcher(nThreads)
    try:
        if order is None:
            dispatcher.register('hash', grid.insert)
        else:
            dispatcher.register('hash', lambda w: grid.insert(int(order[w])))
        dispatcher.register('findNeighbors', finder.findNeighbors)
        dispatcher.dispatch('hash', n)
        dispatcher.dispatch('findNeighbors', n)
    finally:
        dispatcher.shutdown()

    return grid, neighbors


@pytest.fixture
def randomPositions() -> np.ndarray:
    '''2000 particles in a 2 x 2 x 2 cube centered at the origin.'''
    rng = np.random.default_rng(7)
    return rng.uniform(-1.0, 1.0, size=(2000, 3))


@pytest.fixture
def neighborSearch():
    '''Builder for a fully hashed and queried grid.'''
    return buildNeighborSearch
