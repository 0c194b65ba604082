# -- Spatial Hash and Neighbor Diagnostics -- #

'''
Health statistics for the spatial hash grid and neighbor lists.

Read-only checks run between substeps: bucket occupancy, longest
chain, corrupted links (out-of-range or cyclic chains), and neighbor
list saturation. Useful for tuning H and M for a given particle count
and support radius.
'''

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy.spatial import cKDTree

from FluidSim import constants as const
from FluidSim.pbf.neighborSearch import NeighborList, SpatialHashGrid


@dataclass
class HashGridStats:
    '''
    Occupancy statistics of a built spatial hash grid.

    Parameters:
    -----------
    nonEmptyBuckets : int
        Buckets holding at least one particle
    maxChainLength : int
        Longest bucket chain
    maxChainCount : int
        Number of buckets whose chain has the maximum length
    invalidLinks : int
        Node links pointing outside [0, N) that are not NONE
    cyclicChains : int
        Bucket chains that do not terminate within N steps
    chainedParticles : int
        Particles reachable from some bucket head
    insertions : int
        Insertions counted since the last clear
    '''

    nonEmptyBuckets: int
    maxChainLength: int
    maxChainCount: int
    invalidLinks: int
    cyclicChains: int
    chainedParticles: int
    insertions: int

    @property
    def isConsistent(self) -> bool:
        '''True when every insertion is reachable through a clean chain.'''
        return (
            self.invalidLinks == 0
            and self.cyclicChains == 0
            and self.chainedParticles == self.insertions
        )


@dataclass
class NeighborStats:
    '''
    Statistics of the per-particle neighbor lists.

    Parameters:
    -----------
    maxCount : int
        Largest neighbor count
    meanCount : float
        Average neighbor count
    saturatedCount : int
        Particles whose list reached capacity M (possibly truncated)
    invalidCount : int
        Particles with a count outside [0, M]
    '''

    maxCount: int
    meanCount: float
    saturatedCount: int
    invalidCount: int


def computeHashStats(grid: SpatialHashGrid) -> HashGridStats:
    '''
    Walk every bucket chain of a built grid.

    Parameters:
    -----------
    grid : SpatialHashGrid
        Grid after a completed Hash stage

    Returns:
    --------
    HashGridStats : Occupancy and link health
    '''
    n = grid.nParticles
    heads = grid.heads
    nextNodes = grid.nextNodes

    invalidLinks = int(np.count_nonzero((nextNodes != const.NONE) & (nextNodes >= n)))

    maxChain = 0
    maxChainCount = 0
    cyclic = 0
    chained = 0
    for bucket in np.nonzero(heads != const.NONE)[0]:
        length = 0
        node = int(heads[bucket])
        while node != const.NONE and length <= n:
            length += 1
            if node >= n:
                break
            node = int(nextNodes[node])

        if length > n:
            cyclic += 1
            continue

        chained += length
        if length > maxChain:
            maxChain = length
            maxChainCount = 1
        elif length == maxChain:
            maxChainCount += 1

    return HashGridStats(
        nonEmptyBuckets=grid.nonEmptyBucketCount(),
        maxChainLength=maxChain,
        maxChainCount=maxChainCount,
        invalidLinks=invalidLinks,
        cyclicChains=cyclic,
        chainedParticles=chained,
        insertions=grid.insertionCount,
    )


def computeNeighborStats(neighbors: NeighborList) -> NeighborStats:
    '''
    Summarize neighbor counts after a FindNeighbors stage.

    Parameters:
    -----------
    neighbors : NeighborList
        Neighbor lists to inspect

    Returns:
    --------
    NeighborStats : Count statistics
    '''
    counts = neighbors.counts
    if counts.size == 0:
        return NeighborStats(maxCount=0, meanCount=0.0, saturatedCount=0, invalidCount=0)

    capacity = neighbors.capacity
    return NeighborStats(
        maxCount=int(counts.max()),
        meanCount=float(counts.mean()),
        saturatedCount=int(np.count_nonzero(counts == capacity)),
        invalidCount=int(np.count_nonzero((counts < 0) | (counts > capacity))),
    )


def countMissedNeighbors(
    positions: np.ndarray,
    neighbors: NeighborList,
    radius: float,
) -> int:
    '''
    Compare the neighbor lists against a k-d tree range search.

    Counts directed pairs (i, j) within the radius that particle i did
    not record although its list is below capacity. Pairs at exactly
    the radius are skipped since either answer is acceptable there.

    Parameters:
    -----------
    positions : np.ndarray
        Positions the lists were built from, shape (N, 3)
    neighbors : NeighborList
        Neighbor lists to verify
    radius : float
        Support radius used for the search

    Returns:
    --------
    int : Number of missed directed pairs (0 for a correct build)
    '''
    n = positions.shape[0]
    tree = cKDTree(positions)
    pairs = tree.query_pairs(r=radius * (1.0 - 1e-9), output_type='ndarray')
    if len(pairs) == 0:
        return 0

    expectedI = np.concatenate([pairs[:, 0], pairs[:, 1]]).astype(np.int64)
    expectedJ = np.concatenate([pairs[:, 1], pairs[:, 0]]).astype(np.int64)

    # Saturated lists may legitimately drop neighbors
    belowCapacity = neighbors.counts[expectedI] < neighbors.capacity
    expectedKeys = expectedI[belowCapacity] * n + expectedJ[belowCapacity]

    recordedI, recordedJ = neighbors.toPairs()
    recordedKeys = recordedI * n + recordedJ

    return int(np.count_nonzero(~np.isin(expectedKeys, recordedKeys)))
