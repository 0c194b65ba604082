# -- Lock-Free Spatial Hash and Neighbor Search -- #

'''
Bucket-chain spatial hashing and bounded neighbor lists for PBF.

The domain is divided into uniform cells whose size equals the kernel
support radius. Cells are not stored densely: each integer cell
coordinate is hashed into a fixed table of H bucket heads (H = N by
default), so unrelated cells may share a bucket. Collisions only add
candidates that the distance test later rejects.

Each bucket is a singly linked list threaded through a pool of exactly
N nodes, node i belonging to particle i. Insertion is a concurrent
stack push: atomically exchange the bucket head with i, then point
node i at the previous head. No node is ever allocated or freed; the
whole structure is cleared and rebuilt every substep.

A neighbor query walks the bucket chains of the particle's own cell
and its 26 adjacent cells (27 in total) and keeps every candidate
within the support radius, up to a fixed capacity M.

References:
-----------
Teschner et al. (2003) -- Optimized Spatial Hashing for Collision
    Detection of Deformable Objects
Green (2010) -- Particle Simulation using CUDA
Ihmsen et al. (2011) -- Parallel Neighbor-Search for SPH
'''

from __future__ import annotations

import math
from typing import Iterator

import numpy as np

from FluidSim import constants as const
from FluidSim.pbf.dispatch import AtomicCounter, AtomicIndexArray


# Full 3x3x3 stencil, own cell included
STENCIL_OFFSETS: tuple[tuple[int, int, int], ...] = tuple(
    (dx, dy, dz)
    for dx in range(-1, 2)
    for dy in range(-1, 2)
    for dz in range(-1, 2)
)


######################################################################
# -- Spatial Hash Grid -- #
######################################################################

class SpatialHashGrid:
    '''
    Fixed-size hash table of bucket heads over a pool of chain nodes.

    Parameters:
    -----------
    hashTableSize : int
        Number of buckets H
    nParticles : int
        Number of chain nodes N (one per particle)
    cellSize : float
        Grid cell size, kept equal to the support radius
    '''

    def __init__(self, hashTableSize: int, nParticles: int, cellSize: float) -> None:
        self._hashTableSize = hashTableSize
        self._nParticles = nParticles
        self._cellSize = cellSize

        self._heads = AtomicIndexArray(hashTableSize, const.NONE)
        self._nextNodes = np.full(nParticles, const.NONE, dtype=np.uint32)
        self._insertionCounter = AtomicCounter()

        self._positionList: list[list[float]] = []

    ######################################################################
    # -- Properties -- #
    ######################################################################

    @property
    def hashTableSize(self) -> int:
        '''Number of buckets H.'''
        return self._hashTableSize

    @property
    def nParticles(self) -> int:
        '''Number of chain nodes N.'''
        return self._nParticles

    @property
    def cellSize(self) -> float:
        '''Current cell size.'''
        return self._cellSize

    @property
    def heads(self) -> np.ndarray:
        '''Bucket head indices (NONE for an empty bucket).'''
        return self._heads.data

    @property
    def nextNodes(self) -> np.ndarray:
        '''Chain successor of each particle's node (NONE at chain end).'''
        return self._nextNodes

    @property
    def insertionCount(self) -> int:
        '''Number of insertions since the last clear.'''
        return self._insertionCounter.value

    @property
    def positionList(self) -> list[list[float]]:
        '''Bound positions as nested Python floats for scalar workers.'''
        return self._positionList

    ######################################################################
    # -- Build -- #
    ######################################################################

    def clear(self, cellSize: float | None = None) -> None:
        '''
        Reset every bucket head and node link to NONE.

        Must run to completion before any insert() of the next build.
        A new cell size may be supplied when the support radius changed.

        Parameters:
        -----------
        cellSize : float | None
            New cell size, or None to keep the current one
        '''
        if cellSize is not None:
            if cellSize <= 0.0:
                raise ValueError(f'cellSize must be positive, got {cellSize}')
            self._cellSize = cellSize
        self._heads.fill(const.NONE)
        self._nextNodes.fill(const.NONE)
        self._insertionCounter.reset()

    def bindPositions(self, positions: np.ndarray) -> None:
        '''
        Attach the positions the next build hashes and queries.

        Parameters:
        -----------
        positions : np.ndarray
            Particle positions, shape (N, 3)
        '''
        if positions.shape[0] != self._nParticles:
            raise ValueError(
                f'Expected {self._nParticles} positions, got {positions.shape[0]}'
            )
        self._positionList = positions.tolist()

    def insert(self, particleIndex: int) -> None:
        '''
        Push a particle onto the chain of its cell's bucket.

        The head exchange is atomic, so concurrent pushes onto the
        same bucket each see a distinct previous head.

        Parameters:
        -----------
        particleIndex : int
            Particle (and node) index
        '''
        x, y, z = self._positionList[particleIndex]
        s = self._cellSize
        bucket = self.hashCell(math.floor(x / s), math.floor(y / s), math.floor(z / s))

        previousHead = self._heads.exchange(bucket, particleIndex)
        self._nextNodes[particleIndex] = previousHead
        self._insertionCounter.increment()

    ######################################################################
    # -- Hashing -- #
    ######################################################################

    def hashCell(self, cx: int, cy: int, cz: int) -> int:
        '''
        Hash an integer cell coordinate into [0, H).

        Parameters:
        -----------
        cx, cy, cz : int
            Integer cell coordinates

        Returns:
        --------
        int : Bucket index
        '''
        p1, p2, p3 = const.hashPrimes
        return ((cx * p1) ^ (cy * p2) ^ (cz * p3)) % self._hashTableSize

    def hashCells(self, cells: np.ndarray) -> np.ndarray:
        '''
        Vectorized hashCell() for an array of cell coordinates.

        Parameters:
        -----------
        cells : np.ndarray
            Integer cell coordinates, shape (n, 3)

        Returns:
        --------
        np.ndarray : Bucket indices, shape (n,)
        '''
        cells = np.asarray(cells, dtype=np.int64)
        p1, p2, p3 = const.hashPrimes
        mixed = (cells[:, 0] * p1) ^ (cells[:, 1] * p2) ^ (cells[:, 2] * p3)
        return np.mod(mixed, self._hashTableSize)

    def cellCoordinates(self, positions: np.ndarray) -> np.ndarray:
        '''
        Integer cell coordinates floor(position / cellSize).

        Parameters:
        -----------
        positions : np.ndarray
            Positions, shape (n, 3)

        Returns:
        --------
        np.ndarray : Cell coordinates, shape (n, 3)
        '''
        return np.floor(np.asarray(positions) / self._cellSize).astype(np.int64)

    ######################################################################
    # -- Inspection -- #
    ######################################################################

    def walkBucket(self, bucket: int) -> Iterator[int]:
        '''
        Iterate over the particle indices chained in a bucket.

        Stops after N nodes so a corrupted (cyclic) chain cannot
        loop forever.

        Parameters:
        -----------
        bucket : int
            Bucket index

        Yields:
        -------
        int : Particle index
        '''
        node = int(self._heads.data[bucket])
        steps = 0
        while node != const.NONE and steps < self._nParticles:
            yield node
            node = int(self._nextNodes[node])
            steps += 1

    def bucketMembers(self, bucket: int) -> list[int]:
        '''Particle indices in a bucket, in chain order.'''
        return list(self.walkBucket(bucket))

    def membership(self) -> dict[int, frozenset[int]]:
        '''
        Map each non-empty bucket to the set of its particles.

        Chain order is not part of the result since insertion order
        within a bucket is unspecified.
        '''
        occupied = np.nonzero(self._heads.data != const.NONE)[0]
        return {int(b): frozenset(self.walkBucket(int(b))) for b in occupied}

    def nonEmptyBucketCount(self) -> int:
        '''Number of buckets holding at least one particle.'''
        return int(np.count_nonzero(self._heads.data != const.NONE))

    def isCleared(self) -> bool:
        '''True if every head and every node link equals NONE.'''
        return bool(
            np.all(self._heads.data == const.NONE)
            and np.all(self._nextNodes == const.NONE)
        )


######################################################################
# -- Neighbor List -- #
######################################################################

class NeighborList:
    '''
    Fixed-capacity neighbor storage, one row of M slots per particle.

    Parameters:
    -----------
    nParticles : int
        Number of particles N
    capacity : int
        Maximum neighbors per particle M
    '''

    def __init__(self, nParticles: int, capacity: int) -> None:
        self._capacity = capacity
        self.generation = 0
        self.counts = np.zeros(nParticles, dtype=np.int32)
        self.indices = np.full((nParticles, capacity), const.NONE, dtype=np.uint32)

    @property
    def capacity(self) -> int:
        '''Capacity M.'''
        return self._capacity

    @property
    def nParticles(self) -> int:
        '''Number of particles N.'''
        return self.counts.shape[0]

    def reset(self) -> None:
        '''Zero every count (slot contents past the count are ignored).'''
        self.counts.fill(0)
        self.generation += 1

    def write(self, particleIndex: int, candidates: list[int]) -> None:
        '''
        Store a particle's neighbors, truncating silently at capacity.

        Parameters:
        -----------
        particleIndex : int
            Owning particle
        candidates : list[int]
            Accepted neighbor indices
        '''
        count = min(len(candidates), self._capacity)
        if count:
            self.indices[particleIndex, :count] = candidates[:count]
        self.counts[particleIndex] = count

    def neighborsOf(self, particleIndex: int) -> np.ndarray:
        '''Neighbor indices of one particle.'''
        return self.indices[particleIndex, :self.counts[particleIndex]].astype(np.int64)

    def toPairs(self) -> tuple[np.ndarray, np.ndarray]:
        '''
        Flatten the lists into directed (i, j) pair arrays.

        Every recorded neighbor j of particle i yields one pair, so
        self-pairs (i, i) are included and both (i, j) and (j, i)
        appear when each lists the other.

        Returns:
        --------
        tuple[np.ndarray, np.ndarray] : (iIndices, jIndices)
        '''
        counts = self.counts.astype(np.int64)
        iIdx = np.repeat(np.arange(self.nParticles, dtype=np.int64), counts)
        slotMask = np.arange(self._capacity)[np.newaxis, :] < counts[:, np.newaxis]
        jIdx = self.indices[slotMask].astype(np.int64)
        return iIdx, jIdx


######################################################################
# -- Neighbor Finder -- #
######################################################################

class NeighborFinder:
    '''
    Per-particle neighbor gathering over a built SpatialHashGrid.

    findNeighbors(i) only writes row i of the neighbor list, so the
    pass needs no synchronization beyond the barriers around it.

    Parameters:
    -----------
    grid : SpatialHashGrid
        Fully built hash grid (positions bound)
    neighbors : NeighborList
        Output neighbor storage
    '''

    def __init__(self, grid: SpatialHashGrid, neighbors: NeighborList) -> None:
        self._grid = grid
        self._neighbors = neighbors

    @property
    def neighbors(self) -> NeighborList:
        '''Output neighbor storage.'''
        return self._neighbors

    def gatherCandidates(self, particleIndex: int) -> list[int]:
        '''
        All particles chained in the 27 buckets around a particle.

        Buckets reached from more than one stencil cell (hash
        collisions) are walked once. No distance filtering.

        Parameters:
        -----------
        particleIndex : int
            Query particle

        Returns:
        --------
        list[int] : Candidate indices (unordered)
        '''
        grid = self._grid
        s = grid.cellSize
        x, y, z = grid.positionList[particleIndex]
        cx, cy, cz = math.floor(x / s), math.floor(y / s), math.floor(z / s)

        heads = grid.heads
        nextNodes = grid.nextNodes
        none = const.NONE

        visited: set[int] = set()
        candidates: list[int] = []
        for dx, dy, dz in STENCIL_OFFSETS:
            bucket = grid.hashCell(cx + dx, cy + dy, cz + dz)
            if bucket in visited:
                continue
            visited.add(bucket)

            node = int(heads[bucket])
            while node != none:
                candidates.append(node)
                node = int(nextNodes[node])

        return candidates

    def findNeighbors(self, particleIndex: int) -> None:
        '''
        Record the neighbors of one particle within the support radius.

        Candidates farther than the cell size (support radius) are
        rejected. Once M neighbors are recorded the remaining
        candidates are dropped without error.

        Parameters:
        -----------
        particleIndex : int
            Query particle
        '''
        grid = self._grid
        positions = grid.positionList
        radiusSq = grid.cellSize * grid.cellSize
        capacity = self._neighbors.capacity
        xi, yi, zi = positions[particleIndex]

        accepted: list[int] = []
        for j in self.gatherCandidates(particleIndex):
            xj, yj, zj = positions[j]
            dx, dy, dz = xi - xj, yi - yj, zi - zj
            if dx * dx + dy * dy + dz * dz <= radiusSq:
                accepted.append(j)
                if len(accepted) == capacity:
                    break

        self._neighbors.write(particleIndex, accepted)
