# -- PBF Simulation Loop -- #

'''
Substep sequencing and timestep control for position-based fluids.

Every substep runs the same strictly ordered stages, each of which
completes (all workers retired) before the next one starts:

    1. Clear          -- reset bucket heads, node links and neighbor counts
    2. Hash           -- predict positions, insert every particle by its
                         predicted cell (atomic head exchange)
    3. FindNeighbors  -- per-particle 27-cell search into bounded lists
    4. Solve x K      -- fixed number of constraint iterations
    5. Integrate      -- collisions, velocity update, vorticity, XSPH

A frame runs S substeps. Each substep's dt is the wall-clock time since
the previous substep clamped to maxDeltaTime, and the clamped value is
always added to the simulation-time accumulator. Readers only get the
particle buffers through the FrameSnapshot returned once the whole
frame has completed.
'''

from __future__ import annotations

import time
from typing import Callable

from FluidSim.pbf.protocols import ConstraintSolver, FrameSnapshot, SimulationConfig, SubstepStage
from FluidSim.pbf.particles import ParticleState
from FluidSim.pbf.parameters import FluidParameters, ParameterStore
from FluidSim.pbf.dispatch import WorkerDispatcher
from FluidSim.pbf.neighborSearch import NeighborFinder, NeighborList, SpatialHashGrid
from FluidSim.pbf.pbfSolver import PbfSolver


class SimulationLoop:
    '''
    Owns the particle, hash and neighbor buffers and drives the solver.

    Parameters:
    -----------
    config : SimulationConfig
        Boot-time configuration
    particles : ParticleState | None
        Initial particle pool (defaults to a random cube of N particles)
    solver : ConstraintSolver | None
        Constraint solver (defaults to PbfSolver)
    parameters : ParameterStore | None
        Tunable parameters (defaults to values from config)
    dispatcher : WorkerDispatcher | None
        Parallel pass dispatcher (defaults to config.workerThreads threads)
    clock : Callable[[], float] | None
        Wall-clock source in seconds (defaults to time.perf_counter)
    '''

    def __init__(
        self,
        config: SimulationConfig,
        particles: ParticleState | None = None,
        solver: ConstraintSolver | None = None,
        parameters: ParameterStore | None = None,
        dispatcher: WorkerDispatcher | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._config = config
        self._particles = particles or ParticleState.createRandomCube(
            config.particleCount, halfExtent=config.cubeHalfExtent, seed=config.seed,
        )
        if self._particles.nParticles != config.particleCount:
            raise ValueError(
                f'Particle pool has {self._particles.nParticles} particles, '
                f'config expects {config.particleCount}'
            )

        self._solver = solver or PbfSolver(config)
        self._parameters = parameters or ParameterStore(config)
        self._dispatcher = dispatcher or WorkerDispatcher(config.workerThreads)
        self._clock = clock or time.perf_counter

        n = config.particleCount
        self._grid = SpatialHashGrid(config.hashTableSize, n, self._parameters.supportRadius)
        self._neighbors = NeighborList(n, config.maxNeighbors)
        self._finder = NeighborFinder(self._grid, self._neighbors)

        self._dispatcher.register(SubstepStage.HASH.value, self._grid.insert)
        self._dispatcher.register(SubstepStage.FIND_NEIGHBORS.value, self._finder.findNeighbors)

        self._simulationTime: float = 0.0
        self._frameCount: int = 0
        self._substepCount: int = 0
        self._lastStages: list[SubstepStage] = []
        self._lastTime: float = self._clock()

    ######################################################################
    # -- Frame and Substep Execution -- #
    ######################################################################

    def runFrame(self) -> FrameSnapshot:
        '''
        Run S substeps and return the completed frame's snapshot.

        The parameter snapshot is taken once at the start of the frame
        and used by every substep of it.

        Returns:
        --------
        FrameSnapshot : Read-only buffers after the last Integrate stage
        '''
        params = self._parameters.snapshot()
        deltas: list[float] = []

        for _ in range(self._config.substeps):
            now = self._clock()
            measured = now - self._lastTime
            self._lastTime = now

            dt = self.clampDelta(measured)
            self._runSubstep(dt, params)
            deltas.append(dt)

        self._frameCount += 1
        return self.snapshot(tuple(deltas))

    def substep(self, dt: float) -> None:
        '''
        Run a single substep with an explicit (already measured) delta.

        The delta is clamped like a measured one and the clamped value
        is added to the simulation time.

        Parameters:
        -----------
        dt : float
            Requested substep size
        '''
        self._runSubstep(self.clampDelta(dt), self._parameters.snapshot())

    def clampDelta(self, measured: float) -> float:
        '''
        Clamp a measured delta to [0, maxDeltaTime].

        Parameters:
        -----------
        measured : float
            Wall-clock delta since the previous substep

        Returns:
        --------
        float : Delta the substep will consume
        '''
        return min(max(measured, 0.0), self._config.maxDeltaTime)

    def _runSubstep(self, dt: float, params: FluidParameters) -> None:
        '''Clear -> Hash -> FindNeighbors -> Solve x K -> Integrate.'''
        n = self._config.particleCount
        p = self._particles
        stages: list[SubstepStage] = []

        # 1. Clear (cell size follows the current support radius)
        self._grid.clear(cellSize=params.supportRadius)
        self._neighbors.reset()
        stages.append(SubstepStage.CLEAR)

        # 2. Hash by predicted position
        self._solver.predict(p, params, dt)
        self._grid.bindPositions(p.predictedPositions)
        self._dispatcher.dispatch(SubstepStage.HASH.value, n)
        stages.append(SubstepStage.HASH)

        # 3. Neighbor lists over the fully built grid
        self._dispatcher.dispatch(SubstepStage.FIND_NEIGHBORS.value, n)
        stages.append(SubstepStage.FIND_NEIGHBORS)

        # 4. Fixed number of constraint iterations
        for _ in range(self._config.solverIterations):
            self._solver.solveIteration(p, self._neighbors, params)
            stages.append(SubstepStage.SOLVE)

        # 5. Integrate
        self._solver.finalize(p, self._neighbors, params, dt)
        stages.append(SubstepStage.INTEGRATE)

        self._simulationTime += dt
        self._substepCount += 1
        self._lastStages = stages

    ######################################################################
    # -- Read Access -- #
    ######################################################################

    def snapshot(self, substepDeltas: tuple[float, ...] = ()) -> FrameSnapshot:
        '''
        Read-only copies of the position, velocity and color buffers.

        Parameters:
        -----------
        substepDeltas : tuple[float, ...]
            Deltas consumed by the frame's substeps

        Returns:
        --------
        FrameSnapshot : Snapshot of the current buffers
        '''
        positions = self._particles.positions.copy()
        velocities = self._particles.velocities.copy()
        colors = self._particles.colors.copy()
        for array in (positions, velocities, colors):
            array.flags.writeable = False

        return FrameSnapshot(
            frame=self._frameCount,
            simulationTime=self._simulationTime,
            substepDeltas=substepDeltas,
            positions=positions,
            velocities=velocities,
            colors=colors,
        )

    def close(self) -> None:
        '''Release dispatcher resources.'''
        self._dispatcher.shutdown()

    def __enter__(self) -> SimulationLoop:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    ######################################################################
    # -- Properties -- #
    ######################################################################

    @property
    def config(self) -> SimulationConfig:
        '''Boot-time configuration.'''
        return self._config

    @property
    def simulationTime(self) -> float:
        '''Running simulation time (sum of clamped substep deltas).'''
        return self._simulationTime

    @property
    def frameCount(self) -> int:
        '''Number of completed frames.'''
        return self._frameCount

    @property
    def substepCount(self) -> int:
        '''Number of completed substeps.'''
        return self._substepCount

    @property
    def lastStages(self) -> list[SubstepStage]:
        '''Stages executed by the most recent substep, in order.'''
        return list(self._lastStages)

    @property
    def parameters(self) -> ParameterStore:
        '''Tunable parameter store.'''
        return self._parameters

    @property
    def particles(self) -> ParticleState:
        '''Live particle buffers (only consistent between substeps).'''
        return self._particles

    @property
    def grid(self) -> SpatialHashGrid:
        '''Spatial hash grid built by the last substep.'''
        return self._grid

    @property
    def neighbors(self) -> NeighborList:
        '''Neighbor lists built by the last substep.'''
        return self._neighbors

    @property
    def solver(self) -> ConstraintSolver:
        '''Constraint solver.'''
        return self._solver
