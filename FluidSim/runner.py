# -- Fluid Simulation Runner -- #

'''
Command-line entry point for running PBF fluid simulations.

Builds the random cube scenario, runs the simulation loop frame by
frame with progress reporting, and optionally exports frame data and
a Plotly figure of the final frame.

Usage:
    python -m FluidSim                                   # Small block, fixed step
    python -m FluidSim --preset standard                 # 15360 particles
    python -m FluidSim --config FluidSim/configs/randomCube.json
    python -m FluidSim --realtime                        # Wall-clock substeps
    python -m FluidSim --no-export                       # Skip frame export
'''

from __future__ import annotations

import argparse
import json
import os
import time as timeModule

import numpy as np
from tqdm import tqdm

from FluidSim.pbf.protocols import SimulationConfig
from FluidSim.pbf.particles import ParticleState
from FluidSim.pbf.simulationLoop import SimulationLoop
from FluidSim.pbf.diagnostics import computeHashStats, computeNeighborStats, countMissedNeighbors
from FluidSim.scenarios.randomCube import RandomCubeConfig, createRandomCube
from FluidSim.export.frameExporter import FrameExporter


#--------------------------------------------------------------------#
# -- CLI Argument Parser -- #
#--------------------------------------------------------------------#

def buildParser() -> argparse.ArgumentParser:
    '''Build the CLI argument parser.'''
    parser = argparse.ArgumentParser(
        description='FluidSim -- position-based fluids simulation',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        '--config', type=str, default=None,
        help='Path to JSON configuration file',
    )
    parser.add_argument(
        '--preset', type=str, default='small',
        choices=['small', 'standard'],
        help='Scenario preset (default: small)',
    )
    parser.add_argument(
        '--frames', type=int, default=None,
        help='Number of frames to run (default: preset value)',
    )
    parser.add_argument(
        '--threads', type=int, default=None,
        help='Dispatcher worker threads (default: preset value)',
    )
    parser.add_argument(
        '--seed', type=int, default=None,
        help='Random seed for the initial layout',
    )
    parser.add_argument(
        '--realtime', action='store_true',
        help='Use the measured wall-clock delta instead of a fixed step',
    )
    parser.add_argument(
        '--no-export', action='store_true',
        help='Skip frame data export',
    )
    parser.add_argument(
        '--plot', action='store_true',
        help='Write an HTML scatter of the final frame',
    )
    parser.add_argument(
        '--output-dir', type=str, default='FluidSim/output',
        help='Output directory for exported frames (default: FluidSim/output)',
    )

    return parser


#--------------------------------------------------------------------#
# -- Fixed Step Clock -- #
#--------------------------------------------------------------------#

class FixedStepClock:
    '''
    Deterministic clock advancing by a fixed step on every read.

    Passed to SimulationLoop in place of the wall clock so each
    substep measures exactly one step.

    Parameters:
    -----------
    step : float
        Time advanced per read
    '''

    def __init__(self, step: float) -> None:
        if step <= 0.0:
            raise ValueError(f'step must be positive, got {step}')
        self._step = step
        self._now = 0.0

    def __call__(self) -> float:
        current = self._now
        self._now += self._step
        return current


#--------------------------------------------------------------------#
# -- Runner Class -- #
#--------------------------------------------------------------------#

class FluidSimRunner:
    '''
    Runs a PBF simulation and stores results.

    Handles the full pipeline: scenario setup, frame loop with
    progress reporting, and optional frame export.
    '''

    def __init__(self) -> None:
        self._exporter: FrameExporter = FrameExporter()

    def runFromConfig(
        self,
        configPath: str,
        nFrames: int | None = None,
        realtime: bool = False,
        doExport: bool = True,
        exportDir: str = 'FluidSim/output',
    ) -> dict:
        '''
        Run a simulation from a JSON configuration file.

        Parameters:
        -----------
        configPath : str
            Path to the JSON configuration file
        nFrames : int | None
            Frames to run (defaults to 'simulation.frames', else 120)
        realtime : bool
            Drive substeps from the wall clock
        doExport : bool
            Whether to export frame data
        exportDir : str
            Output directory for frame export

        Returns:
        --------
        dict : Simulation results summary
        '''
        with open(configPath, 'r') as f:
            data = json.load(f)
        if nFrames is None:
            nFrames = data.get('simulation', {}).get('frames', 120)

        simConfig = SimulationConfig.fromJson(configPath)
        particles = ParticleState.createRandomCube(
            simConfig.particleCount,
            halfExtent=simConfig.cubeHalfExtent,
            seed=simConfig.seed,
        )

        return self.run(
            simConfig, particles,
            nFrames=nFrames,
            fixedDeltaTime=None if realtime else simConfig.maxDeltaTime,
            doExport=doExport,
            exportDir=exportDir,
        )

    def runRandomCube(
        self,
        cubeConfig: RandomCubeConfig,
        doExport: bool = True,
        exportDir: str = 'FluidSim/output',
        plot: bool = False,
    ) -> dict:
        '''
        Run the random cube scenario.

        Parameters:
        -----------
        cubeConfig : RandomCubeConfig
            Scenario configuration
        doExport : bool
            Whether to export frame data
        exportDir : str
            Output directory for frame export
        plot : bool
            Whether to write an HTML scatter of the final frame

        Returns:
        --------
        dict : Simulation results summary
        '''
        simConfig, particles = createRandomCube(cubeConfig)
        return self.run(
            simConfig, particles,
            nFrames=cubeConfig.nFrames,
            fixedDeltaTime=cubeConfig.fixedDeltaTime,
            doExport=doExport,
            exportDir=exportDir,
            plot=plot,
        )

    def run(
        self,
        simConfig: SimulationConfig,
        particles: ParticleState,
        nFrames: int,
        fixedDeltaTime: float | None = None,
        doExport: bool = True,
        exportDir: str = 'FluidSim/output',
        plot: bool = False,
    ) -> dict:
        '''
        Run a prepared simulation for a number of frames.

        Parameters:
        -----------
        simConfig : SimulationConfig
            Boot-time configuration
        particles : ParticleState
            Initial particle pool
        nFrames : int
            Number of frames
        fixedDeltaTime : float | None
            Fixed substep delta, or None for the wall clock
        doExport : bool
            Whether to export frame data
        exportDir : str
            Output directory for frame export and plots
        plot : bool
            Whether to write an HTML scatter of the final frame

        Returns:
        --------
        dict : Simulation results summary
        '''
        print()
        print('=' * 62)
        print('  FLUIDSIM -- POSITION BASED FLUIDS')
        print('=' * 62)
        print()

        #--------------------------------------------------------------------#
        # Scenario Setup
        #--------------------------------------------------------------------#
        print('-' * 62)
        print('  SCENARIO SETUP')
        print('-' * 62)
        print(f'  Particles:         {simConfig.particleCount:8d}')
        print(f'  Hash Buckets:      {simConfig.hashTableSize:8d}')
        print(f'  Max Neighbors:     {simConfig.maxNeighbors:8d}')
        print(f'  Substeps/Frame:    {simConfig.substeps:8d}')
        print(f'  Solver Iterations: {simConfig.solverIterations:8d}')
        print(f'  Rest Density:      {simConfig.restDensity:8.1f}')
        print(f'  Support Radius:    {simConfig.supportRadius:8.3f}')
        print(f'  Max Delta Time:    {simConfig.maxDeltaTime:8.4f} s')
        print(f'  Worker Threads:    {simConfig.workerThreads:8d}')
        stepLabel = 'wall clock' if fixedDeltaTime is None else f'{fixedDeltaTime:.4f} s'
        print(f'  Substep Delta:     {stepLabel:>8}')
        print(f'  Frames:            {nFrames:8d}')
        print()

        clock = None if fixedDeltaTime is None else FixedStepClock(fixedDeltaTime)
        loop = SimulationLoop(simConfig, particles=particles, clock=clock)

        params = loop.parameters.snapshot()
        print(f'  Poly6 Coefficient: {params.poly6:12.4f}')
        print(f'  Spiky Coefficient: {params.spiky:12.4f}')
        print(f'  Pressure Radius:   {params.pressureRadius:12.4f}')
        print()

        #--------------------------------------------------------------------#
        # Simulation Loop
        #--------------------------------------------------------------------#
        print('-' * 62)
        print('  RUNNING SIMULATION')
        print('-' * 62)

        snapshot = None
        neighborStats = None
        wallClockStart = timeModule.time()
        try:
            for _ in tqdm(range(nFrames), desc='  Frames', ncols=62):
                snapshot = loop.runFrame()
                if doExport:
                    self._exporter.addFrame(snapshot)

            hashStats = computeHashStats(loop.grid)
            neighborStats = computeNeighborStats(loop.neighbors)
            missedNeighbors = countMissedNeighbors(
                np.array(loop.grid.positionList), loop.neighbors, loop.grid.cellSize,
            )
            densityError = loop.solver.maxDensityError(params.restDensity)
        finally:
            loop.close()
        wallClockSeconds = timeModule.time() - wallClockStart

        print()
        print(f'  Simulation complete.')
        print(f'  Frames:            {loop.frameCount:8d}')
        print(f'  Substeps:          {loop.substepCount:8d}')
        print(f'  Simulation time:   {loop.simulationTime:8.4f} s')
        print(f'  Wall-clock time:   {wallClockSeconds:8.1f} s')
        print()

        #--------------------------------------------------------------------#
        # Export
        #--------------------------------------------------------------------#
        exportPath = None
        if doExport:
            print('-' * 62)
            print('  EXPORTING FRAME DATA')
            print('-' * 62)

            exportPath = self._exporter.export(
                config=simConfig,
                outputDir=exportDir,
                scenarioName='randomCube',
            )
            print(f'  Exported to: {exportPath}')
            print()

        plotPath = None
        if plot and snapshot is not None:
            from FluidSim.visualization.particlePlots import plotParticles

            os.makedirs(exportDir, exist_ok=True)
            plotPath = os.path.join(exportDir, f'fluidSim_frame{snapshot.frame:04d}.html')
            plotParticles(snapshot, simConfig).write_html(plotPath)
            print(f'  Plot written to: {plotPath}')
            print()

        #--------------------------------------------------------------------#
        # Summary
        #--------------------------------------------------------------------#
        print('=' * 62)
        print('  SIMULATION SUMMARY')
        print('=' * 62)
        if snapshot is not None:
            print(f'  Max Speed:         {snapshot.maxSpeed():8.4f}')
        print(f'  Kinetic Energy:    {loop.particles.kineticEnergy():10.4f}')
        print(f'  Max Density Error: {densityError * 100:8.3f} %')
        print(f'  Buckets Used:      {hashStats.nonEmptyBuckets:8d}')
        print(f'  Max Chain Length:  {hashStats.maxChainLength:8d}')
        print(f'  Max Neighbors:     {neighborStats.maxCount:8d}')
        print(f'  Mean Neighbors:    {neighborStats.meanCount:8.1f}')
        print(f'  Saturated Lists:   {neighborStats.saturatedCount:8d}')
        print(f'  Missed Neighbors:  {missedNeighbors:8d}')
        print('=' * 62)
        print()

        return {
            'finalSnapshot': snapshot,
            'simulationTime': loop.simulationTime,
            'wallClockSeconds': wallClockSeconds,
            'hashStats': hashStats,
            'neighborStats': neighborStats,
            'missedNeighbors': missedNeighbors,
            'nFrames': self._exporter.nFrames,
            'exportPath': exportPath,
            'plotPath': plotPath,
        }


#--------------------------------------------------------------------#
# -- CLI Entry Point -- #
#--------------------------------------------------------------------#

def main() -> None:
    '''CLI entry point.'''
    parser = buildParser()
    args = parser.parse_args()

    runner = FluidSimRunner()

    if args.config:
        runner.runFromConfig(
            args.config,
            nFrames=args.frames,
            realtime=args.realtime,
            doExport=not args.no_export,
            exportDir=args.output_dir,
        )
        return

    presets = {
        'small': RandomCubeConfig.small,
        'standard': RandomCubeConfig.standard,
    }
    cubeConfig = presets[args.preset]()
    if args.frames is not None:
        cubeConfig.nFrames = args.frames
    if args.threads is not None:
        cubeConfig.workerThreads = args.threads
    if args.seed is not None:
        cubeConfig.seed = args.seed
    if args.realtime:
        cubeConfig.fixedDeltaTime = None

    runner.runRandomCube(
        cubeConfig,
        doExport=not args.no_export,
        exportDir=args.output_dir,
        plot=args.plot,
    )


if __name__ == '__main__':
    main()
