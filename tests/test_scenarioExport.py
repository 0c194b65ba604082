# -- Scenario, Export and Runner Tests -- #

from __future__ import annotations

import json

import numpy as np
import plotly.graph_objects as go
import pytest

from FluidSim import constants as const
from FluidSim.pbf.simulationLoop import SimulationLoop
from FluidSim.scenarios.randomCube import RandomCubeConfig, createRandomCube
from FluidSim.export.frameExporter import FrameExporter
from FluidSim.runner import FixedStepClock, FluidSimRunner, buildParser
from FluidSim.visualization.particlePlots import plotFrameHistory, plotParticles


def tinyCube(**overrides) -> RandomCubeConfig:
    settings = dict(particleCount=96, cubeHalfExtent=1.0, nFrames=2, seed=2)
    settings.update(overrides)
    return RandomCubeConfig(**settings)


######################################################################
# -- Scenario -- #
######################################################################

def testSmallPresetScenario():
    simConfig, particles = createRandomCube(RandomCubeConfig.small())

    assert simConfig.particleCount == const.workGroupSize
    assert particles.nParticles == const.workGroupSize
    assert np.all(np.abs(particles.positions) <= 2.0)
    np.testing.assert_array_equal(simConfig.boundsMax, [2.0, 2.0, 2.0])
    np.testing.assert_array_equal(particles.colors[0], const.initialColor)


def testStandardPresetUsesFullPool():
    cubeConfig = RandomCubeConfig.standard()
    assert cubeConfig.particleCount == 15360
    assert cubeConfig.cubeHalfExtent == 5.0


def testScenarioOverridesAndSeed():
    simA, particlesA = createRandomCube(tinyCube(), substeps=3)
    _, particlesB = createRandomCube(tinyCube())

    assert simA.substeps == 3
    np.testing.assert_array_equal(particlesA.positions, particlesB.positions)


def testBoxSmallerThanCubeRejected():
    with pytest.raises(ValueError):
        createRandomCube(tinyCube(boxHalfExtent=0.5))


######################################################################
# -- Fixed Step Clock -- #
######################################################################

def testFixedStepClockAdvancesPerRead():
    clock = FixedStepClock(0.005)
    assert [clock() for _ in range(3)] == pytest.approx([0.0, 0.005, 0.010])

    with pytest.raises(ValueError):
        FixedStepClock(0.0)


######################################################################
# -- Export -- #
######################################################################

def testExporterWritesCompletedFrames(tmp_path):
    simConfig, particles = createRandomCube(tinyCube())
    exporter = FrameExporter()

    with SimulationLoop(simConfig, particles=particles, clock=FixedStepClock(0.004)) as loop:
        for _ in range(3):
            exporter.addFrame(loop.runFrame())

    path = exporter.export(simConfig, outputDir=str(tmp_path), scenarioName='tiny')
    with open(path, 'r') as f:
        data = json.load(f)

    assert exporter.nFrames == 3
    assert data['meta']['nFrames'] == 3
    assert data['meta']['nParticles'] == 96
    assert [frame['frame'] for frame in data['frames']] == [1, 2, 3]
    assert data['frames'][-1]['time'] == pytest.approx(3 * 2 * 0.004)
    assert np.array(data['frames'][0]['positions']).shape == (96, 3)
    assert np.array(data['frames'][0]['velocities']).shape == (96, 3)
    assert np.array(data['frames'][0]['colors']).shape == (96, 3)


def testExporterSpeedsOnly():
    simConfig, particles = createRandomCube(tinyCube())
    exporter = FrameExporter(includeVelocities=False)

    with SimulationLoop(simConfig, particles=particles, clock=FixedStepClock(0.004)) as loop:
        exporter.addFrame(loop.runFrame())

    frame = exporter.frames[0]
    assert 'velocities' not in frame
    assert len(frame['speeds']) == 96


######################################################################
# -- Runner and Plots -- #
######################################################################

def testRunnerRandomCube(tmp_path):
    result = FluidSimRunner().runRandomCube(tinyCube(), exportDir=str(tmp_path), plot=True)

    assert result['finalSnapshot'].frame == 2
    assert result['simulationTime'] == pytest.approx(2 * 2 * const.maxDeltaTime)
    assert result['nFrames'] == 2
    assert result['missedNeighbors'] == 0
    assert result['hashStats'].isConsistent
    assert result['exportPath'].startswith(str(tmp_path))
    assert result['plotPath'].endswith('.html')


def testRunnerFromConfig(tmp_path):
    configPath = tmp_path / 'config.json'
    configPath.write_text(json.dumps({
        'simulation': {'particleCount': 64, 'frames': 1, 'seed': 3},
        'domain': {'cubeHalfExtent': 1.0},
    }))

    result = FluidSimRunner().runFromConfig(str(configPath), doExport=False)

    assert result['exportPath'] is None
    assert result['finalSnapshot'].frame == 1
    assert result['nFrames'] == 0


def testParserDefaults():
    args = buildParser().parse_args([])

    assert args.preset == 'small'
    assert args.config is None
    assert not args.realtime
    assert not args.no_export


def testPlotsBuildFigures():
    simConfig, particles = createRandomCube(tinyCube())
    with SimulationLoop(simConfig, particles=particles, clock=FixedStepClock(0.004)) as loop:
        snapshots = [loop.runFrame() for _ in range(2)]

    scatter = plotParticles(snapshots[-1], simConfig, maxPoints=50)
    history = plotFrameHistory(snapshots)

    assert isinstance(scatter, go.Figure)
    assert len(scatter.data) == 2
    assert len(scatter.data[0].x) <= 50
    assert len(history.data) == 1
    assert scatter.data[0].marker.size == 2
    assert scatter.data[1].line.color == '#888888'
