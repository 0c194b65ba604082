# -- Configuration Tests -- #

from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest

from FluidSim import constants as const
from FluidSim.pbf.protocols import SimulationConfig


def testDefaultsMatchBootConstants():
    config = SimulationConfig()

    assert config.particleCount == 15360
    assert config.hashTableSize == config.particleCount
    assert config.maxNeighbors == 500
    assert config.substeps == 2
    assert config.solverIterations == 4
    assert config.restDensity == 600.0
    assert config.supportRadius == 0.5
    assert config.relaxationEpsilon == 6000.0
    assert config.maxDeltaTime == pytest.approx(0.0083)
    np.testing.assert_array_equal(config.gravity, [0.0, -9.8, 0.0])
    np.testing.assert_array_equal(config.boundsMin, [-5.0, -5.0, -5.0])


@pytest.mark.parametrize('field, value', [
    ('particleCount', 0),
    ('hashTableSize', 0),
    ('maxNeighbors', 0),
    ('substeps', 0),
    ('solverIterations', 0),
    ('workerThreads', 0),
    ('restDensity', 0.0),
    ('supportRadius', -0.5),
    ('relaxationEpsilon', 0.0),
    ('maxDeltaTime', 0.0),
])
def testInvalidValuesRejected(field, value):
    with pytest.raises(ValueError, match=field):
        SimulationConfig(**{field: value})


def testInvertedBoundsRejected():
    with pytest.raises(ValueError):
        SimulationConfig(boundsMin=np.full(3, 1.0), boundsMax=np.full(3, -1.0))


def testCollisionBoxFollowsCubeHalfExtent():
    config = SimulationConfig(cubeHalfExtent=1.0)

    np.testing.assert_array_equal(config.boundsMin, [-1.0, -1.0, -1.0])
    np.testing.assert_array_equal(config.boundsMax, [1.0, 1.0, 1.0])

    wide = SimulationConfig(cubeHalfExtent=1.0, boundsMax=np.full(3, 3.0))
    np.testing.assert_array_equal(wide.boundsMin, [-1.0, -1.0, -1.0])
    np.testing.assert_array_equal(wide.boundsMax, [3.0, 3.0, 3.0])


def testFromJsonReadsSectionsAndDefaults(tmp_path):
    configPath = tmp_path / 'config.json'
    configPath.write_text(json.dumps({
        'simulation': {'particleCount': 3072, 'substeps': 3, 'seed': 4},
        'pbf': {'restDensity': 800.0, 'epsilon': 5000.0, 'xsph': 0.01},
        'domain': {'cubeHalfExtent': 2.0, 'gravity': [0.0, -1.0, 0.0]},
    }))

    config = SimulationConfig.fromJson(str(configPath))

    assert config.particleCount == 3072
    assert config.hashTableSize == 3072
    assert config.substeps == 3
    assert config.seed == 4
    assert config.restDensity == 800.0
    assert config.relaxationEpsilon == 5000.0
    assert config.xsphCoefficient == 0.01
    assert config.solverIterations == const.solverIterations
    assert config.supportRadius == const.supportRadius
    np.testing.assert_array_equal(config.gravity, [0.0, -1.0, 0.0])
    np.testing.assert_array_equal(config.boundsMax, [2.0, 2.0, 2.0])


def testBundledConfigLoads():
    configPath = Path(__file__).parent.parent / 'FluidSim' / 'configs' / 'randomCube.json'
    config = SimulationConfig.fromJson(str(configPath))

    assert config.particleCount == const.particleCount
    assert config.maxNeighbors == const.maxNeighbors
