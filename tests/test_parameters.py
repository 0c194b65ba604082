# -- Parameter Store Tests -- #

from __future__ import annotations

import dataclasses
import math

import pytest

from FluidSim.pbf.protocols import SimulationConfig
from FluidSim.pbf.parameters import ParameterStore, deriveKernelCoefficients


def testDefaultDerivedCoefficients():
    params = ParameterStore().snapshot()

    assert params.supportRadius == 0.5
    assert params.poly6 == pytest.approx(315.0 / (64.0 * math.pi * 0.5 ** 9))
    assert params.poly6 == pytest.approx(802.14, abs=0.01)
    assert params.spiky == pytest.approx(-45.0 / (math.pi * 0.5 ** 6))
    assert params.spiky == pytest.approx(-916.73, abs=0.01)
    assert params.pressureRadius == pytest.approx(0.05)
    assert params.tensileCorrection == pytest.approx(
        params.poly6 * (0.25 - 0.0025) ** 3
    )


def testUnitRadiusCoefficients():
    coeffs = deriveKernelCoefficients(1.0)

    assert coeffs['poly6'] == pytest.approx(1.5667, abs=1e-4)
    assert coeffs['spiky'] == pytest.approx(-14.3239, abs=1e-4)
    assert coeffs['pressureRadius'] == pytest.approx(0.1)


def testChangingRadiusUpdatesWholeGroup():
    store = ParameterStore()
    store.setSupportRadius(1.0)
    params = store.snapshot()

    expected = deriveKernelCoefficients(1.0)
    assert params.supportRadius == 1.0
    assert params.poly6 == pytest.approx(expected['poly6'])
    assert params.spiky == pytest.approx(expected['spiky'])
    assert params.pressureRadius == pytest.approx(expected['pressureRadius'])
    assert params.tensileCorrection == pytest.approx(expected['tensileCorrection'])


def testSnapshotsAreImmutable():
    store = ParameterStore()
    before = store.snapshot()

    with pytest.raises(dataclasses.FrozenInstanceError):
        before.restDensity = 1.0

    store.setRestDensity(700.0)
    assert before.restDensity == 600.0
    assert store.snapshot().restDensity == 700.0


def testInitialValuesComeFromConfig():
    config = SimulationConfig(particleCount=8, restDensity=1000.0, supportRadius=0.25)
    params = ParameterStore(config).snapshot()

    assert params.restDensity == 1000.0
    assert params.supportRadius == 0.25
    assert params.poly6 == pytest.approx(deriveKernelCoefficients(0.25)['poly6'])


@pytest.mark.parametrize('setter', ['setSupportRadius', 'setRestDensity', 'setRelaxationEpsilon'])
@pytest.mark.parametrize('value', [0.0, -1.0])
def testSettersRejectNonPositiveValues(setter, value):
    store = ParameterStore()
    before = store.snapshot()

    with pytest.raises(ValueError):
        getattr(store, setter)(value)

    assert store.snapshot() is before


def testDecrementRejectedUnlessValueExceedsAmount():
    store = ParameterStore()
    version = store.version

    assert store.adjust('restDensity', -600.0) is False
    assert store.adjust('restDensity', -700.0) is False
    assert store.snapshot().restDensity == 600.0
    assert store.version == version

    assert store.adjust('restDensity', -599.0) is True
    assert store.snapshot().restDensity == pytest.approx(1.0)
    assert store.version == version + 1


def testRadiusDecrementKeepsDerivedGroupConsistent():
    store = ParameterStore()

    assert store.adjust('supportRadius', -0.5) is False
    assert store.snapshot().poly6 == pytest.approx(deriveKernelCoefficients(0.5)['poly6'])

    assert store.adjust('supportRadius', -0.1) is True
    params = store.snapshot()
    assert params.supportRadius == pytest.approx(0.4)
    assert params.poly6 == pytest.approx(deriveKernelCoefficients(0.4)['poly6'])
    assert params.pressureRadius == pytest.approx(0.04)


def testIncrementsAlwaysApply():
    store = ParameterStore()
    assert store.adjust('vorticityEpsilon', 1.0) is True
    assert store.snapshot().vorticityEpsilon == pytest.approx(1.0013)


def testAdjustUnknownParameterRaisesKeyError():
    with pytest.raises(KeyError):
        ParameterStore().adjust('gravity', 1.0)


def testNudgeStepSizes():
    store = ParameterStore()

    # Coarse tunables step by ceil(100 dt)
    assert store.nudge('restDensity', +1, 0.016) is True
    assert store.snapshot().restDensity == pytest.approx(602.0)
    assert store.nudge('relaxationEpsilon', -1, 0.001) is True
    assert store.snapshot().relaxationEpsilon == pytest.approx(5999.0)

    # Fine tunables step by dt / 100
    assert store.nudge('supportRadius', -1, 0.5) is True
    assert store.snapshot().supportRadius == pytest.approx(0.495)
    assert store.snapshot().poly6 == pytest.approx(deriveKernelCoefficients(0.495)['poly6'])


def testNudgeDecrementGuardedAtFloor():
    store = ParameterStore()
    store.adjust('xsphCoefficient', -0.002)

    # Step 0.5 / 100 exceeds the remaining 0.001
    assert store.nudge('xsphCoefficient', -1, 0.5) is False
    assert store.snapshot().xsphCoefficient == pytest.approx(0.001)
