# -- PBF Parameter Store -- #

'''
Runtime-tunable fluid parameters and their radius-derived coefficients.

The store owns the mutable base parameters. Everything that depends on
the support radius (poly6 and spiky kernel coefficients, the pressure
radius and the tensile correction normalizer) is recomputed together in
a single update, so the derived group is never partially stale.

The solver never reads the store directly: each substep it receives an
immutable FluidParameters snapshot taken at the start of the frame.

Closed forms:
    poly6          = 315 / (64 * pi * r^9)
    spiky          = -45 / (pi * r^6)
    pressureRadius = 0.1 * r
    tensileCorr    = poly6 * (r^2 - pressureRadius^2)^3

References:
-----------
Muller et al. (2003) -- Particle-Based Fluid Simulation for Interactive Applications
Macklin & Muller (2013) -- Position Based Fluids
'''

from __future__ import annotations

import math
from dataclasses import dataclass, replace

from FluidSim import constants as const
from FluidSim.pbf.protocols import SimulationConfig


######################################################################
# -- Immutable Parameter Snapshot -- #
######################################################################

@dataclass(frozen=True)
class FluidParameters:
    '''
    Snapshot of the fluid parameters handed to the constraint solver.

    Parameters:
    -----------
    restDensity : float
        Rest density rho_0
    relaxationEpsilon : float
        Constraint relaxation epsilon
    supportRadius : float
        Kernel support radius h
    poly6 : float
        Poly6 kernel coefficient
    spiky : float
        Spiky gradient coefficient
    pressureRadius : float
        Tensile correction reference distance delta_q
    tensileCorrection : float
        Poly6 kernel value at delta_q (s_corr normalizer)
    vorticityEpsilon : float
        Vorticity confinement strength
    xsphCoefficient : float
        XSPH velocity smoothing coefficient
    tensileStrength : float
        s_corr strength k
    tensileExponent : int
        s_corr exponent n
    '''

    restDensity: float
    relaxationEpsilon: float
    supportRadius: float
    poly6: float
    spiky: float
    pressureRadius: float
    tensileCorrection: float
    vorticityEpsilon: float
    xsphCoefficient: float
    tensileStrength: float
    tensileExponent: int


def deriveKernelCoefficients(supportRadius: float) -> dict[str, float]:
    '''
    Compute the radius-derived coefficient group.

    Parameters:
    -----------
    supportRadius : float
        Kernel support radius r (must be positive)

    Returns:
    --------
    dict[str, float] : poly6, spiky, pressureRadius, tensileCorrection
    '''
    r = supportRadius
    poly6 = 315.0 / (64.0 * math.pi * r ** 9)
    spiky = -45.0 / (math.pi * r ** 6)
    pressureRadius = const.pressureRadiusRatio * r
    tensileCorrection = poly6 * (r * r - pressureRadius * pressureRadius) ** 3

    return {
        'poly6': poly6,
        'spiky': spiky,
        'pressureRadius': pressureRadius,
        'tensileCorrection': tensileCorrection,
    }


######################################################################
# -- Parameter Store -- #
######################################################################

class ParameterStore:
    '''
    Mutable tunable parameters with an atomically-derived kernel group.

    Increments always succeed. Decrements are checked before mutating:
    a decrement is applied only when the current value is strictly
    greater than the amount, otherwise it is rejected and the store is
    left untouched.

    Parameters:
    -----------
    config : SimulationConfig | None
        Boot-time configuration supplying the initial values
    '''

    # Tunables that step by ceil(100 * dt) vs. dt / 100 when nudged
    _coarseTunables = ('restDensity', 'relaxationEpsilon')
    _fineTunables = ('supportRadius', 'vorticityEpsilon', 'tensileStrength', 'xsphCoefficient')

    def __init__(self, config: SimulationConfig | None = None) -> None:
        config = config or SimulationConfig()
        self._params = FluidParameters(
            restDensity=config.restDensity,
            relaxationEpsilon=config.relaxationEpsilon,
            supportRadius=config.supportRadius,
            vorticityEpsilon=config.vorticityEpsilon,
            xsphCoefficient=config.xsphCoefficient,
            tensileStrength=config.tensileStrength,
            tensileExponent=config.tensileExponent,
            **deriveKernelCoefficients(config.supportRadius),
        )
        self._version = 0

    ######################################################################
    # -- Read Access -- #
    ######################################################################

    def snapshot(self) -> FluidParameters:
        '''Current immutable parameter snapshot.'''
        return self._params

    @property
    def version(self) -> int:
        '''Counter bumped on every applied change.'''
        return self._version

    @property
    def supportRadius(self) -> float:
        '''Current support radius.'''
        return self._params.supportRadius

    ######################################################################
    # -- Absolute Setters -- #
    ######################################################################

    def setSupportRadius(self, radius: float) -> None:
        '''
        Set the support radius and recompute the derived group.

        Raises:
        -------
        ValueError : If radius is not positive
        '''
        if radius <= 0.0:
            raise ValueError(f'supportRadius must be positive, got {radius}')
        self._commit(supportRadius=radius, **deriveKernelCoefficients(radius))

    def setRestDensity(self, density: float) -> None:
        '''
        Set the rest density.

        Raises:
        -------
        ValueError : If density is not positive
        '''
        if density <= 0.0:
            raise ValueError(f'restDensity must be positive, got {density}')
        self._commit(restDensity=density)

    def setRelaxationEpsilon(self, epsilon: float) -> None:
        '''
        Set the constraint relaxation epsilon.

        Raises:
        -------
        ValueError : If epsilon is not positive
        '''
        if epsilon <= 0.0:
            raise ValueError(f'relaxationEpsilon must be positive, got {epsilon}')
        self._commit(relaxationEpsilon=epsilon)

    ######################################################################
    # -- Guarded Adjustments -- #
    ######################################################################

    def adjust(self, name: str, amount: float) -> bool:
        '''
        Add a signed amount to a tunable parameter.

        Negative amounts are only applied when the current value is
        strictly greater than |amount|. Changing the support radius
        recomputes the whole derived group in the same update.

        Parameters:
        -----------
        name : str
            Tunable name (restDensity, relaxationEpsilon, supportRadius,
            vorticityEpsilon, tensileStrength, xsphCoefficient)
        amount : float
            Signed change

        Returns:
        --------
        bool : True if the change was applied

        Raises:
        -------
        KeyError : If name is not a tunable parameter
        '''
        if name not in self._coarseTunables + self._fineTunables:
            raise KeyError(f'Unknown tunable parameter: {name}')

        current = getattr(self._params, name)
        if amount < 0.0 and current <= -amount:
            return False

        newValue = current + amount
        if name == 'supportRadius':
            self._commit(supportRadius=newValue, **deriveKernelCoefficients(newValue))
        else:
            self._commit(**{name: newValue})
        return True

    def nudge(self, name: str, direction: int, dt: float) -> bool:
        '''
        Step a tunable up or down by an amount scaled by elapsed time.

        Density and epsilon step by ceil(100 * dt); the remaining
        tunables step by dt / 100.

        Parameters:
        -----------
        name : str
            Tunable name
        direction : int
            +1 to increase, -1 to decrease
        dt : float
            Elapsed time since the last nudge

        Returns:
        --------
        bool : True if the change was applied
        '''
        if name in self._coarseTunables:
            step = float(math.ceil(100.0 * dt))
        else:
            step = dt / 100.0
        return self.adjust(name, step if direction >= 0 else -step)

    def _commit(self, **changes) -> None:
        '''Swap in a new snapshot with all changes applied at once.'''
        self._params = replace(self._params, **changes)
        self._version += 1
