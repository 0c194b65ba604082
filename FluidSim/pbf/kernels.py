# -- PBF Smoothing Kernels -- #

'''
Poly6 and spiky smoothing kernels used by position-based fluids.

Poly6 is used for density estimation (and the tensile correction),
the spiky gradient for constraint gradients since it does not vanish
at the origin. Coefficients are taken from the ParameterStore so they
always match the current support radius.

    W_poly6(r, h)     = poly6 * (h^2 - r^2)^3          for 0 <= r <= h
    grad W_spiky(r, h) = spiky * (h - r)^2 * rVec / r   for 0 <  r <= h

References:
-----------
Muller et al. (2003) -- Particle-Based Fluid Simulation for Interactive Applications
'''

from __future__ import annotations

import numpy as np


def poly6Batch(dist: np.ndarray, h: float, poly6: float) -> np.ndarray:
    '''
    Evaluate the poly6 kernel for an array of distances.

    Parameters:
    -----------
    dist : np.ndarray
        Pair distances, shape (nPairs,)
    h : float
        Support radius
    poly6 : float
        Poly6 coefficient 315 / (64 pi h^9)

    Returns:
    --------
    np.ndarray : Kernel values, zero outside the support
    '''
    diff = h * h - dist * dist
    return np.where(diff > 0.0, poly6 * diff * diff * diff, 0.0)


def spikyGradientBatch(
    rVec: np.ndarray,
    dist: np.ndarray,
    h: float,
    spiky: float,
) -> np.ndarray:
    '''
    Evaluate the spiky kernel gradient for an array of pairs.

    The gradient is taken with respect to particle i, with
    rVec = x_i - x_j. Coincident pairs (r = 0) get a zero gradient.

    Parameters:
    -----------
    rVec : np.ndarray
        Pair displacement vectors, shape (nPairs, 3)
    dist : np.ndarray
        Pair distances |rVec|, shape (nPairs,)
    h : float
        Support radius
    spiky : float
        Spiky gradient coefficient -45 / (pi h^6)

    Returns:
    --------
    np.ndarray : Gradient vectors, shape (nPairs, 3)
    '''
    inside = (dist > 1e-12) & (dist <= h)
    safeDist = np.where(inside, dist, 1.0)
    hMinusR = np.where(inside, h - dist, 0.0)
    scale = spiky * hMinusR * hMinusR / safeDist
    return scale[:, np.newaxis] * rVec
