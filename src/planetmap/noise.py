"""Noise generation functions for planet terrain.

Provides a deterministic integer hash, bilinear value noise and fractal
(multi-octave) synthesis. Every function has a scalar form for on-demand
tile queries and a numpy form for whole-grid precomputation; both produce
bit-identical values.
"""

import math

import numpy as np
from numpy.typing import NDArray

_MASK64 = 0xFFFFFFFFFFFFFFFF
_MASK31 = 0x7FFFFFFF
_HASH_DIVISOR = 1073741824.0

# Lattice mixing constants
_X_MUL = 1
_Y_MUL = 57
_SEED_MUL = 131
_SHIFT = 13
_C1 = 15731
_C2 = 789221
_C3 = 1376312589

# Amplitude sums below this are treated as degenerate
_AMPLITUDE_EPSILON = 1e-12


def hash_noise(x: int, y: int, seed: int) -> float:
    """Hash a lattice point to a pseudo-random value.

    Uses 64-bit wraparound integer arithmetic masked to 31 bits, so the
    result only depends on the inputs.

    Args:
        x: Lattice x coordinate.
        y: Lattice y coordinate.
        seed: Noise seed.

    Returns:
        Value in range (-1, 1].
    """
    n = (x * _X_MUL + y * _Y_MUL + seed * _SEED_MUL) & _MASK64
    n = ((n << _SHIFT) ^ n) & _MASK64
    m = (n * (n * n * _C1 + _C2) + _C3) & _MASK31
    return 1.0 - m / _HASH_DIVISOR


def smooth_noise(x: float, y: float, seed: int) -> float:
    """Bilinearly interpolate lattice hashes around a fractional point.

    Args:
        x: Sample x coordinate.
        y: Sample y coordinate.
        seed: Noise seed.

    Returns:
        Value in range (-1, 1].
    """
    xi = math.floor(x)
    yi = math.floor(y)
    fx = x - xi
    fy = y - yi

    v1 = hash_noise(xi, yi, seed)
    v2 = hash_noise(xi + 1, yi, seed)
    v3 = hash_noise(xi, yi + 1, seed)
    v4 = hash_noise(xi + 1, yi + 1, seed)

    i1 = v1 + fx * (v2 - v1)
    i2 = v3 + fx * (v4 - v3)
    return i1 + fy * (i2 - i1)


def fractal_noise(
    x: float,
    y: float,
    seed: int,
    base_scale: float,
    octaves: int,
    persistence: float = 0.5,
    lacunarity: float = 2.0,
) -> float:
    """Sum octaves of value noise for natural-looking variation.

    Args:
        x: Sample x coordinate (tile units).
        y: Sample y coordinate (tile units).
        seed: Noise seed.
        base_scale: Frequency of the first octave.
        octaves: Number of noise layers to sum.
        persistence: Amplitude multiplier between octaves.
        lacunarity: Frequency multiplier between octaves.

    Returns:
        Value in range [0, 1], or 0.0 if the amplitude sum is degenerate.
    """
    total = 0.0
    freq = base_scale
    amp = 1.0
    max_amp = 0.0

    for _ in range(octaves):
        total += smooth_noise(x * freq, y * freq, seed) * amp
        max_amp += amp
        amp *= persistence
        freq *= lacunarity

    if abs(max_amp) < _AMPLITUDE_EPSILON:
        return 0.0
    return (total / max_amp + 1.0) / 2.0


def hash_noise_array(
    xi: NDArray[np.int64],
    yi: NDArray[np.int64],
    seed: int,
) -> NDArray[np.float64]:
    """Vectorized hash_noise over broadcastable lattice coordinate arrays.

    Args:
        xi: Lattice x coordinates.
        yi: Lattice y coordinates.
        seed: Noise seed.

    Returns:
        Array of hash values in range (-1, 1].
    """
    # uint64 arithmetic wraps mod 2**64, matching the masked scalar path
    xu = xi.astype(np.uint64)
    yu = yi.astype(np.uint64)
    seed_term = np.uint64((seed * _SEED_MUL) & _MASK64)

    n = xu * np.uint64(_X_MUL) + yu * np.uint64(_Y_MUL) + seed_term
    n = (n << np.uint64(_SHIFT)) ^ n
    m = (n * (n * n * np.uint64(_C1) + np.uint64(_C2)) + np.uint64(_C3)) & np.uint64(
        _MASK31
    )
    return 1.0 - m.astype(np.float64) / _HASH_DIVISOR


def smooth_noise_array(
    x: NDArray[np.float64],
    y: NDArray[np.float64],
    seed: int,
) -> NDArray[np.float64]:
    """Vectorized smooth_noise over broadcastable sample arrays."""
    x_floor = np.floor(x)
    y_floor = np.floor(y)
    fx = x - x_floor
    fy = y - y_floor
    xi = x_floor.astype(np.int64)
    yi = y_floor.astype(np.int64)

    v1 = hash_noise_array(xi, yi, seed)
    v2 = hash_noise_array(xi + 1, yi, seed)
    v3 = hash_noise_array(xi, yi + 1, seed)
    v4 = hash_noise_array(xi + 1, yi + 1, seed)

    i1 = v1 + fx * (v2 - v1)
    i2 = v3 + fx * (v4 - v3)
    return i1 + fy * (i2 - i1)


def fractal_noise_grid(
    width: int,
    height: int,
    seed: int,
    base_scale: float,
    octaves: int,
    persistence: float = 0.5,
    lacunarity: float = 2.0,
) -> NDArray[np.float64]:
    """Generate fractal noise for every integer lattice point of a grid.

    Equivalent to calling fractal_noise(x, y, ...) for each tile, but
    evaluated with numpy in one pass per octave.

    Args:
        width: Output width in tiles.
        height: Output height in tiles.
        seed: Noise seed.
        base_scale: Frequency of the first octave.
        octaves: Number of noise layers to sum.
        persistence: Amplitude multiplier between octaves.
        lacunarity: Frequency multiplier between octaves.

    Returns:
        2D array of shape (height, width) with values in [0, 1].
    """
    xs = np.arange(width, dtype=np.float64)[np.newaxis, :]
    ys = np.arange(height, dtype=np.float64)[:, np.newaxis]

    total = np.zeros((height, width), dtype=np.float64)
    freq = base_scale
    amp = 1.0
    max_amp = 0.0

    for _ in range(octaves):
        total += smooth_noise_array(xs * freq, ys * freq, seed) * amp
        max_amp += amp
        amp *= persistence
        freq *= lacunarity

    if abs(max_amp) < _AMPLITUDE_EPSILON:
        return np.zeros((height, width), dtype=np.float64)
    return (total / max_amp + 1.0) / 2.0
