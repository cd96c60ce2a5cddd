"""
Polynomial approximations used under encryption.

CKKS has no comparison operator, so max(a, b) is computed through the
identity max(a, b) = (a + b + |a - b|) / 2 with |x| replaced by a Chebyshev
interpolant. This module holds the plaintext side of that story: the depth a
Chebyshev evaluation costs, and how far the interpolant strays from |x|.
"""
from functools import lru_cache
from typing import Optional, Sequence, Tuple

import numpy as np

# Score differences live in [-2, 2] when scores live in [-1, 1].
ABS_DOMAIN: Tuple[float, float] = (-2.0, 2.0)
SIGN_DOMAIN: Tuple[float, float] = (-2.0, 2.0)

MIN_DEGREE = 3
MAX_DEGREE = 2031

# (max degree, multiplicative depth) for OpenFHE's EvalChebyshevSeries,
# including the linear map of [a, b] onto [-1, 1].
_CHEBYSHEV_DEPTH = (
    (5, 4),
    (13, 5),
    (27, 6),
    (59, 7),
    (119, 8),
    (247, 9),
    (495, 10),
    (1007, 11),
    (2031, 12),
)


def chebyshev_depth(degree: int) -> int:
    """Multiplicative levels consumed by a Chebyshev series of this degree."""
    if degree < MIN_DEGREE or degree > MAX_DEGREE:
        raise ValueError(
            f"Chebyshev degree must be in [{MIN_DEGREE}, {MAX_DEGREE}], got {degree}"
        )
    for max_degree, depth in _CHEBYSHEV_DEPTH:
        if degree <= max_degree:
            return depth
    raise AssertionError("unreachable")


def secure_max_depth(abs_degree: int) -> int:
    """Levels consumed by one secure max: approxAbs plus the halving multiply."""
    return chebyshev_depth(abs_degree) + 1


def tournament_rounds(count: int) -> int:
    """Number of tournament rounds for ``count`` items, i.e. ceil(log2(count))."""
    if count < 1:
        raise ValueError(f"Need at least one item, got {count}")
    return (count - 1).bit_length()


def abs_function(x: float) -> float:
    return abs(x)


def sign_function(x: float) -> float:
    if x > 0:
        return 1.0
    if x < 0:
        return -1.0
    return 0.0


def chebyshev_coefficients(
    func,
    degree: int,
    domain: Tuple[float, float],
    parity: Optional[str] = None,
) -> Tuple[float, ...]:
    """
    Coefficients of the interpolant at Chebyshev points of the first kind.

    This is the same construction OpenFHE uses for series coefficients, so
    the error is a faithful preview of the encrypted one. With ``parity``
    set, terms of the other parity are forced to exactly 0.0: interpolation
    leaves them at round-off, which would move p(0) off zero for an odd
    function.

    Args:
        func: Scalar function to approximate
        degree: Polynomial degree
        domain: Interval mapped onto [-1, 1]
        parity: "odd", "even" or None

    Returns:
        Coefficients c_k of sum(c_k * T_k), lowest order first
    """
    coef = np.polynomial.chebyshev.Chebyshev.interpolate(
        np.vectorize(func), degree, domain=list(domain)
    ).coef.copy()
    if parity == "odd":
        coef[0::2] = 0.0
    elif parity == "even":
        coef[1::2] = 0.0
    elif parity is not None:
        raise ValueError(f"parity must be 'odd', 'even' or None, got {parity!r}")
    return tuple(float(c) for c in coef)


@lru_cache(maxsize=64)
def abs_coefficients(degree: int) -> Tuple[float, ...]:
    """Exactly even series for |x| over ABS_DOMAIN."""
    return chebyshev_coefficients(abs_function, degree, ABS_DOMAIN, parity="even")


@lru_cache(maxsize=64)
def sign_coefficients(degree: int) -> Tuple[float, ...]:
    """Exactly odd series for sign(x) over SIGN_DOMAIN, so p(0) == 0."""
    return chebyshev_coefficients(sign_function, degree, SIGN_DOMAIN, parity="odd")


def evaluate_chebyshev(coefficients: Sequence[float], x, domain: Tuple[float, float]):
    """Evaluate sum(c_k * T_k) at ``x`` after mapping ``domain`` onto [-1, 1]."""
    lower, upper = domain
    t = (2.0 * np.asarray(x, dtype=np.float64) - (lower + upper)) / (upper - lower)
    return np.polynomial.chebyshev.chebval(t, np.asarray(coefficients))


@lru_cache(maxsize=64)
def abs_approximation_error(degree: int, samples: int = 20001) -> float:
    """
    Sup-norm error of the |x| series over ABS_DOMAIN.

    Args:
        degree: Polynomial degree
        samples: Grid size for the sup-norm estimate

    Returns:
        max |p(x) - |x|| over the grid
    """
    grid = np.linspace(ABS_DOMAIN[0], ABS_DOMAIN[1], samples)
    approx = evaluate_chebyshev(abs_coefficients(degree), grid, ABS_DOMAIN)
    return float(np.max(np.abs(approx - np.abs(grid))))


def max_error_bound(count: int, abs_degree: int) -> float:
    """
    Worst-case approximation error of a tournament maximum over ``count`` items.

    Each secure max is off by at most eps/2 and later rounds consume earlier
    outputs, so the bound grows with the number of rounds.
    """
    return tournament_rounds(count) * abs_approximation_error(abs_degree) / 2.0


def plaintext_secure_max(a: float, b: float, abs_degree: int) -> float:
    """The secure max primitive evaluated in the clear, for baselines."""
    magnitude = evaluate_chebyshev(abs_coefficients(abs_degree), a - b, ABS_DOMAIN)
    return float((a + b + magnitude) * 0.5)
