from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np
from scipy.optimize import least_squares

from track_creator.exceptions import HelixFitError, InsufficientHitsError
from track_creator.helix import Helix

logger = logging.getLogger(__name__)

__all__ = ["HelixFitResult", "fit_helix", "fit_helix_two_points"]


@dataclass(frozen=True, slots=True)
class HelixFitResult:
    r"""
    Parameters of a least-squares helix fit,

    .. math::

        x = x_c + R\cos(b_z z + \phi_0),\qquad y = y_c + R\sin(b_z z + \phi_0).

    Attributes
    ----------
    x_centre, y_centre, radius : float
        Transverse circle (mm).
    bz : float
        Phase advance per unit :math:`z` (rad/mm).
    phi0 : float
        Phase at :math:`z=0`, wrapped into :math:`[-\pi,\pi)`.
    chi2 : float
        Sum of squared transverse residuals (mm²).
    dist_max : float
        Largest transverse residual (mm).
    n_points : int
        Number of points used.
    """
    x_centre: float
    y_centre: float
    radius: float
    bz: float
    phi0: float
    chi2: float
    dist_max: float
    n_points: int

    def to_helix(self, b_field: float, sign_pz: int, z_begin: float) -> Helix:
        """Anchor the fitted curve at ``z_begin`` (see :meth:`Helix.from_fit`)."""
        return Helix.from_fit(self.x_centre, self.y_centre, self.radius, self.bz, self.phi0,
                              b_field, sign_pz, z_begin)


def _wrap(phi: float) -> float:
    return float(np.mod(phi + np.pi, 2.0 * np.pi) - np.pi)


def _fit_circle(x: np.ndarray, y: np.ndarray) -> Tuple[float, float, float]:
    r"""
    Algebraic (Kåsa) circle fit.

    Solves :math:`x^2 + y^2 + Dx + Ey + F = 0` in the least-squares sense on
    mean-centred coordinates, then

    .. math::

        x_c = -D/2,\qquad y_c = -E/2,\qquad R = \sqrt{x_c^2 + y_c^2 - F}.
    """
    mx, my = float(x.mean()), float(y.mean())
    u, v = x - mx, y - my
    A = np.column_stack([u, v, np.ones_like(u)])
    rhs = -(u * u + v * v)
    try:
        sol, _, rank, _ = np.linalg.lstsq(A, rhs, rcond=None)
    except np.linalg.LinAlgError as e:
        raise HelixFitError(f"circle fit did not converge: {e}") from e
    if rank < 3:
        raise HelixFitError("hits are collinear in the transverse plane; no circle to fit")
    D, E, F = sol
    uc, vc = -0.5 * D, -0.5 * E
    r2 = uc * uc + vc * vc - F
    if not np.isfinite(r2) or r2 <= 0.0:
        raise HelixFitError(f"circle fit failed (R^2={r2})")
    return uc + mx, vc + my, float(np.sqrt(r2))


def _fit_phase(x: np.ndarray, y: np.ndarray, z: np.ndarray, xc: float, yc: float) -> Tuple[float, float]:
    """Linear fit of the unwrapped azimuth around the centre against ``z``."""
    if np.ptp(z) <= 0.0:
        raise HelixFitError("all hits share the same z; the longitudinal slope is undefined")
    order = np.argsort(z, kind="mergesort")
    alpha = np.unwrap(np.arctan2(y[order] - yc, x[order] - xc))
    bz, phi0 = np.polyfit(z[order], alpha, 1)
    return float(bz), float(phi0)


def _residuals(params: np.ndarray, x: np.ndarray, y: np.ndarray, z: np.ndarray) -> np.ndarray:
    xc, yc, r, bz, phi0 = params
    phase = bz * z + phi0
    return np.concatenate([x - (xc + r * np.cos(phase)), y - (yc + r * np.sin(phase))])


def _summarise(params: np.ndarray, x: np.ndarray, y: np.ndarray, z: np.ndarray) -> HelixFitResult:
    xc, yc, r, bz, phi0 = (float(p) for p in params)
    if r < 0.0:
        r, phi0 = -r, phi0 + np.pi
    res = _residuals(np.array([xc, yc, r, bz, phi0]), x, y, z)
    n = x.size
    dist = np.hypot(res[:n], res[n:])
    return HelixFitResult(xc, yc, r, bz, _wrap(phi0), float(res @ res), float(dist.max()), n)


def fit_helix(points: np.ndarray, *, max_iterations: int = 500) -> HelixFitResult:
    r"""
    Least-squares helix fit through at least three space points.

    Pipeline
    --------
    1. Algebraic circle fit in :math:`(x, y)` (:func:`_fit_circle`).
    2. Linear fit of the unwrapped azimuth around the centre against
       :math:`z` for :math:`(b_z, \phi_0)` (:func:`_fit_phase`).
    3. Joint refinement of all five parameters with
       :func:`scipy.optimize.least_squares` on the residuals

       .. math::

           r_i = \big(x_i - x_c - R\cos(b_z z_i + \phi_0),\;
                      y_i - y_c - R\sin(b_z z_i + \phi_0)\big),

       keeping whichever of seed and refinement has the lower cost.

    Parameters
    ----------
    points : (N, 3) array_like
        Hit positions, any order, :math:`N\ge 3`.
    max_iterations : int, optional
        Maximum number of function evaluations in the refinement.

    Returns
    -------
    HelixFitResult

    Raises
    ------
    InsufficientHitsError
        If fewer than three points are given.
    HelixFitError
        If the points are collinear in :math:`(x, y)`, share one :math:`z`,
        or the fit produces non-finite parameters.
    """
    pts = np.asarray(points, dtype=np.float64)
    if pts.ndim != 2 or pts.shape[1] != 3:
        raise HelixFitError(f"points must have shape (N, 3), got {pts.shape}")
    if pts.shape[0] < 3:
        raise InsufficientHitsError(f"helix fit needs at least 3 points, got {pts.shape[0]}")
    x, y, z = pts[:, 0], pts[:, 1], pts[:, 2]

    xc, yc, r = _fit_circle(x, y)
    bz, phi0 = _fit_phase(x, y, z, xc, yc)
    seed = np.array([xc, yc, r, bz, phi0])
    best = seed
    seed_cost = float(np.sum(_residuals(seed, x, y, z) ** 2))

    try:
        sol = least_squares(_residuals, seed, args=(x, y, z), max_nfev=int(max_iterations), x_scale="jac")
    except ValueError as e:
        logger.debug("Helix refinement rejected (%s); keeping algebraic seed", e)
    else:
        if np.all(np.isfinite(sol.x)) and 2.0 * sol.cost <= seed_cost:
            best = sol.x

    result = _summarise(best, x, y, z)
    if not np.isfinite(result.chi2) or result.bz == 0.0:
        raise HelixFitError(f"helix fit produced a degenerate result: {result}")
    return result


def fit_helix_two_points(points: np.ndarray, radius: float, charge: int, sign_pz: int) -> HelixFitResult:
    r"""
    Helix through exactly two points with a known transverse radius.

    Two circles of radius :math:`R` pass through the points; their centres
    sit at :math:`\mathbf m \pm h\,\hat{\mathbf n}` with :math:`\mathbf m`
    the chord midpoint, :math:`\hat{\mathbf n}` the chord normal and
    :math:`h=\sqrt{R^2-(c/2)^2}`. The centre whose sense of rotation, for
    travel along ``sign_pz``, matches ``charge`` is chosen. A radius shorter
    than half the chord is stretched to it.

    Raises
    ------
    HelixFitError
        If the points coincide in :math:`(x, y)` or share one :math:`z`.
    """
    pts = np.asarray(points, dtype=np.float64)
    if pts.shape != (2, 3):
        raise HelixFitError(f"two-point fit needs shape (2, 3), got {pts.shape}")
    p1, p2 = pts[np.argsort(pts[:, 2], kind="mergesort")]
    dx, dy, dz = p2[0] - p1[0], p2[1] - p1[1], p2[2] - p1[2]
    chord = float(np.hypot(dx, dy))
    if chord == 0.0 or dz == 0.0:
        raise HelixFitError("two-point helix is undefined for coincident transverse points or equal z")

    r = max(float(radius), 0.5 * chord)
    h = np.sqrt(max(r * r - 0.25 * chord * chord, 0.0))
    mx, my = 0.5 * (p1[0] + p2[0]), 0.5 * (p1[1] + p2[1])
    nx, ny = -dy / chord, dx / chord

    chosen = None
    for side in (1.0, -1.0):
        xc, yc = mx + side * h * nx, my + side * h * ny
        a1 = np.arctan2(p1[1] - yc, p1[0] - xc)
        a2 = np.arctan2(p2[1] - yc, p2[0] - xc)
        bz = _wrap(a2 - a1) / dz
        q = -1 if bz * sign_pz > 0 else 1
        if chosen is None or q == charge:
            chosen = (xc, yc, bz, float(a1 - bz * p1[2]))
        if q == charge:
            break

    xc, yc, bz, phi0 = chosen
    return HelixFitResult(float(xc), float(yc), r, bz, _wrap(phi0), 0.0, 0.0, 2)
