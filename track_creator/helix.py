from __future__ import annotations

from typing import Tuple

import numpy as np

from track_creator.data import TrackState
from track_creator.exceptions import HelixError, HelixFitError

__all__ = ["FCT", "Helix"]

# pT [GeV] = FCT * B [T] * R [mm]
FCT = 2.99792458e-4

_TWO_PI = 2.0 * np.pi
_HALF_PI = 0.5 * np.pi
_NO_POINT = (np.inf, np.full(3, np.nan))


class Helix:
    r"""
    Helical trajectory of a charged particle in a uniform solenoidal field.

    The transverse projection is a circle of radius :math:`R` around
    :math:`(x_c, y_c)`. Motion is parametrised by a "time" :math:`t` (mm/GeV)
    such that the arc length travelled is :math:`|\mathbf p|\,t`. With
    :math:`\alpha` the azimuth of the position seen from the circle centre,
    :math:`q=\pm1` the charge and :math:`p_{xy}=\mathrm{FCT}\,B\,R`,

    .. math::

        \alpha(t) &= \alpha_\mathrm{ref} - q\,\frac{p_{xy}}{R}\,t,\\
        z(t) &= z_\mathrm{ref} + p_z\,t,\\
        \phi_p(t) &= \alpha(t) - q\,\frac{\pi}{2},

    where :math:`\phi_p` is the azimuth of the momentum. A positive particle
    therefore circulates clockwise when seen from :math:`+z` (field along
    :math:`+z`).

    Instances are plain value objects: build one with :meth:`from_canonical`
    or :meth:`from_fit`, query it, drop it.

    Attributes
    ----------
    reference_point : (3,) ndarray
        Point at which :attr:`momentum` is given.
    momentum : (3,) ndarray
        Momentum at :attr:`reference_point` (GeV).
    charge : int
        :math:`\pm1`.
    radius : float
        Transverse radius of curvature (mm).
    centre : (2,) ndarray
        Circle centre :math:`(x_c, y_c)`.
    pxy : float
        Transverse momentum (GeV).
    pz : float
        Longitudinal momentum (GeV).
    """

    __slots__ = ("reference_point", "momentum", "charge", "radius", "centre", "pxy", "pz", "b_field")

    def __init__(self, reference_point, momentum, charge: int, radius: float, centre, b_field: float) -> None:
        self.reference_point = np.asarray(reference_point, dtype=np.float64).reshape(3)
        self.momentum = np.asarray(momentum, dtype=np.float64).reshape(3)
        self.charge = int(charge)
        self.radius = float(radius)
        self.centre = np.asarray(centre, dtype=np.float64).reshape(2)
        self.b_field = float(b_field)
        self.pxy = float(np.hypot(self.momentum[0], self.momentum[1]))
        self.pz = float(self.momentum[2])

    @classmethod
    def from_canonical(cls, phi0: float, d0: float, z0: float, omega: float,
                       tan_lambda: float, b_field: float) -> "Helix":
        r"""
        Helix from canonical track parameters, referenced at the point of
        closest approach to the :math:`z` axis.

        .. math::

            \mathbf r_\mathrm{PCA} = (-d_0\sin\phi_0,\; d_0\cos\phi_0,\; z_0),\qquad
            \mathbf p = p_{xy}\,(\cos\phi_0,\; \sin\phi_0,\; \tan\lambda),

        with :math:`R = 1/|\omega|` and :math:`q=\operatorname{sign}\omega`.

        Raises
        ------
        HelixError
            If ``omega`` is zero or not finite (no finite transverse momentum).
        """
        if not np.isfinite(omega) or omega == 0.0:
            raise HelixError(f"cannot build a helix with curvature omega={omega}")
        q = 1 if omega > 0 else -1
        radius = 1.0 / abs(omega)
        ref = np.array([-d0 * np.sin(phi0), d0 * np.cos(phi0), z0], dtype=np.float64)
        pxy = FCT * abs(b_field) * radius
        mom = np.array([pxy * np.cos(phi0), pxy * np.sin(phi0), pxy * tan_lambda], dtype=np.float64)
        phi_c = phi0 - q * _HALF_PI
        centre = (ref[0] + radius * np.cos(phi_c), ref[1] + radius * np.sin(phi_c))
        return cls(ref, mom, q, radius, centre, b_field)

    @classmethod
    def from_fit(cls, x_centre: float, y_centre: float, radius: float, bz: float, phi0: float,
                 b_field: float, sign_pz: int, z_begin: float) -> "Helix":
        r"""
        Helix from fitted parameters :math:`(x_c, y_c, R, b_z, \phi_0)` of

        .. math::

            x = x_c + R\cos(b_z z + \phi_0),\qquad y = y_c + R\sin(b_z z + \phi_0),

        referenced at :math:`z=z_\mathrm{begin}`. The direction of travel along
        :math:`z` is ``sign_pz``; together with the sense of rotation it fixes
        the charge, :math:`q = -\operatorname{sign}(b_z\,s_{p_z})`, and

        .. math::

            p_z = -\frac{q\,p_{xy}}{b_z R}.

        Raises
        ------
        HelixFitError
            If the radius is not positive or :math:`b_z` is zero/not finite.
        """
        params = np.array([x_centre, y_centre, radius, bz, phi0, z_begin], dtype=np.float64)
        if not np.all(np.isfinite(params)) or radius <= 0.0 or bz == 0.0:
            raise HelixFitError(f"degenerate fitted helix (R={radius}, bz={bz})")
        q = -1 if bz * sign_pz > 0 else 1
        pxy = FCT * abs(b_field) * radius
        alpha = bz * z_begin + phi0
        ref = np.array([x_centre + radius * np.cos(alpha), y_centre + radius * np.sin(alpha), z_begin])
        phi_p = alpha - q * _HALF_PI
        pz = -q * pxy / (bz * radius)
        mom = np.array([pxy * np.cos(phi_p), pxy * np.sin(phi_p), pz])
        return cls(ref, mom, q, radius, (x_centre, y_centre), b_field)

    def _angle(self, x: float, y: float) -> float:
        return float(np.arctan2(y - self.centre[1], x - self.centre[0]))

    def _time_to_angle(self, alpha: float, alpha_ref: float) -> float:
        # forward time, wrapped into one turn [0, 2 pi R / pxy)
        period = _TWO_PI * self.radius / self.pxy
        t = -self.charge * (alpha - alpha_ref) * self.radius / self.pxy
        return float(np.mod(t, period))

    def position_at(self, t: float, reference_point=None) -> np.ndarray:
        """Position reached after time ``t`` starting from ``reference_point``."""
        ref = self.reference_point if reference_point is None else np.asarray(reference_point, dtype=np.float64)
        alpha = self._angle(ref[0], ref[1]) - self.charge * self.pxy * t / self.radius
        return np.array([self.centre[0] + self.radius * np.cos(alpha),
                         self.centre[1] + self.radius * np.sin(alpha),
                         ref[2] + self.pz * t])

    def point_in_z(self, z_plane: float, reference_point=None) -> Tuple[float, np.ndarray]:
        r"""
        Intersection with the plane :math:`z = z_\mathrm{plane}`.

        Returns
        -------
        t : float
            Signed time :math:`(z_\mathrm{plane}-z_\mathrm{ref})/p_z`; ``inf`` if
            the helix runs parallel to the plane.
        point : (3,) ndarray
        """
        ref = self.reference_point if reference_point is None else np.asarray(reference_point, dtype=np.float64)
        if abs(self.pz) < 1e-20:
            return _NO_POINT[0], _NO_POINT[1].copy()
        t = (z_plane - ref[2]) / self.pz
        point = self.position_at(t, ref)
        point[2] = z_plane
        return float(t), point

    def _earliest(self, candidates_xy, ref: np.ndarray) -> Tuple[float, np.ndarray]:
        alpha_ref = self._angle(ref[0], ref[1])
        best_t, best = _NO_POINT[0], _NO_POINT[1].copy()
        for x, y in candidates_xy:
            t = self._time_to_angle(self._angle(x, y), alpha_ref)
            if t < best_t:
                best_t = t
                best = np.array([x, y, ref[2] + self.pz * t])
        return best_t, best

    def point_in_xy(self, x0: float, y0: float, ax: float, ay: float,
                    reference_point=None) -> Tuple[float, np.ndarray]:
        r"""
        First intersection with the plane parallel to :math:`z` that contains
        the transverse line through :math:`(x_0, y_0)` with direction
        :math:`(a_x, a_y)`.

        Solving :math:`|\mathbf P_0 + s\,\hat{\mathbf a} - \mathbf c|^2 = R^2`
        gives up to two crossings; the one reached first (smallest
        non-negative time) is returned. ``(inf, nan)`` if the circle misses
        the line.
        """
        ref = self.reference_point if reference_point is None else np.asarray(reference_point, dtype=np.float64)
        norm = float(np.hypot(ax, ay))
        if norm <= 0.0:
            return _NO_POINT[0], _NO_POINT[1].copy()
        ux, uy = ax / norm, ay / norm
        wx, wy = x0 - self.centre[0], y0 - self.centre[1]
        b = ux * wx + uy * wy
        c = wx * wx + wy * wy - self.radius * self.radius
        disc = b * b - c
        if disc < 0.0:
            return _NO_POINT[0], _NO_POINT[1].copy()
        root = np.sqrt(disc)
        cands = [(x0 + s * ux, y0 + s * uy) for s in (-b - root, -b + root)]
        return self._earliest(cands, ref)

    def point_on_circle(self, radius: float, reference_point=None) -> Tuple[float, np.ndarray]:
        r"""
        First intersection with the cylinder :math:`x^2 + y^2 = r^2`.

        The two circles (helix projection and cylinder) meet where

        .. math::

            a = \frac{r^2 - R^2 + d^2}{2d},\qquad h = \sqrt{r^2 - a^2},

        :math:`d = |\mathbf c|`, i.e. at :math:`a\,\hat{\mathbf c} \pm h\,\hat{\mathbf c}_\perp`.
        ``(inf, nan)`` if they do not meet.
        """
        ref = self.reference_point if reference_point is None else np.asarray(reference_point, dtype=np.float64)
        xc, yc = float(self.centre[0]), float(self.centre[1])
        d = float(np.hypot(xc, yc))
        if d == 0.0 or d > self.radius + radius or d < abs(self.radius - radius):
            return _NO_POINT[0], _NO_POINT[1].copy()
        a = (radius * radius - self.radius * self.radius + d * d) / (2.0 * d)
        h = np.sqrt(max(radius * radius - a * a, 0.0))
        bx, by = a * xc / d, a * yc / d
        ox, oy = -h * yc / d, h * xc / d
        return self._earliest([(bx + ox, by + oy), (bx - ox, by - oy)], ref)

    def extrapolated_momentum(self, point) -> np.ndarray:
        """Momentum of the helix at ``point`` (which is assumed to lie on it)."""
        point = np.asarray(point, dtype=np.float64)
        phi_p = self._angle(point[0], point[1]) - self.charge * _HALF_PI
        return np.array([self.pxy * np.cos(phi_p), self.pxy * np.sin(phi_p), self.pz])

    def state_at(self, point) -> TrackState:
        return TrackState(point, self.extrapolated_momentum(point))

    def reference_state(self) -> TrackState:
        return TrackState(self.reference_point, self.momentum)

    def __repr__(self) -> str:
        return (f"Helix(q={self.charge:+d}, R={self.radius:.1f}, centre=({self.centre[0]:.1f}, "
                f"{self.centre[1]:.1f}), p=({self.momentum[0]:.3f}, {self.momentum[1]:.3f}, {self.pz:.3f}))")
