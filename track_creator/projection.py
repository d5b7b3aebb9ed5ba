from __future__ import annotations

import logging
from typing import Iterator, Tuple

import numpy as np

from track_creator.data import TrackState
from track_creator.geometry import Geometry
from track_creator.helix import Helix

logger = logging.getLogger(__name__)

__all__ = ["barrel_faces", "calorimeter_intersection", "project_to_calorimeter"]


def barrel_faces(geometry: Geometry) -> Iterator[Tuple[float, float, float, float]]:
    r"""
    Planar faces of a polygonal calorimeter barrel.

    Face :math:`i` of an :math:`N`-fold barrel of inner radius :math:`R_b`
    has its normal at :math:`\phi_i = 2\pi i/N + \phi_0`; it is described by
    the point :math:`R_b(\cos\phi_i, \sin\phi_i)` and the in-plane direction
    :math:`(\cos(\phi_i+\pi/2), \sin(\phi_i+\pi/2))`.

    Yields
    ------
    (x0, y0, ax, ay) : tuple of float
    """
    n = geometry.ecal_barrel_symmetry
    r = geometry.ecal_barrel_r
    step = 2.0 * np.pi / n
    for i in range(n):
        phi = step * i + geometry.ecal_barrel_phi0
        yield (r * np.cos(phi), r * np.sin(phi),
               np.cos(phi + 0.5 * np.pi), np.sin(phi + 0.5 * np.pi))


def calorimeter_intersection(helix: Helix, reference_point, sign_pz: int,
                             geometry: Geometry) -> Tuple[float, np.ndarray]:
    r"""
    Earliest intersection of a helix with the calorimeter front surface.

    Candidates, in this order:

    1. the endcap plane :math:`z = s_{p_z}\,z_\mathrm{endcap}`;
    2. every barrel face (``ecal_barrel_symmetry > 0``), or the cylinder of
       radius ``ecal_barrel_r`` (``ecal_barrel_symmetry == 0``).

    The candidate with the smallest non-negative time wins; a later candidate
    replaces the current best only if it is strictly earlier, so ties keep the
    first one.

    Returns
    -------
    t : float
        Time of the selected intersection.
    point : (3,) ndarray

    Notes
    -----
    If no candidate is reached at a non-negative time (the helix runs away
    from the chosen endcap and never meets the barrel), the endcap point is
    returned anyway.
    """
    ref = np.asarray(reference_point, dtype=np.float64)
    endcap_t, endcap_point = helix.point_in_z(sign_pz * geometry.ecal_endcap_z, ref)

    best_t, best = np.inf, None
    if endcap_t >= 0.0:
        best_t, best = endcap_t, endcap_point

    if geometry.ecal_barrel_symmetry > 0:
        candidates = (helix.point_in_xy(x0, y0, ax, ay, ref) for x0, y0, ax, ay in barrel_faces(geometry))
    else:
        candidates = iter([helix.point_on_circle(geometry.ecal_barrel_r, ref)])

    for t, point in candidates:
        if 0.0 <= t < best_t:
            best_t, best = t, point

    if best is None:
        logger.debug("No forward calorimeter intersection for %r; using endcap point at t=%.3g", helix, endcap_t)
        return float(endcap_t), endcap_point
    return float(best_t), best


def project_to_calorimeter(helix: Helix, reference_point, sign_pz: int, geometry: Geometry) -> TrackState:
    """Track state (intersection point and extrapolated momentum) at the calorimeter front surface."""
    _, point = calorimeter_intersection(helix, reference_point, sign_pz, geometry)
    return helix.state_at(point)
