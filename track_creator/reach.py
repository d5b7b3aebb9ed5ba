from __future__ import annotations

from typing import Tuple

import numpy as np

from track_creator.config import Settings
from track_creator.geometry import Geometry

__all__ = ["count_tracker_hits", "track_reaches_calorimeter"]


def count_tracker_hits(hits: np.ndarray, geometry: Geometry, settings: Settings) -> Tuple[int, int]:
    r"""
    Count hits in the main tracker and in the forward disks.

    A hit with :math:`r > r_\mathrm{in}^\mathrm{TPC}` is a main-tracker hit.
    Any other hit is a forward-disk hit if, for at least one disk :math:`j`,

    .. math::

        r_{\mathrm{in},j} < r < r_{\mathrm{out},j}
        \quad\text{and}\quad
        \big|\,|z| - z_j\big| < \Delta z_\mathrm{FTD}.

    Returns
    -------
    (n_tpc, n_ftd) : tuple of int
    """
    hits = np.asarray(hits, dtype=np.float64).reshape(-1, 3)
    r = np.hypot(hits[:, 0], hits[:, 1])
    abs_z = np.abs(hits[:, 2])
    in_tpc = r > geometry.tpc_inner_r

    inner, outer, zpos = geometry.ftd_arrays
    tol = settings.reaches_ecal_ftd_z_max_distance
    # (n_hits, n_disks) masks
    in_annulus = (r[:, None] > inner[None, :]) & (r[:, None] < outer[None, :])
    in_window = (abs_z[:, None] - tol < zpos[None, :]) & (abs_z[:, None] + tol > zpos[None, :])
    in_ftd = (in_annulus & in_window).any(axis=1) & ~in_tpc
    return int(in_tpc.sum()), int(in_ftd.sum())


def track_reaches_calorimeter(hits: np.ndarray, momentum_at_dca: np.ndarray,
                              geometry: Geometry, settings: Settings) -> bool:
    r"""
    Decide whether a track plausibly reaches the calorimeter.

    Rules, first match wins:

    1. **Outer trackers.** Any hit beyond the innermost outer-barrel tracker
       radius, or with a (signed) :math:`z` beyond the nearest outer-endcap
       tracker layer. Backward hits never satisfy this rule.
    2. **Extent.** Enough main-tracker *or* forward-disk hits
       (:func:`count_tracker_hits`) and the extremal hit lies beyond the main
       tracker envelope by more than the configured margins:

       .. math::

           r_\mathrm{max} - r_\mathrm{out}^\mathrm{TPC} > \delta_r
           \;\lor\;
           |z_\mathrm{max}| - z_\mathrm{max}^\mathrm{TPC} > \delta_z
           \;\lor\;
           |z_\mathrm{min}| - z_\mathrm{max}^\mathrm{TPC} > \delta_z.

    3. **Curlers.** The track is steeper than the main tracker aspect ratio,
       :math:`|p_z|/|\mathbf p| > \cos\theta_\mathrm{TPC}`, or it is soft
       enough to curl up before the outer radius,
       :math:`p_T < k\,B\,r_\mathrm{out}^\mathrm{TPC}`.
    4. Otherwise the track does not reach the calorimeter.

    Parameters
    ----------
    hits : (N, 3) ndarray
        Hit positions (mm).
    momentum_at_dca : (3,) ndarray
        Momentum at the point of closest approach (GeV).
    geometry : Geometry
        Validated detector snapshot.
    settings : Settings

    Returns
    -------
    bool
    """
    hits = np.asarray(hits, dtype=np.float64).reshape(-1, 3)
    if hits.shape[0]:
        r = np.hypot(hits[:, 0], hits[:, 1])
        z = hits[:, 2]
        r_outer = float(r.max())
        z_min, z_max = float(z.min()), float(z.max())

        if r_outer > geometry.min_set_r or z_max > geometry.min_etd_z:
            return True

        n_tpc, n_ftd = count_tracker_hits(hits, geometry, settings)
        if n_tpc >= settings.reaches_ecal_n_tpc_hits or n_ftd >= settings.reaches_ecal_n_ftd_hits:
            if (r_outer - geometry.tpc_outer_r > settings.reaches_ecal_tpc_outer_distance
                    or abs(z_max) - geometry.tpc_max_drift > settings.reaches_ecal_tpc_z_max_distance
                    or abs(z_min) - geometry.tpc_max_drift > settings.reaches_ecal_tpc_z_max_distance):
                return True

    p = np.asarray(momentum_at_dca, dtype=np.float64)
    p_mag = float(np.linalg.norm(p))
    pt = float(np.hypot(p[0], p[1]))
    cos_angle = abs(float(p[2])) / p_mag if p_mag > 0.0 else 0.0
    if cos_angle > geometry.cos_tpc:
        return True
    if pt < settings.curvature_to_momentum_factor * abs(geometry.b_field) * geometry.tpc_outer_r:
        return True
    return False
