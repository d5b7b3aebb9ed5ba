from __future__ import annotations

from typing import NamedTuple

import numpy as np

from track_creator.config import Settings
from track_creator.data import Track, TrackState
from track_creator.geometry import Geometry
from track_creator.relationships import TrackAssociations

__all__ = ["PfoUsage", "passes_quality_cuts", "define_track_pfo_usage"]


class PfoUsage(NamedTuple):
    can_form_pfo: bool
    can_form_clusterless_pfo: bool


_UNUSABLE = PfoUsage(False, False)


def passes_quality_cuts(state_at_calorimeter: TrackState, settings: Settings) -> bool:
    """Sanity check: the calorimeter-surface state must lie far enough from the origin."""
    distance = float(np.linalg.norm(state_at_calorimeter.position))
    return bool(distance >= settings.min_track_ecal_distance_from_ip)


def define_track_pfo_usage(track: Track, reaches_calorimeter: bool, momentum_at_dca: np.ndarray,
                           state_at_calorimeter: TrackState, mass: float,
                           associations: TrackAssociations, geometry: Geometry,
                           settings: Settings) -> PfoUsage:
    r"""
    Decide whether a track may form a charged PFO, with and without a cluster.

    Parents of kinks, prongs and splits never do: their daughters carry the
    information instead. For every other track that reaches the calorimeter
    and passes :func:`passes_quality_cuts`, with :math:`r_\mathrm{in}` the
    innermost hit radius and :math:`|z|_\mathrm{min}` the smallest hit
    :math:`|z|`:

    .. math::

        z_\mathrm{cut} &= r_\mathrm{in}^\mathrm{TPC}\,|p_z/p_T| + z_\mathrm{cut}^\mathrm{nonvtx},\\
        \mathrm{inner} &= r_\mathrm{in} < r_\mathrm{in}^\mathrm{TPC} + \Delta r,\\
        \mathrm{rz} &= (|z|_\mathrm{min} < z_\mathrm{cut}) \land \mathrm{inner}.

    *Clustered*: vertex-like impact parameters and ``inner``, or ``rz`` with
    non-vertex tracks enabled, or V0/daughter membership.

    *Clusterless* (only when unmatched vertex tracks are enabled and
    :math:`E=\sqrt{|\mathbf p|^2+m^2}` is below the cap): tighter vertex
    cuts and ``inner``, or ``rz`` with both non-vertex switches on, or
    V0/daughter membership.

    Returns
    -------
    PfoUsage
    """
    if not reaches_calorimeter or associations.is_parent(track):
        return _UNUSABLE

    d0, z0 = abs(track.d0), abs(track.z0)
    hits = track.hits
    r_inner = float(np.hypot(hits[:, 0], hits[:, 1]).min()) if hits.shape[0] else np.inf
    z_min = float(np.abs(hits[:, 2]).min()) if hits.shape[0] else np.inf

    if not passes_quality_cuts(state_at_calorimeter, settings):
        return _UNUSABLE

    p = np.asarray(momentum_at_dca, dtype=np.float64)
    pt = float(np.hypot(p[0], p[1]))
    tpc_inner_r = geometry.tpc_inner_r
    slope = abs(float(p[2]) / pt) if pt > 0.0 else np.inf
    z_cut = tpc_inner_r * slope + settings.z_cut_for_non_vertex_tracks
    inner_ok = r_inner < tpc_inner_r + settings.max_tpc_inner_r_distance
    passes_rz = (z_min < z_cut) and inner_ok

    is_secondary = associations.is_v0(track) or associations.is_daughter(track)

    can_form_pfo = (
        (d0 < settings.d0_track_cut and z0 < settings.z0_track_cut and inner_ok)
        or (passes_rz and settings.using_non_vertex_tracks)
        or is_secondary
    )

    can_form_clusterless_pfo = False
    energy = float(np.sqrt(p @ p + mass * mass))
    if settings.using_unmatched_vertex_tracks and energy < settings.unmatched_vertex_track_max_energy:
        can_form_clusterless_pfo = (
            (d0 < settings.d0_unmatched_vertex_track_cut
             and z0 < settings.z0_unmatched_vertex_track_cut and inner_ok)
            or (passes_rz and settings.using_non_vertex_tracks and settings.using_unmatched_non_vertex_tracks)
            or is_secondary
        )

    return PfoUsage(bool(can_form_pfo), bool(can_form_clusterless_pfo))
