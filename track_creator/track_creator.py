from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, NamedTuple, Optional, Union

import numpy as np

import track_creator.pdg as pdg
from track_creator.config import Settings
from track_creator.data import Event, Track, TrackDescriptor, TrackState
from track_creator.exceptions import (
    CollectionNotFoundError,
    HelixError,
    InsufficientHitsError,
    InvalidGeometryError,
    MalformedRecordError,
)
from track_creator.geometry import Geometry
from track_creator.helix import Helix
from track_creator.helix_fit import HelixFitResult, fit_helix, fit_helix_two_points
from track_creator.outcome import Outcome, ProcessingReport
from track_creator.pfo_usage import define_track_pfo_usage
from track_creator.projection import project_to_calorimeter
from track_creator.reach import track_reaches_calorimeter
from track_creator.relationships import RelationshipExtractor, TrackAssociations
from track_creator.sink import TrackRecorder, TrackSink

logger = logging.getLogger(__name__)

__all__ = [
    "TrackFit", "EventResult", "TrackCreator",
    "minimum_track_hits", "charge_from_curvature", "fit_track_helices",
]


class TrackFit(NamedTuple):
    """Kinematic output of :func:`fit_track_helices`."""
    momentum_at_dca: np.ndarray
    state_at_start: TrackState
    state_at_end: TrackState
    state_at_calorimeter: TrackState
    sign_pz: int


@dataclass
class EventResult:
    """Per-event bookkeeping returned by :meth:`TrackCreator.process_event`."""
    associations: TrackAssociations
    vertex_report: ProcessingReport
    track_report: ProcessingReport


def minimum_track_hits(tan_lambda: float, geometry: Geometry, settings: Settings) -> int:
    r"""
    Minimum number of hits a track of dip :math:`\tan\lambda` must carry.

    Central tracks (:math:`|\tan\lambda| \le z_0^\mathrm{FTD}/r_{\mathrm{out},0}^\mathrm{FTD}`)
    need ``min_track_hits``. Forward tracks need
    ``max(min_ftd_track_hits, n)``, with :math:`n` the number of disks the
    track crosses, i.e. for which

    .. math::

        z_i / r_{\mathrm{out},i} < |\tan\lambda| < z_i / r_{\mathrm{in},i}.
    """
    abs_tl = abs(float(tan_lambda))
    if abs_tl <= geometry.tan_lambda_ftd:
        return int(settings.min_track_hits)
    inner, outer, zpos = geometry.ftd_arrays
    n_disks = int(np.count_nonzero((zpos / outer < abs_tl) & (abs_tl < zpos / inner)))
    return max(int(settings.min_ftd_track_hits), n_disks)


def charge_from_curvature(omega: float) -> int:
    """Sign of the curvature; ``0`` for exactly zero curvature."""
    return int(np.sign(omega))


def _fit_end(points: np.ndarray, canonical: Helix, sign_pz: int,
             settings: Settings) -> HelixFitResult:
    if points.shape[0] == 2:
        return fit_helix_two_points(points, canonical.radius, canonical.charge, sign_pz)
    return fit_helix(points, max_iterations=settings.helix_fit_max_iterations)


def fit_track_helices(track: Track, geometry: Geometry, settings: Settings) -> TrackFit:
    r"""
    Momentum at the DCA and track states at both ends and at the calorimeter.

    Pipeline
    --------
    1. Canonical helix from :math:`(d_0, z_0, \phi, \omega, \tan\lambda)`
       gives the momentum at the point of closest approach.
    2. Hits are sorted by :math:`z`; the direction of travel along :math:`z`
       is :math:`s_{p_z} = +1` if :math:`|z_\mathrm{min}| < |z_\mathrm{max}|`,
       else :math:`-1`.
    3. With :math:`K = \min(n_\mathrm{fit}, N)`, the first :math:`K` and the
       last :math:`K` hits are fitted independently (:func:`fit_helix`, or
       :func:`fit_helix_two_points` with the canonical radius when
       :math:`K = 2`) and anchored at :math:`z_\mathrm{min}` and
       :math:`z_\mathrm{max}`.
    4. The start state comes from the helix anchored where the track begins
       (:math:`z_\mathrm{min}` if :math:`s_{p_z} > 0`), the end state from the
       other one.
    5. The calorimeter state projects either the end helix or the canonical
       helix (``use_end_track_helix_for_ecal_projection``) from its own
       reference point.

    Raises
    ------
    HelixError
        If the canonical curvature is zero.
    InsufficientHitsError
        If the track has fewer than two hits.
    MalformedRecordError
        If a hit coordinate is not finite.
    HelixFitError
        If an end fit is degenerate.
    """
    b_field = geometry.b_field
    canonical = Helix.from_canonical(track.phi, track.d0, track.z0, track.omega, track.tan_lambda, b_field)

    n = track.n_hits
    if n < 2:
        raise InsufficientHitsError(f"track {track.track_id}: {n} hit(s), at least 2 needed for a helix fit")
    if not np.all(np.isfinite(track.hits)):
        raise MalformedRecordError(f"track {track.track_id}: non-finite hit coordinates")

    hits = track.hits[np.argsort(track.hits[:, 2], kind="mergesort")]
    z_min, z_max = float(hits[0, 2]), float(hits[-1, 2])
    sign_pz = 1 if abs(z_min) < abs(z_max) else -1

    k = min(int(settings.n_hits_for_helix_fits), n)
    front = _fit_end(hits[:k], canonical, sign_pz, settings).to_helix(b_field, sign_pz, z_min)
    back = _fit_end(hits[n - k:], canonical, sign_pz, settings).to_helix(b_field, sign_pz, z_max)

    start_helix, end_helix = (front, back) if sign_pz > 0 else (back, front)

    projected = end_helix if settings.use_end_track_helix_for_ecal_projection else canonical
    state_at_calorimeter = project_to_calorimeter(projected, projected.reference_point, sign_pz, geometry)

    logger.debug("track %s: start %r end %r calo %r", track.track_id,
                 start_helix.reference_state(), end_helix.reference_state(), state_at_calorimeter)
    return TrackFit(canonical.momentum, start_helix.reference_state(), end_helix.reference_state(),
                    state_at_calorimeter, sign_pz)


class TrackCreator:
    r"""
    Two-phase converter of tracker trajectories into track descriptors.

    Phase one (:meth:`create_track_associations`) reads the secondary-vertex
    collections and fills a :class:`TrackAssociations`. Phase two
    (:meth:`create_tracks`) walks the configured track collections and, for
    every track within the hit-count window, fits it, classifies it and hands
    a :class:`TrackDescriptor` to the sink. Phase two only reads the
    associations.

    Parameters
    ----------
    geometry : Geometry or mapping
        Detector snapshot; a mapping is validated into a :class:`Geometry`.
    settings : Settings, optional
        Processing options (defaults if omitted).
    sink : TrackSink, optional
        Receiver of descriptors and relationships. A fresh
        :class:`TrackRecorder` is used if omitted.

    Raises
    ------
    InvalidGeometryError
        If ``geometry`` is a mapping that does not describe a valid detector.
    """

    def __init__(self, geometry: Union[Geometry, Mapping], settings: Optional[Settings] = None,
                 sink: Optional[TrackSink] = None) -> None:
        self.geometry = geometry if isinstance(geometry, Geometry) else Geometry.from_mapping(geometry)
        self.settings = settings or Settings()
        self.sink: TrackSink = sink if sink is not None else TrackRecorder()
        self.extractor = RelationshipExtractor(self.settings, self.sink)
        self.log = logging.getLogger(self.__class__.__name__)

    def create_track_associations(self, event: Event) -> tuple[TrackAssociations, ProcessingReport]:
        """Phase one: memberships, identity hints and relationship declarations."""
        associations = TrackAssociations()
        report = self.extractor.extract(event, associations)
        return associations, report

    def create_tracks(self, event: Event, associations: TrackAssociations) -> ProcessingReport:
        """Phase two: one descriptor per accepted track, in collection traversal order."""
        report = ProcessingReport("tracks")
        for name in self.settings.track_collections:
            try:
                records = event.get_collection(name)
            except CollectionNotFoundError as e:
                self.log.info("Failed to extract track collection: %s", e)
                report.mark_unavailable(name)
                continue
            for record in records:
                report.record(self._create_track(record, associations))
        return report

    def process_event(self, event: Event) -> EventResult:
        associations, vertex_report = self.create_track_associations(event)
        track_report = self.create_tracks(event, associations)
        self.log.info(
            "Event %s: %d descriptor(s), %d track(s) skipped, %d vertex(es) used, %d parent(s), "
            "%d daughter(s), %d V0 track(s)",
            event.name or "-", track_report.accepted, track_report.n_skipped, vertex_report.accepted,
            len(associations.parents), len(associations.daughters), len(associations.v0s),
        )
        return EventResult(associations, vertex_report, track_report)

    def _identity(self, track: Track, associations: TrackAssociations) -> tuple[int, float]:
        hint = associations.pid_hint(track)
        particle_id = hint if hint is not None else pdg.charged_pion(track.omega)
        return particle_id, pdg.particle_mass(particle_id)

    def _create_track(self, record: object, associations: TrackAssociations) -> Outcome:
        if not isinstance(record, Track):
            self.log.warning("Failed to extract track: expected a Track, got %s", type(record).__name__)
            return Outcome.skip("malformed", MalformedRecordError(type(record).__name__))
        track = record

        n_hits = track.n_hits
        if n_hits < minimum_track_hits(track.tan_lambda, self.geometry, self.settings) \
                or n_hits > self.settings.max_track_hits:
            return Outcome.skip("hit_count")

        try:
            particle_id, mass = self._identity(track, associations)
            fit = fit_track_helices(track, self.geometry, self.settings)
            reaches = track_reaches_calorimeter(track.hits, fit.momentum_at_dca, self.geometry, self.settings)
            usage = define_track_pfo_usage(track, reaches, fit.momentum_at_dca, fit.state_at_calorimeter,
                                           mass, associations, self.geometry, self.settings)
        except InvalidGeometryError as e:
            return Outcome.fatal(e)
        except MalformedRecordError as e:
            self.log.warning("Failed to extract track %s: %s", track.track_id, e)
            return Outcome.skip("malformed", e)
        except InsufficientHitsError as e:
            self.log.error("Failed to fit track %s: %s", track.track_id, e)
            return Outcome.skip("insufficient_hits", e)
        except HelixError as e:
            self.log.error("Failed to fit track %s: %s", track.track_id, e)
            return Outcome.skip("fit_failed", e)

        descriptor = TrackDescriptor(
            d0=track.d0,
            z0=track.z0,
            track=track,
            particle_id=particle_id,
            mass=mass,
            charge=charge_from_curvature(track.omega),
            momentum_at_dca=fit.momentum_at_dca,
            state_at_start=fit.state_at_start,
            state_at_end=fit.state_at_end,
            state_at_calorimeter=fit.state_at_calorimeter,
            reaches_calorimeter=reaches,
            can_form_pfo=usage.can_form_pfo,
            can_form_clusterless_pfo=usage.can_form_clusterless_pfo,
        )
        self.sink.create_track(descriptor)
        return Outcome.ok()
