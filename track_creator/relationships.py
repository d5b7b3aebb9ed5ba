from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Set

import track_creator.pdg as pdg
from track_creator.config import Settings
from track_creator.data import Event, Track, Vertex
from track_creator.exceptions import CollectionNotFoundError, MalformedRecordError
from track_creator.outcome import Outcome, ProcessingReport
from track_creator.sink import TrackSink

logger = logging.getLogger(__name__)

__all__ = [
    "VertexCategory", "TrackAssociations", "RelationshipExtractor",
    "kink_daughter_pdg", "v0_track_pdg",
]


class VertexCategory(Enum):
    """Kind of secondary vertex collection."""
    KINK = "kink"
    PRONG_SPLIT = "prong/split"
    V0 = "v0"


@dataclass
class TrackAssociations:
    r"""
    Event-scoped output of relationship extraction.

    Written only by :class:`RelationshipExtractor`; read by the descriptor
    builder. The three membership sets stay pairwise disjoint: a vertex that
    touches any of them is vetoed as a whole.

    Attributes
    ----------
    parents : set of Track
    daughters : set of Track
    v0s : set of Track
    pid_hints : dict of Track to int
        Identity code inferred from the decay topology.
    """
    parents: Set[Track] = field(default_factory=set)
    daughters: Set[Track] = field(default_factory=set)
    v0s: Set[Track] = field(default_factory=set)
    pid_hints: Dict[Track, int] = field(default_factory=dict)

    def is_parent(self, track: Track) -> bool:
        return track in self.parents

    def is_daughter(self, track: Track) -> bool:
        return track in self.daughters

    def is_v0(self, track: Track) -> bool:
        return track in self.v0s

    def is_conflicting(self, tracks: Iterable[Track]) -> bool:
        """``True`` if any of ``tracks`` already belongs to a membership set."""
        return any(self.is_parent(t) or self.is_daughter(t) or self.is_v0(t) for t in tracks)

    def pid_hint(self, track: Track) -> Optional[int]:
        return self.pid_hints.get(track)


def kink_daughter_pdg(parent_pdg: int, daughter_omega: float) -> int:
    r"""
    Identity of a kink daughter given the kink (parent) identity.

    ======================================  ====================================================
    parent                                  daughter
    ======================================  ====================================================
    :math:`\pi^\pm, K^\pm`                  :math:`\mu^\pm` by the daughter's own curvature sign
    :math:`\Sigma^\pm, \Xi^-, \bar\Xi^+`    :math:`\pi^+` whatever the daughter curvature
    anything else                           :math:`\pi^\pm` by the daughter's own curvature sign
    ======================================  ====================================================
    """
    if parent_pdg in (pdg.PI_PLUS, pdg.K_PLUS, pdg.PI_MINUS, pdg.K_MINUS):
        return pdg.MU_PLUS if daughter_omega > 0 else pdg.MU_MINUS
    if parent_pdg in (pdg.SIGMA_PLUS, pdg.HYPERON_MINUS_BAR, pdg.SIGMA_MINUS, pdg.HYPERON_MINUS):
        return pdg.PI_PLUS
    return pdg.charged_pion(daughter_omega)


def v0_track_pdg(vertex_pdg: int, omega: float) -> int:
    r"""
    Identity of a V0 prong from the V0 identity and the prong curvature sign.

    ====================  ==========================  ==========================
    V0                    :math:`\omega > 0`          :math:`\omega \le 0`
    ====================  ==========================  ==========================
    :math:`\gamma`        :math:`e^+`                 :math:`e^-`
    :math:`\Lambda`       :math:`p`                   :math:`\pi^-`
    :math:`\bar\Lambda`   :math:`\pi^+`               :math:`\bar p`
    :math:`K^0_S`, other  :math:`\pi^+`               :math:`\pi^-`
    ====================  ==========================  ==========================
    """
    positive = omega > 0
    if vertex_pdg == pdg.PHOTON:
        return pdg.E_PLUS if positive else pdg.E_MINUS
    if vertex_pdg == pdg.LAMBDA:
        return pdg.PROTON if positive else pdg.PI_MINUS
    if vertex_pdg == pdg.LAMBDA_BAR:
        return pdg.PI_PLUS if positive else pdg.PROTON_BAR
    return pdg.PI_PLUS if positive else pdg.PI_MINUS


def _constituents(record: object) -> List[Track]:
    """Validated constituent list of a vertex record."""
    if not isinstance(record, Vertex):
        raise MalformedRecordError(f"expected a Vertex, got {type(record).__name__}")
    tracks = list(record.tracks)
    if not tracks:
        raise MalformedRecordError(f"vertex {record.vertex_id} has no associated tracks")
    if not all(isinstance(t, Track) for t in tracks):
        raise MalformedRecordError(f"vertex {record.vertex_id} references unreadable tracks")
    if len({id(t) for t in tracks}) != len(tracks):
        raise MalformedRecordError(f"vertex {record.vertex_id} lists the same track more than once")
    return tracks


class RelationshipExtractor:
    r"""
    Turn secondary-vertex collections into track associations.

    Categories are processed in the order kinks, prongs/splits, V0s, each over
    its configured collection names. For every vertex:

    * **Conflict veto.** If any constituent already belongs to the parent,
      daughter or V0 set, the vertex is skipped entirely.
    * **Kinks, prongs, splits.** Constituent 0 is the parent, the rest are
      daughters; parent-daughter links for :math:`(0, j)` and sibling links
      for :math:`(i, j),\ 0<i<j`. Only kinks assign identities
      (:func:`kink_daughter_pdg`).
    * **V0s.** All constituents join the V0 set, sibling links for all
      pairs, identities from :func:`v0_track_pdg`.

    Relationship declarations go to ``sink`` only when
    ``settings.should_form_track_relationships`` is set; memberships and
    identities are recorded regardless.

    Parameters
    ----------
    settings : Settings
    sink : TrackSink or None
        Receiver of relationship declarations.
    """

    def __init__(self, settings: Settings, sink: Optional[TrackSink] = None) -> None:
        self.settings = settings
        self.sink = sink
        self.log = logging.getLogger(self.__class__.__name__)

    def _collections(self, category: VertexCategory) -> Sequence[str]:
        if category is VertexCategory.KINK:
            return self.settings.kink_vertex_collections
        if category is VertexCategory.PRONG_SPLIT:
            return self.settings.prong_split_vertex_collections
        return self.settings.v0_vertex_collections

    def extract(self, event: Event, associations: TrackAssociations) -> ProcessingReport:
        """Run all three categories on ``event``, filling ``associations`` in place."""
        report = ProcessingReport("vertices")
        for category in VertexCategory:
            category_report = self.extract_category(event, category, associations)
            category_report.log_summary(logging.DEBUG)
            report.merge(category_report)
        return report

    def extract_category(self, event: Event, category: VertexCategory,
                         associations: TrackAssociations) -> ProcessingReport:
        report = ProcessingReport(f"{category.value} vertices")
        for name in self._collections(category):
            try:
                records = event.get_collection(name)
            except CollectionNotFoundError as e:
                self.log.info("Failed to extract %s vertex collection: %s", category.value, e)
                report.mark_unavailable(name)
                continue
            for record in records:
                report.record(self._process_vertex(record, category, associations))
        return report

    def _process_vertex(self, record: object, category: VertexCategory,
                        associations: TrackAssociations) -> Outcome:
        try:
            tracks = _constituents(record)
        except MalformedRecordError as e:
            self.log.warning("Failed to extract %s vertex: %s", category.value, e)
            return Outcome.skip("malformed", e)

        if associations.is_conflicting(tracks):
            self.log.debug("Vetoed %s vertex %s: tracks already associated", category.value, record.vertex_id)
            return Outcome.skip("conflict")

        if category is VertexCategory.V0:
            self._apply_v0(record, tracks, associations)
        else:
            self._apply_parent_daughter(record, tracks, associations,
                                        assign_identity=category is VertexCategory.KINK)
        return Outcome.ok()

    def _apply_parent_daughter(self, vertex: Vertex, tracks: List[Track],
                               associations: TrackAssociations, assign_identity: bool) -> None:
        parent, daughters = tracks[0], tracks[1:]
        associations.parents.add(parent)
        associations.daughters.update(daughters)
        self.log.debug("Vertex %s: parent %r, %d daughter(s)", vertex.vertex_id, parent, len(daughters))

        if assign_identity:
            associations.pid_hints[parent] = int(vertex.pdg)
            for daughter in daughters:
                associations.pid_hints[daughter] = kink_daughter_pdg(int(vertex.pdg), daughter.omega)

        if self.settings.should_form_track_relationships and self.sink is not None:
            for daughter in daughters:
                self.sink.set_parent_daughter_relationship(parent, daughter)
            self._declare_siblings(daughters)

    def _apply_v0(self, vertex: Vertex, tracks: List[Track], associations: TrackAssociations) -> None:
        associations.v0s.update(tracks)
        for track in tracks:
            associations.pid_hints[track] = v0_track_pdg(int(vertex.pdg), track.omega)
        self.log.debug("V0 vertex %s (pdg %d): %d track(s)", vertex.vertex_id, vertex.pdg, len(tracks))

        if self.settings.should_form_track_relationships and self.sink is not None:
            self._declare_siblings(tracks)

    def _declare_siblings(self, tracks: Sequence[Track]) -> None:
        for i, first in enumerate(tracks):
            for second in tracks[i + 1:]:
                self.sink.set_sibling_relationship(first, second)
