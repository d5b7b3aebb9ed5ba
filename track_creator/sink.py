from __future__ import annotations

import logging
from typing import List, Protocol, Tuple, runtime_checkable

import networkx as nx
import pandas as pd

from track_creator.data import Track, TrackDescriptor

logger = logging.getLogger(__name__)

__all__ = ["TrackSink", "TrackRecorder"]


@runtime_checkable
class TrackSink(Protocol):
    """Receiver of track descriptors and track relationship declarations."""

    def create_track(self, descriptor: TrackDescriptor) -> None: ...

    def set_parent_daughter_relationship(self, parent: Track, daughter: Track) -> None: ...

    def set_sibling_relationship(self, first: Track, second: Track) -> None: ...


class TrackRecorder:
    r"""
    In-memory :class:`TrackSink` for one event.

    Descriptors and relationship declarations are kept in arrival order.
    :meth:`relationship_graph` exposes the declarations as a
    :class:`networkx.Graph` whose nodes are tracks and whose edges carry a
    ``kind`` attribute (``"parent_daughter"`` or ``"sibling"``); parent edges
    also record the ``parent``.

    Attributes
    ----------
    descriptors : list of TrackDescriptor
    parent_daughter : list of (Track, Track)
    siblings : list of (Track, Track)
    """

    def __init__(self) -> None:
        self.descriptors: List[TrackDescriptor] = []
        self.parent_daughter: List[Tuple[Track, Track]] = []
        self.siblings: List[Tuple[Track, Track]] = []

    def create_track(self, descriptor: TrackDescriptor) -> None:
        self.descriptors.append(descriptor)

    def set_parent_daughter_relationship(self, parent: Track, daughter: Track) -> None:
        self.parent_daughter.append((parent, daughter))

    def set_sibling_relationship(self, first: Track, second: Track) -> None:
        self.siblings.append((first, second))

    def clear(self) -> None:
        self.descriptors.clear()
        self.parent_daughter.clear()
        self.siblings.clear()

    @property
    def n_relationships(self) -> int:
        return len(self.parent_daughter) + len(self.siblings)

    def relationship_graph(self) -> nx.Graph:
        """Undirected graph of all declared relationships."""
        g = nx.Graph()
        for parent, daughter in self.parent_daughter:
            g.add_edge(parent, daughter, kind="parent_daughter", parent=parent)
        for first, second in self.siblings:
            g.add_edge(first, second, kind="sibling")
        return g

    def decay_families(self) -> List[List[Track]]:
        r"""
        Groups of tracks linked by any relationship (connected components of
        :meth:`relationship_graph`), each sorted by ``track_id``, largest first.
        """
        g = self.relationship_graph()
        families = [sorted(c, key=lambda t: (t.track_id is None, t.track_id)) for c in nx.connected_components(g)]
        families.sort(key=len, reverse=True)
        return families

    def to_frame(self) -> pd.DataFrame:
        """Descriptors as a flat table, one row per track, in creation order."""
        return pd.DataFrame([d.as_record() for d in self.descriptors])
