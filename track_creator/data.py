from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from glob import glob
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from track_creator.exceptions import CollectionNotFoundError, MalformedRecordError

logger = logging.getLogger(__name__)

__all__ = [
    "Track", "Vertex", "TrackState", "TrackDescriptor", "Event",
    "read_event", "list_events",
]

_TRACK_COLUMNS = ("collection", "track_id", "d0", "z0", "phi", "omega", "tan_lambda")
_HIT_COLUMNS = ("track_id", "x", "y", "z")
_VERTEX_COLUMNS = ("collection", "vertex_id", "pdg", "track_id")


@dataclass(eq=False)
class Track:
    r"""
    Input trajectory: canonical helix parameters plus its hit positions.

    Tracks hash and compare by identity, so two tracks with identical numbers
    are still distinct handles in membership sets and identity maps.

    Attributes
    ----------
    d0, z0 : float
        Transverse / longitudinal impact parameters (mm).
    phi : float
        Azimuth of the momentum at the point of closest approach (rad).
    omega : float
        Signed curvature (1/mm); the sign is the particle charge.
    tan_lambda : float
        Dip angle :math:`\tan\lambda = p_z / p_T`.
    hits : (N, 3) ndarray
        Hit positions in arbitrary order.
    track_id : int or None
        Opaque identifier carried through to the outputs.
    """
    d0: float
    z0: float
    phi: float
    omega: float
    tan_lambda: float
    hits: np.ndarray = field(default_factory=lambda: np.empty((0, 3)))
    track_id: Optional[int] = None

    def __post_init__(self) -> None:
        hits = np.asarray(self.hits, dtype=np.float64)
        if hits.size == 0:
            hits = hits.reshape(0, 3)
        if hits.ndim != 2 or hits.shape[1] != 3:
            raise MalformedRecordError(f"track {self.track_id}: hits must have shape (N, 3), got {hits.shape}")
        self.hits = hits

    @property
    def n_hits(self) -> int:
        return int(self.hits.shape[0])

    def __repr__(self) -> str:
        return (f"Track(id={self.track_id}, d0={self.d0:.3g}, z0={self.z0:.3g}, "
                f"omega={self.omega:.3g}, tanL={self.tan_lambda:.3g}, n_hits={self.n_hits})")


@dataclass(eq=False)
class Vertex:
    """Secondary vertex: an identity code and its ordered constituent tracks."""
    pdg: int
    tracks: List[Track] = field(default_factory=list)
    vertex_id: Optional[int] = None


@dataclass(frozen=True)
class TrackState:
    """Position (mm) and momentum (GeV) at one point along a helix."""
    position: np.ndarray
    momentum: np.ndarray

    def __post_init__(self) -> None:
        object.__setattr__(self, "position", np.asarray(self.position, dtype=np.float64).reshape(3))
        object.__setattr__(self, "momentum", np.asarray(self.momentum, dtype=np.float64).reshape(3))

    def as_tuple(self) -> Tuple[float, float, float, float, float, float]:
        x, y, z = (float(v) for v in self.position)
        px, py, pz = (float(v) for v in self.momentum)
        return x, y, z, px, py, pz

    def __repr__(self) -> str:
        x, y, z, px, py, pz = self.as_tuple()
        return f"TrackState(pos=({x:.2f}, {y:.2f}, {z:.2f}), mom=({px:.4f}, {py:.4f}, {pz:.4f}))"


@dataclass
class TrackDescriptor:
    r"""
    Track-level input for the particle-flow engine.

    Attributes
    ----------
    d0, z0 : float
        Impact parameters copied from the input track.
    track : Track
        Pass-through handle to the originating track (not owned).
    particle_id : int
        Identity hypothesis (PDG code).
    mass : float
        Rest mass of ``particle_id`` (GeV).
    charge : int
        Sign of the curvature, ``0`` for exactly zero curvature.
    momentum_at_dca : (3,) ndarray
        Momentum at the point of closest approach to the origin.
    state_at_start, state_at_end, state_at_calorimeter : TrackState
        Fitted states at the inner end, the outer end and the calorimeter
        front face.
    reaches_calorimeter : bool
    can_form_pfo : bool
        Usable to form a charged PFO with an associated cluster.
    can_form_clusterless_pfo : bool
        Usable to form a charged PFO without a cluster.
    """
    d0: float
    z0: float
    track: Track
    particle_id: int
    mass: float
    charge: int
    momentum_at_dca: np.ndarray
    state_at_start: TrackState
    state_at_end: TrackState
    state_at_calorimeter: TrackState
    reaches_calorimeter: bool = False
    can_form_pfo: bool = False
    can_form_clusterless_pfo: bool = False

    def as_record(self) -> Dict[str, object]:
        """Flat ``dict`` for tabular export."""
        rec: Dict[str, object] = {
            "track_id": self.track.track_id,
            "d0": self.d0,
            "z0": self.z0,
            "particle_id": self.particle_id,
            "mass": self.mass,
            "charge": self.charge,
            "px_dca": float(self.momentum_at_dca[0]),
            "py_dca": float(self.momentum_at_dca[1]),
            "pz_dca": float(self.momentum_at_dca[2]),
        }
        for prefix, state in (("start", self.state_at_start),
                              ("end", self.state_at_end),
                              ("calo", self.state_at_calorimeter)):
            for name, value in zip(("x", "y", "z", "px", "py", "pz"), state.as_tuple()):
                rec[f"{name}_{prefix}"] = value
        rec["reaches_calorimeter"] = self.reaches_calorimeter
        rec["can_form_pfo"] = self.can_form_pfo
        rec["can_form_clusterless_pfo"] = self.can_form_clusterless_pfo
        return rec


class Event:
    r"""
    Named collections of records for one event.

    Parameters
    ----------
    collections : mapping of str to sequence
        ``name -> records``. Records are usually :class:`Track` or
        :class:`Vertex` objects but are not type-checked here; consumers
        report and skip entries they cannot interpret.
    name : str, optional
        Event label used in log messages.
    """

    def __init__(self, collections: Mapping[str, Sequence[object]] | None = None, name: str = "") -> None:
        self._collections: Dict[str, List[object]] = {k: list(v) for k, v in (collections or {}).items()}
        self.name = name

    def get_collection(self, name: str) -> List[object]:
        try:
            return self._collections[name]
        except KeyError:
            raise CollectionNotFoundError(name) from None

    def add_collection(self, name: str, records: Sequence[object]) -> None:
        self._collections[name] = list(records)

    @property
    def collection_names(self) -> List[str]:
        return list(self._collections)

    def tracks(self) -> Iterator[Track]:
        """All :class:`Track` objects of all collections, in insertion order."""
        for records in self._collections.values():
            for rec in records:
                if isinstance(rec, Track):
                    yield rec

    def __repr__(self) -> str:
        sizes = ", ".join(f"{k}={len(v)}" for k, v in self._collections.items())
        return f"Event({self.name!r}: {sizes})"


def _require_columns(df: pd.DataFrame, columns: Sequence[str], path: Path) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise KeyError(f"{path.name}: missing required column(s) {missing}")


def read_event(directory: str | Path, event: str) -> Event:
    r"""
    Load one event from TrackML-style CSV tables.

    Files
    -----
    ``<event>-tracks.csv``
        ``collection, track_id, d0, z0, phi, omega, tan_lambda``.
    ``<event>-hits.csv``
        ``track_id, x, y, z``; hits are attached to their track by
        ``track_id``.
    ``<event>-vertices.csv`` (optional)
        ``collection, vertex_id, pdg, track_id``; one row per constituent
        track, row order within a vertex is the constituent order (parent
        first for kinks and prongs).

    Parameters
    ----------
    directory : str or pathlib.Path
        Directory holding the tables.
    event : str
        Event prefix, e.g. ``"event000000001"``.

    Returns
    -------
    Event
        Track collections keyed by ``collection`` and vertex collections keyed
        by their own ``collection`` value.

    Raises
    ------
    FileNotFoundError
        If the tracks or hits table is missing.
    KeyError
        If a table lacks a required column.

    Notes
    -----
    A vertex row that references an unknown ``track_id`` is kept as ``None``
    in the constituent list; the relationship extractor reports such a
    vertex as malformed and skips it.
    """
    directory = Path(directory)
    tracks_path = directory / f"{event}-tracks.csv"
    hits_path = directory / f"{event}-hits.csv"
    vertices_path = directory / f"{event}-vertices.csv"

    tracks_df = pd.read_csv(tracks_path)
    hits_df = pd.read_csv(hits_path)
    _require_columns(tracks_df, _TRACK_COLUMNS, tracks_path)
    _require_columns(hits_df, _HIT_COLUMNS, hits_path)

    hit_groups = {
        int(tid): g[["x", "y", "z"]].to_numpy(dtype=np.float64, copy=True)
        for tid, g in hits_df.groupby("track_id", sort=False)
    }

    collections: Dict[str, List[object]] = {}
    by_id: Dict[int, Track] = {}
    for row in tracks_df.itertuples(index=False):
        tid = int(row.track_id)
        trk = Track(
            d0=float(row.d0), z0=float(row.z0), phi=float(row.phi),
            omega=float(row.omega), tan_lambda=float(row.tan_lambda),
            hits=hit_groups.get(tid, np.empty((0, 3))),
            track_id=tid,
        )
        by_id[tid] = trk
        collections.setdefault(str(row.collection), []).append(trk)

    if vertices_path.is_file():
        vertices_df = pd.read_csv(vertices_path)
        _require_columns(vertices_df, _VERTEX_COLUMNS, vertices_path)
        for (coll, vid), g in vertices_df.groupby(["collection", "vertex_id"], sort=False):
            pdg_codes = g["pdg"].unique()
            if pdg_codes.size != 1:
                logger.warning("Vertex %s/%s has %d identity codes; using the first", coll, vid, pdg_codes.size)
            constituents = [by_id.get(int(t)) for t in g["track_id"]]
            collections.setdefault(str(coll), []).append(
                Vertex(pdg=int(pdg_codes[0]), tracks=constituents, vertex_id=int(vid))
            )

    logger.debug("Read event %s: %d tracks, %d hits", event, len(by_id), len(hits_df))
    return Event(collections, name=event)


def _natural_key(path: Path):
    """Natural sort key (split digits) so event_2 comes before event_10."""
    parts = re.split(r"(\d+)", path.name)
    return [int(p) if p.isdigit() else p.lower() for p in parts]


def list_events(path_arg: str, n_events: Optional[int] = None) -> List[Tuple[Path, str]]:
    r"""
    Resolve a directory or glob into ``(directory, event_prefix)`` pairs.

    An event is identified by its ``<prefix>-tracks.csv`` file. Events are
    returned in natural order and truncated to ``n_events`` when given.

    Parameters
    ----------
    path_arg : str
        Directory, a single ``*-tracks.csv`` file, or a glob over such files.
    n_events : int or None
        Maximum number of events to return.
    """
    p = Path(path_arg)
    if any(ch in path_arg for ch in "*?[]"):
        cands = [Path(x) for x in glob(path_arg)]
    elif p.is_dir():
        cands = list(p.glob("*-tracks.csv"))
    else:
        cands = [p]

    cands = sorted((c for c in cands if c.name.endswith("-tracks.csv")), key=_natural_key)
    out = [(c.parent, c.name[: -len("-tracks.csv")]) for c in cands]
    return out if n_events is None else out[: max(0, int(n_events))]
