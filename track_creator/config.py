from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, MutableMapping, Tuple

import orjson

from track_creator.geometry import Geometry

logger = logging.getLogger(__name__)

__all__ = ["Settings", "load_config", "load_run_config", "_deep_update"]


@dataclass(frozen=True)
class Settings:
    r"""
    Processing options of the track creator.

    Collections
    -----------
    track_collections : tuple of str
        Track collections turned into descriptors, in traversal order.
    kink_vertex_collections, prong_split_vertex_collections, v0_vertex_collections : tuple of str
        Secondary-vertex collections read by the relationship extractor.
    should_form_track_relationships : bool
        Emit parent/daughter and sibling declarations to the sink.

    Selection
    ---------
    min_track_hits, min_ftd_track_hits, max_track_hits : int
        Accepted hit-count window; ``min_ftd_track_hits`` replaces
        ``min_track_hits`` for forward tracks.

    Fitting
    -------
    n_hits_for_helix_fits : int
        Hits used by each end fit.
    helix_fit_max_iterations : int
        Maximum number of function evaluations in the least-squares refinement.
    use_end_track_helix_for_ecal_projection : bool
        Project the end-of-track fit instead of the canonical helix.

    Reach classification
    --------------------
    reaches_ecal_n_tpc_hits, reaches_ecal_n_ftd_hits : int
        Minimum hit counts in the main tracker / forward disks.
    reaches_ecal_tpc_outer_distance, reaches_ecal_tpc_z_max_distance : float
        Margins (mm) of the extremal hit beyond the main tracker envelope.
    reaches_ecal_ftd_z_max_distance : float
        :math:`z` tolerance (mm) for a hit to count as a forward-disk hit.
    curvature_to_momentum_factor : float
        Low-:math:`p_T` curling threshold, in units of :math:`B\,r_\mathrm{out}`.

    Usability
    ---------
    d0_track_cut, z0_track_cut : float
        Vertex-track impact-parameter cuts (mm).
    using_non_vertex_tracks, using_unmatched_non_vertex_tracks, using_unmatched_vertex_tracks : bool
    unmatched_vertex_track_max_energy : float
        Energy cap (GeV) for clusterless PFOs.
    d0_unmatched_vertex_track_cut, z0_unmatched_vertex_track_cut : float
    z_cut_for_non_vertex_tracks : float
    max_tpc_inner_r_distance : float
        Allowed distance of the innermost hit beyond the main tracker inner radius.
    min_track_ecal_distance_from_ip : float
        Sanity cut on the calorimeter-surface state distance from the origin.
    """
    track_collections: Tuple[str, ...] = ("MarlinTrkTracks",)
    kink_vertex_collections: Tuple[str, ...] = ("KinkVertices",)
    prong_split_vertex_collections: Tuple[str, ...] = ("ProngVertices", "SplitVertices")
    v0_vertex_collections: Tuple[str, ...] = ("V0Vertices",)
    should_form_track_relationships: bool = True

    min_track_hits: int = 5
    min_ftd_track_hits: int = 0
    max_track_hits: int = 5000

    n_hits_for_helix_fits: int = 40
    helix_fit_max_iterations: int = 500
    use_end_track_helix_for_ecal_projection: bool = True

    reaches_ecal_n_tpc_hits: int = 11
    reaches_ecal_n_ftd_hits: int = 4
    reaches_ecal_tpc_outer_distance: float = -100.0
    reaches_ecal_tpc_z_max_distance: float = -50.0
    reaches_ecal_ftd_z_max_distance: float = 1.0
    curvature_to_momentum_factor: float = 0.00015

    d0_track_cut: float = 50.0
    z0_track_cut: float = 50.0
    using_non_vertex_tracks: bool = True
    using_unmatched_non_vertex_tracks: bool = False
    using_unmatched_vertex_tracks: bool = True
    unmatched_vertex_track_max_energy: float = 5.0
    d0_unmatched_vertex_track_cut: float = 5.0
    z0_unmatched_vertex_track_cut: float = 5.0
    z_cut_for_non_vertex_tracks: float = 250.0
    max_tpc_inner_r_distance: float = 50.0
    min_track_ecal_distance_from_ip: float = 100.0

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name.endswith("_collections"):
                if isinstance(value, str):
                    value = (value,)
                object.__setattr__(self, f.name, tuple(str(v) for v in value))
        if self.n_hits_for_helix_fits < 2:
            raise ValueError("n_hits_for_helix_fits must be >= 2")
        if self.min_track_hits > self.max_track_hits:
            raise ValueError("min_track_hits must not exceed max_track_hits")

    @classmethod
    def from_mapping(cls, cfg: Mapping[str, Any]) -> "Settings":
        """Build settings from a mapping; unknown keys are an error."""
        known = {f.name for f in fields(cls)}
        unknown = set(cfg) - known
        if unknown:
            raise ValueError(f"Unknown setting(s): {', '.join(sorted(unknown))}")
        return cls(**dict(cfg))

    def with_overrides(self, **overrides: Any) -> "Settings":
        return replace(self, **overrides)

    def as_dict(self) -> dict:
        return asdict(self)


def load_config(config_path: Path) -> MutableMapping[str, dict]:
    r"""
    Load a JSON run configuration with :mod:`orjson`.

    Parameters
    ----------
    config_path : pathlib.Path
        Path to the JSON file.

    Returns
    -------
    dict
        Parsed configuration.

    Raises
    ------
    ValueError
        If the file cannot be read or parsed.
    """
    try:
        return orjson.loads(Path(config_path).read_bytes())
    except (OSError, orjson.JSONDecodeError) as e:
        raise ValueError(f"Failed to parse {config_path}: {e}") from e


def _deep_update(d: dict, u: Mapping) -> dict:
    r"""
    Recursively merge dictionaries (without side effects).

    Parameters
    ----------
    d : dict
        Base dictionary.
    u : dict
        Overrides (recursively merged).

    Returns
    -------
    dict
        New dictionary where nested dicts are merged and scalars/containers from
        ``u`` replace those in ``d``.
    """
    out = dict(d)
    for k, v in u.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_update(out[k], v)
        else:
            out[k] = v
    return out


def load_run_config(config_path: Path, overrides: Mapping | None = None) -> Tuple[Geometry, Settings]:
    r"""
    Read the ``"geometry"`` and ``"settings"`` blocks of a run configuration.

    Parameters
    ----------
    config_path : pathlib.Path
        JSON file with a mandatory ``"geometry"`` block and an optional
        ``"settings"`` block.
    overrides : mapping, optional
        Merged on top of the file content with :func:`_deep_update` (used for
        command-line switches).

    Returns
    -------
    (Geometry, Settings)

    Raises
    ------
    KeyError
        If the ``"geometry"`` block is absent.
    InvalidGeometryError
        If the geometry is inconsistent.
    """
    cfg = dict(load_config(config_path))
    if overrides:
        cfg = _deep_update(cfg, overrides)
    if "geometry" not in cfg:
        raise KeyError(f"Missing 'geometry' in {config_path}. Available keys: {', '.join(cfg.keys())}")
    geometry = Geometry.from_mapping(cfg["geometry"])
    settings = Settings.from_mapping(cfg.get("settings", {}))
    logger.debug("Settings: %s", settings)
    return geometry, settings
