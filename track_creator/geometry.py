from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from functools import cached_property
from pathlib import Path
from typing import Any, Mapping, Tuple

import numpy as np
import orjson

from track_creator.exceptions import InvalidGeometryError

logger = logging.getLogger(__name__)

__all__ = ["Geometry", "load_geometry"]


def _as_tuple(values: Any) -> Tuple[float, ...]:
    if values is None:
        return ()
    if np.isscalar(values):
        return (float(values),)
    return tuple(float(v) for v in values)


@dataclass(frozen=True)
class Geometry:
    r"""
    Immutable snapshot of the detector description used by the track creator.

    The snapshot is built once at run start and passed by reference to every
    component. All consistency checks happen in the constructor, so a
    :class:`Geometry` instance that exists is valid.

    Parameters
    ----------
    b_field : float
        Uniform field :math:`B_z` at the origin (Tesla).
    tpc_inner_r, tpc_outer_r : float
        Inner and outer radius of the main tracker (mm).
    tpc_max_drift : float
        Half-length of the main tracker (mm).
    ftd_inner_r, ftd_outer_r, ftd_z : sequence of float
        Forward-disk inner radius, outer radius and :math:`z` position, one
        entry per disk, innermost disk first.
    etd_z : sequence of float
        :math:`z` of the outer endcap tracker layers.
    set_r : sequence of float
        Radii of the outer barrel tracker layers.
    ecal_barrel_r : float
        Inner radius of the calorimeter barrel (mm).
    ecal_barrel_symmetry : int
        Polygon order of the barrel; ``0`` for a cylinder.
    ecal_barrel_phi0 : float
        Phase of the first barrel face normal (rad).
    ecal_endcap_z : float
        :math:`|z|` of the calorimeter endcap front face (mm).

    Raises
    ------
    InvalidGeometryError
        If the forward-disk, outer-endcap or outer-barrel arrays are empty,
        if the three forward-disk arrays differ in length, or if a radius or
        length is not positive.

    Notes
    -----
    Derived quantities used in the hot loop are cached on first access:

    .. math::

        \tan\lambda_\mathrm{FTD} = z_0^\mathrm{FTD} / r_{\mathrm{out},0}^\mathrm{FTD},
        \qquad
        \cos\theta_\mathrm{TPC} = \frac{z_\mathrm{max}}{\sqrt{z_\mathrm{max}^2 + r_\mathrm{in}^2}}.
    """
    b_field: float
    tpc_inner_r: float
    tpc_outer_r: float
    tpc_max_drift: float
    ftd_inner_r: Tuple[float, ...]
    ftd_outer_r: Tuple[float, ...]
    ftd_z: Tuple[float, ...]
    etd_z: Tuple[float, ...]
    set_r: Tuple[float, ...]
    ecal_barrel_r: float
    ecal_endcap_z: float
    ecal_barrel_symmetry: int = 0
    ecal_barrel_phi0: float = 0.0

    def __post_init__(self) -> None:
        for name in ("ftd_inner_r", "ftd_outer_r", "ftd_z", "etd_z", "set_r"):
            object.__setattr__(self, name, _as_tuple(getattr(self, name)))
        for name in ("b_field", "tpc_inner_r", "tpc_outer_r", "tpc_max_drift",
                     "ecal_barrel_r", "ecal_endcap_z", "ecal_barrel_phi0"):
            object.__setattr__(self, name, float(getattr(self, name)))
        object.__setattr__(self, "ecal_barrel_symmetry", int(self.ecal_barrel_symmetry))
        self._validate()

    def _validate(self) -> None:
        n_ftd = len(self.ftd_z)
        if n_ftd == 0 or not self.etd_z or not self.set_r:
            raise InvalidGeometryError(
                "forward-disk, outer-endcap and outer-barrel tracker parameters must be non-empty "
                f"(ftd={n_ftd}, etd={len(self.etd_z)}, set={len(self.set_r)})"
            )
        if len(self.ftd_inner_r) != n_ftd or len(self.ftd_outer_r) != n_ftd:
            raise InvalidGeometryError(
                f"forward-disk arrays differ in length: inner={len(self.ftd_inner_r)}, "
                f"outer={len(self.ftd_outer_r)}, z={n_ftd}"
            )
        for name in ("tpc_inner_r", "tpc_outer_r", "tpc_max_drift", "ecal_barrel_r", "ecal_endcap_z"):
            if not getattr(self, name) > 0.0:
                raise InvalidGeometryError(f"{name} must be positive, got {getattr(self, name)}")
        if any(r <= 0.0 for r in self.ftd_inner_r + self.ftd_outer_r):
            raise InvalidGeometryError("forward-disk radii must be positive")
        if self.tpc_inner_r >= self.tpc_outer_r:
            raise InvalidGeometryError("main tracker inner radius must be below its outer radius")
        if not np.isfinite(self.b_field) or self.b_field == 0.0:
            raise InvalidGeometryError(f"magnetic field must be non-zero, got {self.b_field}")
        if self.ecal_barrel_symmetry < 0:
            raise InvalidGeometryError("barrel symmetry order must be >= 0")

    @classmethod
    def from_mapping(cls, cfg: Mapping[str, Any]) -> "Geometry":
        r"""
        Build a snapshot from a plain mapping (e.g. the ``"geometry"`` block of
        a JSON run configuration).

        Raises
        ------
        InvalidGeometryError
            If a required key is missing, an unknown key is present, or the
            values are inconsistent.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(cfg) - known
        if unknown:
            raise InvalidGeometryError(f"unknown geometry parameter(s): {sorted(unknown)}")
        try:
            return cls(**dict(cfg))
        except TypeError as e:
            raise InvalidGeometryError(f"incomplete geometry description: {e}") from e

    @cached_property
    def tan_lambda_ftd(self) -> float:
        return self.ftd_z[0] / self.ftd_outer_r[0]

    @cached_property
    def min_etd_z(self) -> float:
        return min(self.etd_z)

    @cached_property
    def min_set_r(self) -> float:
        return min(self.set_r)

    @cached_property
    def cos_tpc(self) -> float:
        return self.tpc_max_drift / float(np.hypot(self.tpc_max_drift, self.tpc_inner_r))

    @cached_property
    def ftd_arrays(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """``(inner_r, outer_r, z)`` as float64 arrays."""
        return (np.asarray(self.ftd_inner_r, dtype=np.float64),
                np.asarray(self.ftd_outer_r, dtype=np.float64),
                np.asarray(self.ftd_z, dtype=np.float64))


def load_geometry(path: str | Path) -> Geometry:
    """Read a :class:`Geometry` from a JSON file (the file itself or its ``"geometry"`` block)."""
    path = Path(path)
    cfg = orjson.loads(path.read_bytes())
    block = cfg.get("geometry", cfg)
    geom = Geometry.from_mapping(block)
    logger.info("Loaded geometry from %s (B=%.2f T, %d FTD disks, ECal symmetry %d)",
                path, geom.b_field, len(geom.ftd_z), geom.ecal_barrel_symmetry)
    return geom
