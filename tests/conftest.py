import sys
from pathlib import Path

import numpy as np
import pytest

# Ensure project root on path when tests are run from an installed wheel.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from track_creator.config import Settings
from track_creator.data import Track
from track_creator.geometry import Geometry
from track_creator.helix import FCT, Helix

B_FIELD = 3.5

GEOMETRY_PARAMS = dict(
    b_field=B_FIELD,
    tpc_inner_r=329.0,
    tpc_outer_r=1808.0,
    tpc_max_drift=2350.0,
    ftd_inner_r=[39.0, 49.6, 70.1, 79.3, 92.4],
    ftd_outer_r=[151.9, 151.9, 298.9, 309.0, 309.0],
    ftd_z=[220.0, 371.3, 644.9, 1046.1, 1447.3],
    etd_z=[2426.0],
    set_r=[1829.0],
    ecal_barrel_r=1847.4,
    ecal_endcap_z=2450.0,
)


def omega_for_pt(pt: float, charge: int = 1, b_field: float = B_FIELD) -> float:
    """Signed curvature (1/mm) of a track with transverse momentum ``pt`` (GeV)."""
    return charge * FCT * b_field / pt


def helix_hits(d0, z0, phi, omega, tan_lambda, arc, b_field=B_FIELD) -> np.ndarray:
    """Noise-free hits on the canonical helix at the given transverse arc lengths (mm)."""
    h = Helix.from_canonical(phi, d0, z0, omega, tan_lambda, b_field)
    return np.vstack([h.position_at(s / h.pxy) for s in np.asarray(arc, dtype=float)])


@pytest.fixture
def geometry():
    return Geometry(**GEOMETRY_PARAMS)


@pytest.fixture
def polygon_geometry():
    return Geometry(**GEOMETRY_PARAMS, ecal_barrel_symmetry=8, ecal_barrel_phi0=0.0)


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def make_track():
    """Factory for tracks whose hits lie exactly on their canonical helix."""
    counter = iter(range(1, 10_000))

    def _make(d0=0.01, z0=0.05, phi=0.3, pt=10.0, charge=1, tan_lambda=0.3,
              arc=None, n_hits=15, track_id=None):
        omega = omega_for_pt(pt, charge)
        if arc is None:
            arc = np.linspace(345.0, 1760.0, n_hits)
        hits = helix_hits(d0, z0, phi, omega, tan_lambda, arc)
        return Track(d0=d0, z0=z0, phi=phi, omega=omega, tan_lambda=tan_lambda, hits=hits,
                     track_id=next(counter) if track_id is None else track_id)

    return _make
