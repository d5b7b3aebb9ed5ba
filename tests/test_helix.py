import sys
from pathlib import Path
sys.path.append(str(Path(__file__).resolve().parents[1]))

import numpy as np
import pytest

from track_creator.exceptions import HelixError
from track_creator.helix import FCT, Helix

B = 3.5


@pytest.mark.parametrize("omega", [1e-3, -1e-3])
def test_canonical_momentum_and_charge(omega):
    h = Helix.from_canonical(phi0=0.7, d0=2.0, z0=-3.0, omega=omega, tan_lambda=0.5, b_field=B)
    pt = FCT * B / abs(omega)
    assert h.charge == np.sign(omega)
    assert h.radius == pytest.approx(1.0 / abs(omega))
    assert h.pxy == pytest.approx(pt)
    assert h.pz == pytest.approx(0.5 * pt)
    assert np.arctan2(h.momentum[1], h.momentum[0]) == pytest.approx(0.7)
    # point of closest approach sits at distance |d0| from the beam axis
    assert np.hypot(*h.reference_point[:2]) == pytest.approx(2.0)
    assert h.reference_point[2] == pytest.approx(-3.0)


def test_zero_curvature_is_rejected():
    with pytest.raises(HelixError):
        Helix.from_canonical(0.0, 0.0, 0.0, 0.0, 0.1, B)


@pytest.mark.parametrize("omega", [5e-4, -5e-4])
def test_positions_stay_on_circle_and_follow_momentum(omega):
    h = Helix.from_canonical(0.2, 0.0, 0.0, omega, 1.0, B)
    pts = np.vstack([h.position_at(t) for t in np.linspace(0.0, 2000.0 / h.pxy, 30)])
    assert np.allclose(np.hypot(pts[:, 0] - h.centre[0], pts[:, 1] - h.centre[1]), h.radius)
    assert np.allclose(h.position_at(0.0), h.reference_point)

    # a short step moves along the reference momentum
    step = h.position_at(1e-3) - h.reference_point
    assert np.dot(step, h.momentum) > 0.0

    # momentum extrapolated anywhere on the helix is tangent to the circle
    p = pts[17]
    mom = h.extrapolated_momentum(p)
    radial = p[:2] - h.centre
    assert np.dot(mom[:2], radial) == pytest.approx(0.0, abs=1e-9)
    assert np.hypot(mom[0], mom[1]) == pytest.approx(h.pxy)


def test_positive_charge_turns_clockwise():
    h = Helix.from_canonical(0.0, 0.0, 0.0, 1e-3, 0.0, B)
    later = h.position_at(100.0 / h.pxy)
    assert later[1] < 0.0
    h_neg = Helix.from_canonical(0.0, 0.0, 0.0, -1e-3, 0.0, B)
    assert h_neg.position_at(100.0 / h_neg.pxy)[1] > 0.0


def test_point_in_z_signed_time():
    h = Helix.from_canonical(0.0, 0.0, 10.0, 1e-3, 2.0, B)
    t, p = h.point_in_z(410.0)
    assert t > 0.0
    assert p[2] == pytest.approx(410.0)
    assert np.hypot(p[0] - h.centre[0], p[1] - h.centre[1]) == pytest.approx(h.radius)
    t_back, _ = h.point_in_z(-100.0)
    assert t_back < 0.0


def test_point_in_z_parallel_plane():
    h = Helix.from_canonical(0.0, 0.0, 0.0, 1e-3, 0.0, B)
    t, p = h.point_in_z(100.0)
    assert np.isinf(t)
    assert np.all(np.isnan(p))


def test_point_on_circle_and_miss():
    h = Helix.from_canonical(0.0, 0.0, 0.0, 1e-4, 0.0, B)  # R = 10 m
    t, p = h.point_on_circle(1500.0)
    assert 0.0 <= t < np.inf
    assert np.hypot(p[0], p[1]) == pytest.approx(1500.0)
    assert p[0] > 0.0

    curler = Helix.from_canonical(0.0, 0.0, 0.0, 1e-2, 0.0, B)  # R = 100 mm, never reaches 1500 mm
    t_miss, _ = curler.point_on_circle(1500.0)
    assert np.isinf(t_miss)


def test_point_in_xy_hits_plane():
    h = Helix.from_canonical(0.0, 0.0, 0.0, 1e-4, 0.0, B)
    t, p = h.point_in_xy(1000.0, 0.0, 0.0, 1.0)
    assert t >= 0.0
    assert p[0] == pytest.approx(1000.0)
    assert abs(p[1]) < 100.0
