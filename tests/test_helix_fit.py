import sys
from pathlib import Path
sys.path.append(str(Path(__file__).resolve().parents[1]))

import numpy as np
import pytest

from track_creator.exceptions import HelixFitError, InsufficientHitsError
from track_creator.helix import Helix
from track_creator.helix_fit import fit_helix, fit_helix_two_points

B = 3.5


def _sample(omega, tan_lambda, phi0=0.4, d0=1.0, z0=5.0, n=20, arc=(300.0, 1500.0)):
    h = Helix.from_canonical(phi0, d0, z0, omega, tan_lambda, B)
    ts = np.linspace(arc[0], arc[1], n) / h.pxy
    return h, np.vstack([h.position_at(t) for t in ts])


@pytest.mark.parametrize("omega", [2e-4, -2e-4])
@pytest.mark.parametrize("tan_lambda", [0.8, -0.8])
def test_fit_recovers_circle_and_kinematics(omega, tan_lambda):
    truth, pts = _sample(omega, tan_lambda)
    rng = np.random.default_rng(0)
    fit = fit_helix(rng.permutation(pts))

    assert fit.n_points == pts.shape[0]
    assert fit.radius == pytest.approx(truth.radius, rel=1e-6)
    assert fit.x_centre == pytest.approx(truth.centre[0], abs=1e-3)
    assert fit.y_centre == pytest.approx(truth.centre[1], abs=1e-3)
    assert fit.dist_max < 1e-4

    sign_pz = 1 if tan_lambda > 0 else -1
    z_begin = float(pts[0, 2])
    helix = fit.to_helix(B, sign_pz, z_begin)
    assert helix.charge == truth.charge
    assert np.allclose(helix.reference_point, pts[0], atol=1e-3)
    expected = truth.extrapolated_momentum(pts[0])
    assert np.allclose(helix.momentum, expected, rtol=1e-5, atol=1e-6)


def test_fit_needs_three_points():
    _, pts = _sample(2e-4, 0.5, n=3)
    with pytest.raises(InsufficientHitsError):
        fit_helix(pts[:2])


def test_fit_rejects_constant_z():
    _, pts = _sample(2e-4, 0.5, n=6)
    pts[:, 2] = 100.0
    with pytest.raises(HelixFitError):
        fit_helix(pts)


def test_fit_rejects_collinear_points():
    pts = np.column_stack([np.linspace(0, 100, 5), np.linspace(0, 100, 5), np.linspace(0, 50, 5)])
    with pytest.raises(HelixFitError):
        fit_helix(pts)


def test_fit_rejects_non_finite_points():
    _, pts = _sample(2e-4, 0.5, n=8)
    pts[3, 0] = np.nan
    with pytest.raises(HelixFitError):
        fit_helix(pts)


@pytest.mark.parametrize("omega", [2e-4, -2e-4])
def test_two_point_fit_matches_charge(omega):
    truth, pts = _sample(omega, 0.6, n=2, arc=(300.0, 900.0))
    fit = fit_helix_two_points(pts, truth.radius, truth.charge, sign_pz=1)
    assert fit.n_points == 2
    assert fit.radius == pytest.approx(truth.radius)
    assert fit.x_centre == pytest.approx(truth.centre[0], abs=1e-4)
    assert fit.y_centre == pytest.approx(truth.centre[1], abs=1e-4)
    assert fit.to_helix(B, 1, float(pts[0, 2])).charge == truth.charge


def test_two_point_fit_degenerate():
    pts = np.array([[10.0, 0.0, 1.0], [10.0, 0.0, 5.0]])
    with pytest.raises(HelixFitError):
        fit_helix_two_points(pts, 1000.0, 1, 1)
