import sys
from pathlib import Path
sys.path.append(str(Path(__file__).resolve().parents[1]))

import numpy as np
import pytest

from track_creator.helix import Helix
from track_creator.projection import barrel_faces, calorimeter_intersection, project_to_calorimeter

B = 3.5
STIFF = 2.99792458e-4 * B / 1000.0  # omega of a 1 TeV track, practically a straight line


def _helix(phi, tan_lambda, omega=STIFF):
    return Helix.from_canonical(phi, 0.0, 0.0, omega, tan_lambda, B)


def test_barrel_faces(polygon_geometry):
    faces = list(barrel_faces(polygon_geometry))
    assert len(faces) == 8
    for x0, y0, ax, ay in faces:
        assert np.hypot(x0, y0) == pytest.approx(polygon_geometry.ecal_barrel_r)
        # in-plane direction is perpendicular to the face normal
        assert x0 * ax + y0 * ay == pytest.approx(0.0, abs=1e-9)


def test_cylinder_straight_line(geometry):
    h = _helix(phi=0.9, tan_lambda=0.0)
    t, p = calorimeter_intersection(h, h.reference_point, 1, geometry)
    assert t >= 0.0
    assert np.hypot(p[0], p[1]) == pytest.approx(geometry.ecal_barrel_r)
    assert np.arctan2(p[1], p[0]) == pytest.approx(0.9, abs=5e-3)


def test_polygon_face_distance(polygon_geometry):
    # straight at a face centre
    h = _helix(phi=0.0, tan_lambda=0.0)
    t, p = calorimeter_intersection(h, h.reference_point, 1, polygon_geometry)
    assert t >= 0.0
    assert p[0] == pytest.approx(polygon_geometry.ecal_barrel_r, rel=1e-9)
    assert abs(p[1]) < 5.0

    # towards a corner the polygon lies beyond the inscribed circle
    h = _helix(phi=np.pi / 8, tan_lambda=0.0)
    _, p = calorimeter_intersection(h, h.reference_point, 1, polygon_geometry)
    r = np.hypot(p[0], p[1])
    assert r > polygon_geometry.ecal_barrel_r
    assert r <= polygon_geometry.ecal_barrel_r / np.cos(np.pi / 8) + 1.0


@pytest.mark.parametrize("tan_lambda,sign_pz", [(5.0, 1), (-5.0, -1)])
def test_endcap_selected_for_forward_tracks(geometry, tan_lambda, sign_pz):
    h = _helix(phi=0.3, tan_lambda=tan_lambda)
    t, p = calorimeter_intersection(h, h.reference_point, sign_pz, geometry)
    assert t >= 0.0
    assert p[2] == pytest.approx(sign_pz * geometry.ecal_endcap_z)
    assert np.hypot(p[0], p[1]) < geometry.ecal_barrel_r


def test_barrel_selected_before_endcap(polygon_geometry):
    h = _helix(phi=0.0, tan_lambda=0.2)
    t, p = calorimeter_intersection(h, h.reference_point, 1, polygon_geometry)
    assert t >= 0.0
    assert p[2] < polygon_geometry.ecal_endcap_z
    assert p[0] == pytest.approx(polygon_geometry.ecal_barrel_r, rel=1e-9)


def test_only_forward_intersections(geometry):
    # moving towards -x: the crossing behind the reference point must not be chosen
    h = _helix(phi=np.pi, tan_lambda=0.0)
    t, p = calorimeter_intersection(h, h.reference_point, 1, geometry)
    assert t >= 0.0
    assert p[0] < 0.0


def test_unreachable_falls_back_to_endcap(geometry):
    # curler moving to +z but asked for the -z endcap: nothing ahead, endcap point returned
    h = Helix.from_canonical(0.0, 0.0, 0.0, 1e-2, 0.5, B)
    t, p = calorimeter_intersection(h, h.reference_point, -1, geometry)
    assert t < 0.0
    assert p[2] == pytest.approx(-geometry.ecal_endcap_z)


def test_projected_state_momentum(geometry):
    h = _helix(phi=0.5, tan_lambda=0.4, omega=-STIFF * 50)
    state = project_to_calorimeter(h, h.reference_point, 1, geometry)
    assert np.hypot(*state.position[:2]) == pytest.approx(geometry.ecal_barrel_r)
    assert np.hypot(*state.momentum[:2]) == pytest.approx(h.pxy)
    assert state.momentum[2] == pytest.approx(h.pz)
    # outgoing at the barrel
    assert np.dot(state.position[:2], state.momentum[:2]) > 0.0
