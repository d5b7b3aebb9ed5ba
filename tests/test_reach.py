import sys
from pathlib import Path
sys.path.append(str(Path(__file__).resolve().parents[1]))

import numpy as np

from track_creator.reach import count_tracker_hits, track_reaches_calorimeter

# 1 GeV transverse, mildly forward: neither steep nor soft enough for the curler rule
MOMENTUM = np.array([1.0, 0.0, 0.3])


def _ring(r, z, n=1):
    phi = np.linspace(0.0, 0.5, n)
    return np.column_stack([r * np.cos(phi), r * np.sin(phi), np.full(n, z)])


def test_short_central_track_does_not_reach(geometry, settings):
    hits = np.vstack([_ring(r, 0.1 * r) for r in np.linspace(400.0, 900.0, 20)])
    assert not track_reaches_calorimeter(hits, MOMENTUM, geometry, settings)


def test_outer_barrel_hit_reaches(geometry, settings):
    hits = np.vstack([_ring(r, 0.1 * r) for r in np.linspace(400.0, 900.0, 5)])
    assert not track_reaches_calorimeter(hits, MOMENTUM, geometry, settings)
    extra = np.vstack([hits, _ring(geometry.min_set_r + 5.0, 200.0)])
    assert track_reaches_calorimeter(extra, MOMENTUM, geometry, settings)


def test_outer_endcap_hit_uses_signed_z(geometry, settings):
    forward = np.vstack([_ring(400.0, 100.0), _ring(600.0, geometry.min_etd_z + 1.0)])
    assert track_reaches_calorimeter(forward, MOMENTUM, geometry, settings)

    # mirrored hits beyond the backward endcap layer fall through to the later rules
    backward = forward * np.array([1.0, 1.0, -1.0])
    momentum = MOMENTUM * np.array([1.0, 1.0, -1.0])
    assert not track_reaches_calorimeter(backward, momentum, geometry, settings)


def test_long_tpc_track_reaches(geometry, settings):
    radii = np.linspace(400.0, geometry.tpc_outer_r - 50.0, settings.reaches_ecal_n_tpc_hits)
    hits = np.vstack([_ring(r, 0.1 * r) for r in radii])
    assert track_reaches_calorimeter(hits, MOMENTUM, geometry, settings)
    # same extent, too few main-tracker hits
    assert not track_reaches_calorimeter(hits[-3:], MOMENTUM, geometry, settings)


def test_curler_rules(geometry, settings):
    hits = _ring(500.0, 10.0, n=3)
    soft = np.array([0.1, 0.0, 0.0])
    assert track_reaches_calorimeter(hits, soft, geometry, settings)
    steep = np.array([0.5, 0.0, 20.0])
    assert track_reaches_calorimeter(hits, steep, geometry, settings)
    assert not track_reaches_calorimeter(hits, MOMENTUM, geometry, settings)


def test_reach_never_lost_by_adding_outer_hits(geometry, settings):
    rng = np.random.default_rng(7)
    for _ in range(50):
        n = int(rng.integers(1, 20))
        r = rng.uniform(100.0, 1700.0, n)
        phi = rng.uniform(-np.pi, np.pi, n)
        z = rng.uniform(-2000.0, 2000.0, n)
        hits = np.column_stack([r * np.cos(phi), r * np.sin(phi), z])
        p = rng.normal(size=3)
        before = track_reaches_calorimeter(hits, p, geometry, settings)
        outer = _ring(geometry.min_set_r + rng.uniform(1.0, 50.0), rng.uniform(-500.0, 500.0))
        after = track_reaches_calorimeter(np.vstack([hits, outer]), p, geometry, settings)
        assert after
        assert after >= before


def test_count_tracker_hits(geometry, settings):
    disk_z = geometry.ftd_z[1]
    hits = np.array([
        [500.0, 0.0, 100.0],              # main tracker
        [100.0, 0.0, disk_z + 0.5],       # on disk 1
        [0.0, -100.0, -(disk_z - 0.5)],   # on disk 1, backward
        [100.0, 0.0, disk_z + 5.0],       # outside the z window
        [20.0, 0.0, disk_z],              # inside the disk's inner radius
    ])
    assert count_tracker_hits(hits, geometry, settings) == (1, 2)


def test_forward_disk_hits_reach(geometry, settings):
    hits = np.vstack([
        _ring(140.0, z) for z in geometry.ftd_z[:4]
    ] + [_ring(300.0, 2350.0)])
    # four disk hits, and the outermost |z| is close enough to the end of the main tracker
    assert track_reaches_calorimeter(hits, MOMENTUM, geometry, settings)
