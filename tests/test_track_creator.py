import sys
from pathlib import Path
sys.path.append(str(Path(__file__).resolve().parents[1]))

import logging

import numpy as np
import pytest

import track_creator.pdg as pdg
import track_creator.track_creator as trk_creator
from track_creator.config import Settings
from track_creator.data import Event, Track, Vertex
from track_creator.exceptions import InsufficientHitsError, InvalidGeometryError, MalformedRecordError
from track_creator.helix import FCT
from track_creator.sink import TrackRecorder
from track_creator.track_creator import (
    TrackCreator,
    charge_from_curvature,
    fit_track_helices,
    minimum_track_hits,
)

from conftest import GEOMETRY_PARAMS


def _process(geometry, tracks, vertices=None, settings=None):
    collections = {"MarlinTrkTracks": tracks}
    collections.update(vertices or {})
    recorder = TrackRecorder()
    creator = TrackCreator(geometry, settings or Settings(), recorder)
    result = creator.process_event(Event(collections, name="test"))
    return recorder, result


def test_minimum_hits_central_and_forward(geometry, settings):
    assert minimum_track_hits(0.3, geometry, settings) == settings.min_track_hits
    assert minimum_track_hits(-geometry.tan_lambda_ftd, geometry, settings) == settings.min_track_hits
    # only the innermost disk lies between its z/r_out and z/r_in ratios
    assert minimum_track_hits(2.0, geometry, settings) == 1
    assert minimum_track_hits(-5.0, geometry, settings) == 5


def test_forward_minimum_not_below_baseline(geometry):
    settings = Settings(min_track_hits=5, min_ftd_track_hits=5)
    baseline = minimum_track_hits(0.1, geometry, settings)
    for tl in np.linspace(geometry.tan_lambda_ftd + 1e-3, 20.0, 50):
        assert minimum_track_hits(tl, geometry, settings) >= baseline


def test_charge_from_curvature():
    assert charge_from_curvature(1e-4) == 1
    assert charge_from_curvature(-1e-4) == -1
    assert charge_from_curvature(0.0) == 0


def test_prompt_track_descriptor(geometry, make_track):
    track = make_track(d0=0.01, z0=0.05, n_hits=15)
    recorder, result = _process(geometry, [track])

    assert result.track_report.accepted == 1
    (desc,) = recorder.descriptors
    assert desc.track is track
    assert desc.reaches_calorimeter
    assert desc.can_form_pfo
    assert desc.particle_id == pdg.PI_PLUS
    assert desc.charge == 1
    assert desc.mass == pytest.approx(pdg.particle_mass(pdg.PI_PLUS))
    assert desc.d0 == 0.01 and desc.z0 == 0.05
    assert np.hypot(*desc.momentum_at_dca[:2]) == pytest.approx(10.0)
    # 10 GeV exceeds the clusterless energy cap
    assert not desc.can_form_clusterless_pfo


def test_prompt_track_states(geometry, make_track):
    track = make_track(n_hits=15)
    recorder, _ = _process(geometry, [track])
    (desc,) = recorder.descriptors
    assert np.allclose(desc.state_at_start.position, track.hits[0], atol=1e-3)
    assert np.allclose(desc.state_at_end.position, track.hits[-1], atol=1e-3)
    assert np.hypot(*desc.state_at_calorimeter.position[:2]) == pytest.approx(geometry.ecal_barrel_r)
    assert desc.state_at_calorimeter.position[2] > track.hits[-1, 2]
    assert np.hypot(*desc.state_at_end.momentum[:2]) == pytest.approx(10.0, rel=1e-4)


def test_too_few_hits_is_silent_skip(geometry, make_track, caplog):
    track = make_track(n_hits=3)
    with caplog.at_level(logging.WARNING):
        recorder, result = _process(geometry, [track])
    assert recorder.descriptors == []
    assert result.track_report.skipped["hit_count"] == 1
    assert not [r for r in caplog.records if r.levelno >= logging.WARNING]


def test_too_many_hits(geometry, make_track):
    settings = Settings(max_track_hits=10)
    recorder, result = _process(geometry, [make_track(n_hits=15)], settings=settings)
    assert recorder.descriptors == []
    assert result.track_report.skipped["hit_count"] == 1


def test_kink_identities_reach_descriptors(geometry, make_track):
    parent = make_track(charge=1, pt=5.0)
    daughter = make_track(charge=-1, pt=3.0, phi=1.2)
    recorder, result = _process(
        geometry, [parent, daughter],
        vertices={"KinkVertices": [Vertex(pdg.K_PLUS, [parent, daughter])]},
    )
    by_track = {d.track: d for d in recorder.descriptors}
    assert by_track[parent].particle_id == pdg.K_PLUS
    assert by_track[parent].mass == pytest.approx(pdg.particle_mass(pdg.K_PLUS))
    assert by_track[daughter].particle_id == pdg.MU_MINUS
    assert by_track[daughter].charge == -1
    # parents never form PFOs; their daughters carry the information
    assert not by_track[parent].can_form_pfo
    assert by_track[daughter].can_form_pfo
    assert recorder.parent_daughter == [(parent, daughter)]
    assert result.vertex_report.accepted == 1


def test_descriptors_follow_collection_order(geometry, make_track):
    a, b, c = (make_track() for _ in range(3))
    settings = Settings(track_collections=("Second", "First"))
    recorder = TrackRecorder()
    TrackCreator(geometry, settings, recorder).process_event(Event({"First": [a], "Second": [b, c]}))
    assert [d.track for d in recorder.descriptors] == [b, c, a]


def test_negative_z_track_starts_at_smallest_abs_z(geometry, make_track):
    track = make_track(tan_lambda=-0.4, charge=-1)
    fit = fit_track_helices(track, geometry, Settings())
    assert fit.sign_pz == -1
    assert np.allclose(fit.state_at_start.position, track.hits[0], atol=1e-3)
    assert np.allclose(fit.state_at_end.position, track.hits[-1], atol=1e-3)
    assert fit.state_at_start.momentum[2] < 0.0
    assert fit.state_at_calorimeter.position[2] < 0.0


def test_two_hit_end_fits(geometry, make_track):
    track = make_track(n_hits=15)
    settings = Settings(n_hits_for_helix_fits=2)
    fit = fit_track_helices(track, geometry, settings)
    assert np.allclose(fit.state_at_start.position, track.hits[0], atol=1e-3)
    assert np.allclose(fit.state_at_end.position, track.hits[-1], atol=1e-3)
    assert np.dot(fit.state_at_end.momentum, fit.momentum_at_dca) > 0.0


def test_canonical_helix_projection(geometry, make_track):
    track = make_track()
    settings = Settings(use_end_track_helix_for_ecal_projection=False)
    fit = fit_track_helices(track, geometry, settings)
    assert np.hypot(*fit.state_at_calorimeter.position[:2]) == pytest.approx(geometry.ecal_barrel_r)
    pt = FCT * geometry.b_field / abs(track.omega)
    assert np.hypot(*fit.state_at_calorimeter.momentum[:2]) == pytest.approx(pt)


def test_fit_needs_two_hits(geometry, make_track):
    track = make_track(n_hits=1)
    with pytest.raises(InsufficientHitsError):
        fit_track_helices(track, geometry, Settings())


def test_fit_failures_are_skipped(geometry, make_track, caplog):
    good = make_track()
    straight = Track(d0=0.0, z0=0.0, phi=0.0, omega=0.0, tan_lambda=0.1, hits=good.hits.copy(), track_id=99)
    flat = make_track()
    flat.hits[:, 2] = 42.0
    with caplog.at_level(logging.ERROR):
        recorder, result = _process(geometry, [straight, flat, good])
    assert [d.track for d in recorder.descriptors] == [good]
    assert result.track_report.skipped["fit_failed"] == 2
    assert sum("Failed to fit track" in r.getMessage() for r in caplog.records) == 2


def test_non_finite_hits_skip_only_that_track(geometry, make_track, caplog):
    bad, good = make_track(), make_track()
    bad.hits[3, 0] = np.nan
    with caplog.at_level(logging.WARNING):
        recorder, result = _process(geometry, [bad, good])
    assert [d.track for d in recorder.descriptors] == [good]
    assert result.track_report.skipped["malformed"] == 1
    assert any("non-finite" in r.getMessage() for r in caplog.records)
    with pytest.raises(MalformedRecordError):
        fit_track_helices(bad, geometry, Settings())


def test_unknown_identity_is_malformed(geometry, make_track):
    parent, daughter = make_track(), make_track(charge=-1)
    recorder, result = _process(
        geometry, [parent, daughter, "junk"],
        vertices={"KinkVertices": [Vertex(999999, [parent, daughter])]},
    )
    assert [d.track for d in recorder.descriptors] == [daughter]
    assert recorder.descriptors[0].particle_id == pdg.PI_MINUS
    assert result.track_report.skipped["malformed"] == 2


def test_missing_track_collection(geometry, make_track):
    settings = Settings(track_collections=("Missing", "MarlinTrkTracks"))
    recorder, result = _process(geometry, [make_track()], settings=settings)
    assert result.track_report.unavailable == ["Missing"]
    assert len(recorder.descriptors) == 1


def test_invalid_geometry_is_fatal(geometry, make_track, monkeypatch):
    def broken(*args, **kwargs):
        raise InvalidGeometryError("forward-disk arrays differ in length")

    monkeypatch.setattr(trk_creator, "track_reaches_calorimeter", broken)
    with pytest.raises(InvalidGeometryError):
        _process(geometry, [make_track()])


def test_geometry_mapping_is_validated():
    params = dict(GEOMETRY_PARAMS, ftd_z=[220.0])
    with pytest.raises(InvalidGeometryError):
        TrackCreator(params)
    creator = TrackCreator(GEOMETRY_PARAMS)
    assert isinstance(creator.sink, TrackRecorder)
