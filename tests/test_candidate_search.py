"""End-to-end tests of the per-event candidate search with straight and curved tracks."""

from __future__ import annotations

import dataclasses
import math
import unittest

from decaycomb import (
    CandidateSearch,
    Category,
    CutState,
    EventInput,
    EventVertex,
    SearchConfig,
    TrackState,
    TruthParticle,
    combine_kinematics,
    disabled_cuts,
)
from decaycomb.physics import helix_position

VERTEX = (0.03, 0.04, 0.0)
PRIMARY = EventVertex(0.0, 0.0, 0.0, n_contributors=10)

# (track_id, truth_id, pdg, phi, tgl, q/pt)
DEUTERON = (1, 11, 1000010020, 0.3, 0.1, 0.5)
KAON = (2, 12, -321, 2.2, -0.2, -1.25)
PION = (3, 13, 211, 4.0, 0.3, 2.0)


def _cov5(scale: float = 1e-4, zy: float = 0.0):
    rows = [[scale if i == j else 0.0 for j in range(5)] for i in range(5)]
    rows[0][1] = rows[1][0] = zy
    return tuple(tuple(row) for row in rows)


def _track(params, vertex=VERTEX, offset: float = 0.5, cov5=None) -> TrackState:
    """Straight track through `vertex`, referenced `offset` further along its direction."""
    track_id, truth_id, _, phi, tgl, q_pt = params
    return TrackState(
        track_id,
        x=vertex[0] + offset * math.cos(phi),
        y=vertex[1] + offset * math.sin(phi),
        z=vertex[2] + offset * tgl,
        phi=phi,
        tgl=tgl,
        signed_inv_pt=q_pt,
        cov5=cov5 if cov5 is not None else _cov5(),
        truth_id=truth_id,
    )


def _particles(pion_mother: int = 100):
    return (
        TruthParticle(100, pdg_code=1010010030, vx=VERTEX[0], vy=VERTEX[1], vz=VERTEX[2]),
        TruthParticle(200, pdg_code=3122, vx=0.5, vy=0.5, vz=0.0),
        TruthParticle(11, pdg_code=DEUTERON[2], vx=VERTEX[0], vy=VERTEX[1], vz=VERTEX[2], mother_id=100),
        TruthParticle(12, pdg_code=KAON[2], vx=VERTEX[0], vy=VERTEX[1], vz=VERTEX[2], mother_id=100),
        TruthParticle(13, pdg_code=PION[2], vx=VERTEX[0], vy=VERTEX[1], vz=VERTEX[2], mother_id=pion_mother),
    )


def _event(tracks, particles=None, vertex: EventVertex = PRIMARY) -> EventInput:
    return EventInput(
        event_id="evt-0",
        vertex=vertex,
        tracks=tuple(tracks),
        particles=_particles() if particles is None else particles,
        mc_vertex=EventVertex(0.0, 0.0, 0.0),
    )


def _triplet(**overrides):
    tracks = {"d": _track(DEUTERON), "k": _track(KAON), "pi": _track(PION)}
    tracks.update(overrides)
    return [tracks["d"], tracks["k"], tracks["pi"]]


NO_CUTS = SearchConfig(mag_field=0.0, cuts=disabled_cuts())


class TestCandidateSearch(unittest.TestCase):
    """Validate enumeration, skipping, classification, and bucket routing."""

    def _run(self, config: SearchConfig, event: EventInput):
        search = CandidateSearch(config)
        registry = search.make_registry(keep_candidates=True)
        return search.process_event(event, registry), registry

    def test_signal_triplet_without_cuts(self) -> None:
        stats, registry = self._run(NO_CUTS, _event(_triplet()))

        self.assertEqual(stats.species_counts, (1, 1, 1))
        self.assertEqual(stats.candidates, 1)
        self.assertEqual(stats.candidates_per_outer, {1: 1})
        self.assertEqual(registry.bucket_count(Category.SIGNAL, CutState.NO_CUT), 1)
        self.assertEqual(registry.bucket_count(Category.SIGNAL, CutState.PASSED), 1)
        self.assertEqual(registry.bucket_count(Category.SIGNAL, CutState.CUT), 0)
        self.assertEqual(registry.bucket_count(Category.BACKGROUND, CutState.NO_CUT), 0)

        cand = registry.candidates["sig"][0]
        self.assertEqual(cand.track_ids, (1, 2, 3))
        self.assertAlmostEqual(cand.decay_radius, 0.05, places=6)
        for got, want in zip(cand.secondary_vertex, VERTEX):
            self.assertAlmostEqual(got, want, places=6)
        self.assertEqual(registry.get("event/candperouter").entries, 1)
        self.assertEqual(registry.get("signocut/decayradiusReso").entries, 1)

    def test_radius_cut_routes_to_cut_bucket(self) -> None:
        config = dataclasses.replace(NO_CUTS, cuts=dataclasses.replace(disabled_cuts(), min_radius=0.1))
        stats, registry = self._run(config, _event(_triplet()))

        self.assertEqual(stats.cut, 1)
        self.assertEqual(stats.passed, 0)
        self.assertEqual(registry.bucket_count(Category.SIGNAL, CutState.NO_CUT), 1)
        self.assertEqual(registry.bucket_count(Category.SIGNAL, CutState.CUT), 1)
        self.assertEqual(registry.bucket_count(Category.SIGNAL, CutState.PASSED), 0)
        self.assertEqual(registry.candidates["sigcut"][0].failed_cuts, ("radius",))

    def test_inner_propagation_failure_skips_triplet(self) -> None:
        stats, registry = self._run(NO_CUTS, _event(_triplet(pi=_track(PION, offset=500.0))))

        self.assertEqual(stats.propagation_failures, 1)
        self.assertEqual(stats.candidates, 0)
        self.assertEqual(stats.candidates_per_outer, {1: 0})
        self.assertEqual(sum(registry.bucket_counts().values()), 0)
        self.assertEqual(registry.get("event/skips").bin_content(1), 1.0)

    def test_outer_propagation_failure_skips_outer_track(self) -> None:
        stats, registry = self._run(NO_CUTS, _event(_triplet(d=_track(DEUTERON, offset=500.0))))

        self.assertEqual(stats.propagation_failures, 1)
        self.assertEqual(stats.candidates_per_outer, {})
        self.assertEqual(registry.get("event/candperouter").entries, 0)

    def test_default_cuts_accept_and_mass_matches(self) -> None:
        tracks = _triplet()
        stats, registry = self._run(SearchConfig(mag_field=0.0), _event(tracks))

        self.assertEqual(stats.passed, 1)
        cand = registry.candidates["sig"][0]
        masses = [h.mass for h in SearchConfig().hypotheses]
        self.assertAlmostEqual(cand.mass, combine_kinematics(tracks, masses).mass, places=5)

    def test_track_identities_are_pairwise_distinct(self) -> None:
        pions = [
            _track((1, 11, 211, 0.3, 0.1, 0.5)),
            _track((2, 12, 211, 2.2, -0.2, -1.25)),
            _track((3, 13, 211, 4.0, 0.3, 2.0)),
        ]
        config = dataclasses.replace(NO_CUTS, species=(211, 211, 211))
        particles = tuple(
            TruthParticle(pid, pdg_code=211, mother_id=100) for pid in (11, 12, 13)
        ) + (TruthParticle(100, pdg_code=310),)
        stats, registry = self._run(config, _event(pions, particles))

        self.assertEqual(stats.candidates, 6)
        ids = [c.track_ids for c in registry.candidates["signocut"]]
        self.assertEqual(len(set(ids)), 6)
        for triplet in ids:
            self.assertEqual(len(set(triplet)), 3)
        self.assertEqual(stats.candidates_per_outer, {1: 2, 2: 2, 3: 2})

    def test_degenerate_covariance_skips_triplet(self) -> None:
        bad = _track(KAON, cov5=_cov5(scale=1.0, zy=2.0))
        with self.assertLogs("decaycomb", level="WARNING") as logs:
            stats, registry = self._run(NO_CUTS, _event(_triplet(k=bad)))

        self.assertEqual(len(logs.records), 1)
        self.assertIn("Track 2 (id 2) has issues", logs.records[0].getMessage())
        self.assertEqual(stats.degenerate_covariances, 1)
        self.assertEqual(stats.fit_failures, 0)
        self.assertEqual(stats.candidates, 0)
        self.assertEqual(stats.candidates_per_outer, {1: 0})
        self.assertEqual(registry.get("event/skips").bin_content(2), 1.0)

    def test_fit_failure_skips_triplet(self) -> None:
        parallel = [
            _track((1, 11, DEUTERON[2], 0.5, 0.1, 0.5), vertex=(0.0, 0.0, 0.0)),
            _track((2, 12, KAON[2], 0.5, 0.1, -1.25), vertex=(0.0, 0.2, 0.0)),
            _track((3, 13, PION[2], 0.5, 0.1, 2.0), vertex=(0.1, 0.0, 0.3)),
        ]
        stats, registry = self._run(NO_CUTS, _event(parallel))

        self.assertEqual(stats.fit_failures, 1)
        self.assertEqual(stats.candidates, 0)
        self.assertEqual(registry.get("event/skips").bin_content(3), 1.0)

    def test_different_mothers_are_background(self) -> None:
        stats, registry = self._run(NO_CUTS, _event(_triplet(), particles=_particles(pion_mother=200)))

        self.assertEqual(stats.signal, 0)
        self.assertEqual(registry.bucket_count(Category.BACKGROUND, CutState.NO_CUT), 1)
        self.assertEqual(registry.bucket_count(Category.BACKGROUND, CutState.PASSED), 1)
        self.assertEqual(registry.bucket_count(Category.SIGNAL, CutState.NO_CUT), 0)

    def test_event_with_few_vertex_contributors_is_rejected(self) -> None:
        event = _event(_triplet(), vertex=EventVertex(0.0, 0.0, 0.0, n_contributors=1))
        stats, registry = self._run(NO_CUTS, event)

        self.assertTrue(stats.rejected)
        self.assertEqual(stats.candidates, 0)
        self.assertEqual(registry.get("event/rejected").entries, 1)
        self.assertEqual(registry.get("event/multiplicity").entries, 1)

    def test_zero_min_vtx_contrib_searches_every_event(self) -> None:
        event = _event(_triplet(), vertex=EventVertex(0.0, 0.0, 0.0, n_contributors=1))
        stats, _ = self._run(dataclasses.replace(NO_CUTS, min_vtx_contrib=0), event)

        self.assertFalse(stats.rejected)
        self.assertEqual(stats.candidates, 1)

    def test_reference_vertex_prefers_mc_vertex(self) -> None:
        event = dataclasses.replace(_event(_triplet()), mc_vertex=EventVertex(0.01, 0.0, 0.0))
        self.assertEqual(CandidateSearch(NO_CUTS).reference_vertex(event).x, 0.01)
        config = dataclasses.replace(NO_CUTS, use_mc_vertex=False)
        self.assertEqual(CandidateSearch(config).reference_vertex(event).x, 0.0)


def _helix_track(params, bz: float, s: float = 3.0) -> TrackState:
    """Helix leaving `VERTEX`, referenced after a transverse path length `s`."""
    track_id, truth_id, _, phi, tgl, q_pt = params
    start = TrackState(
        track_id, x=VERTEX[0], y=VERTEX[1], z=VERTEX[2], phi=phi, tgl=tgl, signed_inv_pt=q_pt, cov5=_cov5()
    )
    x, y, z, phi_s = helix_position(start, bz, s)
    return TrackState(track_id, x=x, y=y, z=z, phi=phi_s, tgl=tgl, signed_inv_pt=q_pt, cov5=_cov5(), truth_id=truth_id)


class TestCandidateSearchInField(unittest.TestCase):
    """Curved tracks in the default 0.5 T field."""

    def test_signal_triplet_in_field_is_fitted_and_routed(self) -> None:
        config = SearchConfig(cuts=disabled_cuts())
        self.assertEqual(config.bz, 5.0)
        tracks = [
            _helix_track((1, 11, DEUTERON[2], 0.3, 0.1, 1.0), config.bz),
            _helix_track((2, 12, KAON[2], 2.2, -0.2, -2.0), config.bz),
            _helix_track((3, 13, PION[2], 4.0, 0.3, 3.0), config.bz),
        ]
        # Tracks bend visibly over the reference distance.
        self.assertGreater(abs(tracks[2].phi - 4.0), 1e-3)

        search = CandidateSearch(config)
        registry = search.make_registry(keep_candidates=True)
        stats = search.process_event(_event(tracks), registry)

        self.assertEqual(stats.propagation_failures, 0)
        self.assertEqual(stats.fit_failures, 0)
        self.assertEqual(stats.candidates, 1)
        self.assertEqual(registry.bucket_count(Category.SIGNAL, CutState.NO_CUT), 1)
        self.assertEqual(registry.bucket_count(Category.SIGNAL, CutState.PASSED), 1)
        cand = registry.candidates["sig"][0]
        self.assertLess(math.dist(cand.secondary_vertex, VERTEX), 5e-3)
        self.assertAlmostEqual(cand.decay_radius, 0.05, delta=5e-3)
        self.assertEqual(registry.get("sig/decayradiusReso").entries, 1)


if __name__ == "__main__":
    unittest.main()
