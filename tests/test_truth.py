"""Unit tests for signal/background truth classification."""

from __future__ import annotations

import unittest

from decaycomb import TrackState, TruthParticle, TruthStatus, classify
from decaycomb.truth import index_particles, resolve_mother


def _cov5(scale: float = 1e-4):
    return tuple(tuple(scale if i == j else 0.0 for j in range(5)) for i in range(5))


def _track(track_id: int, truth_id: int | None) -> TrackState:
    return TrackState(track_id, x=0.0, y=0.0, z=0.0, phi=0.0, tgl=0.0, signed_inv_pt=1.0, cov5=_cov5(), truth_id=truth_id)


def _particles(mother_of_pion: int = 100):
    """One mother (100) decaying to d K pi, plus an unrelated mother (200)."""
    return index_particles(
        [
            TruthParticle(100, pdg_code=4000010020, vx=0.03, vy=0.04, vz=0.0),
            TruthParticle(200, pdg_code=3122, vx=1.0, vy=1.0, vz=1.0),
            TruthParticle(1, pdg_code=1000010020, vx=0.03, vy=0.04, mother_id=100),
            TruthParticle(2, pdg_code=-321, vx=0.03, vy=0.04, mother_id=100),
            TruthParticle(3, pdg_code=211, vx=0.03, vy=0.04, mother_id=mother_of_pion),
            TruthParticle(4, pdg_code=211, mother_id=None),
        ]
    )


class TestClassify(unittest.TestCase):
    """Validate common-mother matching."""

    def test_three_tracks_with_common_mother_are_signal(self) -> None:
        match = classify(_track(10, 1), _track(11, 2), _track(12, 3), _particles())
        self.assertTrue(match.is_signal)
        self.assertEqual(match.status, TruthStatus.MATCHED)
        self.assertEqual(match.parent_vertex, (0.03, 0.04, 0.0))
        self.assertEqual(match.mother_ids, (100, 100, 100))

    def test_changing_one_mother_flips_to_background(self) -> None:
        match = classify(_track(10, 1), _track(11, 2), _track(12, 3), _particles(mother_of_pion=200))
        self.assertFalse(match.is_signal)
        self.assertEqual(match.status, TruthStatus.UNMATCHED)
        self.assertEqual(match.parent_vertex, (0.03, 0.04, 0.0))

    def test_missing_truth_link_is_background(self) -> None:
        match = classify(_track(10, 1), _track(11, None), _track(12, 3), _particles())
        self.assertFalse(match.is_signal)
        self.assertEqual(match.status, TruthStatus.NO_TRUTH)

    def test_particle_without_mother_is_background(self) -> None:
        match = classify(_track(10, 1), _track(11, 2), _track(12, 4), _particles())
        self.assertFalse(match.is_signal)
        self.assertEqual(match.status, TruthStatus.NO_TRUTH)

    def test_resolve_mother(self) -> None:
        particles = _particles()
        mother = resolve_mother(_track(10, 2), particles)
        assert mother is not None
        self.assertEqual(mother.particle_id, 100)
        self.assertIsNone(resolve_mother(_track(10, 999), particles))


if __name__ == "__main__":
    unittest.main()
