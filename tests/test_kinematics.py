"""Unit tests for candidate kinematics and geometric observables."""

from __future__ import annotations

import math
import unittest

from decaycomb import (
    LorentzVector,
    TrackState,
    combine_kinematics,
    cosine_pointing_angle,
    decay_radius,
    make_deuteron,
    make_kaon,
    make_pion,
    particle_hypothesis_from_name,
    pid,
)


def _cov5(scale: float = 1e-4):
    return tuple(tuple(scale if i == j else 0.0 for j in range(5)) for i in range(5))


def _track(track_id: int, phi: float, tgl: float, q_pt: float) -> TrackState:
    return TrackState(track_id, x=0.0, y=0.0, z=0.0, phi=phi, tgl=tgl, signed_inv_pt=q_pt, cov5=_cov5())


def _analytic_p4(pt: float, tgl: float, phi: float, mass: float) -> tuple[float, float, float, float]:
    px = pt * math.cos(phi)
    py = pt * math.sin(phi)
    pz = pt * tgl
    return px, py, pz, math.sqrt(px * px + py * py + pz * pz + mass * mass)


class TestKinematics(unittest.TestCase):
    """Validate the three-track 4-momentum sum and derived observables."""

    def test_track_derived_quantities(self) -> None:
        track = _track(1, phi=0.4, tgl=math.sinh(0.8), q_pt=-0.5)
        self.assertAlmostEqual(track.pt, 2.0, places=12)
        self.assertAlmostEqual(track.eta, 0.8, places=12)
        self.assertEqual(track.charge, -1)

    def test_invariant_mass_matches_analytic_sum(self) -> None:
        tracks = [_track(1, 0.3, 0.1, 0.5), _track(2, 2.2, -0.2, -1.25), _track(3, 4.0, 0.3, 2.0)]
        masses = [make_deuteron().mass, make_kaon().mass, make_pion().mass]

        kin = combine_kinematics(tracks, masses)

        comps = [_analytic_p4(t.pt, t.tgl, t.phi, m) for t, m in zip(tracks, masses)]
        px, py, pz, e = (sum(c[i] for c in comps) for i in range(4))
        self.assertAlmostEqual(kin.mass, math.sqrt(e * e - px * px - py * py - pz * pz), places=9)
        self.assertAlmostEqual(kin.pt, math.hypot(px, py), places=12)
        self.assertAlmostEqual(kin.p, math.sqrt(px * px + py * py + pz * pz), places=12)
        self.assertEqual(kin.momentum, (kin.p4.px, kin.p4.py, kin.p4.pz))

    def test_combination_is_idempotent(self) -> None:
        tracks = [_track(1, 0.3, 0.1, 0.5), _track(2, 2.2, -0.2, -1.25), _track(3, 4.0, 0.3, 2.0)]
        masses = [1.8756129, 0.493677, 0.139570]
        self.assertEqual(combine_kinematics(tracks, masses).mass, combine_kinematics(tracks, masses).mass)

    def test_mass_list_length_must_match(self) -> None:
        with self.assertRaises(ValueError):
            combine_kinematics([_track(1, 0.0, 0.0, 1.0)], [0.1, 0.2])

    def test_back_to_back_pair_mass(self) -> None:
        """Two massless back-to-back unit momenta give m = 2."""
        a = LorentzVector.from_pt_eta_phi_m(1.0, 0.0, 0.0, 0.0)
        b = LorentzVector.from_pt_eta_phi_m(1.0, 0.0, math.pi, 0.0)
        self.assertAlmostEqual((a + b).mass, 2.0, places=12)

    def test_decay_radius_and_pointing_angle(self) -> None:
        vertex = (0.03, 0.04, 0.0)
        self.assertAlmostEqual(decay_radius(vertex), 0.05, places=12)
        self.assertAlmostEqual(cosine_pointing_angle(vertex, (0.0, 0.0, 0.0), (3.0, 4.0, 0.0)), 1.0, places=12)
        self.assertAlmostEqual(cosine_pointing_angle(vertex, (0.0, 0.0, 0.0), (-3.0, -4.0, 0.0)), -1.0, places=12)
        self.assertAlmostEqual(cosine_pointing_angle(vertex, (0.0, 0.0, 0.0), (4.0, -3.0, 0.0)), 0.0, places=12)
        self.assertEqual(cosine_pointing_angle(vertex, vertex, (1.0, 0.0, 0.0)), 0.0)


class TestParticleHypotheses(unittest.TestCase):
    """Name lookup of mass hypotheses."""

    def test_decay_products_have_dedicated_makers(self) -> None:
        self.assertEqual([h.pdg_id for h in (make_deuteron(), make_kaon(), make_pion())], [1000010020, 321, 211])
        self.assertIs(particle_hypothesis_from_name("Kaon"), make_kaon())

    def test_other_species_resolve_by_name_only(self) -> None:
        self.assertAlmostEqual(particle_hypothesis_from_name("proton").mass, 0.93827208816, places=9)
        self.assertEqual(particle_hypothesis_from_name("mu").pdg_id, 13)
        self.assertEqual(particle_hypothesis_from_name("e").name, "e")
        for maker in ("make_proton", "make_muon", "make_electron"):
            self.assertFalse(hasattr(pid, maker))
        with self.assertRaises(ValueError):
            particle_hypothesis_from_name("triton")


if __name__ == "__main__":
    unittest.main()
