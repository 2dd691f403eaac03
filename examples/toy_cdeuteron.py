"""Synthetic c-deuteron -> d K- pi+ walkthrough.

This script does three steps:
1. Generate a toy event sample: a primary vertex with random d/K/pi tracks,
   and in a fraction of events one displaced three-body decay.
2. Run `CandidateSearch` on every event into one histogram registry.
3. Write the routed candidates and the filled histograms as tables.

Run from repository root:
    PYTHONPATH=src python3 examples/toy_cdeuteron.py --n-events 200
"""

from __future__ import annotations

import argparse
import json
import math
from pathlib import Path
from random import Random
from typing import Any

from decaycomb import CandidateSearch, SearchConfig, TrackState
from decaycomb.io import load_events_json, write_candidates_table, write_histograms_table
from decaycomb.physics import helix_position

MASS_CDEUTERON = 3.226
MASS_D = 1.8756129
MASS_K = 0.493677
MASS_PI = 0.13957

PDG_CDEUTERON = 4000010020
SPECIES = ((1000010020, MASS_D, 1), (-321, MASS_K, -1), (211, MASS_PI, 1))


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate toy c-deuteron events and run the candidate search.")
    parser.add_argument("--n-events", type=int, default=200, help="Number of events to generate.")
    parser.add_argument("--signal-fraction", type=float, default=0.3, help="Fraction of events with one decay.")
    parser.add_argument("--n-background", type=int, default=4, help="Random tracks per species and event.")
    parser.add_argument("--mag-field", type=float, default=0.5, help="Magnetic field in T.")
    parser.add_argument("--seed", type=int, default=2021, help="RNG seed for reproducibility.")
    parser.add_argument("--out-events", default="examples/output_cdeuteron_events.json")
    parser.add_argument("--out-candidates", default="examples/output_cdeuteron_candidates.parquet")
    parser.add_argument("--out-histograms", default="examples/output_cdeuteron_histograms.parquet")
    return parser.parse_args()


def random_unit_vector(rng: Random) -> tuple[float, float, float]:
    """Sample an isotropic 3D unit vector."""
    cos_theta = rng.uniform(-1.0, 1.0)
    sin_theta = math.sqrt(max(0.0, 1.0 - cos_theta * cos_theta))
    phi = rng.uniform(0.0, 2.0 * math.pi)
    return sin_theta * math.cos(phi), sin_theta * math.sin(phi), cos_theta


def two_body_momentum(parent_mass: float, m1: float, m2: float) -> float:
    term = (parent_mass**2 - (m1 + m2) ** 2) * (parent_mass**2 - (m1 - m2) ** 2)
    return math.sqrt(term) / (2.0 * parent_mass) if term > 0.0 else 0.0


def boost(p4: tuple[float, float, float, float], beta: tuple[float, float, float]) -> tuple[float, float, float, float]:
    """Boost `(E, px, py, pz)` by the velocity `beta`."""
    e, px, py, pz = p4
    bx, by, bz = beta
    b2 = bx * bx + by * by + bz * bz
    if b2 <= 0.0:
        return p4
    gamma = 1.0 / math.sqrt(max(1e-16, 1.0 - b2))
    bp = bx * px + by * py + bz * pz
    g2 = (gamma - 1.0) / b2
    return (
        gamma * (e + bp),
        px + g2 * bp * bx + gamma * e * bx,
        py + g2 * bp * by + gamma * e * by,
        pz + g2 * bp * bz + gamma * e * bz,
    )


def decay_two_body(parent_p4, m1: float, m2: float, rng: Random):
    """Isotropic two-body decay in the parent frame, returned in the lab frame."""
    e, px, py, pz = parent_p4
    mass = math.sqrt(max(0.0, e * e - px * px - py * py - pz * pz))
    p = two_body_momentum(mass, m1, m2)
    u = random_unit_vector(rng)
    d1 = (math.sqrt(m1 * m1 + p * p), p * u[0], p * u[1], p * u[2])
    d2 = (math.sqrt(m2 * m2 + p * p), -p * u[0], -p * u[1], -p * u[2])
    beta = (px / e, py / e, pz / e)
    return boost(d1, beta), boost(d2, beta)


def decay_three_body(parent_p4, rng: Random):
    """d K pi momenta from two sequential two-body decays with a flat K pi mass."""
    m_kpi = rng.uniform(MASS_K + MASS_PI, MASS_CDEUTERON - MASS_D)
    p_d, p_kpi = decay_two_body(parent_p4, MASS_D, m_kpi, rng)
    p_k, p_pi = decay_two_body(p_kpi, MASS_K, MASS_PI, rng)
    return p_d, p_k, p_pi


def _cov5(sigma: float) -> list[list[float]]:
    return [[sigma * sigma if i == j else 0.0 for j in range(5)] for i in range(5)]


def make_track_item(
    track_id: int,
    truth_id: int,
    origin: tuple[float, float, float],
    p4: tuple[float, float, float, float],
    charge: int,
    bz: float,
    rng: Random,
) -> dict[str, Any]:
    """Helix starting at `origin`, reported a short path downstream with position smearing."""
    _, px, py, pz = p4
    pt = max(math.hypot(px, py), 1e-3)
    start = TrackState(
        track_id,
        x=origin[0],
        y=origin[1],
        z=origin[2],
        phi=math.atan2(py, px),
        tgl=pz / pt,
        signed_inv_pt=charge / pt,
        cov5=tuple(tuple(row) for row in _cov5(1e-3)),
    )
    x, y, z, phi = helix_position(start, bz, rng.uniform(0.2, 1.0))
    return {
        "track_id": track_id,
        "x": x + rng.gauss(0.0, 1e-3),
        "y": y + rng.gauss(0.0, 1e-3),
        "z": z + rng.gauss(0.0, 1e-3),
        "phi": phi,
        "tgl": start.tgl,
        "signed_inv_pt": start.signed_inv_pt,
        "cov5": _cov5(1e-3),
        "truth_id": truth_id,
    }


def generate_event(idx: int, args: argparse.Namespace, rng: Random) -> dict[str, Any]:
    bz = args.mag_field * 10.0
    pv = (rng.gauss(0.0, 0.001), rng.gauss(0.0, 0.001), rng.gauss(0.0, 0.005))
    tracks: list[dict[str, Any]] = []
    particles: list[dict[str, Any]] = []

    for pdg, mass, charge in SPECIES:
        for _ in range(args.n_background):
            pid = len(particles) + 1
            u = random_unit_vector(rng)
            p = rng.expovariate(1.0 / 1.5)
            p4 = (math.sqrt(p * p + mass * mass), p * u[0], p * u[1], p * u[2])
            particles.append({"particle_id": pid, "pdg_code": pdg, "vx": pv[0], "vy": pv[1], "vz": pv[2]})
            tracks.append(make_track_item(len(tracks), pid, pv, p4, charge, bz, rng))

    if rng.random() < args.signal_fraction:
        mother_id = len(particles) + 1
        pt = rng.uniform(1.0, 8.0)
        eta = rng.uniform(-1.0, 1.0)
        phi = rng.uniform(0.0, 2.0 * math.pi)
        px, py, pz = pt * math.cos(phi), pt * math.sin(phi), pt * math.sinh(eta)
        e = math.sqrt(px * px + py * py + pz * pz + MASS_CDEUTERON**2)
        # Flight of a few tens of microns.
        flight = rng.expovariate(1.0 / 0.006) * math.sqrt(px * px + py * py + pz * pz) / MASS_CDEUTERON
        norm = math.sqrt(px * px + py * py + pz * pz)
        sv = (pv[0] + flight * px / norm, pv[1] + flight * py / norm, pv[2] + flight * pz / norm)
        particles.append({"particle_id": mother_id, "pdg_code": PDG_CDEUTERON, "vx": pv[0], "vy": pv[1], "vz": pv[2]})
        for (pdg, _, charge), p4 in zip(SPECIES, decay_three_body((e, px, py, pz), rng)):
            pid = len(particles) + 1
            particles.append(
                {"particle_id": pid, "pdg_code": pdg, "vx": sv[0], "vy": sv[1], "vz": sv[2], "mother_id": mother_id}
            )
            tracks.append(make_track_item(len(tracks), pid, sv, p4, charge, bz, rng))

    return {
        "event_id": f"evt{idx}",
        "vertex": {"x": pv[0], "y": pv[1], "z": pv[2], "n_contributors": len(tracks)},
        "mc_vertex": {"x": pv[0], "y": pv[1], "z": pv[2]},
        "tracks": tracks,
        "particles": particles,
    }


def main() -> int:
    """Generate events, run the search, and write output tables."""
    args = parse_args()
    rng = Random(args.seed)
    payload = {"events": [generate_event(i, args, rng) for i in range(args.n_events)]}
    events_path = Path(args.out_events)
    events_path.write_text(json.dumps(payload), encoding="utf-8")

    events = load_events_json(events_path)
    search = CandidateSearch(SearchConfig(mag_field=args.mag_field))
    registry = search.make_registry(keep_candidates=True)
    for event in events:
        search.process_event(event, registry)

    n_cands = write_candidates_table(args.out_candidates, registry)
    n_bins = write_histograms_table(args.out_histograms, registry)
    print(f"Buckets: {registry.bucket_counts()}")
    print(f"Wrote {n_cands} candidate rows to {args.out_candidates}")
    print(f"Wrote {n_bins} histogram bins to {args.out_histograms}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
