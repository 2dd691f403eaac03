"""Candidate-level cut evaluation.

Every clause is evaluated independently so a candidate rejected by one clause
still reports the full list of failures; nothing is short-circuited.
"""

from __future__ import annotations

from .config import SelectionCuts
from .models import TrackDCA


def _outside(value: float, low: float, high: float) -> bool:
    return value < low or value > high


def _dca_outside(dca: TrackDCA, low: float, high: float) -> bool:
    return _outside(abs(dca.transverse), low, high) or _outside(abs(dca.longitudinal), low, high)


def failed_cuts(
    cuts: SelectionCuts,
    dca1: TrackDCA,
    dca2: TrackDCA,
    dca3: TrackDCA,
    pt2: float,
    pt3: float,
    decay_radius: float,
    cpa: float,
    mom_pt: float,
) -> tuple[str, ...]:
    """Return the names of all clauses the candidate fails (empty if it passes)."""
    clauses = (
        ("dca1", _dca_outside(dca1, cuts.min_dca, cuts.max_dca)),
        ("dca2", _dca_outside(dca2, cuts.min_dca, cuts.max_dca)),
        ("dca3", _dca_outside(dca3, cuts.min_dca, cuts.max_dca)),
        (
            "dca2_min_second",
            abs(dca2.transverse) < cuts.min_dca_second or abs(dca2.longitudinal) < cuts.min_dca_second,
        ),
        ("pt2", pt2 < cuts.min_kaon_pt),
        ("pt3", pt3 < cuts.min_pion_pt),
        ("ptmom", mom_pt < cuts.min_mom_pt),
        ("radius", _outside(decay_radius, cuts.min_radius, cuts.max_radius)),
        ("cpa", abs(cpa) < cuts.min_cpa),
    )
    return tuple(name for name, failed in clauses if failed)


def evaluate_cuts(
    cuts: SelectionCuts,
    dca1: TrackDCA,
    dca2: TrackDCA,
    dca3: TrackDCA,
    pt2: float,
    pt3: float,
    decay_radius: float,
    cpa: float,
    mom_pt: float,
) -> bool:
    """True when the candidate fails at least one clause."""
    return bool(failed_cuts(cuts, dca1, dca2, dca3, pt2, pt3, decay_radius, cpa, mom_pt))
