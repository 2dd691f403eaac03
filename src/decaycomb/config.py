"""Run-level configuration for the candidate search.

All objects are frozen: thresholds are supplied once at startup and are never
mutated by the search.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from .models import ParticleHypothesis
from .pid import PDG_DEUTERON, PDG_KAON, PDG_PION, make_deuteron, make_kaon, make_pion

# Tesla -> kGauss, the unit the helix curvature is expressed in.
TESLA_TO_KGAUSS = 10.0


@dataclass(frozen=True)
class FitterConfig:
    """Settings of the three-prong vertex fitter.

    The DCA and chi2 ceilings are set very large on purpose: rejection on
    these quantities is the job of `SelectionCuts`, not of the fitter.
    """

    bz: float = 5.0  # kG
    propagate_to_pca: bool = True
    max_r: float = 1.0
    min_param_change: float = 1e-3
    min_rel_chi2_change: float = 0.9
    max_dz_ini: float = 1e9
    max_chi2: float = 1e9
    use_abs_dca: bool = True
    max_iterations: int = 20


@dataclass(frozen=True)
class SelectionCuts:
    """Candidate-level thresholds evaluated by `selection.failed_cuts`.

    `min_dca_second` is an additional lower bound on both DCA components of
    the second (kaon-hypothesis) track. It is read from the legacy
    `min_dca_pion` key in configuration files.
    """

    min_radius: float = -100.0
    max_radius: float = 100.0
    min_mom_pt: float = -100.0
    min_kaon_pt: float = -100.0
    min_pion_pt: float = -100.0
    min_dca: float = -100.0
    min_dca_second: float = -100.0
    max_dca: float = 100.0
    min_cpa: float = 0.0


def disabled_cuts() -> SelectionCuts:
    """Return cuts with every interval opened to `[-inf, +inf]`."""
    return SelectionCuts(
        min_radius=-math.inf,
        max_radius=math.inf,
        min_mom_pt=-math.inf,
        min_kaon_pt=-math.inf,
        min_pion_pt=-math.inf,
        min_dca=-math.inf,
        min_dca_second=-math.inf,
        max_dca=math.inf,
        min_cpa=-math.inf,
    )


def _default_hypotheses() -> tuple[ParticleHypothesis, ParticleHypothesis, ParticleHypothesis]:
    return make_deuteron(), make_kaon(), make_pion()


@dataclass(frozen=True)
class SearchConfig:
    """Complete configuration of one candidate-search run.

    `min_vtx_contrib` is applied as an event selection: events whose vertex
    reports fewer contributors are not searched. The ALICE 3 c-deuteron task
    declares this threshold (and books it in its `event/cuts` summary) but
    never applies it, so its output corresponds to `min_vtx_contrib=0`.
    Events without contributor information are always searched.
    """

    mag_field: float = 0.5  # T
    field_scale: float = TESLA_TO_KGAUSS
    max_step: float = 100.0
    min_vtx_contrib: int = 3
    use_mc_vertex: bool = True
    hypotheses: tuple[ParticleHypothesis, ...] = field(default_factory=_default_hypotheses)
    species: tuple[int, ...] = (PDG_DEUTERON, -PDG_KAON, PDG_PION)
    cuts: SelectionCuts = field(default_factory=SelectionCuts)
    fitter: FitterConfig | None = None

    def __post_init__(self) -> None:
        if len(self.hypotheses) != 3:
            raise ValueError(f"Exactly three mass hypotheses are required, got {len(self.hypotheses)}.")
        if len(self.species) != 3:
            raise ValueError(f"Exactly three species codes are required, got {len(self.species)}.")
        if self.max_step <= 0.0:
            raise ValueError(f"max_step must be positive, got {self.max_step}.")

    @property
    def bz(self) -> float:
        """Magnetic field in the helix units (kG)."""
        return self.mag_field * self.field_scale

    def fitter_config(self) -> FitterConfig:
        """Return the explicit fitter settings or the reference ones for this field."""
        if self.fitter is not None:
            return self.fitter
        return FitterConfig(bz=self.bz)

    def summary(self) -> dict[str, float]:
        """Labelled configuration values, booked once into `event/cuts`."""
        return {
            "magField": self.mag_field,
            "minRadius": self.cuts.min_radius,
            "maxRadius": self.cuts.max_radius,
            "minMomPt": self.cuts.min_mom_pt,
            "minKaonPt": self.cuts.min_kaon_pt,
            "minPionPt": self.cuts.min_pion_pt,
            "minVtxContrib": float(self.min_vtx_contrib),
            "minDca": self.cuts.min_dca,
            "maxDca": self.cuts.max_dca,
            "minCpa": self.cuts.min_cpa,
        }
