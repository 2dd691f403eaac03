"""Public package exports for the three-body decay candidate search."""

from .config import FitterConfig, SearchConfig, SelectionCuts, disabled_cuts
from .fitter import DCAFitter, FitStatus, VertexFitAdapter, VertexFitResult, has_valid_covariance
from .models import (
    Candidate,
    Category,
    CutState,
    EventInput,
    EventVertex,
    Kinematics,
    LorentzVector,
    ParticleHypothesis,
    TrackDCA,
    TrackState,
    TruthMatch,
    TruthParticle,
    TruthStatus,
)
from .physics import combine_kinematics, cosine_pointing_angle, decay_radius, propagate_to_dca
from .pid import (
    make_deuteron,
    make_kaon,
    make_pion,
    particle_hypothesis_from_name,
)
from .search import CandidateSearch, SearchStats
from .selection import evaluate_cuts, failed_cuts
from .sink import AccumulationSink, AxisSpec, Histogram1D, HistogramRegistry, bucket_name
from .truth import classify

__all__ = [
    "CandidateSearch",
    "SearchStats",
    "SearchConfig",
    "SelectionCuts",
    "FitterConfig",
    "disabled_cuts",
    "DCAFitter",
    "VertexFitAdapter",
    "VertexFitResult",
    "FitStatus",
    "has_valid_covariance",
    "TrackState",
    "TruthParticle",
    "EventVertex",
    "EventInput",
    "ParticleHypothesis",
    "LorentzVector",
    "Kinematics",
    "TrackDCA",
    "TruthMatch",
    "TruthStatus",
    "Candidate",
    "Category",
    "CutState",
    "propagate_to_dca",
    "combine_kinematics",
    "decay_radius",
    "cosine_pointing_angle",
    "classify",
    "failed_cuts",
    "evaluate_cuts",
    "AccumulationSink",
    "AxisSpec",
    "Histogram1D",
    "HistogramRegistry",
    "bucket_name",
    "make_deuteron",
    "make_kaon",
    "make_pion",
    "particle_hypothesis_from_name",
]
