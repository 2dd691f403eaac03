"""Core data models used by the three-body candidate search.

This module defines:
- immutable per-event inputs (`TrackState`, `TruthParticle`, `EventVertex`, `EventInput`)
- particle-mass assignment objects (`ParticleHypothesis`)
- kinematic objects (`LorentzVector`, `Kinematics`)
- per-candidate outputs (`TrackDCA`, `TruthMatch`, `Candidate`)
- bucket enums used to route candidates (`Category`, `CutState`).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

Matrix2x2 = tuple[tuple[float, float], tuple[float, float]]
Matrix3x3 = tuple[tuple[float, float, float], tuple[float, float, float], tuple[float, float, float]]
Matrix5x5 = tuple[
    tuple[float, float, float, float, float],
    tuple[float, float, float, float, float],
    tuple[float, float, float, float, float],
    tuple[float, float, float, float, float],
    tuple[float, float, float, float, float],
]
Point3 = tuple[float, float, float]


@dataclass(frozen=True)
class TrackState:
    """Single reconstructed track as a helix at a global reference point.

    The state is parameterized at `(x, y, z)` (cm) as:
    `(phi, tgl=pz/pt, signed_inv_pt=q/pt)`.
    `cov5` stores the covariance for `(y, z, phi, tgl, q/pt)` where `y` is the
    transverse coordinate perpendicular to the momentum at the reference point.
    """

    track_id: int
    x: float
    y: float
    z: float
    phi: float
    tgl: float
    signed_inv_pt: float  # q/pt
    cov5: Matrix5x5
    truth_id: int | None = None
    pdg_code: int | None = None

    @property
    def pt(self) -> float:
        """Transverse momentum; infinite for a straight (zero-curvature) track."""
        if self.signed_inv_pt == 0.0:
            return math.inf
        return 1.0 / abs(self.signed_inv_pt)

    @property
    def eta(self) -> float:
        """Pseudorapidity from the dip angle."""
        return math.asinh(self.tgl)

    @property
    def charge(self) -> int:
        if self.signed_inv_pt > 0.0:
            return 1
        if self.signed_inv_pt < 0.0:
            return -1
        return 0

    @property
    def sigma_y2(self) -> float:
        return self.cov5[0][0]

    @property
    def sigma_zy(self) -> float:
        return self.cov5[1][0]

    @property
    def sigma_z2(self) -> float:
        return self.cov5[1][1]

    def direction(self) -> tuple[float, float, float]:
        """Return normalized 3D momentum direction at the reference point."""
        norm = math.sqrt(1.0 + self.tgl * self.tgl)
        return math.cos(self.phi) / norm, math.sin(self.phi) / norm, self.tgl / norm


@dataclass(frozen=True)
class TruthParticle:
    """Generated particle with production vertex and immediate mother."""

    particle_id: int
    pdg_code: int
    vx: float = 0.0
    vy: float = 0.0
    vz: float = 0.0
    mother_id: int | None = None


@dataclass(frozen=True)
class EventVertex:
    """Primary interaction point of one event."""

    x: float
    y: float
    z: float
    n_contributors: int | None = None

    @property
    def position(self) -> Point3:
        return self.x, self.y, self.z


@dataclass(frozen=True)
class EventInput:
    """One event payload: vertex, tracks, and (optionally) generator truth."""

    event_id: str
    vertex: EventVertex
    tracks: tuple[TrackState, ...]
    particles: tuple[TruthParticle, ...] = ()
    mc_vertex: EventVertex | None = None


@dataclass(frozen=True)
class ParticleHypothesis:
    """Named particle hypothesis used to derive mass-dependent observables."""

    name: str
    mass: float
    pdg_id: int | None = None


@dataclass(frozen=True)
class LorentzVector:
    """Simple 4-vector with convenience properties and addition."""

    px: float
    py: float
    pz: float
    e: float

    @classmethod
    def from_pt_eta_phi_m(cls, pt: float, eta: float, phi: float, mass: float) -> "LorentzVector":
        """Build a 4-vector from collider coordinates and a mass."""
        px = pt * math.cos(phi)
        py = pt * math.sin(phi)
        pz = pt * math.sinh(eta)
        energy = math.sqrt(px * px + py * py + pz * pz + mass * mass)
        return cls(px=px, py=py, pz=pz, e=energy)

    def __add__(self, other: "LorentzVector") -> "LorentzVector":
        """Component-wise 4-vector addition."""
        return LorentzVector(
            self.px + other.px,
            self.py + other.py,
            self.pz + other.pz,
            self.e + other.e,
        )

    @property
    def p2(self) -> float:
        """Squared 3-momentum magnitude."""
        return self.px * self.px + self.py * self.py + self.pz * self.pz

    @property
    def p(self) -> float:
        return math.sqrt(self.p2)

    @property
    def pt(self) -> float:
        return math.hypot(self.px, self.py)

    @property
    def mass2(self) -> float:
        """Invariant mass squared."""
        return self.e * self.e - self.p2

    @property
    def mass(self) -> float:
        """Invariant mass with signed handling for small negative mass2 values."""
        m2 = self.mass2
        return m2**0.5 if m2 >= 0.0 else -((-m2) ** 0.5)


@dataclass(frozen=True)
class TrackDCA:
    """Signed distance of closest approach of a track to a reference point."""

    transverse: float
    longitudinal: float

    def __iter__(self):
        yield self.transverse
        yield self.longitudinal


@dataclass(frozen=True)
class Kinematics:
    """Combined kinematics of a three-track system."""

    p4: LorentzVector
    mass: float
    pt: float
    p: float

    @property
    def momentum(self) -> Point3:
        return self.p4.px, self.p4.py, self.p4.pz


class TruthStatus(Enum):
    """Outcome of the truth lookup for a triplet."""

    MATCHED = "matched"
    UNMATCHED = "unmatched"
    NO_TRUTH = "no_truth"


@dataclass(frozen=True)
class TruthMatch:
    """Classifier output: signal flag plus the first track's mother vertex."""

    is_signal: bool
    status: TruthStatus
    parent_vertex: Point3 | None = None
    mother_ids: tuple[int | None, ...] = ()


class Category(Enum):
    SIGNAL = "sig"
    BACKGROUND = "bkg"


class CutState(Enum):
    """Selection bucket; `NO_CUT` receives every scored candidate."""

    NO_CUT = "nocut"
    CUT = "cut"
    PASSED = ""


@dataclass(frozen=True)
class Candidate:
    """One fully scored three-body candidate."""

    track_ids: tuple[int, int, int]
    dcas: tuple[TrackDCA, TrackDCA, TrackDCA]
    track_pts: tuple[float, float, float]
    secondary_vertex: Point3
    kinematics: Kinematics
    decay_radius: float
    cpa: float
    decay_dcas: tuple[float, float]
    truth: TruthMatch
    failed_cuts: tuple[str, ...]
    radius3xy: float | None = None
    event_id: str | None = None

    @property
    def is_signal(self) -> bool:
        return self.truth.is_signal

    @property
    def is_cut(self) -> bool:
        return bool(self.failed_cuts)

    @property
    def category(self) -> Category:
        return Category.SIGNAL if self.is_signal else Category.BACKGROUND

    @property
    def mass(self) -> float:
        return self.kinematics.mass

    def observables(self) -> dict[str, float]:
        """Flatten the candidate into named scalar observables.

        Truth-derived resolution observables are only present when the first
        track's mother production vertex is known.
        """
        d1, d2, d3 = self.dcas
        sv = self.secondary_vertex
        out = {
            "cpa": self.cpa,
            "invmass": self.kinematics.mass,
            "decayradius": self.decay_radius,
            "decaydca0": self.decay_dcas[0],
            "decaydca1": self.decay_dcas[1],
            "dcaxy1": d1.transverse,
            "dcaz1": d1.longitudinal,
            "dcaxy2": d2.transverse,
            "dcaz2": d2.longitudinal,
            "dcaxy3": d3.transverse,
            "dcaz3": d3.longitudinal,
            "dcaxy1xdcaxy2": d1.transverse * d2.transverse,
            "dcaz1xdcaz2": d1.longitudinal * d2.longitudinal,
            "dcaxy3xdcaxy2": d3.transverse * d2.transverse,
            "dcaz3xdcaz2": d3.longitudinal * d2.longitudinal,
            "pt1": self.track_pts[0],
            "pt2": self.track_pts[1],
            "pt3": self.track_pts[2],
            "ptmom": self.kinematics.pt,
            "pmom": self.kinematics.p,
        }
        pv = self.truth.parent_vertex
        if pv is not None:
            dx = sv[0] - pv[0]
            dy = sv[1] - pv[1]
            dz = sv[2] - pv[2]
            out["decayradiusResoX"] = dx
            out["decayradiusResoY"] = dy
            out["decayradiusResoZ"] = dz
            out["decayradiusReso"] = math.sqrt(dx * dx + dy * dy + dz * dz)
        if self.radius3xy is not None:
            out["radius3xy"] = self.radius3xy
        return out
