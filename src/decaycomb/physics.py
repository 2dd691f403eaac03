"""Physics/math helpers for propagating tracks and scoring three-body candidates."""

from __future__ import annotations

import math
from typing import Iterable, Sequence

from .models import Kinematics, LorentzVector, Point3, TrackDCA, TrackState

# Curvature conversion: GeV/c per (kG * cm).
B2C = 0.299792458e-3
# Below this curvature (1/cm) a track is treated as a straight line.
MIN_CURVATURE = 1e-12
# Relative pivot size below which a linear system is treated as singular.
SINGULAR_PIVOT = 1e-9


def curvature(track: TrackState, bz: float) -> float:
    """Signed transverse curvature `dphi/ds` (1/cm); positive is counter-clockwise."""
    return -track.signed_inv_pt * bz * B2C


def helix_position(track: TrackState, bz: float, s: float) -> tuple[float, float, float, float]:
    """Return `(x, y, z, phi)` after a transverse path length `s` along the helix."""
    k = curvature(track, bz)
    if abs(k) < MIN_CURVATURE:
        x = track.x + s * math.cos(track.phi)
        y = track.y + s * math.sin(track.phi)
        phi = track.phi
    else:
        phi = track.phi + k * s
        x = track.x + (math.sin(phi) - math.sin(track.phi)) / k
        y = track.y - (math.cos(phi) - math.cos(track.phi)) / k
    z = track.z + track.tgl * s
    return x, y, z, phi


def pca_path_xy(track: TrackState, bz: float, point: Point3) -> float | None:
    """Signed transverse path length to the point of closest approach in xy.

    The shorter of the two arcs is taken. Returns `None` when the point sits
    on the helix axis, where every point of the circle is equally close.
    """
    k = curvature(track, bz)
    if abs(k) < MIN_CURVATURE:
        return (point[0] - track.x) * math.cos(track.phi) + (point[1] - track.y) * math.sin(track.phi)
    xc = track.x - math.sin(track.phi) / k
    yc = track.y + math.cos(track.phi) / k
    ux = point[0] - xc
    uy = point[1] - yc
    if math.hypot(ux, uy) * abs(k) < 1e-9:
        return None
    psi = math.atan2(uy, ux) + math.copysign(0.5 * math.pi, k)
    return math.remainder(psi - track.phi, 2.0 * math.pi) / k


def pca_path_3d(track: TrackState, bz: float, point: Point3, n_steps: int = 5) -> float | None:
    """Transverse path length to the 3D point of closest approach.

    Starts from the xy solution and refines it with Newton steps on the
    squared 3D distance.
    """
    s = pca_path_xy(track, bz, point)
    if s is None:
        return None
    k = curvature(track, bz)
    for _ in range(n_steps):
        x, y, z, phi = helix_position(track, bz, s)
        rx, ry, rz = x - point[0], y - point[1], z - point[2]
        tx, ty, tz = math.cos(phi), math.sin(phi), track.tgl
        grad = rx * tx + ry * ty + rz * tz
        hess = tx * tx + ty * ty + tz * tz + k * (-rx * ty + ry * tx)
        if hess <= 0.0:
            break
        step = grad / hess
        s -= step
        if abs(step) < 1e-12:
            break
    return s


def _path_within_budget(track: TrackState, s: float, max_step: float) -> bool:
    return abs(s) * math.sqrt(1.0 + track.tgl * track.tgl) <= max_step


def propagate_to_dca(
    track: TrackState,
    reference: Point3,
    bz: float,
    max_step: float,
) -> TrackDCA | None:
    """Propagate a track to its closest approach to `reference`.

    Returns the signed transverse DCA (projection of `pca - reference` on the
    left-hand normal of the momentum at the PCA) and the longitudinal DCA
    `z_pca - z_ref`. Returns `None` when the propagation cannot be done within
    `max_step` (3D path length) or the geometry is undefined.
    """
    values = (track.x, track.y, track.z, track.phi, track.tgl, track.signed_inv_pt, *reference)
    if not all(math.isfinite(v) for v in values):
        return None
    s = pca_path_xy(track, bz, reference)
    if s is None or not _path_within_budget(track, s, max_step):
        return None
    x, y, z, phi = helix_position(track, bz, s)
    dx = x - reference[0]
    dy = y - reference[1]
    transverse = -math.sin(phi) * dx + math.cos(phi) * dy
    longitudinal = z - reference[2]
    if not (math.isfinite(transverse) and math.isfinite(longitudinal)):
        return None
    return TrackDCA(transverse=transverse, longitudinal=longitudinal)


def propagate_to_point(
    track: TrackState,
    point: Point3,
    bz: float,
    max_step: float = math.inf,
) -> TrackState | None:
    """Return a copy of `track` re-referenced at its 3D PCA to `point`.

    The covariance is carried over unchanged.
    """
    s = pca_path_3d(track, bz, point)
    if s is None or not _path_within_budget(track, s, max_step):
        return None
    x, y, z, phi = helix_position(track, bz, s)
    return TrackState(
        track_id=track.track_id,
        x=x,
        y=y,
        z=z,
        phi=phi,
        tgl=track.tgl,
        signed_inv_pt=track.signed_inv_pt,
        cov5=track.cov5,
        truth_id=track.truth_id,
        pdg_code=track.pdg_code,
    )


def track_to_lorentz(track: TrackState, mass: float) -> LorentzVector:
    """Convert a track plus mass hypothesis into a Lorentz 4-vector."""
    return LorentzVector.from_pt_eta_phi_m(track.pt, track.eta, track.phi, mass)


def sum_lorentz(vectors: Iterable[LorentzVector]) -> LorentzVector:
    """Sum an iterable of Lorentz vectors."""
    total = LorentzVector(0.0, 0.0, 0.0, 0.0)
    for vec in vectors:
        total = total + vec
    return total


def combine_kinematics(tracks: Sequence[TrackState], masses: Sequence[float]) -> Kinematics:
    """Sum the 4-momenta of `tracks` under fixed mass hypotheses."""
    if len(tracks) != len(masses):
        raise ValueError("Mass list length must match track multiplicity.")
    p4 = sum_lorentz(track_to_lorentz(t, m) for t, m in zip(tracks, masses, strict=True))
    return Kinematics(p4=p4, mass=p4.mass, pt=p4.pt, p=p4.p)


def decay_radius(vertex: Point3) -> float:
    """Euclidean norm of the fitted secondary-vertex position."""
    return norm3(vertex)


def cosine_pointing_angle(vertex: Point3, reference: Point3, momentum: Point3) -> float:
    """Cosine of the angle between the flight direction and the momentum.

    Returns 0.0 when either vector has zero length.
    """
    flight = (vertex[0] - reference[0], vertex[1] - reference[1], vertex[2] - reference[2])
    length = norm3(flight)
    p = norm3(momentum)
    if length <= 0.0 or p <= 0.0:
        return 0.0
    return dot3(flight, momentum) / (length * p)


def distance3(a: Point3, b: Point3) -> float:
    return norm3((a[0] - b[0], a[1] - b[1], a[2] - b[2]))


def solve_3x3(a: list[list[float]], b: list[float]) -> tuple[float, float, float] | None:
    """Solve 3x3 linear system by Gaussian elimination with pivoting.

    Returns `None` when a pivot vanishes relative to the largest matrix
    element (singular or numerically rank-deficient system).
    """
    scale = max(abs(v) for row in a for v in row)
    if scale == 0.0 or not math.isfinite(scale):
        return None
    m = [row[:] + [rhs] for row, rhs in zip(a, b, strict=True)]
    n = 3
    for col in range(n):
        pivot = max(range(col, n), key=lambda r: abs(m[r][col]))
        if abs(m[pivot][col]) < SINGULAR_PIVOT * scale:
            return None
        if pivot != col:
            m[col], m[pivot] = m[pivot], m[col]
        p = m[col][col]
        for j in range(col, n + 1):
            m[col][j] /= p
        for r in range(n):
            if r == col:
                continue
            factor = m[r][col]
            for j in range(col, n + 1):
                m[r][j] -= factor * m[col][j]
    return m[0][3], m[1][3], m[2][3]


def dot3(a: tuple[float, float, float], b: tuple[float, float, float]) -> float:
    """3D dot product."""
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


def norm3(a: tuple[float, float, float]) -> float:
    """Euclidean norm of a 3D vector."""
    return math.sqrt(dot3(a, a))
