"""Three-prong secondary-vertex fitter and the adapter used by the search.

`DCAFitter` is the numerical engine: it is configured once, fed three tracks
through `process`, and queried afterwards like a stateful fitter.
`VertexFitAdapter` wraps it with the covariance health check and returns an
immutable `VertexFitResult` (or `None` on failure).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from .config import FitterConfig
from .models import Point3, TrackState
from .physics import distance3, propagate_to_point, solve_3x3

LOGGER = logging.getLogger("decaycomb.fitter")

N_PRONGS = 3


@dataclass(frozen=True)
class VertexFitResult:
    """Outputs of one successful three-prong fit."""

    vertex: Point3
    chi2: float
    track_chi2: tuple[float, ...]
    tracks: tuple[TrackState, ...]
    n_iterations: int

    @property
    def decay_dcas(self) -> tuple[float, float]:
        """Square roots of the first two per-track chi2 values."""
        return math.sqrt(self.track_chi2[0]), math.sqrt(self.track_chi2[1])


class DCAFitter:
    """Iterative fitter for the common point of closest approach of three tracks.

    Workflow of `process`:
    1. Seed the vertex from the least-squares crossing of the track tangents.
    2. Reject seeds whose per-track z spread exceeds `max_dz_ini`.
    3. Alternate between moving each track to its PCA to the current vertex
       and re-estimating the vertex from these PCAs (plain mean when
       `use_abs_dca`, otherwise error-weighted).
    4. Stop once the vertex moves less than `min_param_change` or the chi2
       improves by less than the `min_rel_chi2_change` ratio.
    5. Reject vertices outside `max_r` (transverse) or above `max_chi2`.
    """

    def __init__(self, config: FitterConfig) -> None:
        self.config = config
        self._result: VertexFitResult | None = None

    def process(self, *tracks: TrackState) -> int:
        """Fit the tracks and return the number of vertex candidates found (0 or 1)."""
        if len(tracks) != N_PRONGS:
            raise ValueError(f"DCAFitter expects {N_PRONGS} tracks, got {len(tracks)}.")
        self._result = self._fit(tracks)
        return 0 if self._result is None else 1

    @property
    def result(self) -> VertexFitResult | None:
        return self._result

    def get_pca_candidate(self) -> Point3:
        return self._require_result().vertex

    def get_chi2_at_pca_candidate(self, index: int) -> float:
        """Chi2 contribution of track `index` at the fitted vertex."""
        return self._require_result().track_chi2[index]

    def get_track(self, index: int) -> TrackState:
        return self._require_result().tracks[index]

    def _require_result(self) -> VertexFitResult:
        if self._result is None:
            raise ValueError("No vertex candidate available; process() did not converge.")
        return self._result

    def _fit(self, tracks: Sequence[TrackState]) -> VertexFitResult | None:
        cfg = self.config
        vertex = self._seed(tracks)
        if vertex is None:
            LOGGER.debug("No seed: track tangents are parallel.")
            return None
        pcas = self._pcas(tracks, vertex)
        if pcas is None:
            return None
        z_values = [t.z for t in pcas]
        if max(z_values) - min(z_values) > cfg.max_dz_ini:
            LOGGER.debug("Seed rejected: dz spread %.3g above %.3g.", max(z_values) - min(z_values), cfg.max_dz_ini)
            return None
        chi2 = sum(self._track_chi2(t, vertex) for t in pcas)

        n_iterations = 0
        converged = False
        while n_iterations < cfg.max_iterations:
            n_iterations += 1
            new_vertex = self._estimate_vertex(pcas)
            new_pcas = self._pcas(tracks, new_vertex)
            if new_pcas is None:
                return None
            new_chi2 = sum(self._track_chi2(t, new_vertex) for t in new_pcas)
            change = distance3(new_vertex, vertex)
            vertex, pcas = new_vertex, new_pcas
            # chi2 ratio criterion: stop once an iteration no longer improves enough.
            converged = change < cfg.min_param_change or new_chi2 > chi2 * cfg.min_rel_chi2_change
            chi2 = new_chi2
            if converged:
                break
        if not converged:
            LOGGER.debug("Fit did not converge in %d iterations.", cfg.max_iterations)
            return None
        if not all(math.isfinite(v) for v in vertex) or not math.isfinite(chi2):
            return None
        if math.hypot(vertex[0], vertex[1]) > cfg.max_r:
            LOGGER.debug("Vertex at r=%.4g outside max_r=%.4g.", math.hypot(vertex[0], vertex[1]), cfg.max_r)
            return None
        if chi2 > cfg.max_chi2:
            return None

        track_chi2 = tuple(self._track_chi2(t, vertex) for t in pcas)
        fitted_tracks = tuple(pcas) if cfg.propagate_to_pca else tuple(tracks)
        return VertexFitResult(
            vertex=vertex,
            chi2=chi2,
            track_chi2=track_chi2,
            tracks=fitted_tracks,
            n_iterations=n_iterations,
        )

    @staticmethod
    def _seed(tracks: Sequence[TrackState]) -> Point3 | None:
        # Normal equations for the point minimizing the summed squared
        # distance to the tangent lines: sum(I - u u^T) v = sum(I - u u^T) r.
        ata = [[0.0, 0.0, 0.0], [0.0, 0.0, 0.0], [0.0, 0.0, 0.0]]
        atb = [0.0, 0.0, 0.0]
        for t in tracks:
            u = t.direction()
            r = (t.x, t.y, t.z)
            for i in range(3):
                for j in range(3):
                    proj = (1.0 if i == j else 0.0) - u[i] * u[j]
                    ata[i][j] += proj
                    atb[i] += proj * r[j]
        return solve_3x3(ata, atb)

    def _pcas(self, tracks: Sequence[TrackState], vertex: Point3) -> list[TrackState] | None:
        out: list[TrackState] = []
        for t in tracks:
            moved = propagate_to_point(t, vertex, self.config.bz)
            if moved is None:
                return None
            out.append(moved)
        return out

    def _estimate_vertex(self, pcas: Sequence[TrackState]) -> Point3:
        if self.config.use_abs_dca:
            n = float(len(pcas))
            return (
                sum(t.x for t in pcas) / n,
                sum(t.y for t in pcas) / n,
                sum(t.z for t in pcas) / n,
            )
        w_xy = [1.0 / t.sigma_y2 for t in pcas]
        w_z = [1.0 / t.sigma_z2 for t in pcas]
        return (
            sum(w * t.x for w, t in zip(w_xy, pcas)) / sum(w_xy),
            sum(w * t.y for w, t in zip(w_xy, pcas)) / sum(w_xy),
            sum(w * t.z for w, t in zip(w_z, pcas)) / sum(w_z),
        )

    def _track_chi2(self, pca: TrackState, vertex: Point3) -> float:
        dx = pca.x - vertex[0]
        dy = pca.y - vertex[1]
        dz = pca.z - vertex[2]
        if self.config.use_abs_dca:
            return dx * dx + dy * dy + dz * dz
        return (dx * dx + dy * dy) / pca.sigma_y2 + (dz * dz) / pca.sigma_z2


def has_valid_covariance(track: TrackState) -> bool:
    """True when the (y, z) position block of the covariance is positive definite."""
    det = track.sigma_y2 * track.sigma_z2 - track.sigma_zy * track.sigma_zy
    return det > 0.0 and track.sigma_y2 > 0.0


class FitStatus(Enum):
    """Outcome of the last `VertexFitAdapter.fit` call."""

    OK = "ok"
    DEGENERATE_COVARIANCE = "degenerate_covariance"
    NO_VERTEX = "no_vertex"


class VertexFitAdapter:
    """Covariance-checked entry point to `DCAFitter` for the candidate search.

    After each `fit`, `status` tells why a `None` result was returned and
    `degenerate_track` holds the 1-based position of the offending track.
    """

    def __init__(self, config: FitterConfig) -> None:
        self.config = config
        self.fitter = DCAFitter(config)
        self.status = FitStatus.OK
        self.degenerate_track: int | None = None

    def fit(self, track_a: TrackState, track_b: TrackState, track_c: TrackState) -> VertexFitResult | None:
        """Fit the common vertex of three tracks.

        Degenerate inputs are rejected before the engine is called.
        """
        self.degenerate_track = None
        for position, track in enumerate((track_a, track_b, track_c), start=1):
            if not has_valid_covariance(track):
                LOGGER.warning("Track %d (id %s) has issues: degenerate covariance.", position, track.track_id)
                self.status = FitStatus.DEGENERATE_COVARIANCE
                self.degenerate_track = position
                return None
        if self.fitter.process(track_a, track_b, track_c) == 0:
            self.status = FitStatus.NO_VERTEX
            return None
        self.status = FitStatus.OK
        return self.fitter.result
