"""Combinatorial search for three-body decay candidates in one event."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Mapping, Sequence

from .config import SearchConfig
from .fitter import FitStatus, VertexFitAdapter
from .models import (
    Candidate,
    CutState,
    EventInput,
    EventVertex,
    Point3,
    TrackDCA,
    TrackState,
    TruthParticle,
)
from .physics import combine_kinematics, cosine_pointing_angle, decay_radius, propagate_to_dca
from .selection import failed_cuts
from .sink import AccumulationSink, HistogramRegistry
from .truth import classify, index_particles, truth_particle

LOGGER = logging.getLogger("decaycomb.search")


@dataclass
class SearchStats:
    """Per-event counters returned by `CandidateSearch.process_event`."""

    event_id: str
    n_tracks: int = 0
    species_counts: tuple[int, int, int] = (0, 0, 0)
    rejected: bool = False
    candidates: int = 0
    passed: int = 0
    cut: int = 0
    signal: int = 0
    propagation_failures: int = 0
    degenerate_covariances: int = 0
    fit_failures: int = 0
    candidates_per_outer: dict[int, int] = field(default_factory=dict)


@dataclass
class CandidateSearch:
    """Build, score, and route every (outer, middle, inner) track triplet.

    Workflow of `process_event`:
    1. Book event-level multiplicities and vertex positions.
    2. Split tracks by species into the three constituent roles.
    3. Loop outer x middle x inner with identity exclusion; tracks whose
       propagation to the event vertex fails are skipped.
    4. Classify the triplet against truth, check covariances, fit the
       secondary vertex (skips on failure are not counted as candidates).
    5. Compute kinematics, decay radius, CPA and the cut verdict, then route
       the candidate to the no-cut bucket and to either the cut or the
       passing bucket.
    """

    config: SearchConfig = field(default_factory=SearchConfig)

    def __post_init__(self) -> None:
        self.adapter = VertexFitAdapter(self.config.fitter_config())

    def make_registry(self, keep_candidates: bool = False) -> HistogramRegistry:
        """Return an empty registry with this run's configuration booked."""
        registry = HistogramRegistry(keep_candidates=keep_candidates)
        registry.book_config(self.config.summary())
        return registry

    def reference_vertex(self, event: EventInput) -> EventVertex:
        """Vertex the tracks are propagated to."""
        if self.config.use_mc_vertex and event.mc_vertex is not None:
            return event.mc_vertex
        return event.vertex

    def species_of(self, track: TrackState, particles: Mapping[int, TruthParticle]) -> int | None:
        """Track species: its own PDG code, else the code of its truth particle."""
        if track.pdg_code is not None:
            return track.pdg_code
        particle = truth_particle(track, particles)
        return particle.pdg_code if particle is not None else None

    def split_by_species(
        self, tracks: Sequence[TrackState], particles: Mapping[int, TruthParticle]
    ) -> tuple[list[TrackState], list[TrackState], list[TrackState]]:
        """Assign tracks to the outer, middle, and inner roles, keeping input order."""
        roles: tuple[list[TrackState], list[TrackState], list[TrackState]] = ([], [], [])
        for track in tracks:
            species = self.species_of(track, particles)
            for role, code in zip(roles, self.config.species, strict=True):
                if species == code:
                    role.append(track)
        return roles

    def process_event(self, event: EventInput, sink: AccumulationSink) -> SearchStats:
        """Run the candidate search on one event and fill `sink`."""
        cfg = self.config
        stats = SearchStats(event_id=event.event_id, n_tracks=len(event.tracks))
        particles = index_particles(event.particles)

        sink.fill("event/vtxX", event.vertex.x)
        sink.fill("event/vtxY", event.vertex.y)
        sink.fill("event/vtxZ", event.vertex.z)
        if event.mc_vertex is not None:
            sink.fill("event/mcvtxX", event.mc_vertex.x)
            sink.fill("event/mcvtxY", event.mc_vertex.y)
            sink.fill("event/mcvtxZ", event.mc_vertex.z)

        outer, middle, inner = self.split_by_species(event.tracks, particles)
        stats.species_counts = (len(outer), len(middle), len(inner))
        for species_bin, role in enumerate((outer, middle, inner), start=1):
            for _ in role:
                sink.fill("event/particles", species_bin)
        sink.fill("event/multiplicity", len(event.tracks))

        contributors = event.vertex.n_contributors
        if contributors is not None and contributors < cfg.min_vtx_contrib:
            LOGGER.warning(
                "Event %s rejected: %d vertex contributors (< %d).",
                event.event_id,
                contributors,
                cfg.min_vtx_contrib,
            )
            sink.fill("event/rejected", 0.5)
            stats.rejected = True
            return stats

        reference = self.reference_vertex(event)
        ref_point = reference.position
        dca_cache: dict[int, TrackDCA | None] = {}

        def dca_of(track: TrackState) -> TrackDCA | None:
            if track.track_id not in dca_cache:
                dca = propagate_to_dca(track, ref_point, cfg.bz, cfg.max_step)
                if dca is None:
                    LOGGER.debug("Track %s: propagation to the event vertex failed.", track.track_id)
                    stats.propagation_failures += 1
                    sink.fill("event/skips", 1)
                dca_cache[track.track_id] = dca
            return dca_cache[track.track_id]

        masses = tuple(h.mass for h in cfg.hypotheses)
        for track1 in outer:
            dca1 = dca_of(track1)
            if dca1 is None:
                continue
            n_candidates = 0
            for track2 in middle:
                if track2.track_id == track1.track_id:
                    continue
                dca2 = dca_of(track2)
                if dca2 is None:
                    continue
                for track3 in inner:
                    if track3.track_id in (track1.track_id, track2.track_id):
                        continue
                    dca3 = dca_of(track3)
                    if dca3 is None:
                        continue
                    candidate = self._score_triplet(
                        event, (track1, track2, track3), (dca1, dca2, dca3), masses, particles, ref_point, stats, sink
                    )
                    if candidate is None:
                        continue
                    n_candidates += 1
                    self._route(candidate, sink, stats)
            stats.candidates_per_outer[track1.track_id] = n_candidates
            sink.fill("event/candperouter", n_candidates)

        LOGGER.info(
            "Event %s: %d tracks, %d candidates (%d passed, %d signal), skips: %d propagation, %d covariance, %d fit.",
            event.event_id,
            stats.n_tracks,
            stats.candidates,
            stats.passed,
            stats.signal,
            stats.propagation_failures,
            stats.degenerate_covariances,
            stats.fit_failures,
        )
        return stats

    def _score_triplet(
        self,
        event: EventInput,
        tracks: tuple[TrackState, TrackState, TrackState],
        dcas: tuple[TrackDCA, TrackDCA, TrackDCA],
        masses: tuple[float, ...],
        particles: Mapping[int, TruthParticle],
        ref_point: Point3,
        stats: SearchStats,
        sink: AccumulationSink,
    ) -> Candidate | None:
        """Fit and score one triplet; `None` when the triplet must be skipped."""
        track1, track2, track3 = tracks
        truth = classify(track1, track2, track3, particles)

        fit = self.adapter.fit(track1, track2, track3)
        if fit is None and self.adapter.status is FitStatus.DEGENERATE_COVARIANCE:
            stats.degenerate_covariances += 1
            sink.fill("event/skips", 2)
            return None
        if fit is None:
            LOGGER.debug("Triplet %s: vertex fit failed.", tuple(t.track_id for t in tracks))
            stats.fit_failures += 1
            sink.fill("event/skips", 3)
            return None

        kinematics = combine_kinematics(tracks, masses)
        secondary = fit.vertex
        radius = decay_radius(secondary)
        cpa = cosine_pointing_angle(secondary, ref_point, kinematics.momentum)
        failed = failed_cuts(
            self.config.cuts,
            dcas[0],
            dcas[1],
            dcas[2],
            pt2=track2.pt,
            pt3=track3.pt,
            decay_radius=radius,
            cpa=cpa,
            mom_pt=kinematics.pt,
        )
        return Candidate(
            track_ids=(track1.track_id, track2.track_id, track3.track_id),
            dcas=dcas,
            track_pts=(track1.pt, track2.pt, track3.pt),
            secondary_vertex=secondary,
            kinematics=kinematics,
            decay_radius=radius,
            cpa=cpa,
            decay_dcas=fit.decay_dcas,
            truth=truth,
            failed_cuts=failed,
            radius3xy=self._production_radius_xy(event, track3, particles),
            event_id=event.event_id,
        )

    @staticmethod
    def _production_radius_xy(
        event: EventInput, track: TrackState, particles: Mapping[int, TruthParticle]
    ) -> float | None:
        """True production radius in xy of `track` relative to the generated vertex."""
        particle = truth_particle(track, particles)
        if particle is None:
            return None
        origin = event.mc_vertex if event.mc_vertex is not None else event.vertex
        return math.hypot(particle.vx - origin.x, particle.vy - origin.y)

    @staticmethod
    def _route(candidate: Candidate, sink: AccumulationSink, stats: SearchStats) -> None:
        category = candidate.category
        sink.fill_candidate(category, CutState.NO_CUT, candidate)
        stats.candidates += 1
        if candidate.is_signal:
            stats.signal += 1
        if candidate.is_cut:
            sink.fill_candidate(category, CutState.CUT, candidate)
            stats.cut += 1
        else:
            sink.fill_candidate(category, CutState.PASSED, candidate)
            stats.passed += 1
