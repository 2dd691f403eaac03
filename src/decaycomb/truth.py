"""Truth matching of three-track candidates against generator particles."""

from __future__ import annotations

from typing import Mapping, Sequence

from .models import TrackState, TruthMatch, TruthParticle, TruthStatus


def index_particles(particles: Sequence[TruthParticle]) -> dict[int, TruthParticle]:
    """Index truth particles by id for repeated lookups within one event."""
    return {p.particle_id: p for p in particles}


def truth_particle(track: TrackState, particles: Mapping[int, TruthParticle]) -> TruthParticle | None:
    if track.truth_id is None:
        return None
    return particles.get(track.truth_id)


def resolve_mother(track: TrackState, particles: Mapping[int, TruthParticle]) -> TruthParticle | None:
    """Return the immediate mother of the track's truth particle, if any."""
    particle = truth_particle(track, particles)
    if particle is None or particle.mother_id is None:
        return None
    return particles.get(particle.mother_id)


def classify(
    track1: TrackState,
    track2: TrackState,
    track3: TrackState,
    particles: Mapping[int, TruthParticle],
) -> TruthMatch:
    """Decide whether three tracks descend from one common mother.

    Signal requires all three mothers to resolve to the same truth particle.
    A track without truth link (or whose mother is unknown) makes the triplet
    background with status `NO_TRUTH`.
    """
    mothers = [resolve_mother(t, particles) for t in (track1, track2, track3)]
    mother_ids = tuple(m.particle_id if m is not None else None for m in mothers)
    first = mothers[0]
    parent_vertex = (first.vx, first.vy, first.vz) if first is not None else None
    if any(m is None for m in mothers):
        return TruthMatch(
            is_signal=False,
            status=TruthStatus.NO_TRUTH,
            parent_vertex=parent_vertex,
            mother_ids=mother_ids,
        )
    is_signal = mother_ids[0] == mother_ids[1] == mother_ids[2]
    return TruthMatch(
        is_signal=is_signal,
        status=TruthStatus.MATCHED if is_signal else TruthStatus.UNMATCHED,
        parent_vertex=parent_vertex,
        mother_ids=mother_ids,
    )
