"""Histogram-style accumulation sink for scored candidates and event bookkeeping.

The search only talks to the `AccumulationSink` protocol; `HistogramRegistry`
is the in-memory implementation. Bin contents live in numpy arrays with one
underflow and one overflow slot. All updates are additive, so registries
filled independently (for instance one per event) can be merged in any order.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from typing import Mapping, Protocol

import numpy as np

from .models import Candidate, Category, CutState


@dataclass(frozen=True)
class AxisSpec:
    """Fixed-width binning: `nbins` bins between `low` and `high`."""

    nbins: int
    low: float
    high: float
    title: str = ""

    @cached_property
    def edges(self) -> np.ndarray:
        return np.linspace(self.low, self.high, self.nbins + 1)

    def find_bin(self, value: float) -> int:
        """Return 0 for underflow, 1..nbins in range, nbins + 1 for overflow."""
        return int(np.searchsorted(self.edges, value, side="right"))

    def centers(self) -> np.ndarray:
        return 0.5 * (self.edges[:-1] + self.edges[1:])


AXIS_INV_MASS = AxisSpec(100, 2.5, 4.0, "Inv. Mass")
AXIS_DECAY_RADIUS = AxisSpec(2000, 0.0, 0.1, "Decay radius")
AXIS_DECAY_RADIUS_RESO = AxisSpec(2000, -0.01, 0.01, "Decay radius resolution")
AXIS_PROD_RADIUS_XY = AxisSpec(2000, 0.0, 0.01, "Production radius in xy")
AXIS_DCA = AxisSpec(5000, -0.01, 0.01, "DCA to secondary")
AXIS_DCA_XY = AxisSpec(5000, -0.05, 0.05, "DCA_{xy}")
AXIS_DCA_XY_PROD = AxisSpec(5000, -5e-6, 5e-6, "DCA_{xy} product")
AXIS_DCA_Z = AxisSpec(5000, -0.05, 0.05, "DCA_{z}")
AXIS_DCA_Z_PROD = AxisSpec(5000, -5e-6, 5e-6, "DCA_{z} product")
AXIS_PT = AxisSpec(100, 0.0, 10.0, "p_{T} (GeV/c)")
AXIS_VTX = AxisSpec(100, -0.1, 0.1, "Vtx")
AXIS_CPA = AxisSpec(4000, -1.1, 1.1, "CPA")

CANDIDATE_AXES: dict[str, AxisSpec] = {
    "cpa": AXIS_CPA,
    "invmass": AXIS_INV_MASS,
    "decayradius": AXIS_DECAY_RADIUS,
    "decayradiusResoX": AXIS_DECAY_RADIUS_RESO,
    "decayradiusResoY": AXIS_DECAY_RADIUS_RESO,
    "decayradiusResoZ": AXIS_DECAY_RADIUS_RESO,
    "decayradiusReso": AXIS_DECAY_RADIUS_RESO,
    "radius3xy": AXIS_PROD_RADIUS_XY,
    "decaydca0": AXIS_DCA,
    "decaydca1": AXIS_DCA,
    "dcaxy1": AXIS_DCA_XY,
    "dcaxy2": AXIS_DCA_XY,
    "dcaxy3": AXIS_DCA_XY,
    "dcaxy1xdcaxy2": AXIS_DCA_XY_PROD,
    "dcaxy3xdcaxy2": AXIS_DCA_XY_PROD,
    "dcaz1": AXIS_DCA_Z,
    "dcaz2": AXIS_DCA_Z,
    "dcaz3": AXIS_DCA_Z,
    "dcaz1xdcaz2": AXIS_DCA_Z_PROD,
    "dcaz3xdcaz2": AXIS_DCA_Z_PROD,
    "pt1": AXIS_PT,
    "pt2": AXIS_PT,
    "pt3": AXIS_PT,
    "ptmom": AXIS_PT,
    "pmom": AXIS_PT,
}

SPECIES_LABELS = ("d", "K", "#pi")
SKIP_LABELS = ("propagation", "covariance", "fit")

EVENT_AXES: dict[str, AxisSpec] = {
    "event/vtxX": AXIS_VTX,
    "event/vtxY": AXIS_VTX,
    "event/vtxZ": AXIS_VTX,
    "event/mcvtxX": AXIS_VTX,
    "event/mcvtxY": AXIS_VTX,
    "event/mcvtxZ": AXIS_VTX,
    "event/candperouter": AxisSpec(1000, 0.0, 10000.0, "candidates per outer track"),
    "event/particles": AxisSpec(3, 0.5, 3.5, "species"),
    "event/multiplicity": AxisSpec(1000, 0.0, 10000.0, "tracks"),
    "event/rejected": AxisSpec(1, 0.0, 1.0, "rejected events"),
    "event/skips": AxisSpec(3, 0.5, 3.5, "skipped triplets"),
}

CONFIG_HISTOGRAM = "event/cuts"


def bucket_name(category: Category, cut_state: CutState) -> str:
    """Directory name of one candidate bucket, e.g. `signocut` or `bkg`."""
    return f"{category.value}{cut_state.value}"


BUCKETS: tuple[str, ...] = tuple(bucket_name(c, s) for c in Category for s in CutState)


class AccumulationSink(Protocol):
    """What the candidate search needs from its output collaborator."""

    def fill(self, name: str, value: float, weight: float = 1.0) -> None:
        ...

    def fill_candidate(self, category: Category, cut_state: CutState, candidate: Candidate) -> None:
        ...


class Histogram1D:
    """Fixed-binning 1D histogram with under/overflow bins."""

    def __init__(self, name: str, axis: AxisSpec, additive: bool = True) -> None:
        self.name = name
        self.axis = axis
        self.additive = additive
        self.counts = np.zeros(axis.nbins + 2)
        self.entries = 0
        self.bin_labels: dict[int, str] = {}

    def fill(self, value, weight: float = 1.0) -> None:
        """Add `weight` to the bins holding `value` (scalar or array); NaN values are ignored."""
        values = np.atleast_1d(np.asarray(value, dtype=float))
        values = values[~np.isnan(values)]
        np.add.at(self.counts, np.searchsorted(self.axis.edges, values, side="right"), weight)
        self.entries += values.size

    def bin_content(self, index: int) -> float:
        return float(self.counts[index])

    def set_bin_content(self, index: int, value: float) -> None:
        self.counts[index] = value

    def set_bin_label(self, index: int, label: str) -> None:
        self.bin_labels[index] = label

    def integral(self) -> float:
        """Sum of the in-range bins."""
        return float(self.counts[1:-1].sum())

    def is_empty(self) -> bool:
        return self.entries == 0 and not self.counts.any()

    def add(self, other: "Histogram1D") -> None:
        if other.axis != self.axis:
            raise ValueError(f"Cannot add histogram '{other.name}' with a different binning to '{self.name}'.")
        if not self.additive:
            return
        self.counts += other.counts
        self.entries += other.entries

    def bin_centers(self) -> list[float]:
        return self.axis.centers().tolist()


class HistogramRegistry:
    """Named histograms for every candidate bucket plus event bookkeeping.

    With `keep_candidates=True` the routed `Candidate` objects are also kept
    per bucket so they can be exported as a table.
    """

    def __init__(self, keep_candidates: bool = False) -> None:
        self.keep_candidates = keep_candidates
        self._histograms: dict[str, Histogram1D] = {}
        self._bucket_counts: dict[str, int] = {bucket: 0 for bucket in BUCKETS}
        self.candidates: dict[str, list[Candidate]] = {bucket: [] for bucket in BUCKETS}
        for name, axis in EVENT_AXES.items():
            self.add(name, axis)
        for idx, label in enumerate(SPECIES_LABELS, start=1):
            self.get("event/particles").set_bin_label(idx, label)
        for idx, label in enumerate(SKIP_LABELS, start=1):
            self.get("event/skips").set_bin_label(idx, label)
        for bucket in BUCKETS:
            for observable, axis in CANDIDATE_AXES.items():
                self.add(f"{bucket}/{observable}", axis)

    def add(self, name: str, axis: AxisSpec, additive: bool = True) -> Histogram1D:
        if name in self._histograms:
            raise ValueError(f"Histogram '{name}' is already booked.")
        hist = Histogram1D(name, axis, additive=additive)
        self._histograms[name] = hist
        return hist

    def get(self, name: str) -> Histogram1D:
        try:
            return self._histograms[name]
        except KeyError as exc:
            raise ValueError(f"Unknown histogram '{name}'.") from exc

    def __contains__(self, name: object) -> bool:
        return name in self._histograms

    def names(self) -> list[str]:
        return list(self._histograms)

    def histograms(self) -> list[Histogram1D]:
        return list(self._histograms.values())

    def fill(self, name: str, value: float, weight: float = 1.0) -> None:
        self.get(name).fill(value, weight)

    def fill_candidate(self, category: Category, cut_state: CutState, candidate: Candidate) -> None:
        """Fill every observable of `candidate` into one bucket."""
        bucket = bucket_name(category, cut_state)
        for observable, value in candidate.observables().items():
            self.fill(f"{bucket}/{observable}", value)
        self._bucket_counts[bucket] += 1
        if self.keep_candidates:
            self.candidates[bucket].append(candidate)

    def bucket_count(self, category: Category, cut_state: CutState) -> int:
        return self._bucket_counts[bucket_name(category, cut_state)]

    def bucket_counts(self) -> dict[str, int]:
        return dict(self._bucket_counts)

    def book_config(self, summary: Mapping[str, float]) -> Histogram1D:
        """Store labelled configuration values in `event/cuts` (booked once)."""
        if CONFIG_HISTOGRAM in self._histograms:
            return self._histograms[CONFIG_HISTOGRAM]
        hist = self.add(CONFIG_HISTOGRAM, AxisSpec(max(len(summary), 1), 0.0, float(max(len(summary), 1))), additive=False)
        for idx, (label, value) in enumerate(summary.items(), start=1):
            hist.set_bin_label(idx, label)
            hist.set_bin_content(idx, value)
        return hist

    def merge(self, other: "HistogramRegistry") -> None:
        """Add the content of `other` into this registry."""
        for name, hist in other._histograms.items():
            if name not in self._histograms:
                mine = self.add(name, hist.axis, additive=hist.additive)
                mine.counts = hist.counts.copy()
                mine.entries = hist.entries
                mine.bin_labels = dict(hist.bin_labels)
                continue
            self._histograms[name].add(hist)
        for bucket, count in other._bucket_counts.items():
            self._bucket_counts[bucket] += count
        if self.keep_candidates:
            for bucket, cands in other.candidates.items():
                self.candidates[bucket].extend(cands)
