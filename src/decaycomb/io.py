"""Input/output helpers for JSON inputs and tabular result export."""

from __future__ import annotations

import json
import math
from dataclasses import fields
from pathlib import Path
from typing import Any

from .config import FitterConfig, SearchConfig, SelectionCuts
from .models import EventInput, EventVertex, ParticleHypothesis, TrackState, TruthParticle
from .pid import particle_hypothesis_from_name
from .sink import BUCKETS, HistogramRegistry

# camelCase keys of the reference analysis -> SelectionCuts / SearchConfig fields.
_LEGACY_CUT_KEYS = {
    "minRadius": "min_radius",
    "maxRadius": "max_radius",
    "minMomPt": "min_mom_pt",
    "minKaonPt": "min_kaon_pt",
    "minPionPt": "min_pion_pt",
    "minDca": "min_dca",
    "minDcaPion": "min_dca_second",
    "min_dca_pion": "min_dca_second",
    "maxDca": "max_dca",
    "minCpa": "min_cpa",
}
_LEGACY_SEARCH_KEYS = {
    "magField": "mag_field",
    "minVtxContrib": "min_vtx_contrib",
}


def load_events_json(path: str | Path) -> list[EventInput]:
    """Load multi-event input JSON into `EventInput` objects.

    Expected shape:
    {
      "events": [
        {"event_id": "...", "vertex": {...}, "mc_vertex": {...},
         "tracks": [...], "particles": [...]},
        ...
      ]
    }
    """
    data = _load_json(path)
    events_data = data.get("events")
    if not isinstance(events_data, list):
        raise ValueError("Events JSON must contain a list under key 'events'.")
    out: list[EventInput] = []
    for idx, event in enumerate(events_data):
        if not isinstance(event, dict):
            raise ValueError(f"Event entry at index {idx} must be an object.")
        event_id = str(event.get("event_id", f"evt{idx}"))
        tracks_data = event.get("tracks")
        if not isinstance(tracks_data, list):
            raise ValueError(f"Event '{event_id}' must contain a list under key 'tracks'.")
        if "vertex" not in event:
            raise ValueError(f"Event '{event_id}' must define a 'vertex' object.")
        particles_data = event.get("particles", [])
        if not isinstance(particles_data, list):
            raise ValueError(f"Event '{event_id}' key 'particles' must be a list.")
        tracks = tuple(
            _parse_track_item(item=track_item, idx=tidx, context=f"event '{event_id}'")
            for tidx, track_item in enumerate(tracks_data)
        )
        particles = tuple(
            _parse_particle_item(item=p_item, idx=pidx, context=f"event '{event_id}'")
            for pidx, p_item in enumerate(particles_data)
        )
        mc_vertex = event.get("mc_vertex")
        out.append(
            EventInput(
                event_id=event_id,
                vertex=_parse_vertex(event["vertex"], context=f"event '{event_id}'"),
                tracks=tracks,
                particles=particles,
                mc_vertex=None if mc_vertex is None else _parse_vertex(mc_vertex, context=f"event '{event_id}' mc"),
            )
        )
    return out


def load_config_json(path: str | Path) -> SearchConfig:
    """Load a `SearchConfig` from JSON.

    Cut thresholds may sit under `cuts` or at the top level; both snake_case
    names and the camelCase names of the reference analysis are accepted.
    Missing values keep their defaults.
    """
    return config_from_dict(_load_json(path))


def config_from_dict(data: dict[str, Any]) -> SearchConfig:
    """Build a `SearchConfig` from a plain mapping (see `load_config_json`)."""
    cut_names = {f.name for f in fields(SelectionCuts)}
    fitter_names = {f.name for f in fields(FitterConfig)}

    cuts_data: dict[str, float] = {}
    search_kwargs: dict[str, Any] = {}
    nested_cuts = data.get("cuts", {})
    if not isinstance(nested_cuts, dict):
        raise ValueError("Config key 'cuts' must be an object.")
    for key, value in [*data.items(), *nested_cuts.items()]:
        name = _LEGACY_CUT_KEYS.get(key, key)
        if name in cut_names:
            cuts_data[name] = float(value)
            continue
        name = _LEGACY_SEARCH_KEYS.get(key, key)
        if name in ("mag_field", "field_scale", "max_step"):
            search_kwargs[name] = float(value)
        elif name == "min_vtx_contrib":
            search_kwargs[name] = int(value)
        elif name == "use_mc_vertex":
            search_kwargs[name] = bool(value)
        elif name == "species":
            search_kwargs[name] = tuple(int(v) for v in value)
        elif name == "hypotheses":
            search_kwargs[name] = tuple(_parse_mass_entry(v) for v in value)
        elif name == "fitter":
            if not isinstance(value, dict):
                raise ValueError("Config key 'fitter' must be an object.")
            unknown = set(value) - fitter_names
            if unknown:
                raise ValueError(f"Unknown fitter settings: {', '.join(sorted(unknown))}.")
            search_kwargs[name] = FitterConfig(**value)
        elif name != "cuts":
            raise ValueError(f"Unknown configuration key '{key}'.")
    return SearchConfig(cuts=SelectionCuts(**cuts_data), **search_kwargs)


def write_candidates_table(path: str | Path, registry: HistogramRegistry) -> int:
    """Write routed candidates (one row per bucket entry) into Parquet/CSV/Pickle.

    Returns the number of rows written.
    """
    pd = _require_pandas()
    rows = _candidate_rows(registry)
    _write_frame(pd.DataFrame(rows), path)
    return len(rows)


def write_histograms_table(path: str | Path, registry: HistogramRegistry) -> int:
    """Write all non-empty histograms in long format (one row per bin)."""
    pd = _require_pandas()
    rows = _histogram_rows(registry)
    _write_frame(pd.DataFrame(rows), path)
    return len(rows)


def _write_frame(df: Any, path: str | Path) -> None:
    out = Path(path)
    suffix = out.suffix.lower()
    if suffix == ".parquet":
        df.to_parquet(out, index=False)
    elif suffix in (".pkl", ".pickle"):
        df.to_pickle(out)
    elif suffix == ".csv":
        df.to_csv(out, index=False)
    else:
        raise ValueError(
            f"Unsupported output format '{suffix}'. Use .parquet, .csv, or .pkl"
        )


def _candidate_rows(registry: HistogramRegistry) -> list[dict[str, Any]]:
    """Flatten kept candidates into DataFrame-ready row dictionaries."""
    rows: list[dict[str, Any]] = []
    for bucket in BUCKETS:
        for cand in registry.candidates[bucket]:
            row: dict[str, Any] = {
                "event_id": cand.event_id,
                "bucket": bucket,
                "trk1_id": cand.track_ids[0],
                "trk2_id": cand.track_ids[1],
                "trk3_id": cand.track_ids[2],
                "is_signal": cand.is_signal,
                "is_cut": cand.is_cut,
                "failed_cuts": ",".join(cand.failed_cuts),
                "truth_status": cand.truth.status.value,
                "vertex_x": cand.secondary_vertex[0],
                "vertex_y": cand.secondary_vertex[1],
                "vertex_z": cand.secondary_vertex[2],
                "px": cand.kinematics.p4.px,
                "py": cand.kinematics.p4.py,
                "pz": cand.kinematics.p4.pz,
                "energy": cand.kinematics.p4.e,
            }
            row.update(cand.observables())
            rows.append(row)
    return rows


def _histogram_rows(registry: HistogramRegistry) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for hist in registry.histograms():
        if hist.is_empty():
            continue
        for idx, center in enumerate(hist.bin_centers(), start=1):
            content = hist.bin_content(idx)
            if content == 0.0:
                continue
            rows.append(
                {
                    "histogram": hist.name,
                    "bin": idx,
                    "label": hist.bin_labels.get(idx, ""),
                    "center": center,
                    "content": content,
                }
            )
        for idx, label in ((0, "underflow"), (hist.axis.nbins + 1, "overflow")):
            content = hist.bin_content(idx)
            if content != 0.0:
                rows.append({"histogram": hist.name, "bin": idx, "label": label, "center": math.nan, "content": content})
    return rows


def _require_pandas():
    """Import pandas lazily and provide a clear installation hint on failure."""
    try:
        import pandas as pd  # type: ignore
    except ModuleNotFoundError as exc:
        raise ModuleNotFoundError(
            "pandas is required to write output tables. Install pandas and pyarrow."
        ) from exc
    return pd


def _parse_track_item(item: Any, idx: int, context: str) -> TrackState:
    """Parse one track dictionary into a `TrackState`."""
    if not isinstance(item, dict):
        raise ValueError(f"Track entry at index {idx} in {context} must be an object.")
    if "signed_inv_pt" in item:
        signed_inv_pt = float(item["signed_inv_pt"])
    elif "q_pt" in item:
        signed_inv_pt = float(item["q_pt"])
    else:
        raise ValueError(f"Track at index {idx} in {context} must define 'signed_inv_pt'.")
    truth_id = item.get("truth_id")
    pdg_code = item.get("pdg_code")
    return TrackState(
        track_id=int(item.get("track_id", idx)),
        x=float(item["x"]),
        y=float(item["y"]),
        z=float(item["z"]),
        phi=float(item["phi"]),
        tgl=float(item["tgl"]),
        signed_inv_pt=signed_inv_pt,
        cov5=_parse_cov5(item["cov5"]),
        truth_id=None if truth_id is None else int(truth_id),
        pdg_code=None if pdg_code is None else int(pdg_code),
    )


def _parse_particle_item(item: Any, idx: int, context: str) -> TruthParticle:
    """Parse one truth-particle dictionary into a `TruthParticle`."""
    if not isinstance(item, dict):
        raise ValueError(f"Particle entry at index {idx} in {context} must be an object.")
    mother_id = item.get("mother_id")
    return TruthParticle(
        particle_id=int(item.get("particle_id", idx)),
        pdg_code=int(item["pdg_code"]),
        vx=float(item.get("vx", 0.0)),
        vy=float(item.get("vy", 0.0)),
        vz=float(item.get("vz", 0.0)),
        mother_id=None if mother_id is None else int(mother_id),
    )


def _parse_vertex(item: Any, context: str) -> EventVertex:
    if not isinstance(item, dict):
        raise ValueError(f"Vertex in {context} must be an object.")
    n_contrib = item.get("n_contributors")
    return EventVertex(
        x=float(item["x"]),
        y=float(item["y"]),
        z=float(item["z"]),
        n_contributors=None if n_contrib is None else int(n_contrib),
    )


def _parse_mass_entry(entry: Any) -> ParticleHypothesis:
    """Parse one mass-hypothesis entry (name, number, or object)."""
    if isinstance(entry, (int, float)):
        mass = float(entry)
        return ParticleHypothesis(name=f"m={mass:g}", mass=mass)
    if isinstance(entry, str):
        return particle_hypothesis_from_name(entry)
    if isinstance(entry, dict):
        if "pid" in entry:
            return particle_hypothesis_from_name(str(entry["pid"]))
        if "mass" not in entry:
            raise ValueError("Mass hypothesis object must define 'mass' or 'pid'.")
        mass = float(entry["mass"])
        pdg_id = entry.get("pdg_id")
        return ParticleHypothesis(
            name=str(entry.get("name", f"m={mass:g}")),
            mass=mass,
            pdg_id=int(pdg_id) if pdg_id is not None else None,
        )
    raise ValueError(
        f"Unsupported mass hypothesis entry {entry!r}. Use number, string, or object."
    )


def _parse_cov5(value: Any):
    """Validate and convert a nested list into a 5x5 covariance tuple."""
    if not isinstance(value, list) or len(value) != 5:
        raise ValueError("Track cov5 must be a 5x5 list.")
    rows: list[tuple[float, float, float, float, float]] = []
    for row in value:
        if not isinstance(row, list) or len(row) != 5:
            raise ValueError("Track cov5 must be a 5x5 list.")
        rows.append(tuple(float(v) for v in row))  # type: ignore[arg-type]
    return (rows[0], rows[1], rows[2], rows[3], rows[4])


def _load_json(path: str | Path) -> dict[str, Any]:
    """Read and validate a JSON object document from disk."""
    raw = Path(path).read_text(encoding="utf-8")
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"JSON document at {path} must be an object.")
    return data
