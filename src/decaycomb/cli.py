"""Command-line interface for running the three-body candidate search."""

from __future__ import annotations

import argparse
import dataclasses
import logging

from .config import SearchConfig, disabled_cuts
from .io import load_config_json, load_events_json, write_candidates_table, write_histograms_table
from .search import CandidateSearch

LOGGER = logging.getLogger("decaycomb.cli")

# CLI flag destination -> SelectionCuts field.
_CUT_FLAGS = (
    "min_radius",
    "max_radius",
    "min_mom_pt",
    "min_kaon_pt",
    "min_pion_pt",
    "min_dca",
    "min_dca_second",
    "max_dca",
    "min_cpa",
)


def build_parser() -> argparse.ArgumentParser:
    """Define and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="decaycomb",
        description="Search three-body decay candidates, score them, and fill signal/background histograms.",
    )
    parser.add_argument("--events", required=True, help="Input JSON with key 'events'.")
    parser.add_argument("--config", default=None, help="Optional JSON configuration file.")
    parser.add_argument("--mag-field", type=float, default=None, help="Magnetic field in T (overrides config).")
    parser.add_argument("--min-radius", type=float, default=None, help="Minimum decay radius.")
    parser.add_argument("--max-radius", type=float, default=None, help="Maximum decay radius.")
    parser.add_argument("--min-mom-pt", type=float, default=None, help="Minimum pT of the mother.")
    parser.add_argument("--min-kaon-pt", type=float, default=None, help="Minimum pT of the second track.")
    parser.add_argument("--min-pion-pt", type=float, default=None, help="Minimum pT of the third track.")
    parser.add_argument("--min-dca", type=float, default=None, help="Minimum |DCA| of every track to the event vertex.")
    parser.add_argument(
        "--min-dca-second",
        type=float,
        default=None,
        help="Additional minimum |DCA| of the second track to the event vertex.",
    )
    parser.add_argument("--max-dca", type=float, default=None, help="Maximum |DCA| of every track to the event vertex.")
    parser.add_argument("--min-cpa", type=float, default=None, help="Minimum |cosine of pointing angle|.")
    parser.add_argument(
        "--no-cuts",
        action="store_true",
        help="Open every cut interval (applied before individual cut flags).",
    )
    parser.add_argument(
        "--candidates-out",
        default=None,
        help="Output table for routed candidates (.parquet, .csv, .pkl).",
    )
    parser.add_argument(
        "--histograms-out",
        default=None,
        help="Output table for filled histograms (.parquet, .csv, .pkl).",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors.")
    return parser


def build_config(args: argparse.Namespace) -> SearchConfig:
    """Merge the optional config file with command-line overrides."""
    config = load_config_json(args.config) if args.config else SearchConfig()
    cuts = disabled_cuts() if args.no_cuts else config.cuts
    overrides = {name: getattr(args, name) for name in _CUT_FLAGS if getattr(args, name) is not None}
    if overrides:
        cuts = dataclasses.replace(cuts, **overrides)
    changes: dict[str, object] = {"cuts": cuts}
    if args.mag_field is not None:
        changes["mag_field"] = args.mag_field
    return dataclasses.replace(config, **changes)


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint: load inputs, run the search per event, write tables."""
    args = build_parser().parse_args(argv)
    level = logging.DEBUG if args.verbose else logging.WARNING if args.quiet else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    config = build_config(args)
    events = load_events_json(args.events)
    LOGGER.info("Loaded %d events from %s", len(events), args.events)

    search = CandidateSearch(config=config)
    registry = search.make_registry(keep_candidates=args.candidates_out is not None)
    n_candidates = 0
    for event in events:
        stats = search.process_event(event, registry)
        n_candidates += stats.candidates
    LOGGER.info("Processed %d events, %d candidates; buckets: %s", len(events), n_candidates, registry.bucket_counts())

    if args.candidates_out:
        n_rows = write_candidates_table(args.candidates_out, registry)
        LOGGER.info("Wrote %d candidate rows to %s", n_rows, args.candidates_out)
    if args.histograms_out:
        n_rows = write_histograms_table(args.histograms_out, registry)
        LOGGER.info("Wrote %d histogram bins to %s", n_rows, args.histograms_out)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
