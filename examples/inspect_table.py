"""Utility script to inspect/plot table outputs produced by the candidate search."""

from __future__ import annotations

import argparse
from pathlib import Path


def _require_pandas():
    """Import pandas with an actionable error if not installed."""
    try:
        import pandas as pd  # type: ignore
    except ModuleNotFoundError as exc:
        raise ModuleNotFoundError(
            "pandas is required. Install with: pip install pandas pyarrow"
        ) from exc
    return pd


def load_table(path: str):
    """Load table data from parquet/csv/pickle into a pandas DataFrame."""
    pd = _require_pandas()
    p = Path(path)
    suffix = p.suffix.lower()
    if suffix == ".parquet":
        return pd.read_parquet(p)
    if suffix == ".csv":
        return pd.read_csv(p)
    if suffix in (".pkl", ".pickle"):
        return pd.read_pickle(p)
    raise ValueError("Supported input formats: .parquet, .csv, .pkl")


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint for quick inspection of candidate or histogram tables."""
    parser = argparse.ArgumentParser(description="Inspect decaycomb output tables.")
    parser.add_argument("--input", required=True, help="Path to .parquet/.csv/.pkl output.")
    parser.add_argument("--head", type=int, default=10, help="Rows to print.")
    parser.add_argument(
        "--observable",
        default="invmass",
        help="Observable to plot per bucket (histogram tables) or column (candidate tables).",
    )
    parser.add_argument("--plot", action="store_true", help="Save a png of the chosen observable per bucket.")
    args = parser.parse_args(argv)

    df = load_table(args.input)
    print(df.head(args.head).to_string(index=False))
    print(f"\nRows={len(df)}  Columns={len(df.columns)}")
    is_histogram_table = "histogram" in df.columns
    if not is_histogram_table and "bucket" in df.columns:
        print(df.groupby("bucket").size().to_string())

    if args.plot:
        try:
            import matplotlib.pyplot as plt  # type: ignore
        except ModuleNotFoundError:
            print("matplotlib not installed; skipping plot.")
            return 0
        out = Path(args.input).with_suffix(".png")
        fig, ax = plt.subplots()
        if is_histogram_table:
            for bucket in ("sig", "bkg"):
                sel = df[(df["histogram"] == f"{bucket}/{args.observable}") & ~df["label"].isin(["underflow", "overflow"])]
                ax.step(sel["center"], sel["content"], where="mid", label=bucket)
        else:
            for bucket, group in df.groupby("bucket"):
                ax.hist(group[args.observable], bins=50, histtype="step", label=bucket)
        ax.set_xlabel(args.observable)
        ax.legend()
        fig.tight_layout()
        fig.savefig(out, dpi=120)
        print(f"Saved plot: {out}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
