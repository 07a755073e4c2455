from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from pathlib import Path

import numpy as np
import yaml

from .coincidence import CoincidenceAnalysis, run_passes
from .common.constants import BACKGROUND_MODELS, BOUNDARY_POLICIES, GEOMETRIES
from .common.logging import get_logger
from .config import AnalysisConfig, load_config
from .errors import CoincidenceError
from .events import as_event_table
from .histogram import BinRange, resolve_bin_ranges
from .io import append_to_json, load_event_table, save_spectrum
from .reporting import print_summary


def _parse_bins(text: str) -> BinRange:
    """``START:STOP[:STEP]`` with inclusive stop."""
    parts = text.split(":")
    if len(parts) not in (2, 3):
        raise argparse.ArgumentTypeError(f"bins must look like START:STOP[:STEP], got '{text}'")
    try:
        values = [float(p) for p in parts]
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"non-numeric bins '{text}'") from exc
    return BinRange.from_range(*values)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tpxcoin",
        description="Background-corrected electron-ion coincidence spectra",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("electrons", type=Path, nargs="?", help="Electron hit table (.csv/.parquet)")
    common.add_argument("ions", type=Path, nargs="?", help="Ion hit table (.csv/.parquet)")
    common.add_argument("--config", type=Path, default=None, help="YAML run configuration")
    common.add_argument("--geometry", choices=GEOMETRIES, default=None)
    common.add_argument("--bins", type=_parse_bins, action="append", default=None,
                        help="START:STOP[:STEP] edges, once per axis (x then y for cartesian)")
    common.add_argument("--boundary", choices=BOUNDARY_POLICIES, default=None)
    common.add_argument("--ion-multiplicity", action="store_true", default=None, dest="ion_multiplicity",
                        help="Count coincident electrons once per ion hit")
    common.add_argument("--sort", action="store_true", help="Sort tables by shot after loading")
    common.add_argument("--out", type=Path, default=None, help="Output .npy/.npz path")
    common.add_argument("--summary-json", type=Path, default=None, dest="summary_json",
                        help="Append a run summary to this JSON list file")
    common.add_argument("--markdown", action="store_true", help="Print the summary as markdown")
    common.add_argument("-v", "--verbose", action="store_true")

    corr = sub.add_parser("corr-coin", parents=[common], help="Corrected coincidence spectrum")
    corr.add_argument("--simple-bg", action="store_true", default=None, dest="simple_bg")
    corr.add_argument("--background-model", choices=BACKGROUND_MODELS, default=None, dest="background_model")
    corr.add_argument("--serial", action="store_false", default=None, dest="parallel",
                      help="Run the two histogram passes one after the other")

    kov = sub.add_parser("kovariance", parents=[common], help="Kovariance spectrum")
    clamp = kov.add_mutually_exclusive_group()
    clamp.add_argument("--clamp", action="store_true", default=None, dest="kovariance_clamp")
    clamp.add_argument("--no-clamp", action="store_false", default=None, dest="kovariance_clamp")

    sub.add_parser("histogram", parents=[common], help="Background and coincident histograms only")
    return parser


def _merge(args: argparse.Namespace) -> AnalysisConfig:
    config = load_config(args.config) if args.config else AnalysisConfig()
    overrides = {}
    for name in ("geometry", "boundary", "ion_multiplicity", "simple_bg",
                 "background_model", "parallel", "kovariance_clamp"):
        value = getattr(args, name, None)
        if value is not None:
            overrides[name] = value
    if args.bins:
        overrides["bin_range"] = args.bins[0] if len(args.bins) == 1 else tuple(args.bins)
    params = dataclasses.replace(config.params, **overrides)
    return dataclasses.replace(
        config,
        params=params,
        electron_path=args.electrons or config.electron_path,
        ion_path=args.ions or config.ion_path,
        output_path=args.out or config.output_path,
    )


def main(argv: list[str] | None = None) -> int:
    """Entry point for the ``tpxcoin`` command."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    log = get_logger("tpxcoin.cli", level=logging.DEBUG if args.verbose else None)
    if args.verbose:
        logging.getLogger("tpxcoin").setLevel(logging.DEBUG)

    try:
        config = _merge(args)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        log.error(f"Invalid configuration: {exc}")
        return 2
    if config.electron_path is None or config.ion_path is None:
        parser.error("electron and ion tables are required (positionally or via --config)")

    try:
        electrons = load_event_table(config.electron_path, config.columns, sort=args.sort)
        ions = load_event_table(config.ion_path, config.columns, sort=args.sort)
        analysis = CoincidenceAnalysis(config.params)

        if args.command == "histogram":
            p = config.params
            ele = as_event_table(electrons, p.geometry, name="electrons")
            ion = as_event_table(ions, name="ions", with_coords=False)
            bins = resolve_bin_ranges(p.bin_range, ele.geometry)
            bg_shots, bg, meas_shots, meas = run_passes(
                ele, ion, bins, boundary=p.boundary,
                ion_multiplicity=p.ion_multiplicity, parallel=p.parallel,
            )
            print(f"shots without ion: {bg_shots}  ({int(bg.sum())} hits)")
            print(f"shots with ion:    {meas_shots}  ({int(meas.sum())} hits)")
            if config.output_path is not None:
                out = Path(config.output_path).with_suffix(".npz")
                out.parent.mkdir(parents=True, exist_ok=True)
                np.savez(out, background=bg, measurement=meas,
                         bg_shots=bg_shots, meas_shots=meas_shots)
                log.info(f"Saved histograms to {out}")
            if args.summary_json is not None:
                append_to_json({
                    "command": args.command,
                    "geometry": ele.geometry,
                    "bg_shots": bg_shots,
                    "meas_shots": meas_shots,
                    "background_hits": int(bg.sum()),
                    "measurement_hits": int(meas.sum()),
                    "electrons": config.electron_path,
                    "ions": config.ion_path,
                    "output": config.output_path,
                }, args.summary_json)
            return 0

        if args.command == "kovariance":
            result = analysis.kovariance(electrons, ions)
        else:
            result = analysis.run(electrons, ions)
    except (OSError, ValueError, CoincidenceError) as exc:
        log.error(f"{args.command} failed: {exc}")
        return 1

    print_summary(result, "markdown" if args.markdown else "ascii")
    if config.output_path is not None:
        save_spectrum(config.output_path, result.spectrum)
    if args.summary_json is not None:
        record = {
            k: v for k, v in dataclasses.asdict(result).items()
            if not isinstance(v, (np.ndarray, tuple))
        }
        record.update(
            command=args.command,
            electrons=config.electron_path,
            ions=config.ion_path,
            output=config.output_path,
            spectrum_sum=float(np.sum(result.spectrum)),
        )
        append_to_json(record, args.summary_json)
    return 0


if __name__ == "__main__":
    sys.exit(main())
