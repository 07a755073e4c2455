from typing import Union

import numpy as np

from .coincidence import CoincidenceResult
from .kovariance import KovarianceResult

__all__ = ["summary_lines", "print_summary"]


def _rows(result: Union[CoincidenceResult, KovarianceResult]) -> list[tuple[str, str]]:
    spec = np.asarray(result.spectrum)
    if isinstance(result, CoincidenceResult):
        rows = [
            ("Shots with ion", f"{result.meas_shots}"),
            ("Shots without ion", f"{result.bg_shots}"),
            ("Shot span", f"{result.shot_span}"),
            ("Coincident hits", f"{int(result.measurement.sum())}"),
            ("Background hits", f"{int(result.background.sum())}"),
        ]
    else:
        rows = [
            ("Ion shots", f"{result.ion_shots}"),
            ("Electron shots", f"{result.electron_shots}"),
            ("Coincident shots", f"{result.meas_shots}"),
            ("Raw hits", f"{int(result.raw.sum())}"),
            ("Coincident hits", f"{int(result.measurement.sum())}"),
            ("Clamped", "yes" if result.clamped else "no"),
        ]
    rows += [
        ("Bins", " x ".join(str(n) for n in spec.shape)),
        ("Spectrum sum", f"{spec.sum():.6g}"),
        ("Spectrum min", f"{spec.min():.6g}" if spec.size else "n/a"),
        ("Spectrum max", f"{spec.max():.6g}" if spec.size else "n/a"),
    ]
    return rows


def summary_lines(result: Union[CoincidenceResult, KovarianceResult], table_format: str = "ascii") -> list[str]:
    """
    Returns the summary of a coincidence or kovariance result as a list of strings.
    """
    if isinstance(result, CoincidenceResult):
        title = f"Corrected coincidences ({result.geometry}, {result.estimator})"
    else:
        title = f"Kovariance ({result.geometry})"

    lines = []
    if table_format == "markdown":
        lines.append(f"### {title}")
        lines.append("")
        lines.append("| Quantity | Value |")
        lines.append("| :--- | :--- |")
        for name, value in _rows(result):
            lines.append(f"| {name} | `{value}` |")
    else:  # ascii
        lines.append("")
        lines.append("=" * 60)
        lines.append(title.upper())
        lines.append("-" * 60)
        for name, value in _rows(result):
            lines.append(f"{name:<20} | {value}")
        lines.append("=" * 60)
        lines.append("")
    return lines


def print_summary(result: Union[CoincidenceResult, KovarianceResult], table_format: str = "ascii") -> None:
    """
    Prints the summary table of a result to stdout.

    Args:
        result: Result returned by :class:`~tpxcoin.coincidence.CoincidenceAnalysis`.
        table_format (str): 'ascii' (default) or 'markdown'.
    """
    print("\n".join(summary_lines(result, table_format)))
