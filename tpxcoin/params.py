from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence

from .common.constants import (
    BACKGROUND_MODELS,
    BOUNDARY_POLICIES,
    GEOMETRIES,
    POISSON,
    REJECT,
)


@dataclass
class CoincidenceParams:
    """Options controlling a coincidence or kovariance analysis.

    Attributes:
        geometry: "cartesian" (x, y pixels) or "radial" (r); None infers it
                  from the electron table columns.
        bin_range: Bin edges. One edge sequence for radial, a pair for
                   cartesian; None uses the geometry default.
        simple_bg: Use the simple ratio subtraction instead of the
                   statistical estimator.
        boundary: "reject" raises on coordinates outside the bins,
                  "clamp" folds them into the first/last bin.
        background_model: Distribution used by the statistical estimator
                          ("poisson" or "binomial").
        ion_multiplicity: Count the electrons of a coincident shot once per
                          ion hit instead of once per shot.
        parallel: Run the background and measurement passes concurrently.
        kovariance_clamp: Clamp the kovariance result to >= 0; None keeps the
                          geometry default (cartesian clamps, radial does not).
    """

    geometry: Optional[str] = None
    bin_range: Optional[Sequence[Any]] = None
    simple_bg: bool = False
    boundary: str = REJECT
    background_model: str = POISSON
    ion_multiplicity: bool = False
    parallel: bool = True
    kovariance_clamp: Optional[bool] = None

    def __post_init__(self) -> None:
        if self.geometry is not None and self.geometry not in GEOMETRIES:
            raise ValueError(
                f"Unknown geometry '{self.geometry}'. Available: {list(GEOMETRIES)}"
            )
        if self.boundary not in BOUNDARY_POLICIES:
            raise ValueError(
                f"Unknown boundary policy '{self.boundary}'. "
                f"Available: {list(BOUNDARY_POLICIES)}"
            )
        if self.background_model not in BACKGROUND_MODELS:
            raise ValueError(
                f"Unknown background model '{self.background_model}'. "
                f"Available: {list(BACKGROUND_MODELS)}"
            )


__all__ = ["CoincidenceParams"]
