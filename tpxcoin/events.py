"""Read-only views over electron and ion event tables."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from .common.constants import GEOMETRIES, GEOMETRY_COLUMNS, SHOT_COLUMN
from .errors import PreconditionError
from .matching import count_distinct_sorted

log = logging.getLogger(__name__)

__all__ = ["EventTable", "as_event_table", "infer_geometry"]


def _read_only(values) -> NDArray:
    view = np.asarray(values).view()
    view.flags.writeable = False
    return view


def infer_geometry(frame: pd.DataFrame) -> str:
    """Return the geometry whose coordinate columns are present in ``frame``."""
    for geometry in GEOMETRIES:
        if all(col in frame.columns for col in GEOMETRY_COLUMNS[geometry]):
            return geometry
    raise PreconditionError(
        f"Cannot infer geometry from columns {list(frame.columns)}; "
        f"expected one of {[list(c) for c in GEOMETRY_COLUMNS.values()]}"
    )


@dataclass(frozen=True, eq=False)
class EventTable:
    """Shot column plus coordinate columns of one detector's hits.

    Attributes:
        shot: Shot index per hit, sorted ascending.
        coords: Coordinate arrays in histogram axis order ((x, y) or (r,));
                empty when only the shot column is needed.
        geometry: "cartesian", "radial" or None for shot-only tables.
        name: Label used in log and error messages.
    """

    shot: NDArray[np.integer]
    coords: Tuple[NDArray, ...] = ()
    geometry: Optional[str] = None
    name: str = "events"

    def __post_init__(self) -> None:
        shot = np.asarray(self.shot)
        if shot.size == 0:
            shot = shot.astype(np.int64)
        if shot.ndim != 1:
            raise PreconditionError(f"{self.name}: shot column must be 1-D, got shape {shot.shape}")
        if shot.size and not np.issubdtype(shot.dtype, np.integer):
            raise PreconditionError(
                f"{self.name}: shot column must hold integers, got dtype {shot.dtype}"
            )
        if shot.size and shot.min() < 0:
            raise PreconditionError(f"{self.name}: shot indices must be non-negative")
        if shot.size > 1:
            backwards = np.flatnonzero(shot[1:] < shot[:-1])
            if backwards.size:
                i = int(backwards[0])
                raise PreconditionError(
                    f"{self.name}: shot column is not sorted ascending "
                    f"(row {i + 1} has shot {shot[i + 1]} after shot {shot[i]})"
                )
        if self.geometry is not None and self.geometry not in GEOMETRIES:
            raise PreconditionError(f"{self.name}: unknown geometry '{self.geometry}'")
        if self.coords:
            if self.geometry is None:
                raise PreconditionError(f"{self.name}: coordinate columns need a geometry")
            n_axes = len(GEOMETRY_COLUMNS[self.geometry])
            if len(self.coords) != n_axes:
                raise PreconditionError(
                    f"{self.name}: {self.geometry} geometry needs {n_axes} coordinate "
                    f"column(s), got {len(self.coords)}"
                )
        for coord in self.coords:
            if np.shape(coord) != shot.shape:
                raise PreconditionError(
                    f"{self.name}: coordinate column length {np.shape(coord)} "
                    f"does not match shot column {shot.shape}"
                )
        object.__setattr__(self, "shot", _read_only(shot))
        object.__setattr__(self, "coords", tuple(_read_only(c) for c in self.coords))

    @classmethod
    def from_frame(
        cls,
        frame: pd.DataFrame,
        geometry: Optional[str] = None,
        *,
        name: str = "events",
        with_coords: bool = True,
    ) -> "EventTable":
        """Build a table from a DataFrame with ``shot`` and coordinate columns.

        The frame is not copied or modified.
        """
        if SHOT_COLUMN not in frame.columns:
            raise PreconditionError(f"{name}: missing '{SHOT_COLUMN}' column")
        coords: Tuple[NDArray, ...] = ()
        if with_coords:
            if geometry is None:
                geometry = infer_geometry(frame)
            if geometry not in GEOMETRIES:
                raise PreconditionError(f"{name}: unknown geometry '{geometry}'")
            columns = GEOMETRY_COLUMNS[geometry]
            missing = [c for c in columns if c not in frame.columns]
            if missing:
                raise PreconditionError(f"{name}: missing {geometry} columns {missing}")
            coords = tuple(frame[c].to_numpy() for c in columns)
        else:
            geometry = None
        shots = frame[SHOT_COLUMN]
        if pd.api.types.is_integer_dtype(shots.dtype) and not shots.hasnans:
            shot = shots.to_numpy(dtype=np.int64)
        else:
            shot = shots.to_numpy()
        return cls(shot, coords, geometry, name)

    def __len__(self) -> int:
        return int(self.shot.size)

    @property
    def first_shot(self) -> int:
        if not len(self):
            raise PreconditionError(f"{self.name}: table is empty")
        return int(self.shot[0])

    @property
    def last_shot(self) -> int:
        if not len(self):
            raise PreconditionError(f"{self.name}: table is empty")
        return int(self.shot[-1])

    @property
    def shot_span(self) -> int:
        """Number of shots from the first to the last recorded one, inclusive."""
        return self.last_shot - self.first_shot + 1

    @property
    def n_shots(self) -> int:
        """Number of distinct shots with at least one hit."""
        return count_distinct_sorted(self.shot)


def as_event_table(
    events: Union[EventTable, pd.DataFrame],
    geometry: Optional[str] = None,
    *,
    name: str = "events",
    with_coords: bool = True,
) -> EventTable:
    """Return ``events`` as a validated :class:`EventTable`."""
    if isinstance(events, EventTable):
        if with_coords:
            if not events.coords:
                raise PreconditionError(f"{name}: table has no coordinate columns")
            if geometry is not None and events.geometry != geometry:
                raise PreconditionError(
                    f"{name}: table geometry '{events.geometry}' does not match '{geometry}'"
                )
        return events
    if not isinstance(events, pd.DataFrame):
        raise TypeError(f"{name}: expected a DataFrame or EventTable, got {type(events).__name__}")
    table = EventTable.from_frame(events, geometry, name=name, with_coords=with_coords)
    log.debug(f"{name}: {len(table)} hits, geometry={table.geometry}")
    return table
