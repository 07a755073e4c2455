"""Reading event tables and writing spectra."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import numpy as np
import pandas as pd

from .config import ColumnConfig
from .common.constants import SHOT_COLUMN

logger = logging.getLogger(__name__)

__all__ = ["load_event_table", "save_spectrum", "clean_and_serialize_dict", "append_to_json"]

_READERS = {
    ".csv": pd.read_csv,
    ".parquet": pd.read_parquet,
    ".pq": pd.read_parquet,
}


def load_event_table(
    path: Union[str, Path],
    columns: Optional[ColumnConfig] = None,
    *,
    sort: bool = False,
) -> pd.DataFrame:
    """Load a hit table from a ``.csv`` or ``.parquet`` file.

    Parameters
    ----------
    path : str or Path
        Table file.
    columns : ColumnConfig, optional
        Column names used in the file; they are renamed to ``shot``/``x``/
        ``y``/``r``.
    sort : bool
        Stable-sort the rows by shot.  Without it, unsorted tables are
        rejected later by the analysis.
    """
    path = Path(path)
    reader = _READERS.get(path.suffix.lower())
    if reader is None:
        raise ValueError(f"Unsupported table format '{path.suffix}' for {path}; use {sorted(_READERS)}")
    frame = reader(path)
    if columns is not None:
        frame = frame.rename(columns=columns.rename_map())
    if sort and SHOT_COLUMN in frame.columns:
        frame = frame.sort_values(SHOT_COLUMN, kind="stable", ignore_index=True)
    logger.info(f"Loaded {len(frame)} hits from {path}")
    return frame


def save_spectrum(path: Union[str, Path], spectrum: np.ndarray) -> Path:
    """Write ``spectrum`` to a ``.npy`` file, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    np.save(path, np.asarray(spectrum))
    logger.info(f"Saved spectrum {np.shape(spectrum)} to {path}")
    return path


def clean_and_serialize_dict(record: Dict[str, Any]) -> Dict[str, Any]:
    """Convert numpy values and paths in a dictionary to JSON-serializable types."""
    clean: Dict[str, Any] = {}
    for key, value in record.items():
        if isinstance(value, np.ndarray):
            clean[key] = value.tolist()
        elif isinstance(value, np.generic):
            clean[key] = value.item()
        elif isinstance(value, Path):
            clean[key] = str(value)
        else:
            clean[key] = value
    return clean


def append_to_json(new_data_dict: Dict[str, Any], filename: Union[str, Path]) -> None:
    """Append a dictionary to a JSON list file, creating the file if needed."""
    clean_new_data = clean_and_serialize_dict(new_data_dict)
    if os.path.exists(filename) and os.path.getsize(filename) > 0:
        try:
            with open(filename, "r") as f:
                data_list = json.load(f)
            if not isinstance(data_list, list):
                logger.error(f"JSON file '{filename}' does not contain a list.")
                data_list = [clean_new_data]
            else:
                data_list.append(clean_new_data)
        except json.JSONDecodeError:
            logger.warning(f"Could not decode JSON from '{filename}'. Starting a new file.")
            data_list = [clean_new_data]
    else:
        data_list = [clean_new_data]
    with open(filename, "w") as f:
        json.dump(data_list, f, indent=4)
    logger.info(f"Successfully appended data to {filename}")
