"""
Snapshot Loader

Reads one file per entity (``categories.parquet``, ``orders.csv``, ...) from
a snapshot directory into a validated DataFrameSnapshot. Supports:
- Parquet, CSV and JSON Lines
- Missing entity files (treated as empty)
"""

from enum import Enum
from pathlib import Path
from typing import Dict, List, Union

import polars as pl
import structlog

from .entities import EntityType
from .snapshot import DataFrameSnapshot

logger = structlog.get_logger(__name__)

NULL_VALUES: List[str] = ["", "NULL", "null", "None", "NA", "N/A"]


class FileFormat(str, Enum):
    """Supported snapshot file formats"""
    CSV = "csv"
    JSONL = "jsonl"
    PARQUET = "parquet"


def _read_csv(path: Path) -> pl.DataFrame:
    """Read CSV file with Polars"""
    return pl.read_csv(path, null_values=NULL_VALUES, try_parse_dates=True)


def _read_jsonl(path: Path) -> pl.DataFrame:
    """Read JSON Lines (NDJSON) file"""
    return pl.read_ndjson(path)


def _read_parquet(path: Path) -> pl.DataFrame:
    """Read Parquet file"""
    return pl.read_parquet(path)


READERS = {
    FileFormat.CSV: _read_csv,
    FileFormat.JSONL: _read_jsonl,
    FileFormat.PARQUET: _read_parquet,
}


def load_snapshot(
    directory: Union[str, Path],
    file_format: Union[str, FileFormat] = FileFormat.PARQUET,
    validate: bool = True,
) -> DataFrameSnapshot:
    """
    Load a snapshot directory.

    Args:
        directory: Directory holding one file per entity
        file_format: Format of the entity files
        validate: Run integrity checks after loading

    Returns:
        DataFrameSnapshot over the loaded frames
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise FileNotFoundError(f"Snapshot directory not found: {directory}")

    file_format = FileFormat(file_format)
    reader = READERS[file_format]

    frames: Dict[EntityType, pl.DataFrame] = {}
    for entity in EntityType:
        path = directory / f"{entity.value}.{file_format.value}"
        if not path.exists():
            logger.info("Entity file missing, using empty frame", entity=entity.value, path=str(path))
            continue
        frames[entity] = reader(path)
        logger.info("Loaded entity file", entity=entity.value, rows=frames[entity].height)

    return DataFrameSnapshot(frames, validate=validate)
