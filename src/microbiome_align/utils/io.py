"""Delimited file reading utilities.

Raw tables are read with every cell as a string so that identifiers keep
their exact spelling and malformed numeric cells can be reported by
location rather than silently coerced.
"""

from pathlib import Path
from typing import List, Sequence, Union

import numpy as np
import polars as pl

from microbiome_align.core.config import LoaderSettings
from microbiome_align.core.exceptions import ParseError


def check_exists(path: Union[str, Path]) -> Path:
    """Return ``path`` as a Path, raising FileNotFoundError if missing."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    return path


def read_raw_table(
    path: Union[str, Path],
    settings: LoaderSettings,
    skip_rows: int = 0,
) -> pl.DataFrame:
    """Read a delimited file with all cells as strings and no header.

    Args:
        path: Path to the delimited file
        settings: Loader settings providing separator and quoting
        skip_rows: Number of leading lines to skip before the header row

    Returns:
        DataFrame of string cells, header row included as row 0

    Raises:
        ParseError: If the file is empty or cannot be tokenised
    """
    path = check_exists(path)
    try:
        raw = pl.read_csv(
            path,
            separator=settings.separator,
            quote_char=settings.quote_char,
            has_header=False,
            skip_rows=skip_rows,
            infer_schema=False,
        )
    except pl.exceptions.NoDataError as e:
        raise ParseError(f"{path}: file contains no table") from e
    except pl.exceptions.PolarsError as e:
        raise ParseError(f"{path}: could not parse delimited table: {e}") from e

    if raw.height == 0:
        raise ParseError(f"{path}: file contains no table")
    # empty cells come back as null
    return raw.fill_null("")


def split_header(raw: pl.DataFrame) -> List[str]:
    """Return the header row of a raw table as stripped strings."""
    return [("" if cell is None else cell.strip()) for cell in raw.row(0)]


def parse_numeric_block(
    cells: pl.DataFrame,
    row_ids: Sequence[str],
    col_ids: Sequence[str],
    source: Union[str, Path],
    first_line: int,
    non_negative: bool = False,
) -> np.ndarray:
    """Convert a block of string cells into a float matrix.

    Args:
        cells: String cells, one column per entry of col_ids
        row_ids: Identifier of each row, used in error messages
        col_ids: Identifier of each column, used in error messages
        source: File the block came from, used in error messages
        first_line: 1-based file line number of the first row of the block
        non_negative: Reject negative values

    Returns:
        Array of shape (len(row_ids), len(col_ids))

    Raises:
        ParseError: Naming the first offending cell
    """
    values = cells.select(
        pl.all().str.strip_chars().cast(pl.Float64, strict=False)
    ).to_numpy()
    if values.size == 0:
        return values.astype(np.float64).reshape(len(row_ids), len(col_ids))

    bad = ~np.isfinite(values)
    if non_negative:
        bad |= np.nan_to_num(values, nan=0.0) < 0

    if bad.any():
        i, j = np.argwhere(bad)[0]
        raw_value = cells.row(int(i))[int(j)]
        raise ParseError(
            f"{source}: invalid value {raw_value!r} at line {first_line + int(i)}, "
            f"row {row_ids[i]!r}, column {col_ids[j]!r}"
        )

    return values.astype(np.float64)
