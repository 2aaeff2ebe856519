"""Export of datasets as tab-delimited OTU tables."""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union

import polars as pl

from microbiome_align.core.config import LoaderSettings
from microbiome_align.utils.taxonomy import join_taxonomy

if TYPE_CHECKING:
    from microbiome_align.wrangle.dataset import Dataset

logger = logging.getLogger(__name__)

FEATURE_HEADER = "#OTU ID"


def export_table(
    dataset: "Dataset",
    out_path: Union[str, Path],
    settings: Optional[LoaderSettings] = None,
) -> Path:
    """Export a dataset as a tab-delimited OTU table.

    The file opens with a provenance comment line, followed by a header of
    ``#OTU ID`` and the sample IDs. Taxonomy strings, when present, are
    written to a final ``taxonomy`` column. Rows and columns keep the
    dataset order. The output can be read back with TableLoader.

    Args:
        dataset: Dataset to export
        out_path: Output file path (parent directories are created)
        settings: Export options (separator, provenance line, taxonomy join)

    Returns:
        Path written

    Raises:
        ValueError: If a sample ID equals the taxonomy column name
    """
    settings = settings or LoaderSettings()
    if settings.taxonomy_column in dataset.sample_ids:
        raise ValueError(
            f"Sample ID {settings.taxonomy_column!r} is reserved for the taxonomy "
            f"column; rename the sample before exporting"
        )
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    table = dataset.abundance.rename({"feature": FEATURE_HEADER})
    if dataset.taxonomy is not None:
        table = table.with_columns(
            pl.Series(
                settings.taxonomy_column,
                join_taxonomy(dataset.taxonomy, settings.taxonomy_separator),
                dtype=pl.Utf8,
            )
        )

    body = table.write_csv(separator=settings.separator)
    with open(out_path, "w", encoding="utf-8") as f:
        f.write(settings.export_comment + "\n")
        f.write(body)

    logger.debug(f"Exported {table.height} features to {out_path}")
    return out_path
