"""Loading of feature abundance tables (BIOM or tab-delimited text)."""

import logging
from pathlib import Path
from typing import Any, Optional, Tuple, Union

import biom
import numpy as np
import polars as pl

from microbiome_align.core.config import InputEncoding, LoaderSettings
from microbiome_align.core.exceptions import ParseError
from microbiome_align.utils.io import (
    check_exists,
    parse_numeric_block,
    read_raw_table,
    split_header,
)
from microbiome_align.utils.taxonomy import parse_taxonomy
from microbiome_align.wrangle.align import ensure_unique
from microbiome_align.wrangle.dataset import Dataset
from microbiome_align.wrangle.metadata import FilterPredicate, SampleMetadata

logger = logging.getLogger(__name__)


def _abundance_frame(
    feature_ids: list, sample_ids: list, values: np.ndarray
) -> pl.DataFrame:
    columns = {"feature": pl.Series("feature", feature_ids, dtype=pl.Utf8)}
    for j, sample in enumerate(sample_ids):
        columns[sample] = pl.Series(sample, values[:, j], dtype=pl.Float64)
    return pl.DataFrame(columns)


class TableLoader:
    """Reads an abundance table and a metadata table into an aligned Dataset.

    Examples:
        loader = TableLoader()
        dataset = loader.load("otu_table.txt", "mapping.txt",
                              FilterPredicate.exclude("sample_type", "blank"))
    """

    def __init__(self, settings: Optional[LoaderSettings] = None):
        """
        Args:
            settings: Parsing options; defaults to LoaderSettings()
        """
        self.settings = settings or LoaderSettings()

    def load(
        self,
        table_path: Union[str, Path],
        metadata: Union[str, Path, pl.DataFrame, SampleMetadata],
        predicate: Optional[FilterPredicate] = None,
    ) -> Dataset:
        """Load a table and metadata, filter the metadata, then align.

        Args:
            table_path: Path to a .biom, .txt or .tsv abundance table
            metadata: Metadata path, frame or SampleMetadata
            predicate: Optional metadata filter applied before alignment

        Returns:
            Dataset holding only samples present in both inputs, in table order

        Raises:
            UnsupportedFormat: If the table extension is not supported
            ParseError: If the table or metadata cannot be parsed
            DuplicateIdentifier: If sample or feature IDs repeat
            EmptyAlignment: If table and (filtered) metadata share no samples
        """
        abundance, taxonomy = self.read_table(table_path)

        if not isinstance(metadata, SampleMetadata):
            metadata = SampleMetadata(metadata, settings=self.settings)

        return Dataset.from_components(
            abundance, metadata, taxonomy=taxonomy, predicate=predicate
        )

    def read_table(
        self, table_path: Union[str, Path]
    ) -> Tuple[pl.DataFrame, Optional[pl.DataFrame]]:
        """Read an abundance table without aligning it.

        Returns:
            (abundance, taxonomy) where taxonomy is None if absent
        """
        encoding = InputEncoding.from_path(table_path)
        table_path = check_exists(table_path)
        logger.debug(f"Reading {table_path} as {encoding.value}")

        if encoding == InputEncoding.BIOM:
            return self._read_biom(table_path)
        return self._read_text(table_path)

    def _header_skip(self, path: Path) -> int:
        """0 if the file opens with the header marker, else 1 line to skip."""
        marker = self.settings.header_marker.encode("utf-8")
        with open(path, "rb") as f:
            head = f.read(len(marker))
        skip = 0 if head == marker else 1
        logger.debug(f"Header convention for {path.name}: skipping {skip} line(s)")
        return skip

    def _read_text(
        self, path: Path
    ) -> Tuple[pl.DataFrame, Optional[pl.DataFrame]]:
        skip = self._header_skip(path)
        raw = read_raw_table(path, self.settings, skip_rows=skip)
        header = split_header(raw)
        body = raw.slice(1)

        taxonomy_entries = None
        if len(header) > 1 and header[-1] == self.settings.taxonomy_column:
            taxonomy_entries = body.get_column(raw.columns[-1]).to_list()
            header = header[:-1]
            body = body.drop(raw.columns[-1])

        sample_ids = header[1:]
        if not sample_ids:
            raise ParseError(f"{path}: table has no sample columns")
        if body.height == 0:
            raise ParseError(f"{path}: table has no feature rows")
        for reserved in ("feature", self.settings.taxonomy_column):
            if reserved in sample_ids:
                raise ParseError(
                    f"{path}: {reserved!r} is reserved and cannot be a sample ID"
                )

        feature_ids = [
            ("" if f is None else f.strip())
            for f in body.get_column(raw.columns[0]).to_list()
        ]
        ensure_unique(sample_ids, f"sample IDs of {path.name}")
        ensure_unique(feature_ids, f"feature IDs of {path.name}")

        values = parse_numeric_block(
            body.drop(raw.columns[0]),
            row_ids=feature_ids,
            col_ids=sample_ids,
            source=path,
            first_line=skip + 2,
            non_negative=True,
        )
        abundance = _abundance_frame(feature_ids, sample_ids, values)

        taxonomy = None
        if taxonomy_entries is not None:
            taxonomy = parse_taxonomy(
                taxonomy_entries, feature_ids, self.settings.unclassified_label
            )

        logger.debug(
            f"Read {len(feature_ids)} features x {len(sample_ids)} samples "
            f"from {path.name} (taxonomy: {taxonomy is not None})"
        )
        return abundance, taxonomy

    def _read_biom(
        self, path: Path
    ) -> Tuple[pl.DataFrame, Optional[pl.DataFrame]]:
        try:
            table = biom.load_table(str(path))
        except Exception as e:
            raise ParseError(f"Error loading BIOM table from {path}: {e}") from e

        sample_ids = [str(s) for s in table.ids(axis="sample")]
        feature_ids = [str(f) for f in table.ids(axis="observation")]
        if not sample_ids or not feature_ids:
            raise ParseError(f"{path}: BIOM table is empty")
        ensure_unique(sample_ids, f"sample IDs of {path.name}")
        ensure_unique(feature_ids, f"feature IDs of {path.name}")

        values = np.asarray(table.matrix_data.toarray(), dtype=np.float64)
        if (values < 0).any():
            i, j = np.argwhere(values < 0)[0]
            raise ParseError(
                f"{path}: negative abundance at row {feature_ids[i]!r}, "
                f"column {sample_ids[j]!r}"
            )
        abundance = _abundance_frame(feature_ids, sample_ids, values)

        taxonomy = None
        observation_md = table.metadata(axis="observation")
        if observation_md is not None and any(
            md and "taxonomy" in md for md in observation_md
        ):
            entries = [md.get("taxonomy") if md else None for md in observation_md]
            taxonomy = parse_taxonomy(
                entries, feature_ids, self.settings.unclassified_label
            )

        logger.debug(
            f"Read {len(feature_ids)} features x {len(sample_ids)} samples "
            f"from BIOM table {path.name} (taxonomy: {taxonomy is not None})"
        )
        return abundance, taxonomy


def load_taxa_table(
    table_path: Union[str, Path],
    metadata_path: Union[str, Path, pl.DataFrame, SampleMetadata],
    filter_attribute: Optional[str] = None,
    exclude_values: Any = None,
    keep_values: Any = None,
    settings: Optional[LoaderSettings] = None,
) -> Dataset:
    """Load a taxa (OTU) table and its mapping file as an aligned Dataset.

    Only samples present in both files are loaded, in table order. Samples
    can optionally be filtered on one metadata attribute; the same can be
    done later with Dataset.filter().

    Args:
        table_path: Taxa table path (.biom, .txt or .tsv)
        metadata_path: Metadata mapping file path
        filter_attribute: Metadata column used to filter samples
        exclude_values: Value(s) of filter_attribute whose samples are removed
        keep_values: Alternatively, keep only samples with these value(s)
        settings: Parsing options

    Examples:
        load_taxa_table("otu_table.txt", "mapping.txt", "sample_type",
                        exclude_values="blank")
    """
    predicate = FilterPredicate.build(filter_attribute, exclude_values, keep_values)
    return TableLoader(settings).load(table_path, metadata_path, predicate)
