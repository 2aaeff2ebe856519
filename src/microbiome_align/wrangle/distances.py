"""Precomputed sample dissimilarity matrices aligned with metadata."""

import logging
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple, Union

import numpy as np
import polars as pl

from microbiome_align.core.config import LoaderSettings
from microbiome_align.core.exceptions import MalformedMatrix
from microbiome_align.utils.io import parse_numeric_block, read_raw_table, split_header
from microbiome_align.wrangle.align import align_components, ensure_unique
from microbiome_align.wrangle.metadata import FilterPredicate, SampleMetadata

logger = logging.getLogger(__name__)


def _check_square(
    ids: Sequence[str], data: np.ndarray, tolerance: float, source: str
) -> None:
    """Validate shape, symmetry and zero diagonal."""
    if data.ndim != 2 or data.shape[0] != data.shape[1]:
        raise MalformedMatrix(f"{source}: matrix is not square (shape {data.shape})")
    if data.shape[0] != len(ids):
        raise MalformedMatrix(
            f"{source}: {len(ids)} labels for a {data.shape[0]}x{data.shape[0]} matrix"
        )
    if not np.allclose(np.diag(data), 0.0, rtol=0.0, atol=tolerance):
        raise MalformedMatrix(f"{source}: matrix diagonal is not zero")
    if not np.allclose(data, data.T, rtol=0.0, atol=tolerance):
        raise MalformedMatrix(f"{source}: matrix is not symmetric")


class DissimilarityMatrix:
    """Symmetric, zero-diagonal sample by sample matrix with aligned metadata.

    Attributes:
        ids: Sample IDs labelling rows and columns
        data: Square float array
        metadata: SampleMetadata with rows in ``ids`` order
    """

    def __init__(
        self,
        ids: Sequence[str],
        data: np.ndarray,
        metadata: SampleMetadata,
        tolerance: float = 1e-8,
    ):
        """
        Raises:
            MalformedMatrix: If data is not square, symmetric and zero-diagonal
            DuplicateIdentifier: If ids repeat
            ValueError: If metadata rows do not match ids
        """
        self.ids = list(ids)
        self.data = np.asarray(data, dtype=np.float64)
        ensure_unique(self.ids, "dissimilarity matrix labels")
        _check_square(self.ids, self.data, tolerance, "dissimilarity matrix")
        if metadata.get_samples() != self.ids:
            raise ValueError(
                "Metadata rows must hold the matrix sample IDs in matrix order"
            )
        self.metadata = metadata

    def __len__(self) -> int:
        return len(self.ids)

    def condensed(self) -> np.ndarray:
        """Upper triangle as a flat vector, row by row (scipy squareform order)."""
        rows, cols = np.triu_indices(len(self.ids), k=1)
        return self.data[rows, cols]

    def to_frame(self) -> pl.DataFrame:
        """Matrix as a DataFrame with a ``sample`` label column."""
        columns = {"sample": self.ids}
        for j, sid in enumerate(self.ids):
            columns[sid] = self.data[:, j]
        return pl.DataFrame(columns)

    def __repr__(self) -> str:
        return f"DissimilarityMatrix({len(self.ids)} samples)"


class DissimilarityLoader:
    """Reads tab-delimited dissimilarity matrices and aligns them with metadata."""

    def __init__(self, settings: Optional[LoaderSettings] = None):
        self.settings = settings or LoaderSettings()

    def read_matrix(self, path: Union[str, Path]) -> Tuple[List[str], np.ndarray]:
        """Read a labelled square matrix.

        Returns:
            (sample IDs, square array)

        Raises:
            MalformedMatrix: If not square, labels differ between rows and
                columns, or the matrix is not symmetric with a zero diagonal
            ParseError: If a cell is not numeric
        """
        raw = read_raw_table(path, self.settings)
        col_ids = split_header(raw)[1:]
        body = raw.slice(1)
        row_ids = [
            ("" if r is None else r.strip())
            for r in body.get_column(raw.columns[0]).to_list()
        ]

        if len(row_ids) != len(col_ids):
            raise MalformedMatrix(
                f"{path}: matrix is not square ({len(row_ids)} rows, {len(col_ids)} columns)"
            )
        if row_ids != col_ids:
            raise MalformedMatrix(
                f"{path}: row labels do not match column labels in content and order"
            )
        ensure_unique(col_ids, f"labels of {Path(path).name}")

        data = parse_numeric_block(
            body.drop(raw.columns[0]),
            row_ids=row_ids,
            col_ids=col_ids,
            source=path,
            first_line=2,
        )
        _check_square(col_ids, data, self.settings.symmetry_tolerance, str(path))
        logger.debug(f"Read {len(col_ids)}x{len(col_ids)} matrix from {path}")
        return col_ids, data

    def _metadata(
        self, metadata: Union[str, Path, pl.DataFrame, SampleMetadata]
    ) -> SampleMetadata:
        if isinstance(metadata, SampleMetadata):
            return metadata
        return SampleMetadata(metadata, settings=self.settings)

    def load(
        self,
        dm_path: Union[str, Path],
        metadata: Union[str, Path, pl.DataFrame, SampleMetadata],
        predicate: Optional[FilterPredicate] = None,
    ) -> DissimilarityMatrix:
        """Load one matrix aligned with (optionally filtered) metadata.

        Samples keep the matrix order.
        """
        ids, data = self.read_matrix(dm_path)
        meta = self._metadata(metadata).filter(predicate)

        aligned = align_components(meta.metadata, matrices=[(ids, data)])
        return DissimilarityMatrix(
            aligned.order,
            aligned.matrices[0],
            SampleMetadata._from_frame(aligned.metadata, meta.settings),
            tolerance=self.settings.symmetry_tolerance,
        )

    def load_pair(
        self,
        dm1_path: Union[str, Path],
        dm2_path: Union[str, Path],
        metadata: Union[str, Path, pl.DataFrame, SampleMetadata],
        predicate: Optional[FilterPredicate] = None,
    ) -> Tuple[DissimilarityMatrix, DissimilarityMatrix]:
        """Load two matrices sharing one aligned metadata table.

        Samples keep the first matrix's order; only samples present in both
        matrices and the metadata are retained.
        """
        ids1, data1 = self.read_matrix(dm1_path)
        ids2, data2 = self.read_matrix(dm2_path)
        meta = self._metadata(metadata).filter(predicate)

        aligned = align_components(
            meta.metadata, matrices=[(ids1, data1), (ids2, data2)]
        )
        shared = SampleMetadata._from_frame(aligned.metadata, meta.settings)
        tol = self.settings.symmetry_tolerance
        return (
            DissimilarityMatrix(aligned.order, aligned.matrices[0], shared, tol),
            DissimilarityMatrix(aligned.order, aligned.matrices[1], shared, tol),
        )


def load_dm(
    dm_path: Union[str, Path],
    metadata_path: Union[str, Path, pl.DataFrame, SampleMetadata],
    filter_attribute: Optional[str] = None,
    exclude_values: Any = None,
    keep_values: Any = None,
    settings: Optional[LoaderSettings] = None,
) -> DissimilarityMatrix:
    """Load a dissimilarity matrix and its metadata mapping file.

    Examples:
        load_dm("dm.txt", "mapping.txt", "sample_type", exclude_values="blank")
    """
    predicate = FilterPredicate.build(filter_attribute, exclude_values, keep_values)
    return DissimilarityLoader(settings).load(dm_path, metadata_path, predicate)


def load_2_dms(
    dm1_path: Union[str, Path],
    dm2_path: Union[str, Path],
    metadata_path: Union[str, Path, pl.DataFrame, SampleMetadata],
    filter_attribute: Optional[str] = None,
    exclude_values: Any = None,
    keep_values: Any = None,
    settings: Optional[LoaderSettings] = None,
) -> Tuple[DissimilarityMatrix, DissimilarityMatrix]:
    """Load two dissimilarity matrices over one metadata mapping file.

    Useful for comparing two precomputed dissimilarity structures (e.g. a
    Mantel test) on the same samples.
    """
    predicate = FilterPredicate.build(filter_attribute, exclude_values, keep_values)
    return DissimilarityLoader(settings).load_pair(
        dm1_path, dm2_path, metadata_path, predicate
    )
