"""Sample metadata container and metadata-driven sample filtering."""

import logging
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any, FrozenSet, Iterable, List, Optional, Set, Tuple, Union

import polars as pl

from microbiome_align.core.config import FilterMode, LoaderSettings
from microbiome_align.core.exceptions import (
    AmbiguousFilter,
    ParseError,
    UnknownAttribute,
)
from microbiome_align.utils.io import check_exists
from microbiome_align.wrangle.align import reindex_rows

logger = logging.getLogger(__name__)


def _match_string(value: Any) -> str:
    """String form used to compare metadata values with filter values."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _as_value_set(values: Any) -> FrozenSet[str]:
    if isinstance(values, (str, bytes)) or not isinstance(values, Iterable):
        values = [values]
    return frozenset(_match_string(v) for v in values)


@dataclass(frozen=True)
class FilterPredicate:
    """Inclusion or exclusion rule on one metadata attribute.

    Attributes:
        attribute: Metadata column the rule applies to
        mode: FilterMode.KEEP retains rows whose value is in ``values``;
            FilterMode.EXCLUDE removes them
        values: Value set, compared on string form
    """

    attribute: str
    mode: FilterMode
    values: FrozenSet[str]

    @classmethod
    def keep(cls, attribute: str, values: Any) -> "FilterPredicate":
        return cls(attribute, FilterMode.KEEP, _as_value_set(values))

    @classmethod
    def exclude(cls, attribute: str, values: Any) -> "FilterPredicate":
        return cls(attribute, FilterMode.EXCLUDE, _as_value_set(values))

    @classmethod
    def build(
        cls,
        attribute: Optional[str] = None,
        exclude: Any = None,
        keep: Any = None,
    ) -> Optional["FilterPredicate"]:
        """Build a predicate from optional exclude/keep values.

        Returns None when no values are given (no-op filter).

        Raises:
            AmbiguousFilter: If both exclude and keep values are given
            ValueError: If values are given without an attribute
        """
        if exclude is not None and keep is not None:
            raise AmbiguousFilter(
                "Cannot filter out certain values and keep certain values at "
                "the same time; use either exclude or keep"
            )
        if exclude is None and keep is None:
            return None
        if attribute is None:
            raise ValueError("A metadata attribute is required to filter by values")
        if keep is not None:
            return cls.keep(attribute, keep)
        return cls.exclude(attribute, exclude)

    def mask(self, frame: pl.DataFrame) -> pl.Series:
        """Boolean mask of rows retained by this predicate."""
        if self.attribute not in frame.columns:
            raise UnknownAttribute(
                f"Attribute {self.attribute!r} not found in metadata. "
                f"Available: {[c for c in frame.columns if c != 'sample']}"
            )
        column = frame.get_column(self.attribute)
        if column.dtype.is_numeric():
            numbers, others = self._split_numeric()
            hit = column.cast(pl.Float64).is_in(
                pl.Series(numbers, dtype=pl.Float64)
            ) | column.cast(pl.Utf8).is_in(pl.Series(others, dtype=pl.Utf8))
        else:
            # Boolean casts to "true"/"false", matching _match_string
            hit = column.cast(pl.Utf8).is_in(list(self.values))
        hit = hit.fill_null(False)
        return hit if self.mode == FilterMode.KEEP else ~hit

    def _split_numeric(self) -> Tuple[List[float], List[str]]:
        """Values that parse as numbers, and the remaining strings."""
        numbers, others = [], []
        for value in self.values:
            try:
                numbers.append(float(value))
            except ValueError:
                others.append(value)
        return numbers, others


class SampleMetadata:
    """Sample by attribute metadata table.

    The first column of the source is the sample identifier; it is stored
    as the Utf8 column ``sample`` in the first position. Remaining columns
    are attributes typed by polars inference.

    Attributes:
        metadata: Polars DataFrame
    """

    def __init__(
        self,
        metadata: Union[Path, str, pl.LazyFrame, pl.DataFrame],
        settings: Optional[LoaderSettings] = None,
    ):
        """Initialize SampleMetadata from a file or frame.

        Args:
            metadata: Path to a delimited metadata file or LazyFrame/DataFrame
            settings: Loader settings (separator, quoting)

        Raises:
            ParseError: If the source has no columns
        """
        self.settings = settings or LoaderSettings()
        frame = self._load_data(metadata)
        self.metadata = self._standardize(frame)
        self._warn_if_single_attribute()

    def _load_data(
        self, data_source: Union[Path, str, pl.LazyFrame, pl.DataFrame]
    ) -> pl.DataFrame:
        """Load data from various sources.

        Args:
            data_source: Path to file, existing LazyFrame, or DataFrame

        Returns:
            DataFrame
        """
        if isinstance(data_source, pl.LazyFrame):
            return data_source.collect()
        elif isinstance(data_source, pl.DataFrame):
            return data_source
        elif isinstance(data_source, (str, Path)):
            return self._read_file(data_source)
        else:
            raise ValueError(
                f"Unsupported data source type: {type(data_source)}"
            )

    def _read_file(self, path: Union[str, Path]) -> pl.DataFrame:
        path = check_exists(path)
        sep = self.settings.separator
        quote = self.settings.quote_char
        try:
            header = pl.read_csv(
                path, separator=sep, quote_char=quote, n_rows=0
            ).columns
            return pl.read_csv(
                path,
                separator=sep,
                quote_char=quote,
                schema_overrides={header[0]: pl.Utf8},
                infer_schema_length=None,
            )
        except pl.exceptions.NoDataError as e:
            raise ParseError(f"{path}: metadata file is empty") from e
        except pl.exceptions.ComputeError as e:
            raise ParseError(f"{path}: could not parse metadata: {e}") from e

    @staticmethod
    def _standardize(frame: pl.DataFrame) -> pl.DataFrame:
        """Rename the identifier column to ``sample`` and cast it to Utf8."""
        if frame.width == 0:
            raise ParseError("Metadata has no columns")
        id_column = frame.columns[0]
        if id_column != "sample" and "sample" in frame.columns:
            # keep the attribute, free the canonical name for the ID column
            frame = frame.rename({"sample": "sample_attribute"})
        return frame.rename({id_column: "sample"}).with_columns(
            pl.col("sample").cast(pl.Utf8).str.strip_chars()
        )

    def _warn_if_single_attribute(self) -> None:
        n_attributes = self.metadata.width - 1
        if n_attributes < 2:
            message = (
                f"Metadata has {n_attributes} attribute column(s); "
                f"mapping files should have more than one metadata column."
            )
            warnings.warn(message, UserWarning)
            logger.warning(message)

    @classmethod
    def _from_frame(cls, frame: pl.DataFrame, settings: LoaderSettings) -> "SampleMetadata":
        """Wrap an already standardised frame without reloading or warning."""
        new_instance = cls.__new__(cls)
        new_instance.settings = settings
        new_instance.metadata = frame
        return new_instance

    @classmethod
    def scan(
        cls, path: Union[Path, str], settings: Optional[LoaderSettings] = None
    ) -> "SampleMetadata":
        """Load SampleMetadata from a delimited file."""
        return cls(path, settings=settings)

    @property
    def attributes(self) -> List[str]:
        """Attribute column names (everything but ``sample``)."""
        return [c for c in self.metadata.columns if c != "sample"]

    def get_samples(self) -> List[str]:
        """Sample IDs in table order."""
        return self.metadata.get_column("sample").to_list()

    def _get_sample_list(self) -> Set[str]:
        """Extract sample IDs from this metadata instance.

        Returns:
            Set of sample IDs
        """
        return set(self.get_samples())

    def _filter_by_sample(self, samples: List[str]) -> "SampleMetadata":
        """Create new SampleMetadata holding exactly ``samples``, in that order.

        Args:
            samples: Sample IDs to keep

        Returns:
            New SampleMetadata instance with filtered data
        """
        logger.debug("Filtering metadata")
        return self._from_frame(
            reindex_rows(self.metadata, "sample", samples), self.settings
        )

    def filter(self, predicate: Optional[FilterPredicate]) -> "SampleMetadata":
        """Apply a predicate, keeping retained rows in their original order.

        Args:
            predicate: Rule to apply; None returns an unfiltered copy

        Returns:
            Filtered SampleMetadata instance
        """
        if predicate is None:
            return self._from_frame(self.metadata, self.settings)
        kept = self.metadata.filter(predicate.mask(self.metadata))
        logger.debug(
            f"Filter {predicate.mode.value} {predicate.attribute}: "
            f"{kept.height} of {self.metadata.height} samples retained"
        )
        return self._from_frame(kept, self.settings)

    def filter_by_values(
        self,
        attribute: str,
        exclude: Any = None,
        keep: Any = None,
    ) -> "SampleMetadata":
        """Filter samples by the values of one attribute.

        Args:
            attribute: Metadata column to filter on
            exclude: Value or values whose samples are removed
            keep: Value or values whose samples are retained (all others removed)

        Returns:
            Filtered SampleMetadata instance
        """
        return self.filter(FilterPredicate.build(attribute, exclude, keep))

    def equals(self, other: "SampleMetadata") -> bool:
        return self.metadata.equals(other.metadata)

    def __len__(self) -> int:
        return self.metadata.height

    def __repr__(self) -> str:
        return f"SampleMetadata({self.metadata.height} samples, {len(self.attributes)} attributes)"


def select_samples(
    metadata: Union[SampleMetadata, pl.DataFrame],
    attribute: Optional[str] = None,
    exclude: Any = None,
    keep: Any = None,
    predicate: Optional[FilterPredicate] = None,
) -> Set[str]:
    """Sample IDs retained by a metadata filter.

    Either pass ``predicate`` or the ``attribute``/``exclude``/``keep``
    triple. With no values all sample IDs are returned.

    Raises:
        AmbiguousFilter: If both exclude and keep values are given
        UnknownAttribute: If the attribute is not a metadata column
    """
    if predicate is None:
        predicate = FilterPredicate.build(attribute, exclude, keep)
    elif exclude is not None or keep is not None:
        raise AmbiguousFilter(
            "Pass either a predicate or exclude/keep values, not both"
        )

    if not isinstance(metadata, SampleMetadata):
        metadata = SampleMetadata._from_frame(
            SampleMetadata._standardize(metadata), LoaderSettings()
        )

    return metadata.filter(predicate)._get_sample_list()
