"""Aligned abundance dataset and post-hoc sample/feature filtering."""

import logging
from pathlib import Path
from typing import Any, Iterable, List, Optional, Set, Tuple, Union

import numpy as np
import polars as pl

from microbiome_align.core.config import FilterMode, LoaderSettings
from microbiome_align.core.exceptions import AmbiguousFilter
from microbiome_align.utils.taxonomy import (
    TaxonomicRanks,
    join_taxonomy,
    resolve_rank_column,
)
from microbiome_align.wrangle.align import (
    align_components,
    ensure_unique,
    intersect_ids,
    reindex_rows,
)
from microbiome_align.wrangle.metadata import FilterPredicate, SampleMetadata

logger = logging.getLogger(__name__)


class Dataset:
    """Feature abundance table aligned with sample metadata and taxonomy.

    Attributes:
        abundance: DataFrame with a ``feature`` column followed by one
            Float64 column per sample
        metadata: SampleMetadata whose rows match the sample columns, in order
        taxonomy: Optional DataFrame with ``feature`` and ``taxonomy1..N``,
            rows matching the abundance rows, in order

    Instances are never modified in place; every filter returns a new
    Dataset.
    """

    def __init__(
        self,
        abundance: pl.DataFrame,
        metadata: Union[SampleMetadata, pl.DataFrame],
        taxonomy: Optional[pl.DataFrame] = None,
    ):
        """Wrap already aligned components, validating their invariants.

        Use :meth:`from_components` to align components that may disagree.

        Args:
            abundance: Feature by sample abundance table
            metadata: SampleMetadata or metadata frame with a ``sample`` column
            taxonomy: Optional feature by rank table covering every feature

        Raises:
            ValueError: If sample columns and metadata rows differ, or the
                taxonomy does not cover every feature
            DuplicateIdentifier: If feature IDs repeat
        """
        if not isinstance(metadata, SampleMetadata):
            metadata = SampleMetadata._from_frame(
                SampleMetadata._standardize(metadata), LoaderSettings()
            )
        if "feature" not in abundance.columns:
            raise ValueError("Abundance table must contain a 'feature' column")

        self.abundance = abundance.select(
            "feature", pl.exclude("feature").cast(pl.Float64)
        )
        self.metadata = metadata

        if self.sample_ids != metadata.get_samples():
            raise ValueError(
                "Abundance sample columns and metadata rows must hold the "
                "same sample IDs in the same order; use Dataset.from_components "
                "to align them"
            )
        ensure_unique(self.feature_ids, "abundance features")

        self.taxonomy: Optional[pl.DataFrame] = None
        if taxonomy is not None:
            ensure_unique(
                taxonomy.get_column("feature").to_list(), "taxonomy features"
            )
            missing = set(self.feature_ids) - set(
                taxonomy.get_column("feature").to_list()
            )
            if missing:
                raise ValueError(
                    f"Taxonomy is missing {len(missing)} feature(s): "
                    f"{sorted(missing)[:10]}"
                )
            self.taxonomy = reindex_rows(taxonomy, "feature", self.feature_ids)

    @classmethod
    def from_components(
        cls,
        abundance: pl.DataFrame,
        metadata: Union[SampleMetadata, pl.DataFrame],
        taxonomy: Optional[pl.DataFrame] = None,
        predicate: Optional[FilterPredicate] = None,
    ) -> "Dataset":
        """Filter metadata, then align it with the abundance table.

        Samples keep the abundance table's column order.

        Raises:
            DuplicateIdentifier: If a sample ID repeats in either component
            EmptyAlignment: If no sample is shared
        """
        if not isinstance(metadata, SampleMetadata):
            metadata = SampleMetadata(metadata)
        metadata = metadata.filter(predicate)

        aligned = align_components(metadata.metadata, abundance=abundance)
        return cls(
            abundance=aligned.abundance,
            metadata=SampleMetadata._from_frame(aligned.metadata, metadata.settings),
            taxonomy=taxonomy,
        )

    @property
    def sample_ids(self) -> List[str]:
        return [c for c in self.abundance.columns if c != "feature"]

    @property
    def feature_ids(self) -> List[str]:
        return self.abundance.get_column("feature").to_list()

    @property
    def ranks(self) -> List[str]:
        """Rank column names of the taxonomy table (empty without taxonomy)."""
        if self.taxonomy is None:
            return []
        return [c for c in self.taxonomy.columns if c != "feature"]

    @property
    def shape(self) -> Tuple[int, int]:
        """(n_features, n_samples)."""
        return self.abundance.height, self.abundance.width - 1

    def to_numpy(self) -> np.ndarray:
        """Abundance values as a (features, samples) array."""
        return self.abundance.drop("feature").to_numpy()

    def taxonomy_strings(self, separator: str = "; ") -> Optional[List[str]]:
        """Per-feature taxonomy strings, or None without taxonomy."""
        if self.taxonomy is None:
            return None
        return join_taxonomy(self.taxonomy, separator)

    def _with(
        self,
        abundance: pl.DataFrame,
        metadata: SampleMetadata,
        taxonomy: Optional[pl.DataFrame],
    ) -> "Dataset":
        return Dataset(abundance=abundance, metadata=metadata, taxonomy=taxonomy)

    def filter(
        self,
        predicate: Optional[FilterPredicate] = None,
        attribute: Optional[str] = None,
        exclude: Any = None,
        keep: Any = None,
    ) -> "Dataset":
        """Filter samples by metadata and re-align all components.

        Either pass ``predicate`` or the ``attribute``/``exclude``/``keep``
        triple. The feature axis and taxonomy are left untouched.

        Returns:
            New Dataset

        Raises:
            AmbiguousFilter: If both exclude and keep values are given, or
                values are given together with a predicate
            UnknownAttribute: If the attribute is not a metadata column
            EmptyAlignment: If no sample survives
        """
        if predicate is None:
            predicate = FilterPredicate.build(attribute, exclude, keep)
        elif exclude is not None or keep is not None:
            raise AmbiguousFilter(
                "Pass either a predicate or exclude/keep values, not both"
            )

        metadata = self.metadata.filter(predicate)
        aligned = align_components(metadata.metadata, abundance=self.abundance)
        return self._with(
            aligned.abundance,
            SampleMetadata._from_frame(aligned.metadata, metadata.settings),
            self.taxonomy,
        )

    def select_samples(self, sample_ids: Iterable[str]) -> "Dataset":
        """Keep the given samples, in the dataset's current order.

        Raises:
            EmptyAlignment: If none of the samples are present
        """
        order = intersect_ids(
            self.sample_ids, list(sample_ids), names=["dataset", "requested samples"]
        )
        return self._reindex_samples(order)

    def _reindex_samples(self, order: List[str]) -> "Dataset":
        """New Dataset holding exactly the samples in ``order``, in that order."""
        return self._with(
            self.abundance.select(["feature", *order]),
            self.metadata._filter_by_sample(order),
            self.taxonomy,
        )

    def _features_matching(
        self, labels: Set[str], rank: Optional[Any]
    ) -> pl.Series:
        if self.taxonomy is None:
            raise ValueError("Taxonomy must be loaded to filter features by label")
        if rank is not None:
            column = resolve_rank_column(rank)
            if column not in self.taxonomy.columns:
                raise ValueError(
                    f"Rank {rank!r} ({column}) not present; available ranks: {self.ranks}"
                )
            columns = [column]
        else:
            columns = self.ranks
        return self.taxonomy.select(
            pl.any_horizontal([pl.col(c).is_in(list(labels)) for c in columns])
        ).to_series()

    def filter_features(
        self,
        keep: Any = None,
        exclude: Any = None,
        rank: Optional[Union[str, int, TaxonomicRanks]] = None,
        min_total: Optional[float] = None,
        min_relative: Optional[float] = None,
    ) -> "Dataset":
        """Filter features by taxonomy label and/or abundance.

        Args:
            keep: Label or labels; only features carrying one are kept
            exclude: Label or labels; features carrying one are removed
            rank: Restrict label matching to one rank (name, column or depth)
            min_total: Drop features whose summed abundance is below this
            min_relative: Drop features whose mean per-sample relative
                abundance is below this

        Returns:
            New Dataset with abundance and taxonomy rows filtered together

        Raises:
            AmbiguousFilter: If both keep and exclude are given
            EmptyAlignment: If no feature survives
        """
        if keep is not None and exclude is not None:
            raise AmbiguousFilter(
                "Cannot keep and remove taxa at the same time; use either keep or exclude"
            )

        retained = pl.Series([True] * self.abundance.height)

        if keep is not None or exclude is not None:
            predicate = FilterPredicate.build(
                "taxonomy", exclude=exclude, keep=keep
            )
            hit = self._features_matching(set(predicate.values), rank)
            retained &= hit if predicate.mode == FilterMode.KEEP else ~hit

        values = self.to_numpy()
        if min_total is not None:
            retained &= pl.Series(values.sum(axis=1) >= min_total)
        if min_relative is not None:
            totals = values.sum(axis=0)
            with np.errstate(divide="ignore", invalid="ignore"):
                relative = np.where(totals > 0, values / totals, 0.0)
            retained &= pl.Series(relative.mean(axis=1) >= min_relative)

        kept = self.abundance.filter(retained).get_column("feature").to_list()
        order = intersect_ids(
            self.feature_ids, kept, names=["dataset features", "retained features"]
        )
        logger.debug(f"Feature filter kept {len(order)} of {len(self.feature_ids)} features")

        return self._with(
            reindex_rows(self.abundance, "feature", order),
            self.metadata,
            (
                reindex_rows(self.taxonomy, "feature", order)
                if self.taxonomy is not None
                else None
            ),
        )

    def export(
        self, out_path: Union[str, Path], settings: Optional[LoaderSettings] = None
    ) -> Path:
        """Write the dataset as a tab-delimited OTU table (see export_table)."""
        from microbiome_align.wrangle.export import export_table

        return export_table(self, out_path, settings=settings)

    def equals(self, other: "Dataset") -> bool:
        """True if abundance, metadata and taxonomy are identical, order included."""
        if not self.abundance.equals(other.abundance):
            return False
        if not self.metadata.equals(other.metadata):
            return False
        if (self.taxonomy is None) != (other.taxonomy is None):
            return False
        return self.taxonomy is None or self.taxonomy.equals(other.taxonomy)

    def __repr__(self) -> str:
        n_features, n_samples = self.shape
        return (
            f"Dataset({n_features} features x {n_samples} samples, "
            f"taxonomy={'yes' if self.taxonomy is not None else 'no'})"
        )


def filter_dataset(
    dataset: Dataset,
    attribute: Optional[str] = None,
    exclude: Any = None,
    keep: Any = None,
    predicate: Optional[FilterPredicate] = None,
) -> Dataset:
    """Filter out or keep samples of a dataset based on metadata values."""
    return dataset.filter(predicate=predicate, attribute=attribute, exclude=exclude, keep=keep)


def filter_features(dataset: Dataset, **kwargs: Any) -> Dataset:
    """Filter features of a dataset; see Dataset.filter_features."""
    return dataset.filter_features(**kwargs)


def match_datasets(ds1: Dataset, ds2: Dataset) -> Tuple[Dataset, Dataset]:
    """Reduce two datasets to their shared samples, both in ``ds1`` order.

    Raises:
        EmptyAlignment: If the datasets share no samples
    """
    common = intersect_ids(ds1.sample_ids, ds2.sample_ids, names=["ds1", "ds2"])
    return ds1._reindex_samples(common), ds2._reindex_samples(common)
