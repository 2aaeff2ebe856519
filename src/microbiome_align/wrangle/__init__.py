"""Loading, alignment and filtering of community composition data."""

from .align import Alignment, align_components, intersect_ids
from .dataset import Dataset, filter_dataset, filter_features, match_datasets
from .distances import DissimilarityLoader, DissimilarityMatrix, load_2_dms, load_dm
from .export import export_table
from .metadata import FilterPredicate, SampleMetadata, select_samples
from .table import TableLoader, load_taxa_table

__all__ = [
    "Alignment",
    "align_components",
    "intersect_ids",
    "Dataset",
    "filter_dataset",
    "filter_features",
    "match_datasets",
    "DissimilarityLoader",
    "DissimilarityMatrix",
    "load_dm",
    "load_2_dms",
    "export_table",
    "FilterPredicate",
    "SampleMetadata",
    "select_samples",
    "TableLoader",
    "load_taxa_table",
]
