"""microbiome_align.

Loads community composition data (feature abundance tables, sample
metadata, taxonomy and precomputed dissimilarity matrices) and keeps them
aligned on a common, deterministically ordered sample set through every
filtering step.
"""

# Key utilities
from .utils.logging import get_logger, setup_logging

# Core data structures
from .core import (
    AlignmentError,
    AmbiguousFilter,
    DuplicateIdentifier,
    EmptyAlignment,
    FilterMode,
    LoaderSettings,
    MalformedMatrix,
    ParseError,
    UnknownAttribute,
    UnsupportedFormat,
)
from .utils.taxonomy import TaxonomicRanks
from .wrangle import (
    Dataset,
    DissimilarityMatrix,
    FilterPredicate,
    SampleMetadata,
    TableLoader,
    export_table,
    filter_dataset,
    load_2_dms,
    load_dm,
    load_taxa_table,
    match_datasets,
)

__version__ = "0.1.0"

__all__ = [
    "Dataset",
    "DissimilarityMatrix",
    "FilterPredicate",
    "FilterMode",
    "LoaderSettings",
    "SampleMetadata",
    "TableLoader",
    "TaxonomicRanks",
    "export_table",
    "filter_dataset",
    "load_2_dms",
    "load_dm",
    "load_taxa_table",
    "match_datasets",
    "AlignmentError",
    "AmbiguousFilter",
    "DuplicateIdentifier",
    "EmptyAlignment",
    "MalformedMatrix",
    "ParseError",
    "UnknownAttribute",
    "UnsupportedFormat",
    "setup_logging",
    "get_logger",
]

# Configure default logging
setup_logging()
