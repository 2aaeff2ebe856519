"""Generic utilities for microbiome alignment workflows."""

from .logging import get_logger, setup_logging
from .taxonomy import TaxonomicRanks, join_taxonomy, parse_taxonomy

__all__ = [
    "TaxonomicRanks",
    "join_taxonomy",
    "parse_taxonomy",
    "setup_logging",
    "get_logger",
]
