"""Taxonomic ranks and parsing of hierarchical taxonomy strings."""

import logging
import re
from enum import IntEnum
from typing import Any, List, Optional, Sequence

import polars as pl

logger = logging.getLogger(__name__)

UNCLASSIFIED = "unclassified"
RANK_COLUMN_PREFIX = "taxonomy"

# a label carrying only a rank prefix, e.g. "g__"
_EMPTY_RANK = re.compile(r"^[a-zA-Z]__$")


class TaxonomicRanks(IntEnum):
    """Enumeration of conventional taxonomic levels, broadest first."""
    DOMAIN = 0
    PHYLUM = 1
    CLASS = 2
    ORDER = 3
    FAMILY = 4
    GENUS = 5
    SPECIES = 6

    @property
    def name(self) -> str:
        return super().name.lower()

    @property
    def prefix(self) -> str:
        return f"{self.name[0]}__"

    @property
    def column(self) -> str:
        """Positional rank column holding this level in a taxonomy table."""
        return rank_column(self.value)

    @property
    def child(self) -> Optional["TaxonomicRanks"]:
        """Get the child (more specific) taxonomic rank."""
        try:
            return TaxonomicRanks(self.value + 1)
        except ValueError:
            return None  # Already at lowest rank

    @property
    def parent(self) -> Optional["TaxonomicRanks"]:
        """Get the parent (broader) taxonomic rank."""
        try:
            return TaxonomicRanks(self.value - 1)
        except ValueError:
            return None  # Already at highest rank

    @classmethod
    def from_name(cls, rank: str) -> "TaxonomicRanks":
        """Get enum member from rank name ("kingdom" is accepted for DOMAIN)."""
        rank = rank.upper()
        if rank == "KINGDOM":
            return cls.DOMAIN
        try:
            return cls[rank]
        except KeyError:
            raise ValueError(f"Invalid taxonomic rank: {rank}")

    @classmethod
    def iter_from_domain(cls):
        """Yield ranks from DOMAIN (broadest) to SPECIES (most specific)."""
        rank = cls.DOMAIN
        while rank is not None:
            yield rank
            rank = rank.child


def rank_column(index: int) -> str:
    """Name of the rank column at zero-based depth ``index``."""
    return f"{RANK_COLUMN_PREFIX}{index + 1}"


def resolve_rank_column(rank: Any) -> str:
    """Map a rank given as TaxonomicRanks, rank name, column name or depth
    to its rank column name."""
    if isinstance(rank, TaxonomicRanks):
        return rank.column
    if isinstance(rank, int):
        return rank_column(rank)
    if isinstance(rank, str):
        if re.fullmatch(rf"{RANK_COLUMN_PREFIX}\d+", rank):
            return rank
        return TaxonomicRanks.from_name(rank).column
    raise ValueError(f"Invalid taxonomic rank: {rank!r}")


def _unclassified(ancestor: Optional[str], marker: str) -> str:
    if ancestor is None:
        return marker
    if ancestor.startswith(marker):
        return ancestor
    return f"{marker}_{ancestor}"


def _split_labels(entry: Any) -> Optional[List[str]]:
    """Split one raw entry into stripped labels, or None if malformed."""
    if isinstance(entry, str):
        labels = [label.strip() for label in entry.split(";")]
    elif isinstance(entry, (list, tuple)) and all(
        isinstance(label, str) for label in entry
    ):
        labels = [label.strip() for label in entry]
    else:
        return None

    while labels and not labels[-1]:
        labels.pop()
    return labels or None


def parse_taxonomy(
    entries: Sequence[Any],
    feature_ids: Sequence[str],
    unclassified: str = UNCLASSIFIED,
) -> pl.DataFrame:
    """Parse per-feature taxonomy entries into a feature by rank table.

    Each entry is a semicolon-delimited string (or an already split
    sequence of labels, as stored in BIOM observation metadata). The table
    is as deep as the longest entry; shorter entries, empty labels and
    prefix-only labels such as ``g__`` are filled with
    ``unclassified_<last known label>``. Entries that cannot be parsed
    produce an all-unclassified row.

    Args:
        entries: Raw taxonomy entries, one per feature
        feature_ids: Feature identifiers, same length and order as entries
        unclassified: Marker used for missing ranks

    Returns:
        DataFrame with a ``feature`` column followed by ``taxonomy1..N``
    """
    if len(entries) != len(feature_ids):
        raise ValueError(
            f"Got {len(entries)} taxonomy entries for {len(feature_ids)} features"
        )

    parsed = [_split_labels(entry) for entry in entries]
    depth = max((len(labels) for labels in parsed if labels), default=1)

    malformed = sum(1 for labels in parsed if labels is None)
    if malformed:
        logger.debug(f"{malformed} taxonomy entries could not be parsed")

    rows = []
    for labels in parsed:
        if labels is None:
            rows.append([unclassified] * depth)
            continue

        row = []
        ancestor = None
        for label in labels:
            if not label or _EMPTY_RANK.match(label):
                row.append(_unclassified(ancestor, unclassified))
            else:
                row.append(label)
                ancestor = label
        row.extend([_unclassified(ancestor, unclassified)] * (depth - len(row)))
        rows.append(row)

    columns = {"feature": [str(fid) for fid in feature_ids]}
    for i in range(depth):
        columns[rank_column(i)] = [row[i] for row in rows]

    return pl.DataFrame(columns, schema={name: pl.Utf8 for name in columns})


def join_taxonomy(taxonomy: pl.DataFrame, separator: str = "; ") -> List[str]:
    """Reconstruct one taxonomy string per row by joining its rank labels."""
    ranks = [c for c in taxonomy.columns if c != "feature"]
    return taxonomy.select(
        pl.concat_str([pl.col(c) for c in ranks], separator=separator)
    ).to_series().to_list()
