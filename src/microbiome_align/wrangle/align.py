"""Sample alignment across abundance tables, metadata and distance matrices.

Every structure indexed by sample ID is reduced to the IDs shared by all of
them and re-indexed to one common order: the order in which those IDs
appear in the first (primary) collection.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np
import polars as pl

from microbiome_align.core.exceptions import DuplicateIdentifier, EmptyAlignment

logger = logging.getLogger(__name__)


def ensure_unique(ids: Iterable[str], name: str = "identifiers") -> None:
    """Raise DuplicateIdentifier if ``ids`` contains repeats."""
    counts = Counter(ids)
    repeated = sorted(i for i, n in counts.items() if n > 1)
    if repeated:
        raise DuplicateIdentifier(
            f"Duplicate IDs in {name}: {repeated[:10]}"
            + (f" (and {len(repeated) - 10} more)" if len(repeated) > 10 else "")
        )


def intersect_ids(
    *collections: Sequence[str], names: Optional[Sequence[str]] = None
) -> List[str]:
    """Ordered intersection of identifier collections.

    Args:
        *collections: ID collections; the first one fixes the output order
        names: Optional label per collection, used in error messages

    Returns:
        IDs present in every collection, in first-collection order

    Raises:
        DuplicateIdentifier: If any collection repeats an ID
        EmptyAlignment: If no ID is shared by all collections
    """
    if not collections:
        raise ValueError("At least one ID collection is required")
    if names is None:
        names = [f"collection {i + 1}" for i in range(len(collections))]

    for ids, name in zip(collections, names):
        ensure_unique(ids, name)

    shared = set(collections[0])
    for ids in collections[1:]:
        shared.intersection_update(ids)

    order = [i for i in collections[0] if i in shared]
    if not order:
        raise EmptyAlignment(
            f"No identifiers shared by {', '.join(names)}. "
            f"Check that the inputs have overlapping sample IDs."
        )
    return order


def reindex_rows(
    frame: pl.DataFrame, id_column: str, order: Sequence[str]
) -> pl.DataFrame:
    """Select and reorder rows of ``frame`` so ``id_column`` equals ``order``.

    Raises:
        KeyError: If an ID in ``order`` is missing from the frame
    """
    position = {rid: i for i, rid in enumerate(frame.get_column(id_column).to_list())}
    missing = [rid for rid in order if rid not in position]
    if missing:
        raise KeyError(f"IDs not found in column {id_column!r}: {missing[:10]}")
    return frame.select(pl.all().gather([position[rid] for rid in order]))


def reindex_columns(
    frame: pl.DataFrame, order: Sequence[str], id_column: str
) -> pl.DataFrame:
    """Keep ``id_column`` plus the columns named in ``order``, in that order."""
    return frame.select([id_column, *order])


def reindex_square(
    ids: Sequence[str], matrix: np.ndarray, order: Sequence[str]
) -> np.ndarray:
    """Select and reorder rows and columns of a square matrix labelled by ``ids``."""
    position = {sid: i for i, sid in enumerate(ids)}
    idx = np.array([position[sid] for sid in order], dtype=np.intp)
    return matrix[np.ix_(idx, idx)]


@dataclass
class Alignment:
    """Structures re-indexed to a common sample order.

    Attributes:
        order: Shared sample IDs in canonical order
        metadata: Metadata rows in ``order``
        abundance: Abundance table with sample columns in ``order`` (if given)
        matrices: Square matrices with rows/columns in ``order``
    """

    order: List[str]
    metadata: pl.DataFrame
    abundance: Optional[pl.DataFrame] = None
    matrices: List[np.ndarray] = field(default_factory=list)


def align_components(
    metadata: pl.DataFrame,
    abundance: Optional[pl.DataFrame] = None,
    matrices: Sequence[Tuple[Sequence[str], np.ndarray]] = (),
) -> Alignment:
    """Align metadata with an abundance table and/or distance matrices.

    The primary collection (which fixes the order) is the abundance table's
    sample columns when given, otherwise the first matrix. Samples absent
    from any structure are dropped from all of them.

    Args:
        metadata: Metadata frame with a ``sample`` column
        abundance: Abundance frame with a ``feature`` column and sample columns
        matrices: (ids, square matrix) pairs

    Returns:
        Alignment with every structure re-indexed to the common order

    Raises:
        DuplicateIdentifier: If any structure repeats a sample ID
        EmptyAlignment: If no sample is shared by all structures
    """
    if abundance is None and not matrices:
        raise ValueError("Nothing to align: provide an abundance table or a matrix")

    metadata_ids = metadata.get_column("sample").to_list()
    collections: List[Tuple[str, List[str]]] = []
    if abundance is not None:
        collections.append(
            ("abundance table", [c for c in abundance.columns if c != "feature"])
        )
    matrix_entries = [
        (f"dissimilarity matrix {i + 1}", list(ids))
        for i, (ids, _) in enumerate(matrices)
    ]
    if abundance is None:
        collections.append(matrix_entries.pop(0))
        collections.append(("metadata", metadata_ids))
    else:
        collections.append(("metadata", metadata_ids))
    collections.extend(matrix_entries)

    logger.debug(f"Aligning samples across {len(collections)} component(s)")
    order = intersect_ids(
        *[ids for _, ids in collections], names=[name for name, _ in collections]
    )

    for name, ids in collections:
        dropped = len(ids) - len(order)
        if dropped:
            logger.info(
                f"Alignment dropped {dropped} of {len(ids)} samples from {name}"
            )
    logger.debug(f"Final aligned sample set: {len(order)} samples")

    return Alignment(
        order=order,
        metadata=reindex_rows(metadata, "sample", order),
        abundance=(
            reindex_columns(abundance, order, "feature")
            if abundance is not None
            else None
        ),
        matrices=[reindex_square(ids, m, order) for ids, m in matrices],
    )
