"""Shared pytest fixtures for microbiome_align tests."""

import logging

import biom
import numpy as np
import polars as pl
import pytest

from microbiome_align.wrangle.metadata import SampleMetadata
from microbiome_align.wrangle.table import TableLoader

# Configure debug logging for tests
logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def write_tsv(path, rows):
    """Write rows of cells as a tab-delimited file and return the path."""
    path.write_text("".join("\t".join(str(c) for c in row) + "\n" for row in rows))
    return path


def write_matrix(path, ids, data):
    """Write a labelled square matrix with an empty corner cell."""
    rows = [[""] + list(ids)]
    for sid, values in zip(ids, data):
        rows.append([sid] + [repr(float(v)) for v in values])
    return write_tsv(path, rows)


def distance_matrix(n, seed=0):
    """Random symmetric, zero-diagonal matrix of size n."""
    rng = np.random.default_rng(seed)
    upper = np.triu(rng.uniform(0.1, 1.0, size=(n, n)), k=1)
    return upper + upper.T


# Data fixtures - small synthetic tables


@pytest.fixture
def otu_rows():
    """OTU table with the '#OTU ID' header convention and taxonomy."""
    return [
        ["#OTU ID", "S1", "S2", "S3", "taxonomy"],
        ["F1", 10, 0, 5, "k__Bacteria; p__Firmicutes; c__Bacilli"],
        ["F2", 3, 7, 0, "k__Bacteria; p__Proteobacteria"],
        ["F3", 0, 2, 1, "k__Archaea"],
    ]


@pytest.fixture
def metadata_rows():
    """Mapping file: S3 is a blank, S4 is absent from the OTU table."""
    return [
        ["#SampleID", "sample_type", "ph", "site"],
        ["S1", "soil", 6.5, "A"],
        ["S2", "soil", 7.0, "B"],
        ["S3", "blank", 7.2, "A"],
        ["S4", "water", 6.9, "B"],
    ]


# File fixtures - write data to temporary files


@pytest.fixture
def otu_table_txt(tmp_path, otu_rows):
    return write_tsv(tmp_path / "otu_table.txt", otu_rows)


@pytest.fixture
def qiime_table_txt(tmp_path, otu_rows):
    """Same table, preceded by one comment line to be skipped."""
    return write_tsv(
        tmp_path / "qiime_table.txt", [["# Constructed from biom file"]] + otu_rows
    )


@pytest.fixture
def plain_table_tsv(tmp_path):
    """Table without a taxonomy column, skip-one-line convention."""
    return write_tsv(
        tmp_path / "plain.tsv",
        [
            ["# header line"],
            ["OTU", "S2", "S1", "S5"],
            ["F1", 1, 2, 3],
            ["F2", 4, 5, 6],
        ],
    )


@pytest.fixture
def metadata_txt(tmp_path, metadata_rows):
    return write_tsv(tmp_path / "mapping.txt", metadata_rows)


@pytest.fixture
def biom_table(tmp_path):
    """JSON BIOM table with taxonomy in the observation metadata."""
    data = np.array([[10.0, 0.0, 5.0], [3.0, 7.0, 0.0]])
    table = biom.Table(
        data,
        ["F1", "F2"],
        ["S1", "S2", "S3"],
        observation_metadata=[
            {"taxonomy": ["k__Bacteria", "p__Firmicutes", "c__Bacilli"]},
            {"taxonomy": ["k__Bacteria", "p__Proteobacteria"]},
        ],
    )
    path = tmp_path / "table.biom"
    path.write_text(table.to_json("microbiome_align tests"))
    return path


@pytest.fixture
def dm_ids():
    return ["S1", "S2", "S3", "S4"]


@pytest.fixture
def dm_txt(tmp_path, dm_ids):
    return write_matrix(tmp_path / "dm.txt", dm_ids, distance_matrix(len(dm_ids)))


@pytest.fixture
def dm2_txt(tmp_path):
    ids = ["S2", "S3", "S4", "S5"]
    return write_matrix(tmp_path / "dm2.txt", ids, distance_matrix(len(ids), seed=1))


@pytest.fixture
def wide_metadata_txt(tmp_path):
    """Metadata covering S1..S5."""
    return write_tsv(
        tmp_path / "wide_mapping.txt",
        [
            ["SampleID", "sample_type", "depth"],
            ["S1", "soil", 1],
            ["S2", "soil", 2],
            ["S3", "blank", 3],
            ["S4", "water", 4],
            ["S5", "water", 5],
        ],
    )


# Instance fixtures


@pytest.fixture
def sample_metadata(metadata_txt):
    return SampleMetadata(metadata_txt)


@pytest.fixture
def dataset(otu_table_txt, metadata_txt):
    """Dataset loaded from the OTU table and mapping file."""
    return TableLoader().load(otu_table_txt, metadata_txt)


@pytest.fixture
def metadata_frame():
    return pl.DataFrame(
        {
            "sample": ["S1", "S2", "S3"],
            "sample_type": ["soil", "soil", "blank"],
            "ph": [6.5, 7.0, 7.2],
        }
    )
