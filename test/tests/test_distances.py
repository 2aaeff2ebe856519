"""Tests for dissimilarity matrix loading and alignment."""

import numpy as np
import pytest

from microbiome_align.core.exceptions import (
    DuplicateIdentifier,
    EmptyAlignment,
    MalformedMatrix,
    ParseError,
)
from microbiome_align.wrangle.distances import (
    DissimilarityLoader,
    DissimilarityMatrix,
    load_2_dms,
    load_dm,
)
from microbiome_align.wrangle.metadata import SampleMetadata

from conftest import distance_matrix, write_matrix, write_tsv


class TestReadMatrix:
    """Test parsing and validation of matrix files."""

    def test_read_matrix(self, dm_txt, dm_ids):
        ids, data = DissimilarityLoader().read_matrix(dm_txt)

        assert ids == dm_ids
        np.testing.assert_array_equal(data, distance_matrix(4))

    def test_not_square(self, tmp_path):
        path = write_tsv(
            tmp_path / "rect.txt",
            [["", "A", "B", "C"], ["A", 0, 1, 2], ["B", 1, 0, 3]],
        )

        with pytest.raises(MalformedMatrix, match="not square"):
            DissimilarityLoader().read_matrix(path)

    def test_mismatched_labels(self, tmp_path):
        path = write_tsv(
            tmp_path / "labels.txt",
            [["", "A", "B"], ["B", 0, 1], ["A", 1, 0]],
        )

        with pytest.raises(MalformedMatrix, match="labels"):
            DissimilarityLoader().read_matrix(path)

    def test_asymmetric(self, tmp_path):
        path = write_tsv(
            tmp_path / "asym.txt",
            [["", "A", "B"], ["A", 0, 0.5], ["B", 0.4, 0]],
        )

        with pytest.raises(MalformedMatrix, match="symmetric"):
            DissimilarityLoader().read_matrix(path)

    def test_nonzero_diagonal(self, tmp_path):
        path = write_tsv(
            tmp_path / "diag.txt",
            [["", "A", "B"], ["A", 0.1, 0.5], ["B", 0.5, 0]],
        )

        with pytest.raises(MalformedMatrix, match="diagonal"):
            DissimilarityLoader().read_matrix(path)

    def test_tiny_asymmetry_within_tolerance(self, tmp_path):
        path = write_tsv(
            tmp_path / "tol.txt",
            [["", "A", "B"], ["A", 0, 0.5], ["B", 0.5 + 1e-12, 0]],
        )

        ids, _ = DissimilarityLoader().read_matrix(path)
        assert ids == ["A", "B"]

    def test_non_numeric(self, tmp_path):
        path = write_tsv(
            tmp_path / "text.txt",
            [["", "A", "B"], ["A", 0, "x"], ["B", "x", 0]],
        )

        with pytest.raises(ParseError, match=r"'x'.*line 2"):
            DissimilarityLoader().read_matrix(path)

    def test_duplicate_labels(self, tmp_path):
        path = write_matrix(tmp_path / "dup.txt", ["A", "A"], np.zeros((2, 2)))

        with pytest.raises(DuplicateIdentifier):
            DissimilarityLoader().read_matrix(path)


class TestLoadDm:
    """Test loading a single matrix with metadata."""

    def test_load_aligns_with_metadata(self, dm_txt, metadata_txt, dm_ids):
        dm = load_dm(dm_txt, metadata_txt)

        assert dm.ids == dm_ids
        assert dm.metadata.get_samples() == dm_ids
        assert dm.data.shape == (4, 4)

    def test_filter_drops_rows_and_columns(self, dm_txt, metadata_txt):
        full = distance_matrix(4)
        dm = load_dm(dm_txt, metadata_txt, "sample_type", exclude_values="blank")

        assert dm.ids == ["S1", "S2", "S4"]
        np.testing.assert_array_equal(dm.data, full[np.ix_([0, 1, 3], [0, 1, 3])])
        assert "blank" not in dm.metadata.metadata.get_column("sample_type").to_list()

    def test_samples_missing_from_metadata_are_dropped(self, tmp_path, metadata_txt):
        ids = ["S4", "S9", "S1"]
        path = write_matrix(tmp_path / "extra.txt", ids, distance_matrix(3))

        dm = load_dm(path, metadata_txt)

        assert dm.ids == ["S4", "S1"]
        assert dm.data.shape == (2, 2)
        assert np.all(np.diag(dm.data) == 0.0)

    def test_no_shared_samples(self, tmp_path, metadata_txt):
        path = write_matrix(tmp_path / "other.txt", ["X", "Y"], distance_matrix(2))

        with pytest.raises(EmptyAlignment):
            load_dm(path, metadata_txt)

    def test_accepts_sample_metadata(self, dm_txt, sample_metadata):
        dm = DissimilarityLoader().load(dm_txt, sample_metadata)
        assert len(dm) == 4


class TestLoad2Dms:
    """Test loading two matrices over shared metadata."""

    def test_intersection_in_first_matrix_order(
        self, dm_txt, dm2_txt, wide_metadata_txt
    ):
        dm1, dm2 = load_2_dms(dm_txt, dm2_txt, wide_metadata_txt)

        assert dm1.ids == ["S2", "S3", "S4"]
        assert dm2.ids == ["S2", "S3", "S4"]
        np.testing.assert_array_equal(dm1.data, distance_matrix(4)[1:, 1:])
        np.testing.assert_array_equal(dm2.data, distance_matrix(4, seed=1)[:3, :3])

    def test_metadata_is_shared(self, dm_txt, dm2_txt, wide_metadata_txt):
        dm1, dm2 = load_2_dms(dm_txt, dm2_txt, wide_metadata_txt)

        assert dm1.metadata is dm2.metadata
        assert dm1.metadata.get_samples() == dm1.ids

    def test_filter_applies_to_both(self, dm_txt, dm2_txt, wide_metadata_txt):
        dm1, dm2 = load_2_dms(
            dm_txt, dm2_txt, wide_metadata_txt, "sample_type", keep_values="water"
        )

        assert dm1.ids == dm2.ids == ["S4"]
        assert dm1.data.shape == (1, 1)


class TestDissimilarityMatrix:
    """Test the matrix container."""

    def test_condensed(self, metadata_frame):
        data = np.array([[0.0, 1.0, 2.0], [1.0, 0.0, 3.0], [2.0, 3.0, 0.0]])
        dm = DissimilarityMatrix(["S1", "S2", "S3"], data, SampleMetadata(metadata_frame))

        np.testing.assert_array_equal(dm.condensed(), [1.0, 2.0, 3.0])

    def test_to_frame(self, metadata_frame):
        data = distance_matrix(3)
        dm = DissimilarityMatrix(["S1", "S2", "S3"], data, SampleMetadata(metadata_frame))
        frame = dm.to_frame()

        assert frame.columns == ["sample", "S1", "S2", "S3"]
        np.testing.assert_array_equal(frame.drop("sample").to_numpy(), data)

    def test_metadata_order_must_match(self, metadata_frame):
        with pytest.raises(ValueError, match="matrix order"):
            DissimilarityMatrix(
                ["S3", "S2", "S1"], distance_matrix(3), SampleMetadata(metadata_frame)
            )

    def test_rejects_asymmetric_data(self, metadata_frame):
        data = np.array([[0.0, 1.0, 2.0], [1.5, 0.0, 3.0], [2.0, 3.0, 0.0]])

        with pytest.raises(MalformedMatrix):
            DissimilarityMatrix(["S1", "S2", "S3"], data, SampleMetadata(metadata_frame))
