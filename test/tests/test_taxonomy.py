"""Tests for taxonomy ranks and taxonomy string parsing."""

import polars as pl
import pytest

from microbiome_align.utils.taxonomy import (
    TaxonomicRanks,
    join_taxonomy,
    parse_taxonomy,
    resolve_rank_column,
)


class TestTaxonomicRanks:
    """Test rank naming and navigation."""

    def test_prefix_and_column(self):
        assert TaxonomicRanks.PHYLUM.prefix == "p__"
        assert TaxonomicRanks.DOMAIN.column == "taxonomy1"
        assert TaxonomicRanks.SPECIES.column == "taxonomy7"

    def test_from_name_accepts_kingdom(self):
        assert TaxonomicRanks.from_name("kingdom") is TaxonomicRanks.DOMAIN
        assert TaxonomicRanks.from_name("Genus") is TaxonomicRanks.GENUS

    def test_from_name_invalid(self):
        with pytest.raises(ValueError, match="Invalid taxonomic rank"):
            TaxonomicRanks.from_name("subphylum")

    def test_iter_from_domain(self):
        ranks = list(TaxonomicRanks.iter_from_domain())
        assert ranks[0] is TaxonomicRanks.DOMAIN
        assert ranks[-1] is TaxonomicRanks.SPECIES
        assert len(ranks) == 7

    @pytest.mark.parametrize(
        "rank, expected",
        [
            (TaxonomicRanks.CLASS, "taxonomy3"),
            ("phylum", "taxonomy2"),
            ("taxonomy5", "taxonomy5"),
            (0, "taxonomy1"),
        ],
    )
    def test_resolve_rank_column(self, rank, expected):
        assert resolve_rank_column(rank) == expected


class TestParseTaxonomy:
    """Test parsing of semicolon-delimited taxonomy strings."""

    def test_depth_is_longest_entry(self):
        table = parse_taxonomy(
            ["k__Bacteria; p__Firmicutes; c__Bacilli", "k__Bacteria"],
            ["F1", "F2"],
        )

        assert table.columns == ["feature", "taxonomy1", "taxonomy2", "taxonomy3"]
        assert table.row(0) == ("F1", "k__Bacteria", "p__Firmicutes", "c__Bacilli")

    def test_missing_ranks_carry_last_known_label(self):
        table = parse_taxonomy(
            ["k__Bacteria; p__Firmicutes; c__Bacilli; o__Lactobacillales", "k__Bacteria; p__Firmicutes"],
            ["F1", "F2"],
        )

        assert table.row(1) == (
            "F2",
            "k__Bacteria",
            "p__Firmicutes",
            "unclassified_p__Firmicutes",
            "unclassified_p__Firmicutes",
        )

    def test_prefix_only_and_empty_labels(self):
        table = parse_taxonomy(["k__Bacteria;p__;;c__Bacilli"], ["F1"])

        assert table.row(0) == (
            "F1",
            "k__Bacteria",
            "unclassified_k__Bacteria",
            "unclassified_k__Bacteria",
            "c__Bacilli",
        )

    def test_trailing_separator_is_ignored(self):
        table = parse_taxonomy(["k__Bacteria; p__Firmicutes;"], ["F1"])

        assert table.width == 3

    def test_malformed_entries_are_unclassified(self):
        table = parse_taxonomy(
            ["k__Bacteria; p__Firmicutes", None, "", 42], ["F1", "F2", "F3", "F4"]
        )

        for i in (1, 2, 3):
            assert table.row(i)[1:] == ("unclassified", "unclassified")

    def test_presplit_labels(self):
        table = parse_taxonomy([["k__Bacteria", " p__Firmicutes "]], ["F1"])

        assert table.row(0) == ("F1", "k__Bacteria", "p__Firmicutes")

    def test_custom_marker(self):
        table = parse_taxonomy(["k__A", "k__A; p__B"], ["F1", "F2"], unclassified="NA")

        assert table.row(0)[2] == "NA_k__A"

    def test_marker_does_not_nest(self):
        table = parse_taxonomy(
            ["k__A; unclassified_k__A", "k__A; p__B; c__C"], ["F1", "F2"]
        )

        assert table.row(0)[3] == "unclassified_k__A"

    def test_length_mismatch(self):
        with pytest.raises(ValueError, match="taxonomy entries"):
            parse_taxonomy(["k__A"], ["F1", "F2"])

    def test_join_taxonomy(self):
        table = parse_taxonomy(["k__A;p__B", "k__C"], ["F1", "F2"])

        assert join_taxonomy(table) == ["k__A; p__B", "k__C; unclassified_k__C"]
        assert join_taxonomy(table, ";") == ["k__A;p__B", "k__C;unclassified_k__C"]

    def test_reparse_of_joined_strings_is_stable(self):
        table = parse_taxonomy(["k__A; p__B; c__C", "k__D"], ["F1", "F2"])
        reparsed = parse_taxonomy(join_taxonomy(table), ["F1", "F2"])

        assert reparsed.equals(table)
        assert isinstance(reparsed, pl.DataFrame)
