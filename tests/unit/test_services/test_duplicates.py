"""Unit tests for description similarity used by re-issue detection."""

import pytest

from bankfeed.services.duplicates import SIMILARITY_THRESHOLD, description_similarity


class TestDescriptionSimilarity:
    def test_case_and_spacing_ignored(self):
        assert description_similarity("TESCO  STORES 3297", " tesco stores 3297") == 1.0

    def test_both_empty(self):
        assert description_similarity("", None) == 1.0

    def test_one_empty(self):
        assert description_similarity("TESCO", "") == 0.0

    @pytest.mark.parametrize(
        "first,second",
        [
            ("AMAZON MKTPLACE PMTS", "AMAZON MKTPLACE PMTS*2H4"),
            ("TFL TRAVEL CH", "TFL TRAVEL CHARGE"),
        ],
    )
    def test_minor_suffix_changes_are_similar(self, first, second):
        assert description_similarity(first, second) >= SIMILARITY_THRESHOLD

    def test_different_merchants_are_not_similar(self):
        assert description_similarity("TESCO STORES 3297", "SAINSBURYS LOCAL") < SIMILARITY_THRESHOLD
