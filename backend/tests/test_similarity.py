"""Tests for name normalization and similarity scoring."""

import pytest

from campscout.services.similarity import levenshtein, normalize_name, similarity


class TestNormalizeName:
    def test_strips_trailing_grade_qualifier(self):
        assert normalize_name("Pottery Studio (Grades 3-5)") == "pottery studio"

    def test_strips_age_qualifier_case_insensitively(self):
        assert normalize_name("Robotics Lab (AGES 8-12)") == "robotics lab"

    def test_strips_stacked_qualifiers(self):
        assert normalize_name("Nature Explorers (Ages 5-7) (Grade K)") == "nature explorers"

    def test_keeps_other_parentheticals(self):
        assert normalize_name("Soccer (Half Day)") == "soccer (half day)"

    def test_collapses_whitespace(self):
        assert normalize_name("  Art   Camp\tWeek 1 ") == "art camp week 1"

    def test_empty(self):
        assert normalize_name(None) == ""
        assert normalize_name("") == ""


class TestLevenshtein:
    @pytest.mark.parametrize("a,b,expected", [
        ("kitten", "sitting", 3),
        ("", "abc", 3),
        ("abc", "", 3),
        ("same", "same", 0),
        ("flaw", "lawn", 2),
    ])
    def test_distance(self, a, b, expected):
        assert levenshtein(a, b) == expected

    def test_symmetric(self):
        assert levenshtein("camp", "champ") == levenshtein("champ", "camp")


class TestSimilarity:
    def test_grade_variants_are_identical(self):
        assert similarity("Pottery Studio (Grades 3-5)", "Pottery Studio (Grades K-2)") == 1.0

    def test_small_typo_above_threshold(self):
        assert similarity("Junior Chefs Camp", "Junior Chef Camp") > 0.8

    def test_different_camps_below_threshold(self):
        assert similarity("Junior Chefs Camp", "Rock Climbing Adventure") < 0.5

    def test_blank_scores_zero(self):
        assert similarity("", "Art Camp") == 0.0
        assert similarity(None, None) == 0.0
        assert similarity("   ", "   ") == 0.0
        assert similarity("   ", "(Ages 6-9)") == 0.0

    def test_qualifier_only_name_equals_itself(self):
        assert similarity("(Ages 6-9)", "(Ages 6-9)") == 1.0
        assert similarity("(Grades 3-5)", "(grades 3-5) ") == 1.0

    def test_score_formula(self):
        # one substitution over four characters
        assert similarity("abcd", "abce") == pytest.approx(0.75)
