"""Tests for the color vocabulary."""

import pytest

from oracle_lens.colors import (
    COMBINATION_MAP,
    normalize_color,
    parse_color_set,
    sort_colors,
)


class TestSortColors:
    """Test canonical color ordering."""

    def test_wubrg_order(self):
        assert sort_colors(["G", "W", "R", "U", "B"]) == ("W", "U", "B", "R", "G")

    def test_deduplicates(self):
        assert sort_colors("RRG") == ("R", "G")

    def test_unknown_letters_sort_last(self):
        assert sort_colors(["X", "G", "W"]) == ("W", "G", "X")


class TestNormalizeColor:
    """Test single color token normalization."""

    @pytest.mark.parametrize("token,expected", [
        ("white", "W"),
        ("Blue", "U"),
        ("BLACK", "B"),
        ("r", "R"),
        ("colorless", "C"),
        ("m", "M"),
    ])
    def test_known_tokens(self, token: str, expected: str):
        assert normalize_color(token) == expected

    def test_unknown_token_uppercased(self):
        assert normalize_color("x") == "X"


class TestParseColorSet:
    """Test parsing of full color expressions."""

    def test_single_letters(self):
        assert parse_color_set("rg") == ("R", "G")

    def test_letters_are_sorted(self):
        assert parse_color_set("gwu") == ("W", "U", "G")

    def test_color_name(self):
        assert parse_color_set("green") == ("G",)

    def test_shard(self):
        """Esper is white, blue and black."""
        assert parse_color_set("esper") == ("W", "U", "B")

    def test_combination_beats_letter_decomposition(self):
        """Named combinations win over letter-by-letter decomposition."""
        assert parse_color_set("bant") == ("W", "U", "G")

    def test_guild_and_college_agree(self):
        assert parse_color_set("orzhov") == parse_color_set("silverquill") == ("W", "B")

    def test_case_insensitive(self):
        assert parse_color_set("ESPER") == parse_color_set("Esper") == parse_color_set("wub")

    def test_four_color(self):
        assert parse_color_set("chaos") == ("U", "B", "R", "G")

    def test_fivecolor(self):
        assert parse_color_set("fivecolor") == ("W", "U", "B", "R", "G")

    def test_colorless_pseudo_color(self):
        assert parse_color_set("colorless") == ("C",)
        assert parse_color_set("c") == ("C",)

    def test_multicolor_pseudo_color(self):
        assert parse_color_set("multicolor") == ("M",)

    def test_unknown_letters_pass_through(self):
        assert parse_color_set("wx") == ("W", "X")

    def test_duplicate_letters_collapse(self):
        assert parse_color_set("rrr") == ("R",)

    def test_every_combination_is_valid_colors(self):
        for name, colors in COMBINATION_MAP.items():
            parsed = parse_color_set(name)
            assert set(parsed) == set(colors), name
            assert set(parsed) <= {"W", "U", "B", "R", "G"}
