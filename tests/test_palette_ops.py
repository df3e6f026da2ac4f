"""Tests for palette eligibility filtering and palette file readers."""

import pytest

from palette_merge.palette_ops import (
    GRADIENT,
    Color,
    PaletteError,
    find_color_by_rgb,
    hex_to_rgb,
    load_catalog,
    read_palette_file,
)

from conftest import FakeHost


class TestLoadCatalog:

    def test_gradients_and_transparent_colors_excluded(self):
        colors = [
            Color(id="a", r=10, g=10, b=10),
            Color(id="grad", r=10, g=10, b=10, kind=GRADIENT),
            Color(id="semi", r=10, g=10, b=10, a=254),
            Color(id="clear", r=10, g=10, b=10, a=0),
            Color(id="b", r=200, g=0, b=0),
        ]
        working = load_catalog(FakeHost(colors))
        assert [color.id for color in working] == ["a", "b"]

    def test_preserves_palette_order_and_does_not_mutate(self):
        colors = [Color(id=str(i), r=i, g=i, b=i) for i in range(5)][::-1]
        host = FakeHost(colors)
        working = load_catalog(host)
        assert [color.id for color in working] == ["4", "3", "2", "1", "0"]
        assert host.calls == []
        assert isinstance(working, tuple)

    def test_empty_palette(self):
        assert load_catalog(FakeHost([])) == ()


class TestPaletteFiles:

    def test_gpl(self, tmp_path):
        path = tmp_path / "pal.gpl"
        path.write_text(
            "GIMP Palette\nName: test\nColumns: 4\n#\n255 0 0 Red\n  0 255 0\tGreen\nbogus line\n",
            encoding="utf-8",
        )
        assert read_palette_file(path) == [(255, 0, 0), (0, 255, 0)]

    def test_hex_text(self, tmp_path):
        path = tmp_path / "pal.hex"
        path.write_text("#ff0000\n00FF00 green\n\nnot a color\n", encoding="utf-8")
        assert read_palette_file(path) == [(255, 0, 0), (0, 255, 0)]

    def test_act(self, tmp_path):
        path = tmp_path / "pal.act"
        path.write_bytes(bytes([1, 2, 3, 4, 5, 6]))
        assert read_palette_file(path) == [(1, 2, 3), (4, 5, 6)]

    def test_jasc_requires_header(self, tmp_path):
        path = tmp_path / "pal.pal"
        path.write_text("RIFF\n0100\n1\n1 2 3\n", encoding="utf-8")
        with pytest.raises(PaletteError):
            read_palette_file(path)

    def test_unsupported_extension(self, tmp_path):
        path = tmp_path / "pal.xyz"
        path.write_text("", encoding="utf-8")
        with pytest.raises(PaletteError):
            read_palette_file(path)


def test_hex_to_rgb():
    assert hex_to_rgb("#0a0B0c") == (10, 11, 12)
    with pytest.raises(ValueError):
        hex_to_rgb("#fff")


def test_find_color_by_rgb_skips_ineligible():
    colors = [
        Color(id="clear", r=1, g=2, b=3, a=0),
        Color(id="solid", r=1, g=2, b=3),
    ]
    assert find_color_by_rgb(colors, (1, 2, 3)).id == "solid"
    assert find_color_by_rgb(colors, (9, 9, 9)) is None
