import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from glyph_sources import GlyphSource  # noqa: E402


def solid(width, height):
    """Bitmap rows for a fully opaque width x height block."""
    return ["#" * width] * height


@pytest.fixture
def make_source():
    """Build an in-memory GlyphSource from {codepoint: rows or glyph_def}."""

    def _make(name, glyphs, size=12):
        glyphs_def = {}
        for codepoint, glyph_def in glyphs.items():
            if isinstance(glyph_def, list):
                glyph_def = {"bitmap": glyph_def}
            glyphs_def[codepoint] = glyph_def
        return GlyphSource.from_glyph_data(
            name, {"metadata": {"name": name}, "glyphs": {size: glyphs_def}}
        )

    return _make
