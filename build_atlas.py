#!/usr/bin/env python3
"""
Build a monochrome glyph atlas from bitmap glyph sources.

Every code point in U+0000..U+FFFF gets one cell of a 256x256 grid of
12x16 cells. For each code point exactly one glyph source is chosen (fixed,
M+ or Baekmuk), its glyph is drawn into the cell, and the finished atlas is
packed and written gzip-compressed.

Usage:
    uv run python build_atlas.py --output <atlas.bin> [--eastasia]
        [--variant extended|legacy] [--glyph-data glyph_data/]

Variants:
    extended  fixed + M+ + Baekmuk, glyphs drawn flush at the cell corner,
              1 bit per pixel (MSB first)
    legacy    M+ + Baekmuk, glyphs bottom-aligned on a shared baseline,
              4 bytes (RGBA) per pixel
"""

import argparse
import gzip
import sys
import unicodedata
from enum import Enum
from pathlib import Path

import yaml
from PIL import Image

from glyph_sources import Glyph, GlyphSource, load_glyph_source

ROOT = Path(__file__).resolve().parent
GLYPH_DATA_DIR = ROOT / "glyph_data"

GLYPH_SIZE = 12
CELL_WIDTH = 12
CELL_HEIGHT = 16
GRID = 256
LEGACY_ASCENT_MARGIN = 4

BOX_DRAWING = range(0x2500, 0x257F + 1)
HALFWIDTH_KATAKANA = range(0xFF65, 0xFF9F + 1)


class FontType(Enum):
    NONE = "none"
    FIXED = "fixed"
    PROPORTIONAL = "mplus"
    SUPPLEMENTARY = "baekmuk"


class Variant(Enum):
    LEGACY = "legacy"
    EXTENDED = "extended"


PROBE_ORDER = {
    Variant.EXTENDED: (FontType.FIXED, FontType.PROPORTIONAL, FontType.SUPPLEMENTARY),
    Variant.LEGACY: (FontType.PROPORTIONAL, FontType.SUPPLEMENTARY),
}


def east_asian_width(codepoint: int) -> str:
    return unicodedata.east_asian_width(chr(codepoint))


class GlyphResolver:
    """
    Choose the single glyph source for each code point.

    Range overrides come first (box drawing always from Baekmuk; in the
    extended variant halfwidth katakana from M+ and ambiguous-width
    characters from M+ or fixed depending on east_asia). Everything else
    goes to the first source in probe order that declares the code point.
    """

    def __init__(
        self,
        sources: dict[FontType, GlyphSource],
        variant: Variant = Variant.EXTENDED,
        east_asia: bool = False,
        width=east_asian_width,
    ):
        self.sources = sources
        self.variant = variant
        self.east_asia = east_asia
        self.width = width

    def _declares(self, font_type: FontType, codepoint: int) -> bool:
        source = self.sources.get(font_type)
        return source is not None and source.glyph(codepoint, GLYPH_SIZE) is not None

    def get_font_type(self, codepoint: int) -> FontType:
        if codepoint in BOX_DRAWING:
            # M+ defines only part of the box drawing block
            return FontType.SUPPLEMENTARY

        if self.variant is Variant.EXTENDED:
            if codepoint in HALFWIDTH_KATAKANA:
                return FontType.PROPORTIONAL
            # Decided without checking coverage: a miss leaves the cell empty
            if self.width(codepoint) == "A":
                if self.east_asia:
                    return FontType.PROPORTIONAL
                return FontType.FIXED

        for font_type in PROBE_ORDER[self.variant]:
            if self._declares(font_type, codepoint):
                return font_type
        return FontType.NONE

    def get_glyph(self, codepoint: int) -> Glyph | None:
        font_type = self.get_font_type(codepoint)
        if font_type is FontType.NONE:
            return None
        source = self.sources.get(font_type)
        if source is None:
            return None
        return source.glyph(codepoint, GLYPH_SIZE)


def canvas_size() -> tuple[int, int]:
    return CELL_WIDTH * GRID, CELL_HEIGHT * GRID


def new_canvas(variant: Variant) -> Image.Image:
    if variant is Variant.LEGACY:
        return Image.new("RGBA", canvas_size(), (0, 0, 0, 0))
    return Image.new("L", canvas_size(), 0)


def glyph_position(codepoint: int, glyph: Glyph, variant: Variant) -> tuple[int, int]:
    """Top-left canvas position for a glyph drawn in codepoint's cell."""
    cell_x = (codepoint % GRID) * CELL_WIDTH
    cell_y = (codepoint // GRID) * CELL_HEIGHT
    if variant is Variant.LEGACY:
        # Bottom-aligned on a common baseline, 4px above the cell bottom
        return (
            cell_x + glyph.x,
            cell_y + (CELL_HEIGHT - glyph.height) - LEGACY_ASCENT_MARGIN - glyph.y,
        )
    return cell_x, cell_y


def draw_glyph(canvas: Image.Image, codepoint: int, glyph: Glyph, variant: Variant):
    """Draw glyph over canvas: opaque pixels replace, transparent ones are skipped."""
    if glyph.image is None:
        return
    x, y = glyph_position(codepoint, glyph, variant)
    cell_x = (codepoint % GRID) * CELL_WIDTH
    if x < cell_x or x + glyph.width > cell_x + CELL_WIDTH:
        raise ValueError(
            f"Glyph U+{codepoint:04X} ({glyph.width}x{glyph.height} at x={x}) "
            f"does not fit in its cell columns {cell_x}..{cell_x + CELL_WIDTH}"
        )
    canvas_w, canvas_h = canvas.size
    if y < 0 or y + glyph.height > canvas_h or x + glyph.width > canvas_w:
        raise ValueError(
            f"Glyph U+{codepoint:04X} ({glyph.width}x{glyph.height} at {x},{y}) "
            f"falls outside the {canvas_w}x{canvas_h} atlas"
        )
    cell_y = (codepoint // GRID) * CELL_HEIGHT
    if variant is Variant.EXTENDED and y + glyph.height > cell_y + CELL_HEIGHT:
        # Only the legacy baseline offset may reach past the cell bottom
        raise ValueError(
            f"Glyph U+{codepoint:04X} ({glyph.width}x{glyph.height}) "
            f"does not fit in its cell rows {cell_y}..{cell_y + CELL_HEIGHT}"
        )
    fill = (255, 255, 255, 255) if canvas.mode == "RGBA" else 255
    canvas.paste(fill, (x, y), glyph.image)


def add_glyphs(canvas: Image.Image, resolver: GlyphResolver) -> int:
    """Draw every resolvable glyph of U+0000..U+FFFF. Returns the count drawn."""
    count = 0
    for j in range(GRID):
        for i in range(GRID):
            codepoint = i + j * GRID
            glyph = resolver.get_glyph(codepoint)
            if glyph is None:
                continue
            draw_glyph(canvas, codepoint, glyph, resolver.variant)
            count += 1
    return count


def build_atlas(resolver: GlyphResolver) -> tuple[Image.Image, int]:
    """Draw a fresh atlas. Returns the canvas and the number of glyphs drawn."""
    canvas = new_canvas(resolver.variant)
    placed = add_glyphs(canvas, resolver)
    return canvas, placed


def pack_alpha_bits(canvas: Image.Image) -> bytes:
    """
    Pack the alpha channel at one bit per pixel.

    Pixel index i = width*y + x sets bit (7 - i % 8) of byte i // 8 when
    its alpha is nonzero. Both dimensions must be multiples of 8 so that
    rows pack without padding.
    """
    width, height = canvas.size
    if width % 8 or height % 8:
        raise ValueError(
            f"Atlas size {width}x{height} is not a multiple of 8 in both dimensions"
        )
    alpha = canvas.getchannel("A") if canvas.mode == "RGBA" else canvas.convert("L")
    opaque = alpha.point(lambda a: 255 if a else 0)
    return opaque.convert("1", dither=Image.Dither.NONE).tobytes()


def pack_rgba(canvas: Image.Image) -> bytes:
    """Pack the canvas as row-major RGBA, one byte per channel."""
    return canvas.convert("RGBA").tobytes()


def serialize(canvas: Image.Image, variant: Variant) -> bytes:
    if variant is Variant.LEGACY:
        return pack_rgba(canvas)
    return pack_alpha_bits(canvas)


def write_atlas(data: bytes, output_path: Path):
    """
    Write data gzip-compressed (best compression) to output_path.

    The gzip stream is closed before the file so its trailer is written.
    On any failure after the file is created, the partial file is removed.
    """
    fout = open(output_path, "wb")
    try:
        with fout, gzip.GzipFile(
            filename="", mode="wb", compresslevel=9, fileobj=fout, mtime=0
        ) as cw:
            cw.write(data)
    except Exception:
        output_path.unlink(missing_ok=True)
        raise


def load_sources(glyph_data_dir: Path, variant: Variant) -> dict[FontType, GlyphSource]:
    """Load the glyph sources the variant probes, one subdirectory per font."""
    sources = {}
    for font_type in PROBE_ORDER[variant]:
        path = glyph_data_dir / font_type.value
        sources[font_type] = load_glyph_source(font_type.value, path)
    return sources


def parse_args(argv=None):
    ap = argparse.ArgumentParser(description="Build a bitmap glyph atlas.")
    ap.add_argument("--output", required=True, help="Output file (gzip-compressed)")
    ap.add_argument("--eastasia", action="store_true",
                    help="Prefer east Asia punctuations for ambiguous-width characters")
    ap.add_argument("--variant", choices=[v.value for v in Variant],
                    default=Variant.EXTENDED.value,
                    help="Atlas layout and packing (default: extended)")
    ap.add_argument("--glyph-data", default=str(GLYPH_DATA_DIR),
                    help="Directory holding fixed/, mplus/ and baekmuk/ glyph data")
    return ap.parse_args(argv)


def run(output_path: Path, glyph_data_dir: Path, variant: Variant, east_asia: bool):
    sources = load_sources(glyph_data_dir, variant)
    for font_type, source in sources.items():
        print(f"Loaded {font_type.value}: {source.name} ({source.count(GLYPH_SIZE)} glyphs)")

    resolver = GlyphResolver(sources, variant=variant, east_asia=east_asia)
    canvas, placed = build_atlas(resolver)
    data = serialize(canvas, variant)
    write_atlas(data, output_path)

    width, height = canvas.size
    print(f"Atlas saved to: {output_path}")
    print(f"  Variant: {variant.value}")
    print(f"  East Asia: {'yes' if east_asia else 'no'}")
    print(f"  Glyphs: {placed}")
    print(f"  Size: {width}x{height}")
    print(f"  Payload: {len(data)} bytes")


def main(argv=None):
    args = parse_args(argv)
    try:
        run(
            Path(args.output),
            Path(args.glyph_data),
            Variant(args.variant),
            args.eastasia,
        )
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
