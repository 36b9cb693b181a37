"""
Bitmap glyph sources loaded from YAML glyph tables.

A glyph source is one font's worth of bitmap glyphs, keyed by lookup size
and code point. Sources are read once from a YAML file or a directory of
YAML files and never modified afterwards.

Glyph data layout:

    metadata:
      name: Baekmuk Gulim
      size: 12
    glyphs:
      0xAC00:
        y_offset: 0
        bitmap:
          - "..#......#.."
          - ...
"""

import re
from pathlib import Path
from typing import NamedTuple

import yaml
from PIL import Image

DEFAULT_SIZE = 12

CODEPOINT_RE = re.compile(r"^(?:uni|U\+|0x)([0-9A-Fa-f]{4,6})$")


class Glyph(NamedTuple):
    """A binary glyph bitmap and its origin offset within the glyph cell."""

    image: Image.Image | None  # mode "L" mask, None for an empty bitmap
    width: int
    height: int
    x: int = 0
    y: int = 0


def parse_codepoint(key) -> int:
    """Convert a glyph table key (int, "uniXXXX", "U+XXXX") to a code point."""
    if isinstance(key, bool):
        raise ValueError(f"Invalid glyph key: {key!r}")
    if isinstance(key, int):
        codepoint = key
    else:
        m = CODEPOINT_RE.match(str(key))
        if m is None:
            raise ValueError(f"Invalid glyph key: {key!r}")
        codepoint = int(m.group(1), 16)
    if not 0 <= codepoint <= 0x10FFFF:
        raise ValueError(f"Glyph key {key!r} is outside the Unicode range")
    return codepoint


def parse_bitmap(bitmap: list) -> list[list[int]]:
    """
    Convert bitmap to a 2D array of 0s and 1s.
    Accepts either string rows ("#" = on) or int arrays.
    """
    if not bitmap:
        return []

    if isinstance(bitmap[0], str):
        return [
            [1 if c == '#' or c == '1' else 0 for c in row]
            for row in bitmap
        ]
    return [[1 if pixel else 0 for pixel in row] for row in bitmap]


def bitmap_to_glyph(bitmap: list[list[int]], x: int = 0, y: int = 0) -> Glyph:
    """Build a Glyph whose mask is 255 where the bitmap is on."""
    height = len(bitmap)
    width = len(bitmap[0]) if bitmap else 0
    if width == 0 or height == 0:
        return Glyph(None, 0, 0, x, y)
    data = bytes(255 if pixel else 0 for row in bitmap for pixel in row)
    return Glyph(Image.frombytes("L", (width, height), data), width, height, x, y)


def build_glyph(codepoint: int, glyph_def: dict | None) -> Glyph:
    """Validate one glyph definition and convert it to a Glyph."""
    if glyph_def is None:
        glyph_def = {}
    if not isinstance(glyph_def, dict):
        raise ValueError(
            f"Glyph U+{codepoint:04X} must be a mapping, got {glyph_def!r}"
        )
    bitmap = glyph_def.get("bitmap") or []
    if not isinstance(bitmap, list) or not all(isinstance(row, (str, list)) for row in bitmap):
        raise ValueError(f"Glyph U+{codepoint:04X} has a malformed bitmap: {bitmap!r}")
    bitmap = parse_bitmap(bitmap)
    row_widths = [len(row) for row in bitmap]
    if len(set(row_widths)) > 1:
        raise ValueError(
            f"Glyph U+{codepoint:04X} has inconsistent row widths: {row_widths}"
        )
    return bitmap_to_glyph(
        bitmap,
        x=int(glyph_def.get("x_offset", 0)),
        y=int(glyph_def.get("y_offset", 0)),
    )


def load_glyph_data(path: Path) -> dict:
    """
    Load glyph definitions from a YAML file or directory of YAML files.

    Files are merged in sorted order. Each file's glyphs are filed under the
    size given in its metadata, so one directory may carry several sizes.

    Returns {"metadata": {...}, "glyphs": {size: {codepoint: glyph_def}}}.
    """
    if path.is_dir():
        yaml_files = sorted(path.glob("*.yaml"))
    elif path.exists():
        yaml_files = [path]
    else:
        raise ValueError(f"Glyph data not found: {path}")

    metadata = {}
    glyphs = {}
    for yaml_file in yaml_files:
        with open(yaml_file, encoding="utf-8") as f:
            data = yaml.safe_load(f)
        if not data:
            continue
        if not isinstance(data, dict):
            raise ValueError(f"{yaml_file}: expected a mapping at top level")
        file_metadata = data.get("metadata") or {}
        file_glyphs = data.get("glyphs") or {}
        if not isinstance(file_metadata, dict):
            raise ValueError(f"{yaml_file}: 'metadata' must be a mapping")
        if not isinstance(file_glyphs, dict):
            raise ValueError(f"{yaml_file}: 'glyphs' must be a mapping of code points")
        metadata.update(file_metadata)
        size = int(file_metadata.get("size", DEFAULT_SIZE))
        table = glyphs.setdefault(size, {})
        for key, glyph_def in file_glyphs.items():
            table[parse_codepoint(key)] = glyph_def
    return {"metadata": metadata, "glyphs": glyphs}


class GlyphSource:
    """An immutable table of bitmap glyphs from one font."""

    def __init__(self, name: str, tables: dict[int, dict[int, Glyph]]):
        self.name = name
        self._tables = tables

    @classmethod
    def from_glyph_data(cls, name: str, glyph_data: dict) -> "GlyphSource":
        metadata = glyph_data.get("metadata") or {}
        tables = {}
        for size, glyphs_def in glyph_data.get("glyphs", {}).items():
            tables[int(size)] = {
                codepoint: build_glyph(codepoint, glyph_def)
                for codepoint, glyph_def in glyphs_def.items()
            }
        return cls(metadata.get("name", name), tables)

    def glyph(self, codepoint: int, size: int) -> Glyph | None:
        """Return the glyph for codepoint at size, or None if not declared."""
        return self._tables.get(size, {}).get(codepoint)

    def sizes(self) -> list[int]:
        return sorted(self._tables)

    def count(self, size: int) -> int:
        return len(self._tables.get(size, {}))

    def __repr__(self):
        return f"GlyphSource({self.name!r}, sizes={self.sizes()})"


def load_glyph_source(name: str, path: Path) -> GlyphSource:
    """Load a GlyphSource from a YAML file or directory of YAML files."""
    return GlyphSource.from_glyph_data(name, load_glyph_data(path))
