"""Palette entries, eligibility filtering and palette file readers."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Literal, Tuple

from .interfaces import PaletteStore

logger = logging.getLogger(__name__)

ColorTuple = Tuple[int, int, int]
ColorKind = Literal["solid", "gradient"]

SOLID: ColorKind = "solid"
GRADIENT: ColorKind = "gradient"
OPAQUE_ALPHA = 255


@dataclass(frozen=True, slots=True)
class Color:
    """One palette entry: an opaque id plus RGBA data and its kind."""

    id: str
    r: int
    g: int
    b: int
    a: int = OPAQUE_ALPHA
    kind: ColorKind = SOLID
    name: str = ""

    @property
    def rgb(self) -> ColorTuple:
        return (self.r, self.g, self.b)

    @property
    def is_eligible(self) -> bool:
        return self.kind == SOLID and self.a == OPAQUE_ALPHA

    def to_hex(self) -> str:
        return f"#{self.r:02X}{self.g:02X}{self.b:02X}"


WorkingSet = Tuple[Color, ...]


class PaletteError(RuntimeError):
    """Raised when palette lookup or palette file parsing fails."""


def load_catalog(palette: PaletteStore) -> WorkingSet:
    """Snapshot the mergeable colors of ``palette`` in display order.

    Gradients and anything that is not fully opaque are left out silently.
    """

    colors = palette.get_colors()
    working = tuple(color for color in colors if color.is_eligible)
    logger.debug(
        "load_catalog palette_colors=%s eligible=%s skipped=%s",
        len(colors),
        len(working),
        len(colors) - len(working),
    )
    return working


def _clamp_channel(value: int) -> int:
    return max(0, min(255, int(value)))


def read_act_palette(path: Path) -> List[ColorTuple]:
    """Load an Adobe ACT palette file (<=256 colors)."""

    data = path.read_bytes()
    if len(data) % 3 != 0 and len(data) != 772:
        raise PaletteError("ACT palette length must be divisible by 3")
    count = 256
    if len(data) == 772:
        # trailing count + transparent index words
        count = max(1, min(256, int.from_bytes(data[768:770], "big")))
    colors: List[ColorTuple] = []
    for i in range(0, min(len(data), count * 3), 3):
        colors.append((data[i], data[i + 1], data[i + 2]))
    return colors


def _parse_gpl_palette(path: Path) -> List[ColorTuple]:
    colors: List[ColorTuple] = []
    for raw_line in path.read_text(encoding="utf-8", errors="ignore").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("GIMP Palette") or line.startswith("Name:") or line.startswith("Columns:"):
            continue
        parts = line.split()
        if len(parts) < 3:
            continue
        try:
            r, g, b = (int(parts[0]), int(parts[1]), int(parts[2]))
        except ValueError:
            continue
        colors.append((_clamp_channel(r), _clamp_channel(g), _clamp_channel(b)))
    if not colors:
        raise PaletteError("GPL file did not contain any valid colors")
    return colors


def _parse_jasc_pal_palette(path: Path) -> List[ColorTuple]:
    lines = [line.strip() for line in path.read_text(encoding="utf-8", errors="ignore").splitlines() if line.strip()]
    if len(lines) < 4 or lines[0].upper() != "JASC-PAL":
        raise PaletteError("Unsupported .pal format (expected JASC-PAL)")
    colors: List[ColorTuple] = []
    for line in lines[3:]:
        parts = line.split()
        if len(parts) < 3:
            continue
        try:
            r, g, b = (int(parts[0]), int(parts[1]), int(parts[2]))
        except ValueError:
            continue
        colors.append((_clamp_channel(r), _clamp_channel(g), _clamp_channel(b)))
    if not colors:
        raise PaletteError("JASC-PAL file did not contain any valid colors")
    return colors


def _parse_hex_palette_text(path: Path) -> List[ColorTuple]:
    colors: List[ColorTuple] = []
    pattern = re.compile(r"#?([0-9a-fA-F]{6})")
    for raw_line in path.read_text(encoding="utf-8", errors="ignore").splitlines():
        line = raw_line.strip()
        if not line:
            continue
        match = pattern.search(line)
        if not match:
            continue
        colors.append(hex_to_rgb(match.group(1)))
    if not colors:
        raise PaletteError("Text palette did not contain any #RRGGBB colors")
    return colors


def read_palette_file(path: Path) -> List[ColorTuple]:
    """Read RGB entries from an ACT, GPL, JASC-PAL or hex text palette."""

    ext = path.suffix.lower()
    if ext == ".act":
        colors = read_act_palette(path)
    elif ext == ".gpl":
        colors = _parse_gpl_palette(path)
    elif ext == ".pal":
        colors = _parse_jasc_pal_palette(path)
    elif ext in {".txt", ".hex"}:
        colors = _parse_hex_palette_text(path)
    else:
        raise PaletteError(f"Unsupported palette file: {path.suffix}")
    logger.debug("Loaded palette file path=%s format=%s colors=%s", path.name, ext, len(colors))
    return colors


def hex_to_rgb(value: str) -> ColorTuple:
    value = value.strip()
    if value.startswith("#"):
        value = value[1:]
    if len(value) != 6:
        raise ValueError("Expected hex RGB in the form RRGGBB")
    r = int(value[0:2], 16)
    g = int(value[2:4], 16)
    b = int(value[4:6], 16)
    return (r, g, b)


def find_color_by_rgb(colors: Iterable[Color], rgb: ColorTuple) -> Color | None:
    """Return the first eligible color whose RGB equals ``rgb``."""

    for color in colors:
        if color.is_eligible and color.rgb == rgb:
            return color
    return None
