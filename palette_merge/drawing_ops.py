"""Indexed drawing helpers built on Pillow."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Sequence, Set, Tuple

from PIL import Image

from .palette_ops import ColorTuple

logger = logging.getLogger(__name__)

MAX_SLOTS = 256

PixelSnapshot = Tuple[Tuple[int, int], bytes]


class DrawingError(RuntimeError):
    """Raised when a drawing is missing or cannot be inspected or recolored."""


def ensure_indexed(image: Image.Image) -> Image.Image:
    if image.mode != "P":
        raise DrawingError(
            f"Expected indexed drawing (mode 'P'), got mode {image.mode!r}"
        )
    return image


def load_drawing(path: Path) -> Image.Image:
    if not path.exists():
        raise DrawingError(f"Drawing file not found: {path}")
    with Image.open(path) as img:
        img.load()
        return ensure_indexed(img).copy()


def _build_palette_image(
    colors: Sequence[ColorTuple], alphas: Sequence[int], size: Tuple[int, int] = (1, 1)
) -> Image.Image:
    if len(colors) > MAX_SLOTS:
        raise DrawingError("Palettes are limited to 256 colors for indexed drawings")
    palette_image = Image.new("P", size)
    palette_image.putpalette(_flatten_palette(colors))
    if any(alpha < 255 for alpha in alphas):
        palette_image.info["transparency"] = bytes(alphas)
    return palette_image


def to_indexed(image: Image.Image, *, max_colors: int = MAX_SLOTS) -> Image.Image:
    """Return an indexed copy of ``image``, keeping exact colors when possible.

    Sources with at most ``max_colors`` distinct RGBA values get one slot per
    value, with every fully transparent pixel sharing a single slot. The slot
    alphas are kept in ``info["transparency"]``. Larger sources fall back to
    Pillow's octree quantizer without dithering.
    """

    if image.mode == "P":
        return image.copy()
    base = image.convert("RGBA")
    distinct = base.getcolors(maxcolors=max_colors)
    if distinct is None:
        logger.debug("Quantizing drawing mode=%s size=%s max_colors=%s", image.mode, image.size, max_colors)
        return base.quantize(
            colors=max_colors,
            method=Image.Quantize.FASTOCTREE,
            dither=Image.Dither.NONE,
        )

    slot_of: Dict[Tuple[int, int, int, int], int] = {}
    colors: List[ColorTuple] = []
    alphas: List[int] = []
    clear_slot: int | None = None
    for _count, rgba in sorted(distinct, key=lambda item: item[1]):
        if rgba[3] == 0:
            if clear_slot is None:
                clear_slot = len(colors)
                colors.append((0, 0, 0))
                alphas.append(0)
            slot_of[rgba] = clear_slot
            continue
        slot_of[rgba] = len(colors)
        colors.append(rgba[:3])
        alphas.append(rgba[3])
    indexed = _build_palette_image(colors, alphas, base.size)
    indexed.putdata([slot_of[pixel] for pixel in base.getdata()])
    logger.debug("Indexed drawing exactly mode=%s size=%s slots=%s", image.mode, image.size, len(colors))
    return indexed


def _flatten_palette(colors: Sequence[ColorTuple]) -> List[int]:
    limited = list(colors[:MAX_SLOTS])
    if len(limited) < MAX_SLOTS:
        limited.extend([(0, 0, 0)] * (MAX_SLOTS - len(limited)))
    flat: List[int] = []
    for color in limited:
        flat.extend(color)
    return flat


def save_drawing(path: Path, image: Image.Image, slot_colors: Sequence[ColorTuple]) -> None:
    """Write ``image`` with its embedded palette refreshed from ``slot_colors``."""

    working = image.copy()
    working.putpalette(_flatten_palette(slot_colors))
    path.parent.mkdir(parents=True, exist_ok=True)
    working.save(path)


def used_slots(image: Image.Image) -> Set[int]:
    """Return the slot indices that at least one pixel uses."""

    ensure_indexed(image)
    used = image.getcolors(maxcolors=MAX_SLOTS)
    if not used:
        return set()
    return {idx for _count, idx in used}


def apply_index_map(image: Image.Image, mapping: Dict[int, int]) -> None:
    """Rewrite pixel slot indices in place through a lookup table."""

    if not mapping:
        return
    lut = list(range(MAX_SLOTS))
    for src, dst in mapping.items():
        if 0 <= src < MAX_SLOTS:
            lut[src] = max(0, min(MAX_SLOTS - 1, int(dst)))
    remapped = image.point(lut)
    image.paste(remapped)
    logger.debug("apply_index_map entries=%s size=%s", len(mapping), image.size)


def snapshot_pixels(image: Image.Image) -> PixelSnapshot:
    return image.size, image.tobytes()


def restore_pixels(snapshot: PixelSnapshot) -> Image.Image:
    size, data = snapshot
    return Image.frombytes("P", size, data)
