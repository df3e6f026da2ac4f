from __future__ import annotations

from typing import Dict, Iterable, List, Sequence, Set, Tuple

import pytest
from PIL import Image

from palette_merge.palette_ops import Color, PaletteError


class FakeHost:
    """In-memory palette, scene, drawing service and undo boundary.

    Drawings are lists of color ids, one per pixel. ``calls`` logs every
    mutating call in order.
    """

    def __init__(
        self,
        colors: Sequence[Color],
        drawings: Dict[str, List[str]] | None = None,
        columns: Dict[str, List[str | None]] | None = None,
        nodes: Dict[str, Tuple[bool, str | None, str | None]] | None = None,
        frames: int = 1,
    ) -> None:
        self.colors: List[Color] = list(colors)
        self.drawings = drawings or {}
        self.columns = columns or {}
        self.nodes = nodes or {}
        self.frames = frames
        self.calls: List[tuple] = []
        self.open_groups = 0
        self.fail_on_recolor = False

    # palette store

    def get_colors(self) -> List[Color]:
        return list(self.colors)

    def get_color_by_id(self, color_id: str) -> Color:
        for color in self.colors:
            if color.id == color_id:
                return color
        raise PaletteError(color_id)

    def remove_color(self, color_id: str) -> None:
        self.colors.remove(self.get_color_by_id(color_id))
        self.calls.append(("remove", color_id))

    # scene graph

    def list_drawing_nodes(self) -> List[str]:
        return list(self.nodes)

    def get_node_timing_mode(self, node: str) -> bool:
        return self.nodes[node][0]

    def resolve_content_column(self, node: str, timed: bool) -> str:
        _timed, element, timing = self.nodes[node]
        return element if timed else timing

    def get_content_at_frame(self, column: str, frame: int) -> str | None:
        cells = self.columns[column]
        return cells[frame - 1] if frame <= len(cells) else None

    def frame_count(self) -> int:
        return self.frames

    # drawing service

    def _drawing(self, node: str, frame: int) -> str | None:
        column = self.resolve_content_column(node, self.get_node_timing_mode(node))
        return self.get_content_at_frame(column, frame)

    def get_colors_used_in(self, node: str, frame: int) -> Set[str]:
        drawing = self._drawing(node, frame)
        return set(self.drawings.get(drawing, [])) if drawing else set()

    def recolor(self, node: str, frame: int, pairs: Iterable[Tuple[str, str]]) -> None:
        if self.fail_on_recolor:
            raise RuntimeError("drawing store unavailable")
        drawing = self._drawing(node, frame)
        pairs = list(pairs)
        self.calls.append(("recolor", node, frame, tuple(pairs)))
        for from_id, to_id in pairs:
            self.drawings[drawing] = [to_id if pixel == from_id else pixel for pixel in self.drawings[drawing]]

    # undo boundary

    def begin(self, label: str) -> None:
        self.open_groups += 1
        self.calls.append(("begin", label))

    def end(self) -> None:
        self.open_groups -= 1
        self.calls.append(("end",))


def solid(color_id: str, r: int, g: int, b: int) -> Color:
    return Color(id=color_id, r=r, g=g, b=b)


@pytest.fixture
def scenario_host() -> FakeHost:
    """Colors 1, 2, 3 with color 2 drawn across two nodes and several frames."""

    colors = [
        solid("1", 100, 100, 100),
        solid("2", 104, 102, 103),
        solid("3", 200, 10, 10),
    ]
    drawings = {
        "hat-1": ["1", "2", "2"],
        "hat-2": ["3", "3"],
        "face-1": ["2", "3"],
    }
    columns = {
        "hat": ["hat-1", "hat-1", "hat-2", "hat-1"],
        "face": ["face-1", "face-1", None, "face-1"],
    }
    nodes = {
        "Top/hat": (True, "hat", None),
        "Top/face": (False, None, "face"),
    }
    return FakeHost(colors, drawings, columns, nodes, frames=4)


def make_indexed(pixels: Sequence[int], palette: Sequence[Tuple[int, int, int]], size: Tuple[int, int] | None = None) -> Image.Image:
    size = size or (len(pixels), 1)
    image = Image.new("P", size)
    flat: List[int] = []
    for color in palette:
        flat.extend(color)
    flat.extend([0, 0, 0] * (256 - len(palette)))
    image.putpalette(flat)
    image.putdata(list(pixels))
    return image
