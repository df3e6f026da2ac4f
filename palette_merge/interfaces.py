"""Host collaborators consumed by the merge core."""
from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Hashable, Iterable, Protocol, Sequence, Set, Tuple

if TYPE_CHECKING:
    from .palette_ops import Color

ColorId = str
NodeRef = str
ColumnRef = str
ContentId = Hashable  # None means an empty cell
RecolorPair = Tuple[ColorId, ColorId]  # (from, to)

TolerancePrompt = Callable[[], "int | None"]
StatusSink = Callable[[str], None]


class PaletteStore(Protocol):
    """Ordered color table of one palette."""

    def get_colors(self) -> Sequence["Color"]: ...
    def get_color_by_id(self, color_id: ColorId) -> "Color": ...
    def remove_color(self, color_id: ColorId) -> None: ...


class SceneGraph(Protocol):
    """Drawing nodes, their content columns and the scene length."""

    def list_drawing_nodes(self) -> Sequence[NodeRef]: ...
    def get_node_timing_mode(self, node: NodeRef) -> bool:
        """True when the node reads its drawings through the element column."""
        ...
    def resolve_content_column(self, node: NodeRef, timed: bool) -> ColumnRef: ...
    def get_content_at_frame(self, column: ColumnRef, frame: int) -> ContentId: ...
    def frame_count(self) -> int: ...


class DrawingService(Protocol):
    """Inspection and recoloring of the drawing shown by a node at a frame."""

    def get_colors_used_in(self, node: NodeRef, frame: int) -> Set[ColorId]: ...
    def recolor(self, node: NodeRef, frame: int, pairs: Iterable[RecolorPair]) -> None: ...


class UndoBoundary(Protocol):
    def begin(self, label: str) -> None: ...
    def end(self) -> None: ...
