"""Locate the drawings that paint with a given palette color."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Hashable, List, Set, Tuple

from .interfaces import ColorId, ColumnRef, DrawingService, NodeRef, SceneGraph

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ReferenceLocation:
    """A node and frame at which one distinct drawing can be inspected."""

    node: NodeRef
    frame: int


def iter_content_frames(scene: SceneGraph, column: ColumnRef) -> List[Tuple[int, Hashable]]:
    """Return ``(frame, content)`` for the first frame of each distinct content.

    Frames are numbered from 1. Empty cells are left out.
    """

    seen: Set[Hashable] = set()
    frames: List[Tuple[int, Hashable]] = []
    for frame in range(1, scene.frame_count() + 1):
        content = scene.get_content_at_frame(column, frame)
        if content in seen:
            continue
        seen.add(content)
        if content is None or content == "":
            continue
        frames.append((frame, content))
    return frames


class ReferenceResolver:
    """Finds every drawing location that uses a color id.

    The per-node frame walk only depends on the scene, so it is cached for the
    lifetime of the resolver. Build a new resolver whenever the scene changes.
    """

    def __init__(self, scene: SceneGraph, drawings: DrawingService) -> None:
        self._scene = scene
        self._drawings = drawings
        self._frames_by_node: Dict[NodeRef, List[Tuple[ColumnRef, int, Hashable]]] | None = None

    def _candidate_frames(self) -> Dict[NodeRef, List[Tuple[ColumnRef, int, Hashable]]]:
        if self._frames_by_node is None:
            frames_by_node: Dict[NodeRef, List[Tuple[ColumnRef, int, Hashable]]] = {}
            for node in self._scene.list_drawing_nodes():
                timed = self._scene.get_node_timing_mode(node)
                column = self._scene.resolve_content_column(node, timed)
                frames_by_node[node] = [
                    (column, frame, content)
                    for frame, content in iter_content_frames(self._scene, column)
                ]
                logger.debug(
                    "Resolved node=%s timed=%s column=%s distinct_frames=%s",
                    node,
                    timed,
                    column,
                    len(frames_by_node[node]),
                )
            self._frames_by_node = frames_by_node
        return self._frames_by_node

    def find_usages(self, color_id: ColorId) -> Set[ReferenceLocation]:
        locations: Set[ReferenceLocation] = set()
        recorded: Set[Tuple[ColumnRef, Hashable]] = set()
        for node, frames in self._candidate_frames().items():
            for column, frame, content in frames:
                identity = (column, content)
                if identity in recorded:
                    continue
                used = self._drawings.get_colors_used_in(node, frame)
                if color_id in used:
                    recorded.add(identity)
                    locations.add(ReferenceLocation(node=node, frame=frame))
        logger.debug("find_usages color=%s locations=%s", color_id, len(locations))
        return locations
