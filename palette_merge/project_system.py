from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence, Set, Tuple

from PIL import Image

from .drawing_ops import (
    MAX_SLOTS,
    DrawingError,
    apply_index_map,
    load_drawing,
    restore_pixels,
    save_drawing,
    snapshot_pixels,
    to_indexed,
    used_slots,
)
from .history import HistoryManager
from .interfaces import ColorId, ColumnRef, NodeRef, RecolorPair
from .palette_ops import (
    GRADIENT,
    OPAQUE_ALPHA,
    SOLID,
    Color,
    ColorTuple,
    PaletteError,
    find_color_by_rgb,
    read_palette_file,
)
from .similarity import DEFAULT_TOLERANCE

logger = logging.getLogger(__name__)

PROJECT_SCHEMA_VERSION = 1
PROJECT_MANIFEST_NAME = "project.json"
DRAWINGS_DIR_NAME = "drawings"


class ProjectError(RuntimeError):
    """Raised when the project manifest or scene data is invalid."""


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _safe_name(name: str) -> str:
    filtered = "".join(ch for ch in name if ch.isalnum() or ch in {"-", "_", "."}).strip("._")
    return filtered or "drawing"


def _unique_name(base: str, taken: Iterable[str]) -> str:
    existing = set(taken)
    candidate = base
    counter = 2
    while candidate in existing:
        candidate = f"{base}_{counter}"
        counter += 1
    return candidate


def new_color_id() -> str:
    return uuid.uuid4().hex[:16]


def color_to_dict(color: Color) -> Dict[str, Any]:
    return {
        "id": color.id,
        "name": color.name,
        "r": color.r,
        "g": color.g,
        "b": color.b,
        "a": color.a,
        "kind": color.kind,
    }


def color_from_dict(payload: Dict[str, Any]) -> Color:
    color_id = str(payload.get("id", "")).strip()
    if not color_id:
        raise ProjectError("Invalid palette entry: missing id")
    kind_raw = str(payload.get("kind", SOLID)).strip().lower()
    try:
        channels = [max(0, min(255, int(payload.get(key, default)))) for key, default in (("r", 0), ("g", 0), ("b", 0), ("a", OPAQUE_ALPHA))]
    except (TypeError, ValueError) as exc:
        raise ProjectError(f"Invalid palette entry {color_id}: {exc}") from exc
    r, g, b, a = channels
    return Color(
        id=color_id,
        r=r,
        g=g,
        b=b,
        a=a,
        kind=GRADIENT if kind_raw == GRADIENT else SOLID,
        name=str(payload.get("name", "") or ""),
    )


@dataclass
class DrawingEntry:
    drawing_id: str
    file: str
    slots: List[ColorId | None]

    def to_dict(self) -> Dict[str, Any]:
        return {"file": self.file, "slots": list(self.slots)}

    @classmethod
    def from_dict(cls, drawing_id: str, payload: Dict[str, Any]) -> "DrawingEntry":
        file = str(payload.get("file", "")).strip()
        if not file:
            raise ProjectError(f"Invalid drawing entry {drawing_id}: missing file")
        slots_raw = payload.get("slots", [])
        if not isinstance(slots_raw, list):
            raise ProjectError(f"Invalid drawing entry {drawing_id}: slots must be a list")
        slots: List[ColorId | None] = [str(slot) if slot is not None else None for slot in slots_raw[:MAX_SLOTS]]
        return cls(drawing_id=drawing_id, file=file, slots=slots)


@dataclass
class NodeEntry:
    name: str
    timed: bool
    element_column: str | None = None
    timing_column: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "timed": self.timed,
            "element_column": self.element_column,
            "timing_column": self.timing_column,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "NodeEntry":
        name = str(payload.get("name", "")).strip()
        if not name:
            raise ProjectError("Invalid node entry: missing name")
        element = payload.get("element_column")
        timing = payload.get("timing_column")
        return cls(
            name=name,
            timed=bool(payload.get("timed", False)),
            element_column=str(element) if element else None,
            timing_column=str(timing) if timing else None,
        )


@dataclass
class ProjectManifest:
    schema_version: int
    project_name: str
    created_at: str
    updated_at: str
    frame_count: int
    palette: List[Color] = field(default_factory=list)
    drawings: Dict[str, DrawingEntry] = field(default_factory=dict)
    columns: Dict[str, List[str | None]] = field(default_factory=dict)
    nodes: List[NodeEntry] = field(default_factory=list)
    settings: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "project_name": self.project_name,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "frame_count": self.frame_count,
            "palette": [color_to_dict(color) for color in self.palette],
            "drawings": {key: entry.to_dict() for key, entry in self.drawings.items()},
            "columns": {key: list(entries) for key, entries in self.columns.items()},
            "nodes": [node.to_dict() for node in self.nodes],
            "settings": self.settings,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ProjectManifest":
        if not isinstance(payload, dict):
            raise ProjectError("Project manifest root must be an object")
        schema_version = int(payload.get("schema_version", PROJECT_SCHEMA_VERSION))
        if schema_version > PROJECT_SCHEMA_VERSION:
            raise ProjectError(f"Unsupported project schema version {schema_version}")
        project_name = str(payload.get("project_name", "Palette Merge Project")).strip() or "Palette Merge Project"
        created_at = str(payload.get("created_at", "")).strip() or _utc_now_iso()
        updated_at = str(payload.get("updated_at", "")).strip() or created_at
        try:
            frame_count = max(0, int(payload.get("frame_count", 1)))
        except (TypeError, ValueError) as exc:
            raise ProjectError(f"Invalid frame_count: {exc}") from exc

        palette: List[Color] = []
        seen_ids: Set[str] = set()
        for entry in payload.get("palette", []) or []:
            if not isinstance(entry, dict):
                continue
            color = color_from_dict(entry)
            if color.id in seen_ids:
                raise ProjectError(f"Duplicate palette color id {color.id}")
            seen_ids.add(color.id)
            palette.append(color)

        drawings: Dict[str, DrawingEntry] = {}
        drawings_raw = payload.get("drawings", {})
        if isinstance(drawings_raw, dict):
            for key, value in drawings_raw.items():
                if isinstance(value, dict):
                    drawings[str(key)] = DrawingEntry.from_dict(str(key), value)

        columns: Dict[str, List[str | None]] = {}
        columns_raw = payload.get("columns", {})
        if isinstance(columns_raw, dict):
            for key, entries in columns_raw.items():
                if isinstance(entries, list):
                    columns[str(key)] = [str(cell) if cell else None for cell in entries]

        nodes: List[NodeEntry] = []
        for entry in payload.get("nodes", []) or []:
            if isinstance(entry, dict):
                nodes.append(NodeEntry.from_dict(entry))

        settings = payload.get("settings", {})
        if not isinstance(settings, dict):
            settings = {}
        return cls(
            schema_version=schema_version,
            project_name=project_name,
            created_at=created_at,
            updated_at=updated_at,
            frame_count=frame_count,
            palette=palette,
            drawings=drawings,
            columns=columns,
            nodes=nodes,
            settings=settings,
        )


@dataclass
class ProjectPaths:
    root: Path
    manifest: Path
    drawings: Path


class ProjectDocument:
    """An open project: palette, scene and drawings held in memory.

    Serves as the palette store, scene graph, drawing service and undo
    boundary for a merge run.
    """

    def __init__(self, paths: ProjectPaths, manifest: ProjectManifest, images: Dict[str, Image.Image]) -> None:
        self.paths = paths
        self.manifest = manifest
        self._images = images
        self.history = HistoryManager()
        self.history.register_field("palette", self._capture_palette, self._apply_palette)
        self.history.register_field("drawings", self._capture_drawings, self._apply_drawings)
        self.history.reset("open")

    # palette store

    def get_colors(self) -> List[Color]:
        return list(self.manifest.palette)

    def get_color_by_id(self, color_id: ColorId) -> Color:
        for color in self.manifest.palette:
            if color.id == color_id:
                return color
        raise PaletteError(f"Unknown color id {color_id}")

    def remove_color(self, color_id: ColorId) -> None:
        color = self.get_color_by_id(color_id)
        self.manifest.palette.remove(color)
        self.history.record(f"Remove color {color_id}")
        logger.debug("Removed color id=%s rgb=%s", color_id, color.rgb)

    def add_color(self, rgb: ColorTuple, *, alpha: int = OPAQUE_ALPHA, name: str = "", kind: str = SOLID) -> Color:
        color = Color(
            id=new_color_id(),
            r=rgb[0],
            g=rgb[1],
            b=rgb[2],
            a=alpha,
            kind=GRADIENT if kind == GRADIENT else SOLID,
            name=name or f"Color {len(self.manifest.palette) + 1}",
        )
        self.manifest.palette.append(color)
        self.history.record("Add color")
        return color

    # scene graph

    def list_drawing_nodes(self) -> List[NodeRef]:
        return [node.name for node in self.manifest.nodes]

    def _node(self, node: NodeRef) -> NodeEntry:
        for entry in self.manifest.nodes:
            if entry.name == node:
                return entry
        raise ProjectError(f"Unknown drawing node {node}")

    def get_node_timing_mode(self, node: NodeRef) -> bool:
        return self._node(node).timed

    def resolve_content_column(self, node: NodeRef, timed: bool) -> ColumnRef:
        entry = self._node(node)
        column = entry.element_column if timed else entry.timing_column
        if not column or column not in self.manifest.columns:
            raise ProjectError(f"Node {node} has no {'element' if timed else 'timing'} column")
        return column

    def get_content_at_frame(self, column: ColumnRef, frame: int) -> str | None:
        try:
            cells = self.manifest.columns[column]
        except KeyError:
            raise ProjectError(f"Unknown column {column}") from None
        if frame < 1 or frame > len(cells):
            return None
        return cells[frame - 1]

    def frame_count(self) -> int:
        return self.manifest.frame_count

    # drawing service

    def _drawing_at(self, node: NodeRef, frame: int) -> DrawingEntry | None:
        timed = self.get_node_timing_mode(node)
        column = self.resolve_content_column(node, timed)
        drawing_id = self.get_content_at_frame(column, frame)
        if drawing_id is None:
            return None
        entry = self.manifest.drawings.get(drawing_id)
        if entry is None or drawing_id not in self._images:
            raise DrawingError(f"Node {node} frame {frame} references missing drawing {drawing_id}")
        return entry

    def get_colors_used_in(self, node: NodeRef, frame: int) -> Set[ColorId]:
        entry = self._drawing_at(node, frame)
        if entry is None:
            return set()
        image = self._images[entry.drawing_id]
        colors: Set[ColorId] = set()
        for slot in used_slots(image):
            if slot < len(entry.slots) and entry.slots[slot] is not None:
                colors.add(entry.slots[slot])
        return colors

    def recolor(self, node: NodeRef, frame: int, pairs: Iterable[RecolorPair]) -> None:
        entry = self._drawing_at(node, frame)
        if entry is None:
            raise DrawingError(f"Node {node} has no drawing at frame {frame}")
        image = self._images[entry.drawing_id]
        mapping: Dict[int, int] = {}
        for from_id, to_id in pairs:
            self.get_color_by_id(to_id)
            source_slots = [idx for idx, slot in enumerate(entry.slots) if slot == from_id]
            if not source_slots or from_id == to_id:
                continue
            target_slot = self._slot_for(entry, to_id)
            for idx in source_slots:
                mapping[idx] = target_slot
                entry.slots[idx] = None
        if not mapping:
            logger.debug("recolor no-op node=%s frame=%s drawing=%s", node, frame, entry.drawing_id)
            return
        apply_index_map(image, mapping)
        self.history.record(f"Recolor {entry.drawing_id}")
        logger.debug("recolor node=%s frame=%s drawing=%s mapping=%s", node, frame, entry.drawing_id, mapping)

    def _slot_for(self, entry: DrawingEntry, color_id: ColorId) -> int:
        if color_id in entry.slots:
            return entry.slots.index(color_id)
        painted = used_slots(self._images[entry.drawing_id])
        for free, slot in enumerate(entry.slots):
            if slot is None and free not in painted:
                entry.slots[free] = color_id
                return free
        if len(entry.slots) >= MAX_SLOTS:
            raise DrawingError(f"Drawing {entry.drawing_id} has no free slot for color {color_id}")
        entry.slots.append(color_id)
        return len(entry.slots) - 1

    def image(self, drawing_id: str) -> Image.Image:
        try:
            return self._images[drawing_id]
        except KeyError:
            raise DrawingError(f"Unknown drawing {drawing_id}") from None

    def add_drawing(self, name: str, image: Image.Image, slots: Sequence[ColorId | None]) -> DrawingEntry:
        drawing_id = _unique_name(_safe_name(name), self.manifest.drawings.keys())
        entry = DrawingEntry(
            drawing_id=drawing_id,
            file=f"{DRAWINGS_DIR_NAME}/{drawing_id}.png",
            slots=list(slots),
        )
        self.manifest.drawings[drawing_id] = entry
        self._images[drawing_id] = image
        self.history.record(f"Add drawing {drawing_id}")
        return entry

    def add_static_node(self, name: str, drawing_id: str) -> NodeEntry:
        if drawing_id not in self.manifest.drawings:
            raise DrawingError(f"Unknown drawing {drawing_id}")
        node_name = _unique_name(name, self.list_drawing_nodes())
        column = _unique_name(node_name, self.manifest.columns.keys())
        self.manifest.columns[column] = [drawing_id] * max(1, self.manifest.frame_count)
        node = NodeEntry(name=node_name, timed=False, element_column=column, timing_column=column)
        self.manifest.nodes.append(node)
        return node

    # undo boundary

    def begin(self, label: str) -> None:
        self.history.begin(label)

    def end(self) -> None:
        self.history.end()

    def _capture_palette(self) -> Tuple[Color, ...]:
        return tuple(self.manifest.palette)

    def _apply_palette(self, value: Tuple[Color, ...]) -> None:
        self.manifest.palette = list(value)

    def _capture_drawings(self) -> Dict[str, Any]:
        return {
            drawing_id: (tuple(entry.slots), snapshot_pixels(self._images[drawing_id]))
            for drawing_id, entry in self.manifest.drawings.items()
            if drawing_id in self._images
        }

    def _apply_drawings(self, value: Dict[str, Any]) -> None:
        for drawing_id, (slots, pixels) in value.items():
            entry = self.manifest.drawings.get(drawing_id)
            if entry is None:
                continue
            entry.slots = list(slots)
            self._images[drawing_id] = restore_pixels(pixels)

    def slot_colors(self, entry: DrawingEntry) -> List[ColorTuple]:
        lookup = {color.id: color.rgb for color in self.manifest.palette}
        return [lookup.get(slot, (0, 0, 0)) if slot is not None else (0, 0, 0) for slot in entry.slots]


class ProjectService:
    def resolve_paths(self, project_root: Path) -> ProjectPaths:
        root = project_root.resolve()
        return ProjectPaths(
            root=root,
            manifest=root / PROJECT_MANIFEST_NAME,
            drawings=root / DRAWINGS_DIR_NAME,
        )

    def create_project(self, project_root: Path, project_name: str | None = None, frame_count: int = 1) -> ProjectDocument:
        paths = self.resolve_paths(project_root)
        if paths.manifest.exists():
            raise ProjectError(f"Project already exists: {paths.manifest}")
        paths.root.mkdir(parents=True, exist_ok=True)
        paths.drawings.mkdir(parents=True, exist_ok=True)
        name = (project_name or paths.root.stem or "Palette Merge Project").strip()
        now = _utc_now_iso()
        manifest = ProjectManifest(
            schema_version=PROJECT_SCHEMA_VERSION,
            project_name=name,
            created_at=now,
            updated_at=now,
            frame_count=max(1, int(frame_count)),
            settings={"merge_tolerance": DEFAULT_TOLERANCE},
        )
        document = ProjectDocument(paths, manifest, {})
        self.save_project(document)
        logger.debug("Created project root=%s frames=%s", paths.root, manifest.frame_count)
        return document

    def open_project(self, project_path: Path) -> ProjectDocument:
        manifest_path = project_path
        if manifest_path.is_dir():
            manifest_path = manifest_path / PROJECT_MANIFEST_NAME
        if manifest_path.name != PROJECT_MANIFEST_NAME:
            raise ProjectError("Project file must be project.json")
        if not manifest_path.exists():
            raise FileNotFoundError(f"Project manifest not found: {manifest_path}")

        paths = self.resolve_paths(manifest_path.parent)
        try:
            payload = json.loads(manifest_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ProjectError(f"{manifest_path.name}: invalid JSON ({exc})") from exc
        manifest = ProjectManifest.from_dict(payload)
        images: Dict[str, Image.Image] = {}
        for drawing_id, entry in manifest.drawings.items():
            images[drawing_id] = load_drawing(paths.root / entry.file)
        logger.debug(
            "Opened project root=%s colors=%s drawings=%s nodes=%s frames=%s",
            paths.root,
            len(manifest.palette),
            len(manifest.drawings),
            len(manifest.nodes),
            manifest.frame_count,
        )
        return ProjectDocument(paths, manifest, images)

    def save_project(self, document: ProjectDocument) -> None:
        paths = document.paths
        manifest = document.manifest
        for drawing_id, entry in manifest.drawings.items():
            save_drawing(paths.root / entry.file, document.image(drawing_id), document.slot_colors(entry))
        manifest.updated_at = _utc_now_iso()
        paths.manifest.write_text(json.dumps(manifest.to_dict(), indent=2), encoding="utf-8")

    def import_palette_file(self, document: ProjectDocument, source: Path) -> List[Color]:
        """Append every entry of a palette file as a new solid color."""

        added: List[Color] = []
        stem = source.stem
        for idx, rgb in enumerate(read_palette_file(source), start=1):
            added.append(document.add_color(rgb, name=f"{stem} {idx}"))
        logger.debug("Imported palette path=%s colors=%s", source.name, len(added))
        return added

    def import_drawing(self, document: ProjectDocument, source: Path, node_name: str | None = None) -> NodeEntry:
        """Add an image as a drawing held on a new static node.

        Every used slot is bound to the palette color with the same RGB, or to
        a newly added color. Fully transparent slots stay unpainted and
        translucent slots always get a new color carrying their alpha.
        """

        with Image.open(source) as img:
            img.load()
            indexed = to_indexed(img)
        raw_palette = indexed.getpalette() or []
        alphas = _slot_alphas(indexed, len(raw_palette) // 3)
        slots: List[ColorId | None] = []
        used = used_slots(indexed)
        for idx in range(max(used) + 1 if used else 0):
            if idx not in used or alphas[idx] == 0:
                slots.append(None)
                continue
            rgb = (raw_palette[idx * 3], raw_palette[idx * 3 + 1], raw_palette[idx * 3 + 2])
            match = find_color_by_rgb(document.get_colors(), rgb) if alphas[idx] == OPAQUE_ALPHA else None
            if match is None:
                match = document.add_color(rgb, alpha=alphas[idx], name=f"{source.stem} {idx}")
            slots.append(match.id)
        entry = document.add_drawing(source.stem, indexed, slots)
        node = document.add_static_node(node_name or entry.drawing_id, entry.drawing_id)
        logger.debug("Imported drawing path=%s drawing=%s node=%s slots=%s", source.name, entry.drawing_id, node.name, len(slots))
        return node


def _slot_alphas(image: Image.Image, count: int) -> List[int]:
    alphas = [255] * max(MAX_SLOTS, count)
    if image.palette is not None and image.palette.mode == "RGBA":
        rgba = image.getpalette("RGBA") or []
        for idx in range(min(len(alphas), len(rgba) // 4)):
            alphas[idx] = rgba[idx * 4 + 3]
        return alphas
    transparency = image.info.get("transparency")
    if isinstance(transparency, int):
        if 0 <= transparency < len(alphas):
            alphas[transparency] = 0
    elif isinstance(transparency, (bytes, bytearray)):
        for idx in range(min(len(alphas), len(transparency))):
            alphas[idx] = transparency[idx]
    return alphas
