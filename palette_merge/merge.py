"""Cluster near-duplicate palette colors and fold them into one survivor."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Sequence, Set, Tuple

from .interfaces import (
    ColorId,
    DrawingService,
    PaletteStore,
    SceneGraph,
    StatusSink,
    TolerancePrompt,
    UndoBoundary,
)
from .palette_ops import Color, load_catalog
from .references import ReferenceLocation, ReferenceResolver
from .similarity import effective_tolerance, is_similar

logger = logging.getLogger(__name__)

UNDO_LABEL = "Merge Similar Colors"


@dataclass(frozen=True, slots=True)
class RecolorInstruction:
    location: ReferenceLocation
    from_id: ColorId
    to_id: ColorId


@dataclass(frozen=True, slots=True)
class MergePlan:
    rewrites: Tuple[RecolorInstruction, ...] = ()
    removals: Tuple[ColorId, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.rewrites and not self.removals


@dataclass(slots=True)
class ClusterState:
    visited: Set[ColorId] = field(default_factory=set)
    to_remove: List[ColorId] = field(default_factory=list)


@dataclass(slots=True)
class MergeReport:
    tolerance: int
    effective_tolerance: int
    plan: MergePlan
    applied: bool

    @property
    def removed_count(self) -> int:
        return len(self.plan.removals)

    @property
    def message(self) -> str:
        if not self.applied:
            return f"Would merge {self.removed_count} colors"
        return f"Merged {self.removed_count} colors"


def _location_key(instruction: RecolorInstruction) -> tuple:
    return (instruction.location.frame, instruction.location.node)


def plan_merge(
    working_set: Sequence[Color],
    tolerance: float,
    resolver: ReferenceResolver,
) -> MergePlan:
    """Decide which colors merge into which survivor; mutates nothing.

    The earliest unvisited color is the survivor of every later color similar
    to it. Casualties are never compared again, so a chain only merges through
    the color that absorbed it. The inner scan starts at index 1 rather than
    ``f + 1``; the visited set keeps the extra comparisons harmless.
    """

    state = ClusterState()
    rewrites: List[RecolorInstruction] = []
    comparisons = 0
    for f, first in enumerate(working_set):
        if first.id in state.visited:
            continue
        for s in range(1, len(working_set)):
            second = working_set[s]
            if first.id == second.id or second.id in state.visited:
                continue
            comparisons += 1
            if not is_similar(first, second, tolerance):
                continue
            state.visited.add(second.id)
            found = [
                RecolorInstruction(location=location, from_id=second.id, to_id=first.id)
                for location in resolver.find_usages(second.id)
            ]
            found.sort(key=_location_key)
            rewrites.extend(found)
            state.to_remove.append(second.id)
            logger.debug(
                "Merge candidate survivor=%s casualty=%s index=%s/%s rewrites=%s",
                first.id,
                second.id,
                f,
                s,
                len(found),
            )
        state.visited.add(first.id)
    logger.debug(
        "plan_merge colors=%s comparisons=%s removals=%s rewrites=%s",
        len(working_set),
        comparisons,
        len(state.to_remove),
        len(rewrites),
    )
    return MergePlan(rewrites=tuple(rewrites), removals=tuple(state.to_remove))


def execute_merge(
    plan: MergePlan,
    palette: PaletteStore,
    drawings: DrawingService,
    undo: UndoBoundary,
    label: str = UNDO_LABEL,
) -> None:
    """Apply ``plan`` as a single undoable step.

    Every drawing is recolored before any color leaves the palette. The undo
    group is closed even when a host call raises; the error still propagates.
    """

    undo.begin(label)
    try:
        for instruction in plan.rewrites:
            location = instruction.location
            drawings.recolor(location.node, location.frame, [(instruction.from_id, instruction.to_id)])
        for color_id in plan.removals:
            palette.remove_color(color_id)
    finally:
        undo.end()
    logger.debug("execute_merge rewrites=%s removals=%s", len(plan.rewrites), len(plan.removals))


def merge_similar_colors(
    palette: PaletteStore,
    scene: SceneGraph,
    drawings: DrawingService,
    undo: UndoBoundary,
    prompt: TolerancePrompt,
    status: StatusSink | None = None,
    *,
    dry_run: bool = False,
) -> MergeReport | None:
    """Prompt for a tolerance, then merge near-duplicate colors of ``palette``.

    Returns ``None`` without touching anything when the prompt is cancelled.
    """

    chosen = prompt()
    if chosen is None:
        logger.debug("Tolerance prompt cancelled; nothing to do")
        return None
    bound = effective_tolerance(chosen)
    working_set = load_catalog(palette)
    resolver = ReferenceResolver(scene, drawings)
    plan = plan_merge(working_set, bound, resolver)
    if not dry_run:
        execute_merge(plan, palette, drawings, undo)
    report = MergeReport(
        tolerance=int(chosen),
        effective_tolerance=bound,
        plan=plan,
        applied=not dry_run,
    )
    logger.info(report.message)
    if status is not None:
        status(report.message)
    return report
