"""Command-line interface for merging similar palette colors in a project."""
from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path
from typing import Callable

from .drawing_ops import DrawingError
from .merge import merge_similar_colors
from .palette_ops import PaletteError
from .project_system import ProjectError, ProjectService
from .similarity import DEFAULT_TOLERANCE, MAX_TOLERANCE, MIN_TOLERANCE

logger = logging.getLogger(__name__)

_CANCEL_WORDS = {"q", "quit", "cancel"}


def _setup_logging(verbose: bool) -> None:
    root_logger = logging.getLogger()
    if verbose:
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter("%(levelname)s [%(name)s] %(message)s"))
        root_logger.addHandler(console)
        root_logger.setLevel(logging.DEBUG)
    if not os.environ.get("PALETTE_MERGE_DEBUG"):
        return
    log_path = Path(os.environ.get("PALETTE_MERGE_DEBUG_LOG", "palette_merge_debug.log"))
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
    root_logger.setLevel(logging.DEBUG)
    # remove existing file handlers to avoid duplicates
    root_logger.handlers = [h for h in root_logger.handlers if not isinstance(h, logging.FileHandler)]
    root_logger.addHandler(handler)
    root_logger.info("Palette merge debug logging enabled at %s", log_path)


def _tolerance_value(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid tolerance: {raw!r}") from None
    if value < MIN_TOLERANCE or value > MAX_TOLERANCE:
        raise argparse.ArgumentTypeError(
            f"tolerance must be between {MIN_TOLERANCE} and {MAX_TOLERANCE}"
        )
    return value


def console_prompt(default: int = DEFAULT_TOLERANCE, read: Callable[[str], str] | None = None) -> int | None:
    """Ask for a tolerance on the console; ``None`` means the user cancelled."""

    read = read or input
    while True:
        try:
            raw = read(f"Tolerance [{MIN_TOLERANCE}-{MAX_TOLERANCE}] ({default}): ").strip()
        except (EOFError, KeyboardInterrupt):
            return None
        if not raw:
            return default
        if raw.lower() in _CANCEL_WORDS:
            return None
        try:
            return _tolerance_value(raw)
        except argparse.ArgumentTypeError as exc:
            print(exc)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Merge palette colors that are close in RGB values")
    parser.add_argument("--verbose", action="store_true", help="Print debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    init = commands.add_parser("init", help="Create an empty project")
    init.add_argument("project", type=Path, help="Project folder")
    init.add_argument("--name", default=None, help="Project name (defaults to folder name)")
    init.add_argument("--frames", type=int, default=1, help="Scene length in frames")
    init.add_argument(
        "--palette",
        type=Path,
        default=None,
        help="Optional ACT/GPL/PAL/hex palette to seed the project palette",
    )

    add = commands.add_parser("add-drawing", help="Import images as drawings held on new nodes")
    add.add_argument("project", type=Path, help="Project folder or project.json")
    add.add_argument("images", nargs="+", type=Path, help="Images to import")
    add.add_argument("--node", default=None, help="Node name (single image only)")

    merge = commands.add_parser("merge", help="Merge similar colors and recolor drawings")
    merge.add_argument("project", type=Path, help="Project folder or project.json")
    source = merge.add_mutually_exclusive_group()
    source.add_argument(
        "--tolerance",
        type=_tolerance_value,
        default=None,
        help="Maximum RGB difference per channel (skips the prompt)",
    )
    source.add_argument("--gui", action="store_true", help="Ask for the tolerance in a dialog")
    merge.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would merge without changing the project",
    )
    return parser


def _run_init(args: argparse.Namespace, service: ProjectService) -> int:
    document = service.create_project(args.project, args.name, frame_count=args.frames)
    if args.palette:
        added = service.import_palette_file(document, args.palette)
        service.save_project(document)
        print(f"Imported {len(added)} color(s) from {args.palette.name}")
    print(f"[OK] Created project {document.manifest.project_name} at {document.paths.root}")
    return 0


def _run_add_drawing(args: argparse.Namespace, service: ProjectService, parser: argparse.ArgumentParser) -> int:
    if args.node and len(args.images) > 1:
        parser.error("--node can only be used with a single image")
    document = service.open_project(args.project)
    for image_path in args.images:
        node = service.import_drawing(document, image_path, args.node)
        print(f"[OK] {image_path.name} -> node {node.name}")
    service.save_project(document)
    return 0


def _run_merge(args: argparse.Namespace, service: ProjectService) -> int:
    document = service.open_project(args.project)
    default = int(document.manifest.settings.get("merge_tolerance", DEFAULT_TOLERANCE))
    if args.tolerance is not None:
        prompt = lambda: args.tolerance  # noqa: E731
    elif args.gui:
        from .ui.tolerance_dialog import ask_tolerance

        prompt = lambda: ask_tolerance(default)  # noqa: E731
    else:
        prompt = lambda: console_prompt(default)  # noqa: E731

    report = merge_similar_colors(
        document,
        document,
        document,
        document,
        prompt,
        print,
        dry_run=args.dry_run,
    )
    if report is None:
        return 0
    if args.dry_run:
        for instruction in report.plan.rewrites:
            location = instruction.location
            print(f"  {location.node} @ {location.frame}: {instruction.from_id} -> {instruction.to_id}")
        return 0
    document.manifest.settings["merge_tolerance"] = report.tolerance
    service.save_project(document)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)
    service = ProjectService()

    try:
        if args.command == "init":
            return _run_init(args, service)
        if args.command == "add-drawing":
            return _run_add_drawing(args, service, parser)
        return _run_merge(args, service)
    except (ProjectError, PaletteError, DrawingError, OSError) as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"[FAIL] {exc}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
