from __future__ import annotations

import argparse
import asyncio
import shutil
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from .api.v1.routes_admin import binary_available
from .core.config import get_settings
from .core.db import create_engine, create_session_factory
from .core.errors import ProcessingError
from .core.logging import configure_logging
from .core.storage import get_storage
from .media import SubprocessRunner, classify, probe, remux_faststart
from .services.reconcile import SweepReport, sweep_orphans
from .services.video_store import VideoStore

console = Console()


def main(argv: Optional[list[str]] = None) -> None:
    """The main entry point for the CLI.

    Args:
        argv: The command-line arguments.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if getattr(args, "check", False):
        _run_environment_check()
        return

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    args.func(args)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Tubely ingest developer CLI")
    parser.add_argument("--check", action="store_true", help="Validate presence of ffmpeg/ffprobe dependencies")

    subparsers = parser.add_subparsers(dest="command")

    probe_parser = subparsers.add_parser("probe", help="Print stream geometry and orientation for a media file")
    probe_parser.add_argument("--file", required=True, help="Path to the source media file")
    probe_parser.set_defaults(func=_cmd_probe)

    faststart_parser = subparsers.add_parser("faststart", help="Rewrite a media file for progressive playback")
    faststart_parser.add_argument("--file", required=True, help="Path to the source media file")
    faststart_parser.add_argument("--output", help="Where to move the rewritten file (defaults to a sibling)")
    faststart_parser.set_defaults(func=_cmd_faststart)

    reconcile_parser = subparsers.add_parser("reconcile", help="Find published objects no video record references")
    reconcile_parser.add_argument("--apply", action="store_true", help="Delete the orphaned objects instead of listing them")
    reconcile_parser.set_defaults(func=_cmd_reconcile)
    return parser


def _require_file(raw: str) -> Path:
    media_path = Path(raw).expanduser().resolve()
    if not media_path.exists():
        console.print(f"[red]File not found: {media_path}[/]")
        sys.exit(2)
    return media_path


def _cmd_probe(args: argparse.Namespace) -> None:
    settings = get_settings()
    media_path = _require_file(args.file)
    try:
        result = probe(media_path, SubprocessRunner(), binary=settings.ffprobe_binary, timeout=settings.tool_timeout_s)
    except ProcessingError as exc:
        console.print(f"[red]ffprobe failed:[/] {exc.detail} {exc.diagnostics or ''}")
        sys.exit(3)
    console.print_json(
        data={
            "file": str(media_path),
            "width": result.width,
            "height": result.height,
            "orientation": classify(result).value,
        }
    )


def _cmd_faststart(args: argparse.Namespace) -> None:
    settings = get_settings()
    media_path = _require_file(args.file)
    try:
        output = remux_faststart(media_path, SubprocessRunner(), binary=settings.ffmpeg_binary, timeout=settings.tool_timeout_s)
    except ProcessingError as exc:
        console.print(f"[red]ffmpeg failed:[/] {exc.detail}")
        if exc.diagnostics:
            console.print(exc.diagnostics, markup=False)
        sys.exit(3)
    if args.output:
        target = Path(args.output).expanduser().resolve()
        shutil.move(str(output), str(target))
        output = target
    console.print(f"[green]Fast-start file written to {output}[/]")


def _cmd_reconcile(args: argparse.Namespace) -> None:
    settings = get_settings()
    configure_logging()
    storage = get_storage(settings)

    async def _runner() -> SweepReport:
        engine = create_engine(settings)
        session_factory = create_session_factory(engine)
        try:
            async with session_factory() as session:
                return await sweep_orphans(storage, VideoStore(session), apply=args.apply)
        finally:
            await engine.dispose()

    report = asyncio.run(_runner())

    table = Table(title=f"Orphaned objects in {storage.bucket}")
    table.add_column("key")
    table.add_column("action")
    for key in report.orphans:
        table.add_row(key, "deleted" if key in report.deleted else "kept")
    console.print(table)
    console.print(f"Scanned {report.scanned} objects, {len(report.orphans)} orphaned, {len(report.deleted)} deleted.")


def _run_environment_check() -> None:
    """Check for the presence of required external dependencies."""
    settings = get_settings()
    results = {
        "ffmpeg": binary_available(settings.ffmpeg_binary),
        "ffprobe": binary_available(settings.ffprobe_binary),
    }

    console.rule("[bold]Environment Check")
    for label, ok in results.items():
        console.print(f"[bold]{label}[/]: {'✅' if ok else '❌'}")

    if not all(results.values()):
        console.print("[red]Missing dependencies detected. Install ffmpeg or set TUBELY_FFMPEG_BINARY/TUBELY_FFPROBE_BINARY.[/]")
        sys.exit(1)
    console.print("[green]Environment looks good![/]")


if __name__ == "__main__":
    main()
