from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

from rich.console import Console
from rich.prompt import Prompt
from rich.table import Table

from .core.config import Settings, get_settings
from .core.errors import (
    CatalogWriteError,
    RendererUnavailable,
    RetractionAborted,
    SourceMissing,
    StoreUnavailable,
)
from .core.logging import configure_logging
from .core.store import CatalogStore, get_store
from .ingest.size_policy import PRESETS, SizePolicy
from .services.import_service import ImportReport, ImportService
from .services.retraction import CONFIRMATION_TOKEN, RetractionReport

console = Console()

T = TypeVar("T")

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_SOURCE_MISSING = 2
EXIT_CATALOG_WRITE = 3
EXIT_STORE_UNAVAILABLE = 4
EXIT_PARTIAL_RETRACTION = 5
EXIT_RENDERER_UNAVAILABLE = 6


def main(argv: Optional[list[str]] = None) -> None:
    """The main entry point for the CLI.

    Args:
        argv: The command-line arguments.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        # bare invocation behaves like ``process`` with prompts
        args.source = None
        args.size = None
        args.func = _cmd_process
    args.parser = parser

    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)
    code = args.func(args, settings)
    if code:
        sys.exit(code)


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI.

    Returns:
        The argument parser.
    """
    parser = argparse.ArgumentParser(
        prog="carspace",
        description="Import car photographs, publish the image catalog and sync the database.",
    )
    subparsers = parser.add_subparsers(dest="command")

    process_parser = subparsers.add_parser("process", help="Process and import images from a source folder")
    process_parser.add_argument("source", nargs="?", help="Source folder (prompted for when omitted)")
    process_parser.add_argument(
        "--size",
        type=_size_policy_arg,
        help="Size preset: " + ", ".join(f"{p.name} ({p.label})" for p in PRESETS),
    )
    process_parser.set_defaults(func=_cmd_process)

    delete_all_parser = subparsers.add_parser(
        "delete-all", help="Delete all images, the catalog and database records (confirmation required)"
    )
    delete_all_parser.set_defaults(func=_cmd_delete_all)

    delete_one_parser = subparsers.add_parser("delete-one", help="Delete a specific image by ID from all locations")
    delete_one_parser.add_argument("image_id", help="Asset identifier to retract")
    delete_one_parser.set_defaults(func=_cmd_delete_one)

    help_parser = subparsers.add_parser("help", help="Show this help message")
    help_parser.set_defaults(func=_cmd_help)
    return parser


def _size_policy_arg(value: str) -> SizePolicy:
    try:
        return SizePolicy.parse(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _run_with_store(settings: Settings, action: Callable[[CatalogStore], Awaitable[T]]) -> T:
    async def _runner() -> T:
        store = get_store(settings)
        try:
            return await action(store)
        finally:
            await store.dispose()

    return asyncio.run(_runner())


def _prompt_source(settings: Settings) -> Path:
    answer = Prompt.ask(
        "Enter the source folder path to process images",
        default=str(settings.source_root),
        console=console,
    )
    return Path(answer)


def _prompt_size(settings: Settings) -> SizePolicy:
    """Interactive adapter over the enumerated size presets."""
    default = SizePolicy.parse(settings.size_policy)
    table = Table(title="Choose image size for processing", show_header=False)
    for index, preset in enumerate(PRESETS, start=1):
        detail = "no resize" if preset.is_original else preset.label
        table.add_row(str(index), preset.name, detail)
    console.print(table)
    choices = [str(index) for index in range(1, len(PRESETS) + 1)]
    answer = Prompt.ask(
        "Enter choice",
        choices=choices,
        default=str(PRESETS.index(default) + 1),
        console=console,
    )
    return PRESETS[int(answer) - 1]


def _cmd_process(args: argparse.Namespace, settings: Settings) -> int:
    """Import a source tree, publish the catalog and sync the store."""
    source = Path(args.source) if args.source else _prompt_source(settings)
    policy = args.size or _prompt_size(settings)
    source = source.expanduser()

    try:
        report = _run_with_store(
            settings,
            lambda store: ImportService(settings, store).process(source, policy),
        )
    except SourceMissing as exc:
        console.print(f"[red]{exc}[/]")
        return EXIT_SOURCE_MISSING
    except RendererUnavailable as exc:
        console.print(f"[red]{exc}[/] (strict renderer mode)")
        return EXIT_RENDERER_UNAVAILABLE
    except StoreUnavailable as exc:
        console.print(f"[red]Store unavailable:[/] {exc}")
        console.print(f"Check the PG* / CARSPACE_PG_* settings and that {settings.store_label} is reachable.")
        return EXIT_STORE_UNAVAILABLE
    except CatalogWriteError as exc:
        console.print(f"[red]Catalog not published:[/] {exc}")
        return EXIT_CATALOG_WRITE

    _print_import_report(report, source, policy)
    return EXIT_OK


def _print_import_report(report: ImportReport, source: Path, policy: SizePolicy) -> None:
    if report.nothing_to_publish:
        console.print(f"[yellow]No images found under {source}; nothing to publish.[/]")
    else:
        console.print(
            f"[green]Published {report.published} images[/] "
            f"({report.processed} files processed, size {policy.label})."
        )
    if report.degraded:
        console.print(f"[yellow]{report.degraded} files are degraded (raw copy or missing thumbnail).[/]")
    for failure in report.failures:
        console.print(f"[red]Failed:[/] {failure.path}: {failure.error}")
    if report.sync is not None:
        console.print(f"Database rows upserted: {report.sync.upserted}")
        for error in report.sync.failures:
            console.print(f"[yellow]Warning: failed to upsert {error.asset_id}:[/] {error.message}")


def _cmd_delete_all(args: argparse.Namespace, settings: Settings) -> int:
    """Retract every asset after an exact-match confirmation."""
    console.print(
        f"[bold red]WARNING:[/] This will delete ALL images in {settings.images_dir} and "
        f"{settings.thumbnails_dir}, the catalog {settings.catalog_path}, and all image records from the database."
    )
    token = Prompt.ask(f"Are you sure you want to proceed? Type '{CONFIRMATION_TOKEN}' to confirm", console=console)

    def _retract(store: CatalogStore):
        return ImportService(settings, store, renderers=[]).build_retraction().retract_all(token)

    try:
        report = _run_with_store(settings, _retract)
    except RetractionAborted as exc:
        console.print(str(exc))
        return EXIT_USAGE
    return _print_retraction_report(report)


def _cmd_delete_one(args: argparse.Namespace, settings: Settings) -> int:
    """Retract a single asset from files, catalog and store."""
    image_id = args.image_id

    def _retract(store: CatalogStore):
        return ImportService(settings, store, renderers=[]).build_retraction().retract_one(image_id)

    try:
        report = _run_with_store(settings, _retract)
    except ValueError as exc:
        console.print(f"[red]{exc}[/]")
        return EXIT_USAGE
    return _print_retraction_report(report)


def _print_retraction_report(report: RetractionReport) -> int:
    label = report.asset_id or "all assets"
    for step, count in report.removed.items():
        console.print(f"Removed {label} from {step} ({count}).")
    for step in report.missing:
        console.print(f"[dim]{label} not found in {step}.[/]")
    for step, error in report.errors.items():
        console.print(f"[red]Failed to remove {label} from {step}:[/] {error}")
    return EXIT_OK if report.ok else EXIT_PARTIAL_RETRACTION


def _cmd_help(args: argparse.Namespace, settings: Settings) -> int:
    args.parser.print_help()
    console.print(f"\nDefault source folder: {settings.source_root}")
    return EXIT_OK


if __name__ == "__main__":
    main()
