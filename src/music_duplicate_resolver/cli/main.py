"""CLI entry point for music duplicate resolver."""

import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import BaseModel, ValidationError

from .. import __version__
from ..core import (
    ApplicationConfig,
    AutoResolutionPreview,
    AutoResolutionResult,
    DirectoryConflict,
    DirectoryResolutionPreview,
    DirectoryResolutionResult,
    DuplicateGroup,
    DuplicateResolverError,
    DuplicateService,
    JsonCatalogStore,
    ScanStage,
    ScanStatus,
)


def setup_logging(level: str = "INFO") -> None:
    """
    Set up logging configuration.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def progress_callback(current: int, total: int | None = None, message: str = "") -> None:
    if total:
        percent = (current / total) * 100
        print(f"\rProgress: {current}/{total} ({percent:.1f}%)", end="", flush=True)
    elif message:
        print(f"\r{message}", end="", flush=True)


def run_scan(
    service: DuplicateService, scope: Path | None = None, show_progress: bool = True
) -> ScanStatus:
    """
    Run a duplicate scan and wait for it, cancelling on Ctrl+C.

    Args:
        service: Service owning the scan
        scope: Optional directory limiting the candidates
        show_progress: Whether to print a progress line while scanning

    Returns:
        Final status of the scan session
    """
    callback = progress_callback if show_progress else None
    session_id = service.start_scan(scope, progress_callback=callback)
    try:
        status = service.wait_for_scan(session_id)
    except KeyboardInterrupt:
        print("\nCancelling scan...", file=sys.stderr)
        service.cancel_scan(session_id)
        status = service.wait_for_scan(session_id)
    if show_progress:
        print()  # New line after progress
    return status


def print_json(payload: BaseModel | list[BaseModel]) -> None:
    if isinstance(payload, list):
        data = [item.model_dump(mode="json") for item in payload]
    else:
        data = payload.model_dump(mode="json")
    print(json.dumps(data, indent=2))


def print_groups(groups: list[DuplicateGroup], detailed: bool = False) -> None:
    """
    Print duplicate groups to console.

    Args:
        groups: Groups from the scan
        detailed: Whether to show every member of each group
    """
    print("\n" + "=" * 60)
    print("DUPLICATE GROUPS")
    print("=" * 60)

    if not groups:
        print("\nNo duplicates found!")
        return

    for group in groups:
        print(f"\n{group} - {group.total_size_mb:.2f} MB")
        if detailed:
            for member in group.members:
                marker = "*" if member.file.file_id == group.reference_file_id else " "
                score = f"{member.similarity:.0%}" if member.similarity is not None else "-"
                print(f"  {marker} [{member.file.file_id}] {member.file} similarity={score}")
                print(f"      Path: {member.file.file_path}")


def print_preview(preview: AutoResolutionPreview) -> None:
    print("\n" + "=" * 60)
    print("AUTO-RESOLUTION PREVIEW")
    print("=" * 60)
    print(f"Files to delete: {preview.total_files_to_delete}")
    print(f"Files to keep: {preview.total_files_to_keep}")
    print(f"Groups needing review: {preview.total_groups_needing_review}")
    print(f"Space to reclaim: {preview.reclaimable_mb:.1f} MB")

    for item in preview.resolutions:
        print(f"\nGroup {item.group_id}: {item.reason}")
        print(f"  keep   {item.file_to_keep.file_path}")
        print(f"  delete {item.file_to_delete.file_path}")

    for group in preview.groups_needing_review:
        print(f"\nNeeds review: {group}")


def print_result(result: AutoResolutionResult | DirectoryResolutionResult) -> None:
    if isinstance(result, AutoResolutionResult):
        print(result.summary_text)
        for group in result.groups_needing_review:
            print(f"  Needs review: {group}")
    else:
        print(
            f"Deleted {result.files_deleted}/{result.files_attempted} files from "
            f"{result.directory_cleared}, kept {result.directory_kept}"
        )
    for failure in result.failures:
        print(f"  Failed: {failure.file_path}: {failure.error}")


def print_conflicts(conflicts: list[DirectoryConflict], detailed: bool = False) -> None:
    print("\n" + "=" * 60)
    print("DIRECTORY CONFLICTS")
    print("=" * 60)

    if not conflicts:
        print("\nNo directory conflicts found!")
        return

    for conflict in conflicts:
        print(f"\n{conflict}")
        if detailed:
            for pair in conflict.pairs:
                print(f"  {pair.file_a.filename} <-> {pair.file_b.filename}")


def print_directory_preview(preview: DirectoryResolutionPreview) -> None:
    print(f"Keep:   {preview.directory_to_keep}")
    print(f"Delete: {preview.total_files_to_delete} files from {preview.directory_to_delete}")
    for record in preview.files_to_delete:
        print(f"  - {record.file_path}")


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        description="Music Duplicate Resolver - Find and resolve duplicate recordings",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # List duplicate groups in a catalog
  music-duplicate-resolver --catalog library.json --detailed

  # Preview which files auto-resolution would delete
  music-duplicate-resolver --catalog library.json --preview

  # Delete them, keeping file 42 regardless
  music-duplicate-resolver --catalog library.json --execute --exclude 42

  # Resolve the group containing file 7 by keeping that file
  music-duplicate-resolver --catalog library.json --keep 7

  # Show directories sharing duplicates, then clear one of them
  music-duplicate-resolver --catalog library.json --by-directory
  music-duplicate-resolver --catalog library.json --resolve-directory /music/keep /music/old --execute
        """,
    )

    parser.add_argument(
        "--catalog",
        type=Path,
        required=True,
        metavar="FILE",
        help="JSON catalog of file records to scan",
    )
    parser.add_argument(
        "--config", type=Path, metavar="FILE", help="JSON file with configuration overrides"
    )
    parser.add_argument(
        "--scope", type=Path, metavar="DIRECTORY", help="Only scan files beneath this directory"
    )

    # Actions
    actions = parser.add_mutually_exclusive_group()
    actions.add_argument(
        "--preview", action="store_true", help="Preview auto-resolution without deleting"
    )
    actions.add_argument(
        "--by-directory", action="store_true", help="Show duplicates grouped by directory pair"
    )
    actions.add_argument(
        "--resolve-directory",
        nargs=2,
        metavar=("KEEP", "DELETE"),
        help="Preview clearing duplicates from DELETE that also exist in KEEP",
    )
    actions.add_argument(
        "--keep",
        type=int,
        metavar="FILE_ID",
        help="Keep this file and delete the other members of its duplicate group",
    )
    parser.add_argument(
        "--execute",
        action="store_true",
        help="Apply auto-resolution, or the directory resolution when combined with --resolve-directory",
    )
    parser.add_argument(
        "--exclude",
        type=int,
        action="append",
        default=[],
        metavar="FILE_ID",
        help="File id to keep during --execute (repeatable)",
    )
    parser.add_argument(
        "--detailed", action="store_true", help="Show detailed file information in results"
    )

    # Output options
    parser.add_argument(
        "--output-format",
        choices=["text", "json"],
        default="text",
        help="Output format for results (default: text)",
    )

    # Logging options
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: from config, INFO)",
    )

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    return parser


def run(args: argparse.Namespace, service: DuplicateService) -> int:
    """Run the requested action against a service."""
    as_json = args.output_format == "json"

    status = run_scan(service, args.scope, show_progress=not as_json)
    if status.stage == ScanStage.ERROR:
        print(f"Error: {status.error_message}")
        return 1
    if status.stage == ScanStage.CANCELLED:
        print("Scan cancelled; results are partial.", file=sys.stderr)

    session_id = status.session_id

    if args.resolve_directory:
        keep, delete = args.resolve_directory
        if args.execute:
            payload = service.execute_directory_resolution(keep, delete, session_id)
            printer = print_result
        else:
            payload = service.preview_directory_resolution(keep, delete, session_id)
            printer = print_directory_preview
    elif args.keep is not None:
        payload = service.keep_file(session_id, args.keep)
        printer = print_result
    elif args.by_directory:
        payload = service.get_directory_conflicts(session_id)
        printer = lambda conflicts: print_conflicts(conflicts, args.detailed)
    elif args.execute:
        payload = service.execute_auto_resolution(session_id, args.exclude)
        printer = print_result
    elif args.preview:
        payload = service.preview_auto_resolution(session_id)
        printer = print_preview
    else:
        payload = service.get_groups(session_id)
        printer = lambda groups: print_groups(groups, args.detailed)

    if as_json:
        print_json(payload)
    else:
        printer(payload)

    return 0


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for the CLI application.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = create_parser()
    args = parser.parse_args(argv)
    if args.exclude and (not args.execute or args.resolve_directory or args.keep is not None):
        parser.error("--exclude only applies to --execute auto-resolution")

    try:
        config = ApplicationConfig.from_json_file(args.config) if args.config else ApplicationConfig()
    except (OSError, ValueError, ValidationError) as e:
        print(f"Error: invalid configuration: {e}")
        return 1

    if config.enable_logging or args.log_level:
        setup_logging(args.log_level or config.log_level)
    logger = logging.getLogger(__name__)

    if not args.catalog.exists():
        print(f"Error: Catalog not found: {args.catalog}")
        return 1

    service = DuplicateService(JsonCatalogStore(args.catalog), config)
    try:
        return run(args, service)
    except KeyboardInterrupt:
        print("\n\nOperation cancelled by user.")
        return 1
    except DuplicateResolverError as e:
        print(f"Error: {e}")
        return 1
    except Exception as e:
        logger.exception("Unexpected error occurred")
        print(f"Error: {e}")
        return 1
    finally:
        service.shutdown()


if __name__ == "__main__":
    sys.exit(main())
