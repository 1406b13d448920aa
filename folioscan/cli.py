#!/usr/bin/env python3
"""
Command-line interface for folioscan.

Usage:
    # Recognize a folder of page photos and write the ordered pages as JSON
    folioscan run ./photos --title "My Book" --output ./book.json

    # Retry failed pages of a saved project
    folioscan retry 1 --data-dir ./folioscan_data

    # Start the HTTP API
    folioscan serve --port 8787

    # Show how a page label is read
    folioscan label "- 56 -"
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from .errors import FolioscanError

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".tif", ".tiff")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _config(args: argparse.Namespace, persist: bool):
    from .config import ScanConfig

    overrides = {"persist": persist}
    if args.data_dir:
        overrides["data_dir"] = Path(args.data_dir)
    if getattr(args, "workers", None):
        overrides["batch_workers"] = args.workers
    return ScanConfig.from_env(**overrides)


def _write_pages(pages, output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    data = [
        {
            "position": p.sort_position,
            "filename": p.filename,
            "page_number": p.page_label,
            "placement_uncertain": p.placement_uncertain,
            "text": p.extracted_text,
        }
        for p in pages
    ]
    output_path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def cmd_run(args: argparse.Namespace) -> int:
    """Register, recognize and order a folder of images."""
    from .pipeline import ScanPipeline

    input_dir = Path(args.input)
    if not input_dir.is_dir():
        print(f"Input directory not found: {input_dir}", file=sys.stderr)
        return 1

    images = sorted(p for p in input_dir.iterdir() if p.suffix.lower() in IMAGE_EXTENSIONS)
    if not images:
        print("No images found", file=sys.stderr)
        return 1

    pipeline = ScanPipeline(_config(args, persist=not args.no_save))
    pipeline.batch.show_progress = True

    project = pipeline.create_project(owner_id=args.owner, title=args.title)
    for image in images:
        pipeline.upload_page(project.id, image.name, str(image.absolute()))

    async def process():
        try:
            return await pipeline.process_pending(project.id)
        finally:
            await pipeline.aclose()

    report = asyncio.run(process())
    pipeline.reorder(project.id)
    output_path = Path(args.output)
    if report.success_count:
        _write_pages(pipeline.export_pages(project.id), output_path)

    print(f"✓ Project {project.id}: {report.success_count}/{len(images)} pages recognized")
    print(f"  Output: {output_path}")
    if report.failure_count:
        print(f"⚠ {report.failure_count} pages failed - retry with: folioscan retry {project.id}")
        return 1
    return 0


def cmd_retry(args: argparse.Namespace) -> int:
    """Retry failed pages of a saved project."""
    from .pipeline import ScanPipeline

    pipeline = ScanPipeline(_config(args, persist=True))
    pipeline.batch.show_progress = True

    async def retry():
        try:
            return await pipeline.retry_failed(args.project_id, owner_id=args.owner)
        finally:
            await pipeline.aclose()

    report = asyncio.run(retry())
    if not report.results:
        print("No failed pages to retry")
        return 0

    project = pipeline.recount(args.project_id, owner_id=args.owner)

    for result in report.results:
        if not result.success:
            print(f"  page {result.page_id}: {result.error}", file=sys.stderr)

    print(f"✓ Retried {len(report.results)} pages: {report.success_count} succeeded")
    print(f"  Project {project.id}: {project.processed_pages}/{project.total_pages} pages processed")
    return 0 if report.failure_count == 0 else 1


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the HTTP API."""
    import uvicorn

    from .pipeline import ScanPipeline
    from .server import create_app

    app = create_app(ScanPipeline(_config(args, persist=True)))
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


def cmd_label(args: argparse.Namespace) -> int:
    """Print the page number read from a label."""
    from .labels import extract_page_label

    result = extract_page_label(args.text)
    if not result.found:
        print("No page number found")
        return 1

    print(f"label={result.label} sort_key={result.sort_key}")
    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="folioscan",
        description="Turn photographed book pages into an ordered document",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # run command
    p_run = subparsers.add_parser(
        "run",
        help="Recognize and order a folder of page images",
    )
    p_run.add_argument("input", help="Input directory with images")
    p_run.add_argument("-o", "--output", default="./pages.json", help="Output JSON file")
    p_run.add_argument("-t", "--title", required=True, help="Project title")
    p_run.add_argument("--data-dir", help="Directory for the saved store")
    p_run.add_argument("--no-save", action="store_true", help="Don't save the project store")
    p_run.add_argument("--workers", type=int, help="Pages recognized at once (default: 1)")
    p_run.add_argument("--owner", type=int, default=1, help="Owner id")
    p_run.set_defaults(func=cmd_run)

    # retry command
    p_retry = subparsers.add_parser(
        "retry",
        help="Retry failed pages of a saved project",
    )
    p_retry.add_argument("project_id", type=int, help="Project id")
    p_retry.add_argument("--data-dir", help="Directory of the saved store")
    p_retry.add_argument("--workers", type=int, help="Pages retried at once (default: 1)")
    p_retry.add_argument("--owner", type=int, default=1, help="Owner id")
    p_retry.set_defaults(func=cmd_retry)

    # serve command
    p_serve = subparsers.add_parser(
        "serve",
        help="Start the HTTP API",
    )
    p_serve.add_argument("--host", default="127.0.0.1", help="Bind address")
    p_serve.add_argument("--port", type=int, default=8787, help="Port")
    p_serve.add_argument("--data-dir", help="Directory for images and the saved store")
    p_serve.set_defaults(func=cmd_serve)

    # label command
    p_label = subparsers.add_parser(
        "label",
        help="Show the page number read from a label",
    )
    p_label.add_argument("text", help="Label or page text")
    p_label.set_defaults(func=cmd_label)

    args = parser.parse_args()
    setup_logging(args.verbose)

    try:
        return args.func(args)
    except FolioscanError as e:
        print(f"✗ {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
