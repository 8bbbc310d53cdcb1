"""
GemFuse CLI
============

Command-line interface for analyzing gemstone photos, re-fusing saved
extractions, and schema utilities.

Usage:
    python -m gemfuse analyze --images photos/gem-118/ --gemstone-id gem-118
    python -m gemfuse fuse --input outputs/gem-118_extractions.json
    python -m gemfuse validate --input record.json --schema fusion
    python -m gemfuse export-schemas --output-dir schemas
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional

from gemfuse.config import get_config
from gemfuse.utils import load_json, new_run_id, save_json, setup_logging


def main(argv: Optional[list[str]] = None):
    parser = argparse.ArgumentParser(
        prog="gemfuse",
        description="GemFuse: multi-image gemstone attribute extraction and fusion",
    )
    parser.add_argument("--config", type=str, default=None, help="Path to config YAML")
    parser.add_argument("--verbose", "-v", action="store_true")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # ── analyze ─────────────────────────────────────────────────
    analyze_parser = subparsers.add_parser("analyze", help="Classify, extract and fuse one gemstone")
    analyze_parser.add_argument("--images", required=True, help="Image directory or JSON manifest")
    analyze_parser.add_argument("--gemstone-id", default=None, help="Defaults to the directory/manifest name")
    analyze_parser.add_argument("--output", type=str, default=None, help="Output JSON path")

    # ── fuse ────────────────────────────────────────────────────
    fuse_parser = subparsers.add_parser("fuse", help="Fuse saved per-image extractions")
    fuse_parser.add_argument("--input", required=True, help="JSON list of extractions")
    fuse_parser.add_argument("--gemstone-id", default=None)
    fuse_parser.add_argument("--output", type=str, default=None, help="Output JSON path")

    # ── validate ────────────────────────────────────────────────
    validate_parser = subparsers.add_parser("validate", help="Validate a JSON file")
    validate_parser.add_argument("--input", required=True, help="JSON file to validate")
    validate_parser.add_argument(
        "--schema", required=True, choices=["classification", "extraction", "fusion"]
    )

    # ── export-schemas ──────────────────────────────────────────
    schema_parser = subparsers.add_parser("export-schemas", help="Export JSON schemas")
    schema_parser.add_argument("--output-dir", default="schemas")

    args = parser.parse_args(argv)

    config = get_config(args.config)
    setup_logging(
        level="DEBUG" if args.verbose else config.log_level,
        format_style=config.log_format,
        run_id=new_run_id(),
    )

    if args.command == "analyze":
        cmd_analyze(args, config)
    elif args.command == "fuse":
        cmd_fuse(args, config)
    elif args.command == "validate":
        cmd_validate(args)
    elif args.command == "export-schemas":
        cmd_export_schemas(args)
    else:
        parser.print_help()
        sys.exit(1)


def cmd_analyze(args, config):
    """Run the full pipeline on one gemstone's photos."""
    from gemfuse.pipeline import GemstonePipeline, load_images

    images_path = Path(args.images)
    if not images_path.exists():
        print(f"Error: {images_path} not found")
        sys.exit(1)

    images = load_images(images_path)
    if not images:
        print(f"Error: no images found in {images_path}")
        sys.exit(1)

    gemstone_id = args.gemstone_id or images_path.stem
    pipeline = GemstonePipeline(config)
    result = pipeline.analyze(gemstone_id, images)

    print(f"\nGemstone: {gemstone_id}")
    print(f"Images: {len(images)}  Latency: {result.timings.get('total_ms', 0):.0f}ms\n")
    for c in result.classifications:
        print(f"  {c.image_id}: {c.image_type.value} ({c.confidence:.2f})")
    for f in result.failures:
        print(f"  {f.image_id}: FAILED at {f.stage} ({f.error_type}: {f.message})")

    print(f"\n{result.fusion.to_json(indent=2)}")
    print(f"\n  Stats: {result.stats}")
    if result.needs_review:
        print("  ⚠️  Needs review")

    output = Path(args.output) if args.output else config.output_dir / f"{gemstone_id}.json"
    save_json(result.to_dict(), output)
    print(f"\n  Results saved to {output}")


def cmd_fuse(args, config):
    """Fuse previously saved extractions without calling any model."""
    from gemfuse.extract.validator import validate_extraction
    from gemfuse.fusion.engine import FusionEngine

    data = load_json(args.input)
    # Accept a bare list or a saved analyze result
    if isinstance(data, dict):
        gemstone_id = args.gemstone_id or data.get("gemstone_id")
        raw_extractions = data.get("extractions", [])
    else:
        gemstone_id = args.gemstone_id
        raw_extractions = data

    extractions = [validate_extraction(e) for e in raw_extractions]
    result = FusionEngine.from_config(config).fuse(extractions, gemstone_id=gemstone_id)

    print(result.to_json(indent=2))
    if args.output:
        save_json(result.model_dump(mode="json"), args.output)
        print(f"\nResult saved to {args.output}")


def cmd_validate(args):
    """Validate a JSON file against GemFuse schemas."""
    from gemfuse.extract.validator import validate_document

    data = load_json(args.input)
    errors = validate_document(data, args.schema)
    if errors:
        print(f"Validation FAILED: {len(errors)} errors")
        for err in errors:
            print(f"  - {err}")
        sys.exit(1)
    else:
        print("Validation PASSED ✅")


def cmd_export_schemas(args):
    """Export JSON schemas for all data contracts."""
    from gemfuse.extract.validator import export_all_schemas

    paths = export_all_schemas(args.output_dir)
    for path in paths:
        print(f"Exported: {path}")

    print(f"\n{len(paths)} schemas exported to {args.output_dir}/")


if __name__ == "__main__":
    main()
