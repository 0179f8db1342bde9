# scripts/validate_floorplan.py
"""CLI for batch validation of floor-plan JSON files."""
from __future__ import annotations

import sys
from pathlib import Path

import click
from tqdm import tqdm

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from floorplan_editor.exceptions import GeometryError
from floorplan_editor.geometry import DEFAULT_OVERLAP_TOLERANCE, validate_floor_plan
from floorplan_editor.logging_config import setup_logging
from floorplan_editor.models import FloorPlan


@click.command()
@click.option("--input-dir", type=click.Path(exists=True, file_okay=False), required=True)
@click.option("--tolerance", type=float, default=DEFAULT_OVERLAP_TOLERANCE,
              help="Overlap area below which adjacent spaces are accepted")
@click.option("--strict", is_flag=True, help="Treat warnings as failures")
@click.option("--log-level", type=str, default="WARNING")
def cli(input_dir, tolerance, strict, log_level):
    """Validate floor-plan JSON files: space geometry, overlaps and usable area."""
    setup_logging(level=log_level)
    files = sorted(Path(input_dir).glob("*.json"))
    if not files:
        click.echo("No JSON files found.")
        return

    invalid = 0
    for path in tqdm(files, desc="Validating"):
        try:
            fp = FloorPlan.model_validate_json(path.read_text())
            result = validate_floor_plan(fp, tolerance)
        except (ValueError, GeometryError) as exc:
            invalid += 1
            reason = str(exc).splitlines()[0]
            click.echo(f"{path.name}: MALFORMED ({reason})")
            continue

        ok = result.is_valid and not (strict and result.warnings)
        if not ok:
            invalid += 1
        click.echo(f"{path.name}: {'OK' if ok else 'INVALID'} ({len(fp.spaces)} spaces)")
        for error in result.errors:
            click.echo(f"  error: {error}")
        for warning in result.warnings:
            click.echo(f"  warning: {warning}")

    click.echo(f"Validated {len(files)} floor plans, {invalid} invalid")
    if invalid:
        sys.exit(1)


if __name__ == "__main__":
    cli()
