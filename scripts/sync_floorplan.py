# scripts/sync_floorplan.py
"""CLI for downloading a floor plan from the API into a JSON file."""
from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import click

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from floorplan_editor.client import HttpFloorPlanClient
from floorplan_editor.config import EditorConfig
from floorplan_editor.exceptions import PersistenceError
from floorplan_editor.geometry import validate_floor_plan
from floorplan_editor.logging_config import setup_logging
from floorplan_editor.models import FloorPlan


async def fetch_floor_plan(config: EditorConfig, floor_plan_id: str) -> FloorPlan:
    async with HttpFloorPlanClient(config=config) as client:
        return await client.get(floor_plan_id)


@click.command()
@click.option("--base-url", envvar="FLOORPLAN_EDITOR_API_BASE_URL", required=True,
              help="API root, e.g. https://iwms.example.com/api/v1")
@click.option("--floor-plan-id", type=str, required=True)
@click.option("--output", type=click.Path(dir_okay=False), required=True)
@click.option("--max-retries", type=int, default=None, help="Retries for transient failures")
def cli(base_url, floor_plan_id, output, max_retries):
    """Fetch a floor plan, validate its geometry and write it as JSON."""
    config = EditorConfig.from_env(api_base_url=base_url, max_retries=max_retries)
    setup_logging(level=config.log_level)

    try:
        fp = asyncio.run(fetch_floor_plan(config, floor_plan_id))
    except PersistenceError as exc:
        raise click.ClickException(exc.message) from exc

    result = validate_floor_plan(fp, config.overlap_tolerance)
    out = Path(output)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(fp.to_wire(), indent=2))

    for error in result.errors:
        click.echo(f"error: {error}", err=True)
    click.echo(
        f"Wrote {fp.metadata.name} (version {fp.metadata.version or 'unversioned'}, "
        f"{len(fp.spaces)} spaces) to {out}"
    )


if __name__ == "__main__":
    cli()
