"""Command-line interface for the budget planner.

This module uses the ``click`` library to implement a multi-command interface.
Users can project a plan's liquidity and assets, view a summary, compare two
plans or keep plans in a database. Results can be printed to the terminal or
exported to JSON/CSV files.

Configuration comes from options or the environment:

    PLAN_DATABASE_URL        SQLAlchemy URL of the plan store
    BUDGET_PLAN_RANGE_YEARS  default projection range (5-20 years)
"""

from __future__ import annotations

import csv
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import click

from .data_models import ChartDataPoint, EventDataError, Plan, chart_point_to_dict, load_plan
from .engine import project, summarize_projection
from .formatter import print_comparison, print_projection, print_summary
from .plan_store import create_store_from_env
from .utils import parse_iso_date

logger = logging.getLogger(__name__)

MIN_RANGE_YEARS = 5
MAX_RANGE_YEARS = 20
DEFAULT_RANGE_YEARS = 10


def read_plan_file(path: str) -> Plan:
    try:
        return load_plan(path)
    except OSError as exc:
        raise click.BadParameter(f"Cannot read plan file {path}: {exc.strerror}")
    except EventDataError as exc:
        raise click.BadParameter(str(exc))


def resolve_plan(plan_file: Optional[str], plan_id: Optional[int], database_url: Optional[str]) -> Plan:
    """Load a plan either from a JSON file or from the plan store."""
    if plan_file and plan_id is not None:
        raise click.BadParameter("Use either --file or --plan-id, not both")
    if plan_file:
        return read_plan_file(plan_file)
    if plan_id is None:
        raise click.BadParameter("A plan is required; pass --file or --plan-id")
    store = create_store_from_env(database_url)
    plan = store.get_plan(plan_id)
    if plan is None:
        raise click.ClickException(f"Plan {plan_id} not found")
    return plan


def run_projection(plan: Plan, range_years: int, start_date: Optional[str] = None) -> List[ChartDataPoint]:
    anchor: Any = plan.start_date
    if start_date:
        try:
            anchor = parse_iso_date(start_date)
        except ValueError as exc:
            raise click.BadParameter(str(exc))
    logger.info("Projecting plan %r for %d years", plan.name, range_years)
    return project(plan.events, anchor, range_years)


def export_to_json(path: Path, plan: Plan, points: List[ChartDataPoint], summary: Dict[str, Any]) -> None:
    """Export the projection and its summary to a JSON file."""
    data = {
        "plan": plan.name,
        "summary": summary,
        "points": [chart_point_to_dict(p) for p in points],
    }
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def export_to_csv(path: Path, points: List[ChartDataPoint]) -> None:
    """Export the monthly balances to a CSV file."""
    header = ["Month", "Liquidity", "Assets"]
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        for p in points:
            writer.writerow([p.month.isoformat(), f"{p.liquidity:.2f}", f"{p.assets:.2f}"])


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log debug output")
def cli(verbose: bool) -> None:
    """Project liquidity and assets for a personal budget plan."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@cli.command("project")
@click.option("--file", "-f", "plan_file", type=str, help="Plan JSON file")
@click.option("--plan-id", "plan_id", type=int, help="Id of a stored plan")
@click.option("--database-url", "database_url", envvar="PLAN_DATABASE_URL", help="Plan store URL")
@click.option(
    "--range-years",
    "-y",
    "range_years",
    type=click.IntRange(MIN_RANGE_YEARS, MAX_RANGE_YEARS),
    default=DEFAULT_RANGE_YEARS,
    envvar="BUDGET_PLAN_RANGE_YEARS",
    show_default=True,
    help="Years to project",
)
@click.option("--start-date", "-s", "start_date", help="Override the plan start date (YYYY-MM-DD)")
@click.option("--output", "output", type=str, help="Output file path (.json or .csv)")
def projection(
    plan_file: Optional[str],
    plan_id: Optional[int],
    database_url: Optional[str],
    range_years: int,
    start_date: Optional[str],
    output: Optional[str],
) -> None:
    """Compute and print the monthly liquidity and assets of a plan."""
    plan = resolve_plan(plan_file, plan_id, database_url)
    points = run_projection(plan, range_years, start_date)
    summary_data = summarize_projection(points)
    if output:
        path = Path(output)
        if path.suffix.lower() == ".json":
            export_to_json(path, plan, points, summary_data)
            click.echo(f"Projection exported to {path}")
        elif path.suffix.lower() == ".csv":
            export_to_csv(path, points)
            click.echo(f"Projection exported to {path}")
        else:
            raise click.BadParameter("Unsupported output format; use .json or .csv")
    else:
        print_summary(summary_data, plan.name)
        print_projection(points)


@cli.command()
@click.option("--file", "-f", "plan_file", type=str, help="Plan JSON file")
@click.option("--plan-id", "plan_id", type=int, help="Id of a stored plan")
@click.option("--database-url", "database_url", envvar="PLAN_DATABASE_URL", help="Plan store URL")
@click.option(
    "--range-years",
    "-y",
    "range_years",
    type=click.IntRange(MIN_RANGE_YEARS, MAX_RANGE_YEARS),
    default=DEFAULT_RANGE_YEARS,
    envvar="BUDGET_PLAN_RANGE_YEARS",
    show_default=True,
    help="Years to project",
)
@click.option("--output", "output", type=str, help="Output file path (.json)")
def summary(
    plan_file: Optional[str],
    plan_id: Optional[int],
    database_url: Optional[str],
    range_years: int,
    output: Optional[str],
) -> None:
    """Compute and print only the summary metrics for a plan."""
    plan = resolve_plan(plan_file, plan_id, database_url)
    summary_data = summarize_projection(run_projection(plan, range_years))
    if output:
        path = Path(output)
        if path.suffix.lower() != ".json":
            raise click.BadParameter("Summary export must use .json extension")
        with path.open("w", encoding="utf-8") as f:
            json.dump({"plan": plan.name, "summary": summary_data}, f, indent=2)
        click.echo(f"Summary exported to {path}")
    else:
        print_summary(summary_data, plan.name)


@cli.command()
@click.option("--scenario1", "scenario1", required=True, help="First plan JSON file")
@click.option("--scenario2", "scenario2", required=True, help="Second plan JSON file")
@click.option(
    "--range-years",
    "-y",
    "range_years",
    type=click.IntRange(MIN_RANGE_YEARS, MAX_RANGE_YEARS),
    default=DEFAULT_RANGE_YEARS,
    envvar="BUDGET_PLAN_RANGE_YEARS",
    show_default=True,
    help="Years to project both plans",
)
def compare(scenario1: str, scenario2: str, range_years: int) -> None:
    """Compare two plans projected over the same range.

    Example:

        budget-plan compare --scenario1 rent.json --scenario2 buy.json -y 15
    """
    summary1 = summarize_projection(run_projection(read_plan_file(scenario1), range_years))
    summary2 = summarize_projection(run_projection(read_plan_file(scenario2), range_years))
    print_comparison(summary1, summary2)


@cli.command()
@click.argument("plan_file", type=str)
@click.option("--database-url", "database_url", envvar="PLAN_DATABASE_URL", help="Plan store URL")
def save(plan_file: str, database_url: Optional[str]) -> None:
    """Store a plan JSON file in the plan database."""
    plan = read_plan_file(plan_file)
    store = create_store_from_env(database_url)
    plan_id = store.add_plan(plan)
    click.echo(f"Saved plan {plan.name!r} as {plan_id}")


@cli.command()
@click.option("--database-url", "database_url", envvar="PLAN_DATABASE_URL", help="Plan store URL")
def plans(database_url: Optional[str]) -> None:
    """List stored plans."""
    store = create_store_from_env(database_url)
    rows = store.list_plans()
    if not rows:
        click.echo("No stored plans")
        return
    for row in rows:
        click.echo(f"{row['id']}\t{row['name']}\t{row['start_date']}")


@cli.command()
@click.argument("plan_id", type=int)
@click.option("--database-url", "database_url", envvar="PLAN_DATABASE_URL", help="Plan store URL")
def remove(plan_id: int, database_url: Optional[str]) -> None:
    """Delete a stored plan."""
    store = create_store_from_env(database_url)
    if not store.remove_plan(plan_id):
        raise click.ClickException(f"Plan {plan_id} not found")
    click.echo(f"Removed plan {plan_id}")


if __name__ == "__main__":
    cli()
