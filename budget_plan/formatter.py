"""Output helpers for the budget planner.

This module provides simple functions to render projections and their
summaries in a tabular text format using built-in printing and string
formatting.
"""

from __future__ import annotations

from typing import Dict, Iterable

from .data_models import ChartDataPoint


def print_summary(summary: Dict[str, object], name: str | None = None) -> None:
    """Print a projection summary in a human-readable format."""
    print(f"Summary: {name}" if name else "Summary")
    print("-" * 72)
    print(f"Months projected   : {summary['months']}")
    if summary.get("first_month"):
        print(f"Period             : {summary['first_month']} to {summary['last_month']}")
    print(f"Final liquidity    : {summary['final_liquidity']:.2f}")
    print(f"Final assets       : {summary['final_assets']:.2f}")
    print(f"Net position       : {summary['final_net_position']:.2f}")
    # The low point of cash on hand is usually the month worth checking first.
    if summary.get("lowest_liquidity_month"):
        print(
            f"Lowest liquidity   : {summary['lowest_liquidity']:.2f}"
            f" ({summary['lowest_liquidity_month']})"
        )
    print(f"Peak assets        : {summary['peak_assets']:.2f}")
    print("-" * 72)


def print_projection(points: Iterable[ChartDataPoint]) -> None:
    """Print the monthly balances as a simple table."""
    headers = ["Month", "Liquidity", "Assets", "Net"]
    print("\t".join(headers))
    for point in points:
        row = [
            point.month.strftime("%Y-%m"),
            f"{point.liquidity:.2f}",
            f"{point.assets:.2f}",
            f"{point.liquidity + point.assets:.2f}",
        ]
        print("\t".join(row))


def print_comparison(s1: Dict[str, object], s2: Dict[str, object]) -> None:
    """Print a comparison of two plan summaries side by side.

    The difference column is scenario2 - scenario1, so a positive difference
    means the second plan ends with more.
    """
    print("Comparison")
    print("=" * 72)
    keys = [
        "final_liquidity",
        "final_assets",
        "final_net_position",
        "lowest_liquidity",
        "peak_assets",
    ]
    print(f"{'Metric':20s} {'Scenario1':>15s} {'Scenario2':>15s} {'Difference':>15s}")
    for key in keys:
        v1 = s1.get(key)
        v2 = s2.get(key)
        diff = v2 - v1
        print(f"{key:20s} {v1:15.2f} {v2:15.2f} {diff:15.2f}")
    print("=" * 72)
