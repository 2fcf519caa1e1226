from __future__ import annotations

from typing import Any, Callable, Dict, Optional

import click


def _csv_to_list(_: click.Context, __: click.Parameter, value: Optional[str]) -> Optional[list[str]]:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return list(value)
    parts = [item.strip() for item in value.split(",") if item.strip()]
    return parts or None


def trade_ids_option(func: Callable[..., Any]) -> Callable[..., Any]:
    return click.option(
        "--trades",
        "trade_ids",
        callback=_csv_to_list,
        required=True,
        help="Comma-separated trade ids.",
    )(func)


def trade_filter_options(func: Callable[..., Any]) -> Callable[..., Any]:
    options = [
        click.option("--strategy-id", help="Only trades assigned to this strategy."),
        click.option("--unassigned", is_flag=True, help="Only trades without a strategy."),
        click.option("--include-hidden", is_flag=True, help="Include hidden trades."),
    ]

    for option in reversed(options):
        func = option(func)
    return func


def build_params(**kwargs: Any) -> Dict[str, Any]:
    return {key: value for key, value in kwargs.items() if value is not None}
