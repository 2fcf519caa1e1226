from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Any, Optional

import click

from .config import MissingConfigurationError, get_settings
from .http_client import APIClient
from .options import build_params, trade_filter_options, trade_ids_option


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


def _prepare_client(base_url: Optional[str], user_id: Optional[str], token: Optional[str]) -> APIClient:
    try:
        settings = get_settings(base_url=base_url, user_id=user_id, token=token)
    except MissingConfigurationError as exc:
        raise click.ClickException(str(exc)) from exc
    return APIClient(settings=settings)


def _upload(client: APIClient, path: str, csv_path: Path) -> Any:
    with csv_path.open("rb") as handle:
        return client.post(path, files=[("file", (csv_path.name, handle, "text/csv"))])


@click.group()
@click.option("--base-url", envvar="API_BASE_URL", help="API base URL (env: API_BASE_URL)")
@click.option("--user-id", envvar="API_USER_ID", help="User id sent as X-User-Id (env: API_USER_ID)")
@click.option("--token", envvar="API_TOKEN", help="API token for Authorization header")
@click.pass_context
def cli(ctx: click.Context, base_url: Optional[str], user_id: Optional[str], token: Optional[str]) -> None:
    """Options trading journal API command line wrapper."""

    ctx.obj = {"client": _prepare_client(base_url, user_id, token)}


@cli.command("import-trades")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def import_trades(ctx: click.Context, path: Path) -> None:
    """Import a broker transaction CSV."""

    client: APIClient = ctx.obj["client"]
    stats = _upload(client, "/api/v1/imports/transactions", path)
    click.echo(
        f"Imported {stats['inserted']} of {stats['total']} trades "
        f"({stats['duplicates']} duplicates, {stats['failed']} failed)."
    )


@cli.command("import-positions")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def import_positions(ctx: click.Context, path: Path) -> None:
    """Reconcile open trades against a position snapshot CSV."""

    client: APIClient = ctx.obj["client"]
    _echo_json(_upload(client, "/api/v1/imports/positions", path))


@cli.command()
@trade_filter_options
@click.option("--groups", is_flag=True, help="Show grouped positions instead of individual legs.")
@click.pass_context
def trades(ctx: click.Context, groups: bool, **filters: Any) -> None:
    """List trades, newest first."""

    client: APIClient = ctx.obj["client"]
    if groups:
        payload = client.get("/api/v1/trades/groups", params=build_params(strategy_id=filters.get("strategy_id")))
    else:
        payload = client.get("/api/v1/trades", params=build_params(**filters))
    _echo_json(payload)


@cli.command()
@click.pass_context
def dashboard(ctx: click.Context) -> None:
    """Portfolio P&L summary."""

    client: APIClient = ctx.obj["client"]
    _echo_json(client.get("/api/v1/metrics/dashboard"))


@cli.command("put-camp")
@click.option("--strategy", help="Strategy name (defaults to the server's configured name).")
@click.pass_context
def put_camp(ctx: click.Context, strategy: Optional[str]) -> None:
    """Put campaign tracker metrics and groups."""

    client: APIClient = ctx.obj["client"]
    _echo_json(client.get("/api/v1/metrics/put-campaign", params=build_params(strategy=strategy)))


@cli.command()
@click.option("--performance", is_flag=True, help="Include P&L and ROI per strategy.")
@click.option("--include-hidden", is_flag=True, help="Include hidden strategies.")
@click.pass_context
def strategies(ctx: click.Context, performance: bool, include_hidden: bool) -> None:
    """List strategies."""

    client: APIClient = ctx.obj["client"]
    if performance:
        payload = client.get("/api/v1/strategies/performance", params={"include_hidden": include_hidden})
    else:
        payload = client.get("/api/v1/strategies")
    _echo_json(payload)


@cli.command()
@click.argument("strategy_id")
@click.pass_context
def strategy(ctx: click.Context, strategy_id: str) -> None:
    """Strategy detail: performance and trade groups by tag."""

    client: APIClient = ctx.obj["client"]
    _echo_json(client.get(f"/api/v1/strategies/{strategy_id}/detail"))


@cli.command("create-strategy")
@click.argument("name")
@click.option("--capital", type=float, default=0.0, show_default=True, help="Capital allocation.")
@click.option("--description", help="Free-form description.")
@click.option("--benchmark", "benchmark_ticker", help="Benchmark ticker.")
@click.pass_context
def create_strategy(
    ctx: click.Context,
    name: str,
    capital: float,
    description: Optional[str],
    benchmark_ticker: Optional[str],
) -> None:
    """Create a strategy."""

    client: APIClient = ctx.obj["client"]
    body = build_params(
        name=name,
        capital_allocation=capital,
        description=description,
        benchmark_ticker=benchmark_ticker,
    )
    _echo_json(client.post("/api/v1/strategies", json_body=body))


@cli.command()
@trade_ids_option
@click.pass_context
def pair(ctx: click.Context, trade_ids: list[str]) -> None:
    """Pair two or more trades into one position."""

    client: APIClient = ctx.obj["client"]
    _echo_json(client.post("/api/v1/trades/pair", json_body={"trade_ids": trade_ids}))


@cli.command()
@trade_ids_option
@click.pass_context
def unpair(ctx: click.Context, trade_ids: list[str]) -> None:
    """Remove trades from their pair."""

    client: APIClient = ctx.obj["client"]
    _echo_json(client.post("/api/v1/trades/unpair", json_body={"trade_ids": trade_ids}))


@cli.command()
@trade_ids_option
@click.option("--strategy-id", help="Strategy to assign; omit to unassign.")
@click.option("--tag-id", help="Tag to set instead of a strategy.")
@click.pass_context
def assign(ctx: click.Context, trade_ids: list[str], strategy_id: Optional[str], tag_id: Optional[str]) -> None:
    """Assign trades to a strategy, or set their tag."""

    client: APIClient = ctx.obj["client"]
    if tag_id:
        payload = client.post("/api/v1/trades/assign-tag", json_body={"trade_ids": trade_ids, "tag_id": tag_id})
    else:
        payload = client.post(
            "/api/v1/trades/assign-strategy",
            json_body={"trade_ids": trade_ids, "strategy_id": strategy_id},
        )
    _echo_json(payload)


@cli.command()
@trade_ids_option
@click.option("--unhide", is_flag=True, help="Make the trades visible again.")
@click.pass_context
def hide(ctx: click.Context, trade_ids: list[str], unhide: bool) -> None:
    """Hide trades from every view."""

    client: APIClient = ctx.obj["client"]
    _echo_json(client.post("/api/v1/trades/hide", json_body={"trade_ids": trade_ids, "hidden": not unhide}))


def main(argv: Optional[list[str]] = None) -> None:
    argv = argv if argv is not None else sys.argv[1:]
    cli.main(args=argv, prog_name=os.path.basename(sys.argv[0]))


if __name__ == "__main__":
    main()
