from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from journal_api.app.compute.groups import build_groups, credit_captured_pct, days_in_trade
from journal_api.app.compute.legs import legs_frame, market_value, unrealized_pnl

OPENED = datetime(2024, 11, 1, 15, 0, tzinfo=timezone.utc)


def test_short_and_long_legs_mirror_each_other(trade_factory) -> None:
    short = trade_factory(action="SELL_TO_OPEN", mark_price=3.0, amount=0.0)
    long = trade_factory(action="BUY_TO_OPEN", mark_price=-3.0, amount=0.0)

    assert market_value(short) == -300.0
    assert market_value(long) == 300.0
    frame = legs_frame([short, long])
    assert frame["market_value"].to_list() == [-300.0, 300.0]


def test_unrealized_pnl_adds_cash_flow(trade_factory) -> None:
    leg = trade_factory(mark_price=1.0, amount=250.0)

    assert unrealized_pnl(leg) == pytest.approx(150.0)


def test_mixed_pair_is_open_and_sums_both_legs(trade_factory) -> None:
    closed = trade_factory(action="BUY_TO_OPEN", amount=-100.0, pair_id="p1", symbol="SPY 12/20/24 P540")
    still_open = trade_factory(
        action="SELL_TO_OPEN",
        amount=150.0,
        mark_price=1.0,
        pair_id="p1",
        date=OPENED + timedelta(hours=1),
    )

    (group,) = build_groups([closed, still_open], now=OPENED + timedelta(days=3))

    assert group.group_id == "p1"
    assert group.is_pair
    assert group.is_open
    assert group.close_date is None
    assert group.leg_count == 2
    assert group.open_legs == 1
    assert group.realized_pnl == pytest.approx(-100.0)
    assert group.unrealized_pnl == pytest.approx(50.0)
    assert group.total_pnl == pytest.approx(-50.0)
    assert group.initial_credit == pytest.approx(150.0)
    assert group.credit_captured_pct == pytest.approx(-50.0 / 150.0 * 100.0)
    assert group.symbol == "SPY 12/20/24 P540 + 1 legs"
    assert group.strike == 540.0
    assert group.expiration == date(2024, 12, 20)
    assert group.right == "P"
    assert group.days_in_trade == 3
    assert [t.id for t in group.trades] == [closed.id, still_open.id]


def test_closed_group_closes_on_last_leg(trade_factory) -> None:
    sold = trade_factory(pair_id="p2")
    bought = trade_factory(action="BUY_TO_CLOSE", amount=-100.0, pair_id="p2", date=OPENED + timedelta(days=14, hours=1))

    (group,) = build_groups([sold, bought])

    assert not group.is_open
    assert group.close_date == OPENED + timedelta(days=14, hours=1)
    assert group.realized_pnl == pytest.approx(150.0)
    assert group.days_in_trade == 15


def test_unpaired_trades_are_their_own_groups_newest_first(trade_factory) -> None:
    older = trade_factory()
    newer = trade_factory(date=OPENED + timedelta(days=2), symbol="AAPL", asset_type="STOCK")
    hidden = trade_factory(hidden=True)

    groups = build_groups([older, newer, hidden])

    assert [g.group_id for g in groups] == [newer.id, older.id]
    assert not groups[0].is_pair
    assert groups[0].strike is None


def test_zero_mark_keeps_group_open(trade_factory) -> None:
    (group,) = build_groups([trade_factory(mark_price=0.0)])

    assert group.is_open
    assert group.total_pnl == pytest.approx(250.0)


def test_no_trades_no_groups() -> None:
    assert build_groups([]) == []


def test_days_in_trade_rounds_up() -> None:
    assert days_in_trade(OPENED, OPENED) == 0
    assert days_in_trade(OPENED, OPENED + timedelta(minutes=5)) == 1
    assert days_in_trade(OPENED, OPENED + timedelta(days=1)) == 1
    assert days_in_trade(OPENED, OPENED + timedelta(days=1, seconds=1)) == 2
    assert days_in_trade(OPENED, None, now=OPENED + timedelta(hours=30)) == 2


def test_credit_captured_requires_a_credit() -> None:
    assert credit_captured_pct(100.0, 0.0) is None
    assert credit_captured_pct(50.0, 200.0) == pytest.approx(25.0)


def test_short_credit_with_mark_two_is_up_three_hundred(trade_factory) -> None:
    leg = trade_factory(amount=500.0, mark_price=2.0, quantity=1.0, multiplier=100.0)

    assert unrealized_pnl(leg) == pytest.approx(300.0)
    (group,) = build_groups([leg])
    assert group.unrealized_pnl == pytest.approx(300.0)
    assert group.realized_pnl == 0.0
