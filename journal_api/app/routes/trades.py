from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ..dependencies import get_journal, get_user_id
from ..schemas import (
    AssignStrategyRequest,
    AssignTagRequest,
    BulkUpdateResponse,
    GroupSummary,
    HideRequest,
    PairResponse,
    Trade,
    TradeIdsRequest,
    TradeUpdate,
)
from ..services.journal import JournalService

router = APIRouter(prefix="/api/v1/trades", tags=["trades"])


@router.get("", response_model=List[Trade])
def list_trades(
    strategy_id: Optional[str] = Query(default=None, description="Only trades assigned to this strategy"),
    unassigned: bool = Query(default=False, description="Only trades without a strategy"),
    include_hidden: bool = Query(default=False),
    user_id: str = Depends(get_user_id),
    journal: JournalService = Depends(get_journal),
) -> List[Trade]:
    return journal.list_trades(
        user_id, strategy_id=strategy_id, unassigned=unassigned, include_hidden=include_hidden
    )


@router.get("/groups", response_model=List[GroupSummary])
def list_groups(
    strategy_id: Optional[str] = Query(default=None),
    user_id: str = Depends(get_user_id),
    journal: JournalService = Depends(get_journal),
) -> List[GroupSummary]:
    return journal.list_groups(user_id, strategy_id=strategy_id)


@router.patch("/{trade_id}", response_model=Trade)
def update_trade(
    trade_id: str,
    payload: TradeUpdate,
    user_id: str = Depends(get_user_id),
    journal: JournalService = Depends(get_journal),
) -> Trade:
    return journal.update_trade(user_id, trade_id, payload.model_dump(exclude_unset=True))


@router.post("/assign-strategy", response_model=BulkUpdateResponse)
def assign_strategy(
    payload: AssignStrategyRequest,
    user_id: str = Depends(get_user_id),
    journal: JournalService = Depends(get_journal),
) -> BulkUpdateResponse:
    return BulkUpdateResponse(updated=journal.assign_strategy(user_id, payload.trade_ids, payload.strategy_id))


@router.post("/assign-tag", response_model=BulkUpdateResponse)
def assign_tag(
    payload: AssignTagRequest,
    user_id: str = Depends(get_user_id),
    journal: JournalService = Depends(get_journal),
) -> BulkUpdateResponse:
    return BulkUpdateResponse(updated=journal.assign_tag(user_id, payload.trade_ids, payload.tag_id))


@router.post("/pair", response_model=PairResponse)
def pair_trades(
    payload: TradeIdsRequest,
    user_id: str = Depends(get_user_id),
    journal: JournalService = Depends(get_journal),
) -> PairResponse:
    return journal.pair_trades(user_id, payload.trade_ids)


@router.post("/unpair", response_model=BulkUpdateResponse)
def unpair_trades(
    payload: TradeIdsRequest,
    user_id: str = Depends(get_user_id),
    journal: JournalService = Depends(get_journal),
) -> BulkUpdateResponse:
    return BulkUpdateResponse(updated=journal.unpair_trades(user_id, payload.trade_ids))


@router.post("/hide", response_model=BulkUpdateResponse)
def hide_trades(
    payload: HideRequest,
    user_id: str = Depends(get_user_id),
    journal: JournalService = Depends(get_journal),
) -> BulkUpdateResponse:
    return BulkUpdateResponse(updated=journal.hide_trades(user_id, payload.trade_ids, payload.hidden))


@router.post("/delete", response_model=BulkUpdateResponse)
def delete_trades(
    payload: TradeIdsRequest,
    user_id: str = Depends(get_user_id),
    journal: JournalService = Depends(get_journal),
) -> BulkUpdateResponse:
    return BulkUpdateResponse(updated=journal.delete_trades(user_id, payload.trade_ids))
