from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, status

from ..dependencies import get_journal, get_user_id
from ..schemas import (
    Strategy,
    StrategyCreate,
    StrategyDetail,
    StrategyPerformance,
    StrategyUpdate,
    Tag,
    TagCreate,
    TagUpdate,
)
from ..services.journal import JournalService

router = APIRouter(prefix="/api/v1", tags=["strategies"])


@router.get("/strategies", response_model=List[Strategy])
def list_strategies(
    user_id: str = Depends(get_user_id),
    journal: JournalService = Depends(get_journal),
) -> List[Strategy]:
    return journal.list_strategies(user_id)


@router.post("/strategies", response_model=Strategy, status_code=status.HTTP_201_CREATED)
def create_strategy(
    payload: StrategyCreate,
    user_id: str = Depends(get_user_id),
    journal: JournalService = Depends(get_journal),
) -> Strategy:
    return journal.create_strategy(user_id, payload)


@router.get("/strategies/performance", response_model=List[StrategyPerformance])
def strategy_performance(
    include_hidden: bool = Query(default=False),
    user_id: str = Depends(get_user_id),
    journal: JournalService = Depends(get_journal),
) -> List[StrategyPerformance]:
    return journal.strategy_performance(user_id, include_hidden=include_hidden)


@router.get("/strategies/{strategy_id}", response_model=Strategy)
def fetch_strategy(
    strategy_id: str,
    user_id: str = Depends(get_user_id),
    journal: JournalService = Depends(get_journal),
) -> Strategy:
    return journal.get_strategy(user_id, strategy_id)


@router.patch("/strategies/{strategy_id}", response_model=Strategy)
def update_strategy(
    strategy_id: str,
    payload: StrategyUpdate,
    user_id: str = Depends(get_user_id),
    journal: JournalService = Depends(get_journal),
) -> Strategy:
    return journal.update_strategy(user_id, strategy_id, payload.model_dump(exclude_unset=True))


@router.delete("/strategies/{strategy_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_strategy(
    strategy_id: str,
    user_id: str = Depends(get_user_id),
    journal: JournalService = Depends(get_journal),
) -> None:
    journal.delete_strategy(user_id, strategy_id)


@router.get("/strategies/{strategy_id}/detail", response_model=StrategyDetail)
def strategy_detail(
    strategy_id: str,
    user_id: str = Depends(get_user_id),
    journal: JournalService = Depends(get_journal),
) -> StrategyDetail:
    return journal.strategy_detail(user_id, strategy_id)


@router.get("/strategies/{strategy_id}/tags", response_model=List[Tag])
def list_tags(
    strategy_id: str,
    user_id: str = Depends(get_user_id),
    journal: JournalService = Depends(get_journal),
) -> List[Tag]:
    return journal.list_tags(user_id, strategy_id)


@router.post("/strategies/{strategy_id}/tags", response_model=Tag, status_code=status.HTTP_201_CREATED)
def create_tag(
    strategy_id: str,
    payload: TagCreate,
    user_id: str = Depends(get_user_id),
    journal: JournalService = Depends(get_journal),
) -> Tag:
    return journal.create_tag(user_id, strategy_id, payload)


@router.patch("/tags/{tag_id}", response_model=Tag, tags=["tags"])
def update_tag(
    tag_id: str,
    payload: TagUpdate,
    user_id: str = Depends(get_user_id),
    journal: JournalService = Depends(get_journal),
) -> Tag:
    return journal.update_tag(user_id, tag_id, payload.model_dump(exclude_unset=True))


@router.delete("/tags/{tag_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["tags"])
def delete_tag(
    tag_id: str,
    user_id: str = Depends(get_user_id),
    journal: JournalService = Depends(get_journal),
) -> None:
    journal.delete_tag(user_id, tag_id)
