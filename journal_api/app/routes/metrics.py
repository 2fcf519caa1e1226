from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..dependencies import get_journal, get_user_id
from ..schemas import PortfolioSummary, PutCampaignResponse
from ..services.journal import JournalService

router = APIRouter(prefix="/api/v1/metrics", tags=["metrics"])


@router.get("/dashboard", response_model=PortfolioSummary)
def dashboard(
    user_id: str = Depends(get_user_id),
    journal: JournalService = Depends(get_journal),
) -> PortfolioSummary:
    return journal.dashboard(user_id)


@router.get("/put-campaign", response_model=PutCampaignResponse)
def put_campaign(
    strategy: Optional[str] = Query(default=None, description="Strategy name; defaults to PUT_CAMPAIGN_STRATEGY"),
    user_id: str = Depends(get_user_id),
    journal: JournalService = Depends(get_journal),
) -> PutCampaignResponse:
    return journal.put_campaign(user_id, strategy)
