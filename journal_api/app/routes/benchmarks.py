from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ..dependencies import get_journal, get_user_id
from ..schemas import BenchmarkPrice, BulkUpdateResponse
from ..services.journal import JournalService

router = APIRouter(prefix="/api/v1/benchmarks", tags=["benchmarks"])


@router.get("/{ticker}", response_model=List[BenchmarkPrice])
def benchmark_prices(
    ticker: str,
    start: Optional[date] = Query(default=None, description="Inclusive start date (YYYY-MM-DD)"),
    user_id: str = Depends(get_user_id),
    journal: JournalService = Depends(get_journal),
) -> List[BenchmarkPrice]:
    return journal.benchmark_prices(user_id, ticker, start)


@router.post("/{ticker}", response_model=BulkUpdateResponse)
def upsert_benchmark_prices(
    ticker: str,
    prices: List[BenchmarkPrice],
    user_id: str = Depends(get_user_id),
    journal: JournalService = Depends(get_journal),
) -> BulkUpdateResponse:
    return BulkUpdateResponse(updated=journal.upsert_benchmark_prices(user_id, ticker, prices))
