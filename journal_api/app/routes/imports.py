from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile

from ..dependencies import get_journal, get_user_id
from ..schemas import ImportStats, ReconcileStats
from ..services.journal import JournalService

router = APIRouter(prefix="/api/v1/imports", tags=["imports"])


@router.post("/transactions", response_model=ImportStats)
def import_transactions(
    file: UploadFile = File(...),
    user_id: str = Depends(get_user_id),
    journal: JournalService = Depends(get_journal),
) -> ImportStats:
    """Parse a broker transaction export and insert each trade at most once."""

    return journal.import_transactions(user_id, file.file.read())


@router.post("/positions", response_model=ReconcileStats)
def import_positions(
    file: UploadFile = File(...),
    user_id: str = Depends(get_user_id),
    journal: JournalService = Depends(get_journal),
) -> ReconcileStats:
    """Reconcile open legs against a position snapshot export."""

    return journal.reconcile_positions(user_id, file.file.read())
