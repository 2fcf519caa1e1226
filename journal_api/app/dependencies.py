from __future__ import annotations

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header

from .errors import NotAuthenticatedError
from .services.journal import JournalService
from .services.ledger_store import LedgerStore, create_store
from .settings import Settings, get_settings


@lru_cache(maxsize=1)
def get_store() -> LedgerStore:
    return create_store(get_settings())


def get_journal(
    store: LedgerStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> JournalService:
    return JournalService(store, settings)


def get_user_id(x_user_id: Optional[str] = Header(default=None, description="Opaque id of the calling user")) -> str:
    """Every ledger call is scoped by the caller's user id."""

    if not x_user_id or not x_user_id.strip():
        raise NotAuthenticatedError()
    return x_user_id.strip()
