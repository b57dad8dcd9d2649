"""
Shared FastAPI dependencies.
"""
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from levelup.db.base import get_db
from levelup.services.ledger_store import SqlLedgerStore
from levelup.services.reward_orchestrator import RewardOrchestrator


def get_orchestrator(request: Request) -> RewardOrchestrator:
    return request.app.state.orchestrator


def get_ledger_store(db: Session = Depends(get_db)) -> SqlLedgerStore:
    return SqlLedgerStore(db)
