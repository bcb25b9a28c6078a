"""
FastAPI dependencies：時鐘、帳本、Oracle

測試可以用 app.dependency_overrides 換成假的時鐘或 Oracle。
"""
from typing import Callable

from fastapi import Depends
from sqlalchemy.orm import Session

from database import get_db
from adapters.ledger import Clock, DatabaseLedger, system_clock
from adapters.vrf_coordinator import LocalVRFCoordinator


def get_clock() -> Clock:
    return system_clock


def get_ledger_factory(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> Callable[[str], DatabaseLedger]:
    """回傳 raffle_id -> DatabaseLedger 的工廠"""
    def factory(raffle_id: str) -> DatabaseLedger:
        return DatabaseLedger(db, raffle_id, clock)
    return factory


def get_oracle(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> LocalVRFCoordinator:
    return LocalVRFCoordinator(db, clock=clock)
