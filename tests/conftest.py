import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
import models  # noqa: F401  (register tables)
from adapters.ledger import DatabaseLedger, fund_account
from adapters.vrf_coordinator import LocalVRFCoordinator
from core.raffle_manager import RaffleManager

ENTRANCE_FEE = 10
INTERVAL = 60
START_TIME = 1_700_000_000


class FakeClock:
    """可以手動推進的時鐘"""

    def __init__(self, now: int = START_TIME):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def raffle(db, clock):
    return RaffleManager.create_raffle(
        db,
        now=clock(),
        entrance_fee=ENTRANCE_FEE,
        interval=INTERVAL,
        key_hash="0xkeyhash",
        subscription_id=1,
        callback_gas_limit=500000,
    )


@pytest.fixture
def raffle_id(raffle):
    return raffle.id


@pytest.fixture
def ledger(db, raffle_id, clock):
    return DatabaseLedger(db, raffle_id, clock)


@pytest.fixture
def oracle(db, clock):
    return LocalVRFCoordinator(db, clock=clock)


@pytest.fixture
def fund(db):
    def _fund(address: str, amount: int = 1000) -> None:
        fund_account(db, address, amount)
        db.commit()
    return _fund


@pytest.fixture
def enter(db, raffle_id, ledger, fund):
    """為玩家入金後以剛好的入場費加入"""
    def _enter(player: str, amount: int = ENTRANCE_FEE):
        fund(player, amount)
        return RaffleManager.enter(db, raffle_id, player, amount, ledger)
    return _enter


@pytest.fixture
def closed_round(db, raffle_id, ledger, oracle, clock, enter):
    """三位玩家加入、時間已過、已請求隨機數；回傳 request id"""
    for player in ["alice", "bob", "carol"]:
        enter(player)
    clock.advance(INTERVAL)
    return RaffleManager.perform_upkeep(db, raffle_id, b"", ledger, oracle)


@pytest.fixture
def client(session_factory, clock):
    from main import app
    from api.deps import get_clock

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    yield TestClient(app)
    app.dependency_overrides.clear()
