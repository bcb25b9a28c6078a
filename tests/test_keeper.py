from models import RaffleState
from adapters.ledger import account_balance
from core import keeper
from core.raffle_manager import RaffleManager
from tests.conftest import ENTRANCE_FEE, INTERVAL


def test_keeper_does_nothing_before_interval(db, session_factory, clock, raffle_id, enter):
    enter("alice")
    result = keeper.run_once(session_factory, clock)

    assert result == {"performed": [], "fulfilled": []}
    assert RaffleManager.get_raffle(db, raffle_id).state == RaffleState.OPEN


def test_keeper_closes_due_round(db, session_factory, clock, raffle_id, enter):
    enter("alice")
    clock.advance(INTERVAL)

    result = keeper.run_once(session_factory, clock)

    assert len(result["performed"]) == 1
    performed_raffle, request_id = result["performed"][0]
    assert performed_raffle == raffle_id
    db.expire_all()
    raffle = RaffleManager.get_raffle(db, raffle_id)
    assert raffle.state == RaffleState.CALCULATING
    assert raffle.pending_request_id == request_id

    # 已經在開獎中，第二輪不會再次觸發
    assert keeper.run_once(session_factory, clock)["performed"] == []


def test_keeper_auto_fulfill_completes_round(db, session_factory, clock, raffle_id, enter):
    enter("alice")
    enter("bob")
    clock.advance(INTERVAL)

    keeper.run_once(session_factory, clock)
    result = keeper.run_once(session_factory, clock, auto_fulfill=True)

    assert len(result["fulfilled"]) == 1
    db.expire_all()
    raffle = RaffleManager.get_raffle(db, raffle_id)
    assert raffle.state == RaffleState.OPEN
    assert raffle.recent_winner in {"alice", "bob"}
    assert account_balance(db, raffle.recent_winner) == 2 * ENTRANCE_FEE
