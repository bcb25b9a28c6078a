import pytest

from models import RaffleState
from adapters.ledger import account_balance, set_account_blocked
from adapters.vrf_coordinator import LocalVRFCoordinator
from core.raffle_manager import RaffleManager
from core.exceptions import TransferFailed, UnknownRequest
from services.draw_service import derive_random_words
from tests.conftest import ENTRANCE_FEE


def _request(oracle, **overrides):
    params = dict(
        key_hash="0xkey",
        subscription_id=1,
        request_confirmations=3,
        callback_gas_limit=100000,
        num_words=1,
        consumer="consumer-1",
    )
    params.update(overrides)
    return oracle.request_random_words(**params)


def test_request_ids_are_unique_and_pending(db, oracle):
    first = _request(oracle)
    second = _request(oracle)
    db.commit()

    assert first != second
    assert [r.request_id for r in oracle.pending_requests()] == [first, second]
    assert [r.request_id for r in oracle.pending_requests("other")] == []


@pytest.mark.parametrize("overrides", [
    {"request_confirmations": 2},
    {"num_words": 0},
    {"num_words": 501},
])
def test_request_parameters_are_validated(oracle, overrides):
    with pytest.raises(ValueError):
        _request(oracle, **overrides)


def test_fulfill_delivers_derived_words_to_consumer(db):
    delivered = []

    def deliver(session, consumer, request_id, words):
        delivered.append((consumer, request_id, words))
        return "ok"

    oracle = LocalVRFCoordinator(db, deliver=deliver)
    request_id = _request(oracle, num_words=2)
    db.commit()

    assert oracle.fulfill(request_id) == "ok"
    assert delivered == [("consumer-1", request_id, derive_random_words(request_id, 2))]

    request = oracle.get_request(request_id)
    assert request.fulfilled is True
    assert request.random_words == [str(w) for w in derive_random_words(request_id, 2)]


def test_fulfill_is_exactly_once(db):
    oracle = LocalVRFCoordinator(db, deliver=lambda *args: None)
    request_id = _request(oracle)
    db.commit()

    oracle.fulfill(request_id, [5])
    with pytest.raises(UnknownRequest):
        oracle.fulfill(request_id, [6])
    with pytest.raises(UnknownRequest):
        oracle.fulfill(request_id + 100)


def test_fulfill_rejects_wrong_word_count(db):
    oracle = LocalVRFCoordinator(db, deliver=lambda *args: None)
    request_id = _request(oracle)
    db.commit()

    with pytest.raises(ValueError):
        oracle.fulfill(request_id, [1, 2])
    assert oracle.get_request(request_id).fulfilled is False


def test_failed_callback_leaves_request_pending(db):
    def deliver(session, consumer, request_id, words):
        raise RuntimeError("consumer reverted")

    oracle = LocalVRFCoordinator(db, deliver=deliver)
    request_id = _request(oracle)
    db.commit()

    with pytest.raises(RuntimeError):
        oracle.fulfill(request_id)
    assert oracle.get_request(request_id).fulfilled is False


def test_default_delivery_resolves_raffle(db, raffle_id, oracle, closed_round):
    draw = oracle.fulfill(closed_round, [2])

    assert draw.winner == "carol"
    assert account_balance(db, "carol") == 3 * ENTRANCE_FEE
    assert RaffleManager.get_raffle(db, raffle_id).state == RaffleState.OPEN
    assert oracle.get_request(closed_round).fulfilled is True
    assert RaffleManager.verify_draw(db, raffle_id, 1)["oracle_checked"] is True


def test_payout_failure_keeps_request_deliverable(db, raffle_id, oracle, closed_round):
    set_account_blocked(db, "alice", True)
    db.commit()

    with pytest.raises(TransferFailed):
        oracle.fulfill(closed_round, [0])
    assert oracle.get_request(closed_round).fulfilled is False
    assert RaffleManager.get_raffle(db, raffle_id).state == RaffleState.CALCULATING

    set_account_blocked(db, "alice", False)
    db.commit()
    assert oracle.fulfill(closed_round, [0]).winner == "alice"
