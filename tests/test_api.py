from tests.conftest import INTERVAL


def _create(client, fee=10, interval=INTERVAL):
    resp = client.post("/api/raffles", json={"entrance_fee": fee, "interval": interval})
    assert resp.status_code == 200
    return resp.json()


def _fund_and_enter(client, raffle_id, player, amount=10):
    client.post(f"/api/ledger/accounts/{player}/fund", json={"amount": amount})
    return client.post(
        f"/api/raffles/{raffle_id}/enter", json={"player": player, "amount": amount}
    )


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_create_and_get_raffle(client):
    created = _create(client)

    assert created["state"] == "OPEN"
    assert created["entrance_fee"] == 10
    assert created["interval"] == INTERVAL
    assert created["number_of_players"] == 0
    assert created["balance"] == 0
    assert created["request_confirmations"] == 3
    assert created["num_words"] == 1
    assert created["pool_address"] == f"raffle:{created['raffle_id']}"

    fetched = client.get(f"/api/raffles/{created['raffle_id']}").json()
    assert fetched == created
    assert [r["raffle_id"] for r in client.get("/api/raffles").json()] == [created["raffle_id"]]


def test_create_uses_settings_defaults(client):
    resp = client.post("/api/raffles", json={})
    assert resp.status_code == 200
    assert resp.json()["entrance_fee"] > 0


def test_create_keeps_given_fields_and_defaults_the_rest(client, session_factory):
    from database import get_settings
    from models import Raffle

    settings = get_settings()
    resp = client.post("/api/raffles", json={"interval": 5, "subscription_id": 0, "key_hash": "0xabc"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["interval"] == 5
    assert body["entrance_fee"] == settings.entrance_fee

    session = session_factory()
    try:
        raffle = session.get(Raffle, body["raffle_id"])
        assert raffle.subscription_id == 0
        assert raffle.key_hash == "0xabc"
        assert raffle.callback_gas_limit == settings.callback_gas_limit
    finally:
        session.close()


def test_create_rejects_invalid_fee(client):
    assert client.post("/api/raffles", json={"entrance_fee": 0}).status_code == 422


def test_unknown_raffle_is_404(client):
    assert client.get("/api/raffles/missing").status_code == 404
    assert client.get("/api/raffles/missing/upkeep").status_code == 404


def test_entry_errors(client):
    raffle_id = _create(client)["raffle_id"]

    underpaid = _fund_and_enter(client, raffle_id, "bob", amount=5)
    assert underpaid.status_code == 400

    no_funds = client.post(
        f"/api/raffles/{raffle_id}/enter", json={"player": "carol", "amount": 10}
    )
    assert no_funds.status_code == 400

    assert client.get(f"/api/raffles/{raffle_id}").json()["number_of_players"] == 0


def test_upkeep_not_needed_carries_diagnostics(client, clock):
    raffle_id = _create(client)["raffle_id"]
    clock.advance(INTERVAL)

    check = client.get(f"/api/raffles/{raffle_id}/upkeep").json()
    assert check == {"upkeep_needed": False, "perform_data": "0x"}

    resp = client.post(f"/api/raffles/{raffle_id}/upkeep", json={"perform_data": "0x"})
    assert resp.status_code == 409
    assert resp.json()["detail"] == {
        "error": "UpkeepNotNeeded",
        "balance": 0,
        "player_count": 0,
        "state": "OPEN",
    }


def test_perform_data_must_be_hex(client):
    raffle_id = _create(client)["raffle_id"]
    resp = client.post(f"/api/raffles/{raffle_id}/upkeep", json={"perform_data": "0xzz"})
    assert resp.status_code == 400


def test_full_round_over_http(client, clock):
    raffle_id = _create(client)["raffle_id"]

    for player in ["alice", "bob", "alice"]:
        resp = _fund_and_enter(client, raffle_id, player)
        assert resp.status_code == 200
    assert resp.json() == {"player": "alice", "position": 2, "number_of_players": 3}

    players = client.get(f"/api/raffles/{raffle_id}/players").json()
    assert [p["player"] for p in players] == ["alice", "bob", "alice"]
    assert client.get(f"/api/raffles/{raffle_id}/players/1").json() == {"index": 1, "player": "bob"}
    assert client.get(f"/api/raffles/{raffle_id}/players/3").status_code == 404

    clock.advance(INTERVAL)
    assert client.get(f"/api/raffles/{raffle_id}/upkeep").json()["upkeep_needed"] is True

    performed = client.post(f"/api/raffles/{raffle_id}/upkeep", json={}).json()
    assert performed["state"] == "CALCULATING"
    request_id = performed["request_id"]

    # 開獎中不接受加入
    assert _fund_and_enter(client, raffle_id, "dave").status_code == 409

    pending = client.get("/api/oracle/requests").json()
    assert [r["request_id"] for r in pending] == [request_id]
    assert pending[0]["consumer"] == raffle_id

    draw = client.post(
        f"/api/oracle/requests/{request_id}/fulfill", json={"random_words": [4]}
    ).json()
    assert draw["winner_index"] == 1
    assert draw["winner"] == "bob"
    assert draw["prize"] == 30

    # 同一個請求不能投遞第二次
    again = client.post(f"/api/oracle/requests/{request_id}/fulfill", json={})
    assert again.status_code == 409

    raffle = client.get(f"/api/raffles/{raffle_id}").json()
    assert raffle["state"] == "OPEN"
    assert raffle["recent_winner"] == "bob"
    assert raffle["number_of_players"] == 0
    assert raffle["balance"] == 0
    assert raffle["last_timestamp"] == clock()
    assert client.get("/api/ledger/accounts/bob").json() == {"address": "bob", "balance": 30}

    draws = client.get(f"/api/raffles/{raffle_id}/draws").json()
    assert len(draws) == 1
    assert draws[0]["entrants"] == ["alice", "bob", "alice"]
    assert client.get(f"/api/raffles/{raffle_id}/draws?player=alice").json() == []

    verified = client.get(f"/api/raffles/{raffle_id}/draws/1/verify").json()
    assert verified["ok"] is True
    assert verified["oracle_checked"] is True
    assert client.get(f"/api/raffles/{raffle_id}/draws/2/verify").status_code == 404

    picked = client.get(f"/api/raffles/{raffle_id}/events?event_type=WINNER_PICKED").json()
    assert [e["data"] for e in picked] == [{"winner": "bob"}]


def test_failed_payout_over_http_is_retryable(client, clock, session_factory):
    from adapters.ledger import set_account_blocked

    raffle_id = _create(client)["raffle_id"]
    _fund_and_enter(client, raffle_id, "alice")
    clock.advance(INTERVAL)
    request_id = client.post(f"/api/raffles/{raffle_id}/upkeep", json={}).json()["request_id"]

    session = session_factory()
    set_account_blocked(session, "alice", True)
    session.commit()

    resp = client.post(f"/api/oracle/requests/{request_id}/fulfill", json={})
    assert resp.status_code == 502
    assert client.get(f"/api/raffles/{raffle_id}").json()["state"] == "CALCULATING"
    assert client.get(f"/api/oracle/requests/{request_id}").json()["fulfilled"] is False

    set_account_blocked(session, "alice", False)
    session.commit()
    session.close()

    resp = client.post(f"/api/oracle/requests/{request_id}/fulfill", json={})
    assert resp.status_code == 200
    assert resp.json()["winner"] == "alice"
