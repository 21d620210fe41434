"""Router tests over ASGI: auth, error envelope and service wiring.

The services behind each router are swapped for ones backed by the
in-memory store; the lifespan never runs so no database or Redis is needed.
"""

from decimal import Decimal

import pytest

import src.amm_account.api.custody_router as custody_api
import src.amm_account.api.router as account_api
import src.amm_dispute.api.router as dispute_api
import src.amm_ledger.api.router as trading_api
import src.amm_market.api.router as market_api
from config.settings import settings
from src.amm_account.application.service import AccountApplicationService
from src.amm_common.database import get_db_session
from src.amm_common.enums import Outcome
from src.amm_dispute.application.service import DisputeService
from src.amm_gateway.auth.jwt_handler import create_access_token
from src.amm_market.application.service import MarketApplicationService
from src.main import app

MID = "c0ffee123456"


def _auth(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture
def api(store, db, market_repo, account_repo, dispute_repo, locks, ledger, monkeypatch):
    async def _session():
        yield db

    app.dependency_overrides[get_db_session] = _session
    accounts = AccountApplicationService(repo=account_repo, market_repo=market_repo)
    monkeypatch.setattr(market_api, "_service", MarketApplicationService(repo=market_repo))
    monkeypatch.setattr(trading_api, "_ledger", ledger)
    monkeypatch.setattr(
        dispute_api, "_service", DisputeService(dispute_repo, market_repo, account_repo, locks)
    )
    monkeypatch.setattr(account_api, "_service", accounts)
    monkeypatch.setattr(custody_api, "_service", accounts)
    return store


class TestAuth:
    async def test_health_needs_no_token(self, client) -> None:
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    async def test_missing_token(self, client, api) -> None:
        resp = await client.get("/api/v1/markets")
        assert resp.status_code == 401
        body = resp.json()
        assert body["code"] == 1001
        assert body["data"] is None
        assert body["request_id"].startswith("req_")

    async def test_garbage_token(self, client, api) -> None:
        resp = await client.get("/api/v1/markets", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

    async def test_custody_routes_reject_user_tokens(self, client, api) -> None:
        resp = await client.post(
            "/api/v1/custody/deposits",
            json={"user_id": "alice", "amount": "10", "tx_ref": "0x1"},
            headers=_auth("alice"),
        )
        assert resp.status_code == 403
        assert resp.json()["code"] == 1002
        assert api.balance("alice") == 0


class TestMarketRoutes:
    async def test_create_and_fetch(self, client, api) -> None:
        resp = await client.post(
            "/api/v1/markets",
            json={"question": "Will BTC close above 100k?", "group_id": "chat-1"},
            headers=_auth("alice"),
        )
        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["creator_id"] == "alice"
        assert data["status"] == "ACTIVE"
        assert Decimal(data["b"]) == Decimal("100")
        assert Decimal(data["price_yes"]) == Decimal("0.5")

        fetched = await client.get(f"/api/v1/markets/{data['id']}", headers=_auth("bob"))
        assert fetched.json()["data"]["question"] == "Will BTC close above 100k?"

        short = await client.get(
            f"/api/v1/markets/short/{data['short_id']}", headers=_auth("bob")
        )
        assert short.json()["data"]["id"] == data["id"]

        listed = await client.get("/api/v1/markets?group_id=chat-1", headers=_auth("bob"))
        assert [m["id"] for m in listed.json()["data"]["items"]] == [data["id"]]

    async def test_liquidity_below_minimum(self, client, api) -> None:
        resp = await client.post(
            "/api/v1/markets",
            json={"question": "Too thin?", "b": "0.5"},
            headers=_auth("alice"),
        )
        assert resp.status_code == 422
        assert resp.json()["code"] == 3007

    async def test_unknown_market(self, client, api) -> None:
        resp = await client.get("/api/v1/markets/nope", headers=_auth("alice"))
        assert resp.status_code == 404
        assert resp.json()["code"] == 3001

    async def test_quote_does_not_trade(self, client, api) -> None:
        api.add_market(MID)
        resp = await client.get(
            f"/api/v1/markets/{MID}/quote?outcome=YES&amount=5", headers=_auth("alice")
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["valid"] is True
        assert Decimal(data["new_price"]) > Decimal("0.5")
        assert api.markets[MID].shares_yes == 0

    async def test_quote_flags_oversized_bet(self, client, api) -> None:
        api.add_market(MID)
        resp = await client.get(
            f"/api/v1/markets/{MID}/quote?outcome=NO&amount=50", headers=_auth("alice")
        )
        data = resp.json()["data"]
        assert data["valid"] is False
        assert data["reason"] == "Maximum bet is 10.00 USDC"


class TestTradingRoutes:
    async def test_buy_then_sell(self, client, api) -> None:
        api.add_market(MID)
        api.fund("alice", "100")

        bought = await client.post(
            f"/api/v1/markets/{MID}/buy",
            json={"outcome": "YES", "amount": "10"},
            headers=_auth("alice"),
        )
        assert bought.status_code == 200
        buy = bought.json()["data"]
        assert buy["side"] == "BUY"
        assert Decimal(buy["balance"]) == Decimal("90")

        sold = await client.post(
            f"/api/v1/markets/{MID}/sell",
            json={"outcome": "YES", "shares": buy["shares"]},
            headers=_auth("alice"),
        )
        assert sold.status_code == 200
        assert sold.json()["data"]["side"] == "SELL"
        assert api.shares("alice", MID, Outcome.YES) == 0

    async def test_business_error_envelope(self, client, api) -> None:
        api.add_market(MID)
        api.fund("alice", "100")
        resp = await client.post(
            f"/api/v1/markets/{MID}/buy",
            json={"outcome": "YES", "amount": "11"},
            headers=_auth("alice"),
        )
        assert resp.status_code == 422
        body = resp.json()
        assert body["code"] == 4002
        assert body["message"] == "Maximum bet is 10.00 USDC"

    async def test_request_validation(self, client, api) -> None:
        resp = await client.post(
            f"/api/v1/markets/{MID}/buy",
            json={"outcome": "MAYBE", "amount": "-1"},
            headers=_auth("alice"),
        )
        assert resp.status_code == 422

    async def test_only_creator_resolves(self, client, api) -> None:
        api.add_market(MID, creator_id="carol")
        denied = await client.post(
            f"/api/v1/markets/{MID}/resolve", json={"outcome": "NO"}, headers=_auth("alice")
        )
        assert denied.status_code == 403
        assert denied.json()["code"] == 3006

        ok = await client.post(
            f"/api/v1/markets/{MID}/resolve", json={"outcome": "NO"}, headers=_auth("carol")
        )
        assert ok.status_code == 200
        data = ok.json()["data"]
        assert data["status"] == "RESOLVED"
        assert data["resolved_outcome"] == "NO"
        assert data["dispute_deadline"] is not None


class TestDisputeRoutes:
    async def test_dispute_and_vote(self, client, api) -> None:
        api.add_market(MID, creator_id="carol")
        api.fund("alice", "100")
        api.fund("bob", "100")
        await client.post(
            f"/api/v1/markets/{MID}/buy", json={"outcome": "YES", "amount": "10"},
            headers=_auth("alice"),
        )
        await client.post(
            f"/api/v1/markets/{MID}/resolve", json={"outcome": "YES"}, headers=_auth("carol")
        )

        opened = await client.post(
            f"/api/v1/markets/{MID}/disputes",
            json={"proposed_outcome": "NO", "evidence": "The match was cancelled"},
            headers=_auth("bob"),
        )
        assert opened.status_code == 201
        dispute = opened.json()["data"]
        assert Decimal(dispute["stake_amount"]) == Decimal("0.5")

        active = await client.get(f"/api/v1/markets/{MID}/disputes/active", headers=_auth("bob"))
        assert active.json()["data"]["id"] == dispute["id"]

        voted = await client.post(
            f"/api/v1/disputes/{dispute['id']}/votes",
            json={"vote": "AGAINST"},
            headers=_auth("alice"),
        )
        assert voted.status_code == 200
        assert Decimal(voted.json()["data"]["votes_against"]) > Decimal("18")

        again = await client.post(
            f"/api/v1/disputes/{dispute['id']}/votes",
            json={"vote": "FOR"},
            headers=_auth("alice"),
        )
        assert again.status_code == 409
        assert again.json()["code"] == 6004

        by_short = await client.get(
            f"/api/v1/disputes/short/{dispute['short_id']}", headers=_auth("bob")
        )
        assert by_short.json()["data"]["status"] == "ACTIVE"

    async def test_no_active_dispute(self, client, api) -> None:
        api.add_market(MID)
        resp = await client.get(f"/api/v1/markets/{MID}/disputes/active", headers=_auth("bob"))
        assert resp.status_code == 200
        assert resp.json()["data"] is None


class TestAccountRoutes:
    async def test_balance_portfolio_and_ledger(self, client, api) -> None:
        api.add_market(MID)
        api.fund("alice", "100")
        await client.post(
            f"/api/v1/markets/{MID}/buy", json={"outcome": "NO", "amount": "4"},
            headers=_auth("alice"),
        )

        balance = await client.get("/api/v1/account/balance", headers=_auth("alice"))
        assert Decimal(balance.json()["data"]["balance"]) == Decimal("96")

        portfolio = await client.get("/api/v1/account/portfolio", headers=_auth("alice"))
        [position] = portfolio.json()["data"]["positions"]
        assert position["outcome"] == "NO"
        assert position["outcome_label"] == "No"

        ledger = await client.get("/api/v1/account/ledger?limit=10", headers=_auth("alice"))
        [entry] = ledger.json()["data"]["items"]
        assert entry["entry_type"] == "BUY"

    async def test_custody_deposit_is_idempotent(self, client, api) -> None:
        custody = _auth(settings.CUSTODY_SERVICE_ID)
        payload = {"user_id": "alice", "amount": "25", "tx_ref": "5xSig"}

        first = await client.post("/api/v1/custody/deposits", json=payload, headers=custody)
        second = await client.post("/api/v1/custody/deposits", json=payload, headers=custody)

        assert first.json()["data"]["credited"] is True
        assert second.json()["data"]["credited"] is False
        assert api.balance("alice") == Decimal("25")

    async def test_custody_withdrawal_and_revert(self, client, api) -> None:
        api.fund("alice", "30")
        custody = _auth(settings.CUSTODY_SERVICE_ID)

        withdrawn = await client.post(
            "/api/v1/custody/withdrawals",
            json={"user_id": "alice", "amount": "20", "destination": "So1Dest"},
            headers=custody,
        )
        withdrawal_id = withdrawn.json()["data"]["withdrawal_id"]
        assert api.balance("alice") == Decimal("10")

        reverted = await client.post(
            f"/api/v1/custody/withdrawals/{withdrawal_id}/revert", headers=custody
        )
        assert reverted.json()["data"]["reverted"] is True
        assert api.balance("alice") == Decimal("30")

    async def test_custody_overdraft(self, client, api) -> None:
        api.fund("alice", "5")
        resp = await client.post(
            "/api/v1/custody/withdrawals",
            json={"user_id": "alice", "amount": "20"},
            headers=_auth(settings.CUSTODY_SERVICE_ID),
        )
        assert resp.status_code == 422
        assert resp.json()["code"] == 2001
