"""End-to-end flow against a migrated PostgreSQL (requires running PG).

deposit -> create market -> buy -> sell -> resolve -> dispute -> vote

Uses the session-scoped client fixture from tests/integration/conftest.py.
All tests share one event loop — avoids asyncpg pool cross-loop error.
"""

import asyncio
import uuid
from decimal import Decimal

import pytest
from httpx import AsyncClient

from config.settings import settings
from src.amm_gateway.auth.jwt_handler import create_access_token

pytestmark = pytest.mark.asyncio(loop_scope="session")


def _auth(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


def _user() -> str:
    return f"it_{uuid.uuid4().hex[:10]}"


async def _deposit(client: AsyncClient, user_id: str, amount: str) -> dict:
    resp = await client.post(
        "/api/v1/custody/deposits",
        json={"user_id": user_id, "amount": amount, "tx_ref": f"tx_{uuid.uuid4().hex}"},
        headers=_auth(settings.CUSTODY_SERVICE_ID),
    )
    assert resp.status_code == 200
    return resp.json()["data"]


async def _create_market(client: AsyncClient, creator: str) -> str:
    resp = await client.post(
        "/api/v1/markets",
        json={"question": f"Integration market {uuid.uuid4().hex[:6]}?"},
        headers=_auth(creator),
    )
    assert resp.status_code == 201
    return str(resp.json()["data"]["id"])


class TestCustody:
    async def test_deposit_replay_is_a_no_op(self, client: AsyncClient) -> None:
        user = _user()
        payload = {"user_id": user, "amount": "12.5", "tx_ref": f"tx_{uuid.uuid4().hex}"}
        custody = _auth(settings.CUSTODY_SERVICE_ID)

        first = await client.post("/api/v1/custody/deposits", json=payload, headers=custody)
        second = await client.post("/api/v1/custody/deposits", json=payload, headers=custody)

        assert first.json()["data"]["credited"] is True
        assert second.json()["data"]["credited"] is False
        balance = await client.get("/api/v1/account/balance", headers=_auth(user))
        assert Decimal(balance.json()["data"]["balance"]) == Decimal("12.5")

    async def test_withdraw_and_revert(self, client: AsyncClient) -> None:
        user = _user()
        await _deposit(client, user, "30")
        custody = _auth(settings.CUSTODY_SERVICE_ID)

        withdrawn = await client.post(
            "/api/v1/custody/withdrawals",
            json={"user_id": user, "amount": "20"},
            headers=custody,
        )
        wid = withdrawn.json()["data"]["withdrawal_id"]
        await client.post(f"/api/v1/custody/withdrawals/{wid}/revert", headers=custody)
        again = await client.post(f"/api/v1/custody/withdrawals/{wid}/revert", headers=custody)

        assert again.json()["data"]["reverted"] is False
        assert Decimal(again.json()["data"]["balance"]) == Decimal("30")


class TestTradingFlow:
    async def test_full_lifecycle(self, client: AsyncClient) -> None:
        creator, trader, challenger = _user(), _user(), _user()
        await _deposit(client, trader, "100")
        await _deposit(client, challenger, "100")
        market_id = await _create_market(client, creator)

        bought = await client.post(
            f"/api/v1/markets/{market_id}/buy",
            json={"outcome": "YES", "amount": "10"},
            headers=_auth(trader),
        )
        assert bought.status_code == 200
        shares = Decimal(bought.json()["data"]["shares"])

        sold = await client.post(
            f"/api/v1/markets/{market_id}/sell",
            json={"outcome": "YES", "shares": str(shares / 2)},
            headers=_auth(trader),
        )
        assert sold.status_code == 200

        resolved = await client.post(
            f"/api/v1/markets/{market_id}/resolve",
            json={"outcome": "YES"},
            headers=_auth(creator),
        )
        assert resolved.json()["data"]["status"] == "RESOLVED"

        opened = await client.post(
            f"/api/v1/markets/{market_id}/disputes",
            json={"proposed_outcome": "NO", "evidence": "Result was announced as NO"},
            headers=_auth(challenger),
        )
        assert opened.status_code == 201
        dispute_id = opened.json()["data"]["id"]

        voted = await client.post(
            f"/api/v1/disputes/{dispute_id}/votes",
            json={"vote": "AGAINST"},
            headers=_auth(trader),
        )
        assert voted.status_code == 200
        assert Decimal(voted.json()["data"]["weight"]) > 0

        market = await client.get(f"/api/v1/markets/{market_id}", headers=_auth(trader))
        assert market.json()["data"]["status"] == "DISPUTED"

        ledger = await client.get("/api/v1/account/ledger", headers=_auth(trader))
        types = [e["entry_type"] for e in ledger.json()["data"]["items"]]
        assert types == ["SELL", "BUY", "DEPOSIT"]

    async def test_concurrent_overdraft(self, client: AsyncClient) -> None:
        trader = _user()
        await _deposit(client, trader, "10")
        market_id = await _create_market(client, _user())

        results = await asyncio.gather(
            *(
                client.post(
                    f"/api/v1/markets/{market_id}/buy",
                    json={"outcome": "YES", "amount": "8"},
                    headers=_auth(trader),
                )
                for _ in range(3)
            )
        )

        assert sorted(r.status_code for r in results) == [200, 422, 422]
        balance = await client.get("/api/v1/account/balance", headers=_auth(trader))
        assert Decimal(balance.json()["data"]["balance"]) == Decimal("2")
