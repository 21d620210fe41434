"""Trading and resolution endpoints.

POST /markets/{market_id}/buy      — spend an amount on YES or NO
POST /markets/{market_id}/sell     — sell held shares back to the market maker
POST /markets/{market_id}/resolve  — creator declares the outcome

Finalization has no route; the expiry scheduler drives it.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.amm_common.database import get_db_session
from src.amm_common.response import ApiResponse, success_response
from src.amm_gateway.auth.dependencies import get_current_user_id
from src.amm_ledger.application.schemas import (
    BuyRequest,
    ResolveRequest,
    SellRequest,
    TradeResponse,
)
from src.amm_ledger.domain.service import SettlementLedger
from src.amm_market.application.schemas import MarketDetail

router = APIRouter(prefix="/markets", tags=["trading"])

_ledger = SettlementLedger()


@router.post("/{market_id}/buy")
async def buy(
    market_id: str,
    body: BuyRequest,
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _ledger.execute_buy(db, user_id, market_id, body.outcome, body.amount)
    resp = success_response(TradeResponse.from_buy(result).model_dump(mode="json"))
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/{market_id}/sell")
async def sell(
    market_id: str,
    body: SellRequest,
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _ledger.execute_sell(db, user_id, market_id, body.outcome, body.shares)
    resp = success_response(TradeResponse.from_sell(result).model_dump(mode="json"))
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/{market_id}/resolve")
async def resolve(
    market_id: str,
    body: ResolveRequest,
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    market = await _ledger.resolve(db, market_id, body.outcome, requested_by=user_id)
    resp = success_response(MarketDetail.from_domain(market).model_dump(mode="json"))
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
