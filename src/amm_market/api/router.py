"""amm_market REST endpoints.

POST /markets                         — create a market (caller becomes creator)
GET  /markets                         — active markets, optionally per chat group
GET  /markets/short/{short_id}        — lookup by id prefix
GET  /markets/{market_id}             — full detail with current prices
GET  /markets/{market_id}/quote       — buy preview
"""

from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.amm_common.database import get_db_session
from src.amm_common.enums import Outcome
from src.amm_common.response import ApiResponse, success_response
from src.amm_gateway.auth.dependencies import get_current_user_id
from src.amm_market.application.schemas import (
    CreateMarketRequest,
    MarketDetail,
    MarketListResponse,
)
from src.amm_market.application.service import MarketApplicationService

router = APIRouter(prefix="/markets", tags=["markets"])

_service = MarketApplicationService()


@router.post("", status_code=201)
async def create_market(
    body: CreateMarketRequest,
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    market = await _service.create_market(
        db,
        user_id,
        body.question,
        body.outcome_yes_label,
        body.outcome_no_label,
        body.b,
        body.group_id,
    )
    resp = success_response(MarketDetail.from_domain(market).model_dump(mode="json"))
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("")
async def list_markets(
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    group_id: str | None = Query(None, description="Chat group the market belongs to"),
    limit: int = Query(10, ge=1, le=100),
) -> ApiResponse:
    markets = await _service.list_active(db, group_id, limit)
    result = MarketListResponse(items=[MarketDetail.from_domain(m) for m in markets])
    resp = success_response(result.model_dump(mode="json"))
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/short/{short_id}")
async def get_market_by_short_id(
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    short_id: str = Path(..., min_length=4, max_length=32),
) -> ApiResponse:
    market = await _service.find_by_prefix(db, short_id)
    resp = success_response(MarketDetail.from_domain(market).model_dump(mode="json"))
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/{market_id}")
async def get_market(
    market_id: str,
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    market = await _service.get_market(db, market_id)
    resp = success_response(MarketDetail.from_domain(market).model_dump(mode="json"))
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/{market_id}/quote")
async def get_quote(
    market_id: str,
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    outcome: Outcome = Query(...),
    amount: Decimal = Query(..., gt=0),
) -> ApiResponse:
    result = await _service.get_quote(db, market_id, outcome, amount)
    resp = success_response(result.model_dump(mode="json"))
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
