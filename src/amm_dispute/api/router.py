"""amm_dispute REST endpoints.

POST /markets/{market_id}/disputes        — challenge the resolved outcome
GET  /markets/{market_id}/disputes/active — the market's open dispute, if any
GET  /disputes/short/{short_id}           — lookup by id prefix
GET  /disputes/{dispute_id}
POST /disputes/{dispute_id}/votes         — stake-weighted vote

Dispute resolution has no route; the expiry scheduler drives it.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.amm_common.database import get_db_session
from src.amm_common.response import ApiResponse, success_response
from src.amm_dispute.application.schemas import (
    CreateDisputeRequest,
    DisputeDetail,
    VoteRequest,
    VoteResponse,
)
from src.amm_dispute.application.service import DisputeService
from src.amm_gateway.auth.dependencies import get_current_user_id

router = APIRouter(tags=["disputes"])

_service = DisputeService()


@router.post("/markets/{market_id}/disputes", status_code=201)
async def open_dispute(
    market_id: str,
    body: CreateDisputeRequest,
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    dispute = await _service.create(db, market_id, user_id, body.proposed_outcome, body.evidence)
    resp = success_response(DisputeDetail.from_domain(dispute).model_dump(mode="json"))
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/markets/{market_id}/disputes/active")
async def get_active_dispute(
    market_id: str,
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    dispute = await _service.get_active_for_market(db, market_id)
    data = DisputeDetail.from_domain(dispute).model_dump(mode="json") if dispute else None
    resp = success_response(data)
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/disputes/short/{short_id}")
async def get_dispute_by_short_id(
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    short_id: str = Path(..., min_length=4, max_length=32),
) -> ApiResponse:
    dispute = await _service.find_by_prefix(db, short_id)
    resp = success_response(DisputeDetail.from_domain(dispute).model_dump(mode="json"))
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/disputes/{dispute_id}")
async def get_dispute(
    dispute_id: str,
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    dispute = await _service.get_dispute(db, dispute_id)
    resp = success_response(DisputeDetail.from_domain(dispute).model_dump(mode="json"))
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/disputes/{dispute_id}/votes")
async def vote(
    dispute_id: str,
    body: VoteRequest,
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _service.vote(db, dispute_id, user_id, body.vote)
    resp = success_response(VoteResponse.from_result(result).model_dump(mode="json"))
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
