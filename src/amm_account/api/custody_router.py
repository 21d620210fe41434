"""Custody collaborator endpoints — balance credits and debits only.

The custody layer detects deposits and submits withdrawals on chain; it
calls these with a token whose sub is CUSTODY_SERVICE_ID.

POST /custody/deposits                          — idempotent by tx_ref
POST /custody/withdrawals                       — debit before transfer
POST /custody/withdrawals/{withdrawal_id}/revert — transfer failed
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.amm_account.application.schemas import DepositRequest, WithdrawalRequest
from src.amm_account.application.service import AccountApplicationService
from src.amm_common.database import get_db_session
from src.amm_common.response import ApiResponse, success_response
from src.amm_gateway.auth.dependencies import require_custody_service

router = APIRouter(prefix="/custody", tags=["custody"])

_service = AccountApplicationService()


@router.post("/deposits")
async def credit_deposit(
    body: DepositRequest,
    caller: Annotated[str, Depends(require_custody_service)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.credit_external_deposit(
        db, body.user_id, body.amount, body.currency.value, body.tx_ref
    )
    resp = success_response(data.model_dump(mode="json"))
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/withdrawals")
async def debit_withdrawal(
    body: WithdrawalRequest,
    caller: Annotated[str, Depends(require_custody_service)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.debit_for_withdrawal(
        db, body.user_id, body.amount, body.currency.value, body.destination
    )
    resp = success_response(data.model_dump(mode="json"))
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/withdrawals/{withdrawal_id}/revert")
async def revert_withdrawal(
    withdrawal_id: int,
    caller: Annotated[str, Depends(require_custody_service)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.revert_debit(db, withdrawal_id)
    resp = success_response(data.model_dump(mode="json"))
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
