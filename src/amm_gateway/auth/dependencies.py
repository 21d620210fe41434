"""FastAPI dependencies: get_current_user_id, require_custody_service.

Usage in any protected router:
    from src.amm_gateway.auth.dependencies import get_current_user_id

    @router.get("/protected")
    async def protected(user_id: Annotated[str, Depends(get_current_user_id)]):
        ...
"""

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config.settings import settings
from src.amm_common.errors import ForbiddenError, InvalidTokenError
from src.amm_gateway.auth.jwt_handler import decode_token

# auto_error=False so a missing header maps to our own 1001 error envelope
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str:
    """Return the `sub` of a valid bearer token. Raises InvalidTokenError (401)."""
    if credentials is None:
        raise InvalidTokenError()
    payload = decode_token(credentials.credentials)
    return payload["sub"]


async def require_custody_service(
    caller_id: str = Depends(get_current_user_id),
) -> str:
    """Only the custody collaborator may credit deposits or move withdrawals."""
    if caller_id != settings.CUSTODY_SERVICE_ID:
        raise ForbiddenError("Custody service token required")
    return caller_id
