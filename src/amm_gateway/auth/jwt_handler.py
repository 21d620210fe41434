"""JWT token verification for front-end and custody callers.

HS256 (symmetric HMAC): the chat front end and the custody service sign
tokens with the shared JWT_SECRET; this service only verifies them. The
`sub` claim is the user id, or CUSTODY_SERVICE_ID for the custody caller.
"""

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from config.settings import settings
from src.amm_common.errors import InvalidTokenError

_ALGORITHM = settings.JWT_ALGORITHM  # "HS256"
_EXPIRE = timedelta(minutes=settings.JWT_EXPIRE_MINUTES)


def create_access_token(subject: str) -> str:
    """Issue a token for `subject`. Used by local tooling and tests."""
    now = datetime.now(UTC)
    payload = {"sub": subject, "iat": now, "exp": now + _EXPIRE}
    return str(jwt.encode(payload, settings.JWT_SECRET, algorithm=_ALGORITHM))


def decode_token(token: str) -> dict[str, str]:
    """Decode and validate a JWT. Raises InvalidTokenError if invalid or expired."""
    try:
        payload: dict[str, str] = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[_ALGORITHM],  # Explicit list prevents algorithm confusion
        )
    except JWTError:
        raise InvalidTokenError() from None

    if not payload.get("sub"):
        raise InvalidTokenError()
    return payload
