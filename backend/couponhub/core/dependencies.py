from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from couponhub.core.security import ACCESS_TOKEN_TYPE, decode_token
from couponhub.db.session import get_session
from couponhub.models.admin import Admin
from couponhub.schemas.auth import TokenPayload

# Raw header so that both "Bearer <token>" and a bare token are accepted.
authorization_header = APIKeyHeader(name="Authorization", auto_error=False)

_BEARER_SCHEME = "bearer"


def _invalid_token() -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid token")


def extract_token(raw: str | None) -> str | None:
    if not raw:
        return None
    token = raw.strip()
    scheme, _, rest = token.partition(" ")
    if scheme.lower() == _BEARER_SCHEME:
        token = rest.strip()
    return token or None


async def require_admin(
    authorization: str | None = Depends(authorization_header),
    session: AsyncSession = Depends(get_session),
) -> Admin:
    token = extract_token(authorization)
    if token is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unauthorized")

    decoded = decode_token(token)
    if not decoded:
        raise _invalid_token()
    try:
        payload = TokenPayload.model_validate(decoded)
        admin_id = UUID(payload.sub)
    except (ValidationError, ValueError):
        raise _invalid_token()
    if payload.type != ACCESS_TOKEN_TYPE:
        raise _invalid_token()

    admin = await session.get(Admin, admin_id)
    if admin is None:
        raise _invalid_token()
    return admin
