import logging

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from couponhub.core import metrics, security
from couponhub.models.admin import Admin

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"

# Compared against when the username is unknown so both failure paths cost one bcrypt check.
_DUMMY_HASH = security.hash_password("couponhub-dummy-password")


async def get_admin_by_username(session: AsyncSession, username: str) -> Admin | None:
    result = await session.execute(select(Admin).where(Admin.username == username))
    return result.scalar_one_or_none()


async def authenticate_admin(session: AsyncSession, username: str, password: str) -> Admin:
    admin = await get_admin_by_username(session, username)
    hashed = admin.password_hash if admin else _DUMMY_HASH
    if not security.verify_password(password, hashed) or admin is None:
        metrics.record_login_failure()
        logger.info("admin_login_failed", extra={"username": username})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_CREDENTIALS)
    return admin


async def login(session: AsyncSession, username: str, password: str) -> str:
    admin = await authenticate_admin(session, username, password)
    metrics.record_login_success()
    logger.info("admin_login", extra={"admin_id": str(admin.id)})
    return security.create_access_token(str(admin.id))


async def upsert_admin(session: AsyncSession, username: str, password: str) -> tuple[Admin, bool]:
    """Create the admin or rotate its password. Returns ``(admin, created)``."""
    admin = await get_admin_by_username(session, username)
    created = admin is None
    if admin is None:
        admin = Admin(username=username, password_hash=password)
    else:
        admin.password_hash = password
    session.add(admin)
    await session.commit()
    await session.refresh(admin)
    return admin, created
