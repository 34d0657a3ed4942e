import argparse
import asyncio
from collections.abc import Iterable

from sqlalchemy import select

from couponhub.core.config import settings
from couponhub.db.session import SessionLocal
from couponhub.models.coupon import Coupon, CouponStatus
from couponhub.services import auth as auth_service

USERNAME_MAX_LEN = 150
CODE_MAX_LEN = 64


def _normalize_username(raw: str) -> str:
    username = (raw or "").strip()
    if not username:
        raise SystemExit("Username is required")
    if len(username) > USERNAME_MAX_LEN:
        raise SystemExit(f"Username must be at most {USERNAME_MAX_LEN} characters")
    return username


def _normalize_codes(raw_codes: Iterable[str]) -> list[str]:
    codes: list[str] = []
    seen: set[str] = set()
    for raw in raw_codes:
        code = (raw or "").strip()
        if not code or code in seen:
            continue
        if len(code) > CODE_MAX_LEN:
            raise SystemExit(f"Coupon code too long: {code}")
        seen.add(code)
        codes.append(code)
    if not codes:
        raise SystemExit("At least one coupon code is required")
    return codes


async def create_admin(*, username: str, password: str) -> None:
    username = _normalize_username(username)
    if not password:
        raise SystemExit("Password is required")
    async with SessionLocal() as session:
        admin, created = await auth_service.upsert_admin(session, username, password)
    action = "Created" if created else "Updated password for"
    print(f"{action} admin {admin.username} ({admin.id})")


async def add_coupons(codes: Iterable[str]) -> list[str]:
    """Insert available coupons in the given order, skipping codes that already exist."""
    wanted = _normalize_codes(codes)
    async with SessionLocal() as session:
        existing = set((await session.execute(select(Coupon.code).where(Coupon.code.in_(wanted)))).scalars().all())
        added = [code for code in wanted if code not in existing]
        for code in added:
            session.add(Coupon(code=code, status=CouponStatus.available))
            # Flush one at a time so created_at follows the command-line order.
            await session.flush()
        await session.commit()
    for code in wanted:
        print(f"{'added' if code in added else 'skipped (exists)'}: {code}")
    return added


def serve(*, reload: bool = False) -> None:
    import uvicorn

    uvicorn.run("couponhub.main:app", host=settings.host, port=settings.port, reload=reload)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="CouponHub management commands")
    sub = parser.add_subparsers(dest="command", required=True)

    admin_parser = sub.add_parser("create-admin", help="Create an admin or rotate its password")
    admin_parser.add_argument("--username", required=True)
    admin_parser.add_argument("--password", required=True)

    coupons_parser = sub.add_parser("add-coupons", help="Add available coupon codes")
    coupons_parser.add_argument("codes", nargs="+")

    serve_parser = sub.add_parser("serve", help="Run the HTTP server")
    serve_parser.add_argument("--reload", action="store_true")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    if args.command == "create-admin":
        asyncio.run(create_admin(username=args.username, password=args.password))
    elif args.command == "add-coupons":
        asyncio.run(add_coupons(args.codes))
    elif args.command == "serve":
        serve(reload=args.reload)


if __name__ == "__main__":
    main()
