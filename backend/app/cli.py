import argparse
import asyncio
import uuid

from fastapi import HTTPException

from app.core import security
from app.db.session import SessionLocal
from app.models.user import User, UserRole, UserStatus
from app.services import asset_reconcile
from app.services import auth as auth_service
from app.services import trash as trash_service


async def create_admin(email: str, password: str, name: str | None = None) -> User:
    """Create an admin account, or promote and re-password an existing one."""
    async with SessionLocal() as session:
        user = await auth_service.get_user_by_email(session, email)
        if user is None:
            user = User(email=email.lower(), name=name or "Admin", email_verified=True)
            session.add(user)
        user.hashed_password = security.hash_password(password)
        user.role = UserRole.admin
        user.status = UserStatus.ACTIVE
        await session.commit()
        await session.refresh(user)
    print(f"Admin ready: {user.email} ({user.id})")
    return user


async def empty_trash(store_id: uuid.UUID, days: int | None) -> int:
    async with SessionLocal() as session:
        try:
            result = await trash_service.empty_trash(session, store_id, None, days)
        except HTTPException as exc:
            raise SystemExit(str(exc.detail)) from exc
    print(f"Deleted {result.deleted_count} product(s); {result.assets_pending} asset deletion(s) pending")
    return result.deleted_count


async def reconcile_assets() -> int:
    result = await asset_reconcile.reconcile_once()
    print(f"Deleted {len(result.deleted)} asset(s); {result.pending} still pending")
    return result.pending


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Storefront maintenance commands")
    subparsers = parser.add_subparsers(dest="command")

    admin = subparsers.add_parser("create-admin", help="Create or promote an admin account")
    admin.add_argument("--email", required=True, help="Admin email")
    admin.add_argument("--password", required=True, help="Admin password")
    admin.add_argument("--name", help="Display name")

    trash = subparsers.add_parser("empty-trash", help="Permanently delete old trashed products of a store")
    trash.add_argument("--store-id", required=True, type=uuid.UUID, help="Store id")
    trash.add_argument("--days", type=int, default=None, help="Minimum age in days (default: retention setting)")

    subparsers.add_parser("reconcile-assets", help="Retry pending remote asset deletions")
    return parser


def _run_cli_command(args: argparse.Namespace) -> bool:
    if args.command == "create-admin":
        asyncio.run(create_admin(args.email, args.password, args.name))
        return True

    if args.command == "empty-trash":
        asyncio.run(empty_trash(args.store_id, args.days))
        return True

    if args.command == "reconcile-assets":
        asyncio.run(reconcile_assets())
        return True

    return False


def main(argv: list[str] | None = None):
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not _run_cli_command(args):
        parser.print_help()


if __name__ == "__main__":
    main()
