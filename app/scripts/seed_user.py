import argparse
import asyncio

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from app.core.config import settings
from app.core.security import create_access_token
from app.models.user import User

ROLES = ("USER", "VIP", "PRO", "MODERATOR", "ADMIN")


async def ensure_user(db: AsyncSession, *, email: str, role: str, first_name: str = "", last_name: str = "") -> User:
    user = (await db.execute(select(User).where(User.email == email))).scalar_one_or_none()
    if user is None:
        user = User(email=email, first_name=first_name, last_name=last_name, role=role, created_by="system")
        db.add(user)
    else:
        user.role = role
        user.is_active = True
    user.updated_by = "system"
    await db.flush()
    return user


async def main(args: argparse.Namespace) -> None:
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)

    async with Session() as db:
        user = await ensure_user(db, email=args.email, role=args.role, first_name=args.first_name)
        await db.commit()
        print(f"{user.id} {user.email} {user.role}")
        if args.token:
            print(create_access_token(user.id))

    await engine.dispose()

if __name__ == "__main__":
    p = argparse.ArgumentParser(description="Create or promote a user; optionally print a bearer token.")
    p.add_argument("--email", required=True)
    p.add_argument("--role", choices=ROLES, default="USER")
    p.add_argument("--first-name", default="")
    p.add_argument("--token", action="store_true", help="print a one-hour access token")
    asyncio.run(main(p.parse_args()))
# Local bootstrap: python -m app.scripts.seed_user --email admin@example.com --role ADMIN --token
