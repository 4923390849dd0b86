from datetime import timedelta
from decimal import Decimal

import pytest_asyncio

from app.core.clock import utcnow
from app.core.ids import gen_id
from app.core.security import create_access_token
from app.models.listing import Listing
from app.models.user import User


def _auth(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest_asyncio.fixture
async def seed_users(db_session):
    users = {
        "seller": User(id=gen_id("usr"), email="seller@test.local", first_name="Sam", role="USER"),
        "other": User(id=gen_id("usr"), email="other@test.local", first_name="Oli", role="USER"),
        "moderator": User(id=gen_id("usr"), email="mod@test.local", first_name="Mo", role="MODERATOR"),
        "admin": User(id=gen_id("usr"), email="admin@test.local", first_name="Ada", role="ADMIN"),
        "locked": User(id=gen_id("usr"), email="locked@test.local", role="USER", is_active=False),
    }
    for u in users.values():
        u.created_by = "test"
        u.updated_by = "test"
    db_session.add_all(users.values())
    await db_session.commit()

    return {
        name: {"user_id": u.id, "headers": _auth(u.id)}
        for name, u in users.items()
    }


@pytest_asyncio.fixture
async def seed_listing(db_session, seed_users):
    """An APPROVED listing owned by the seller, expiring in 7 days."""
    listing = Listing(
        id=gen_id("lst"),
        seller_id=seed_users["seller"]["user_id"],
        title="Vélo de course",
        description="Vélo de course en bon état, peu servi.",
        price=Decimal("150.00"),
        location="Dakar",
        category="sport",
        condition="Occasion",
        images=["https://cdn.test.local/velo-1.jpg"],
        status="APPROVED",
        expires_at=utcnow() + timedelta(days=7),
        renewal_count=0,
        created_by="test",
        updated_by="test",
    )
    db_session.add(listing)
    await db_session.commit()
    return listing
