from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from spireworks.config import settings
from spireworks.database import get_db
from spireworks.models.user import User


async def get_current_user(db: AsyncSession = Depends(get_db)) -> User:
    """Resolve the placeholder user, creating it on first use.

    There is no authentication; every request is attributed to
    ``settings.PLACEHOLDER_USER_ID``.
    """
    result = await db.execute(
        select(User).where(User.external_id == settings.PLACEHOLDER_USER_ID)
    )
    user = result.scalar_one_or_none()
    if user is None:
        user = User(
            external_id=settings.PLACEHOLDER_USER_ID,
            display_name="Student",
            settings_json={},
        )
        db.add(user)
        await db.flush()
        await db.refresh(user)
    return user
