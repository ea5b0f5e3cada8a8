from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .db import upsert_insert
from .models import User, Username
from .normalize import norm_username


async def _upsert_user(s: AsyncSession, user_id: int, **fields) -> None:
    ins = upsert_insert(s, User).values(id=user_id, **fields)
    await s.execute(ins.on_conflict_do_update(index_elements=["id"], set_=fields))
    await s.commit()


async def set_study_key(s: AsyncSession, user_id: int, study_key: str) -> None:
    await _upsert_user(s, user_id, current_study_key=study_key)


async def get_study_key(s: AsyncSession, user_id: int) -> str | None:
    return (
        await s.execute(select(User.current_study_key).where(User.id == user_id))
    ).scalar_one_or_none()


async def set_trusted(s: AsyncSession, user_id: int, trusted: bool) -> None:
    await _upsert_user(s, user_id, is_trusted=trusted)


async def is_trusted(s: AsyncSession, user_id: int) -> bool:
    value = (
        await s.execute(select(User.is_trusted).where(User.id == user_id))
    ).scalar_one_or_none()
    return bool(value)


async def remember_username(s: AsyncSession, user_id: int, username: str | None) -> None:
    key = norm_username(username or "")
    if not key:
        return
    ins = upsert_insert(s, Username).values(username=key, user_id=user_id)
    await s.execute(
        ins.on_conflict_do_update(index_elements=["username"], set_={"user_id": user_id})
    )
    await s.commit()


async def user_id_by_username(s: AsyncSession, username: str) -> int | None:
    return (
        await s.execute(select(Username.user_id).where(Username.username == norm_username(username)))
    ).scalar_one_or_none()


async def move_users_to_study_key(s: AsyncSession, old_key: str, new_key: str) -> int:
    result = await s.execute(
        update(User).where(User.current_study_key == old_key).values(current_study_key=new_key)
    )
    return result.rowcount or 0
