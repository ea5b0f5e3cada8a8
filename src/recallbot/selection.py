"""Per-user question selection.

Unseen questions come first, best community rating wins, and equal ratings are
broken by a uniform random pick. Once a user has seen every question under a
study key the least recently shown one is repeated.
"""
from __future__ import annotations

import datetime as dt
import logging
import random
from fractions import Fraction

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .db import upsert_insert
from .models import Exposure, Question, utcnow

logger = logging.getLogger(__name__)


def _exact_rating(approve_count: int, reject_count: int) -> Fraction:
    return Fraction(approve_count + 1, approve_count + reject_count + 2)


def best_rated(rows: list[tuple[int, int, int]]) -> list[int]:
    """Ids sharing the highest rating among (id, approve, reject) rows."""
    if not rows:
        return []
    scored = [(qid, _exact_rating(int(up or 0), int(down or 0))) for qid, up, down in rows]
    top = max(score for _, score in scored)
    return [qid for qid, score in scored if score == top]


async def _pick_unseen(
    s: AsyncSession, study_key: str, user_id: int, rng: random.Random
) -> int | None:
    rows = (
        await s.execute(
            select(Question.id, Question.approve_count, Question.reject_count)
            .outerjoin(
                Exposure,
                and_(Exposure.question_id == Question.id, Exposure.user_id == user_id),
            )
            .where(Question.study_key == study_key, Exposure.question_id.is_(None))
        )
    ).all()
    tied = best_rated([tuple(r) for r in rows])
    if not tied:
        return None
    return rng.choice(tied)


async def _pick_least_recent(s: AsyncSession, study_key: str, user_id: int) -> int | None:
    return (
        await s.execute(
            select(Question.id)
            .join(Exposure, Exposure.question_id == Question.id)
            .where(Question.study_key == study_key, Exposure.user_id == user_id)
            .order_by(Exposure.last_shown_at.asc())
            .limit(1)
        )
    ).scalar_one_or_none()


async def _pick_any(s: AsyncSession, study_key: str) -> int | None:
    return (
        await s.execute(select(Question.id).where(Question.study_key == study_key).limit(1))
    ).scalar_one_or_none()


async def record_exposure(
    s: AsyncSession,
    *,
    user_id: int,
    question_id: int,
    shown_at: dt.datetime,
) -> None:
    ins = upsert_insert(s, Exposure).values(
        {
            Exposure.user_id: user_id,
            Exposure.question_id: question_id,
            Exposure.last_shown_at: shown_at,
        }
    )
    await s.execute(
        ins.on_conflict_do_update(
            index_elements=["user_id", "question_id"],
            set_={Exposure.last_shown_at: shown_at},
        )
    )


async def next_question(
    s: AsyncSession,
    *,
    study_key: str,
    user_id: int,
    now: dt.datetime | None = None,
    rng: random.Random | None = None,
) -> Question | None:
    """Choose the next question for a user and mark it shown before returning it."""
    rng = rng or random.Random()
    reason = "novel"
    question_id = await _pick_unseen(s, study_key, user_id, rng)
    if question_id is None:
        reason = "lru"
        question_id = await _pick_least_recent(s, study_key, user_id)
    if question_id is None:
        reason = "fallback"
        question_id = await _pick_any(s, study_key)
    if question_id is None:
        logger.info("next_question: none user_id=%s study_key=%s", user_id, study_key)
        return None

    await record_exposure(s, user_id=user_id, question_id=question_id, shown_at=now or utcnow())
    await s.commit()
    logger.info(
        "next_question: selected user_id=%s question_id=%s reason=%s",
        user_id,
        question_id,
        reason,
    )
    return await s.get(Question, question_id)
