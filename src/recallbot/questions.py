from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import Float, cast, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .generation import Candidate
from .models import Exposure, Question, Vote
from .normalize import norm_option_key
from .users import move_users_to_study_key

logger = logging.getLogger(__name__)

PAGE_SIZE = 5


@dataclass
class QuestionPage:
    items: list[Question]
    total: int
    page: int
    total_pages: int


def rating_expr():
    up = cast(Question.approve_count, Float)
    down = cast(Question.reject_count, Float)
    return (up + 1.0) / (up + down + 2.0)


def candidate_problem(c: Candidate) -> str | None:
    """Why a candidate must not be stored, or None when it is usable."""
    if not c.text.strip():
        return "empty question text"
    if len(c.options) < 2:
        return "fewer than two options"
    if any(not opt.strip() for opt in c.options):
        return "empty option"
    keys = [norm_option_key(opt) for opt in c.options]
    if len(set(keys)) != len(keys):
        return "duplicate options"
    if not 0 <= c.correct_option_index < len(c.options):
        return "correct index out of range"
    return None


async def save_candidates(
    s: AsyncSession,
    study_key: str,
    candidates: Iterable[Candidate],
) -> list[Question]:
    saved: list[Question] = []
    for c in candidates:
        problem = candidate_problem(c)
        if problem:
            logger.info("candidate_rejected study_key=%s reason=%s", study_key, problem)
            continue
        q = Question(
            study_key=study_key,
            question_text=c.text.strip(),
            options_json=json.dumps([o.strip() for o in c.options], ensure_ascii=False),
            correct_index=c.correct_option_index,
            approve_count=0,
            reject_count=0,
        )
        s.add(q)
        saved.append(q)
    if saved:
        await s.commit()
    logger.info("questions_saved study_key=%s count=%s", study_key, len(saved))
    return saved


async def list_questions(
    s: AsyncSession,
    study_key: str,
    page: int,
    page_size: int = PAGE_SIZE,
) -> QuestionPage:
    """Lowest-rated first, so moderators see the questions most likely to need removal."""
    page = max(page, 1)
    total = (
        await s.execute(select(func.count(Question.id)).where(Question.study_key == study_key))
    ).scalar_one()
    items = (
        await s.execute(
            select(Question)
            .where(Question.study_key == study_key)
            .order_by(rating_expr().asc(), Question.id.desc())
            .limit(page_size)
            .offset((page - 1) * page_size)
        )
    ).scalars().all()
    return QuestionPage(
        items=list(items),
        total=int(total),
        page=page,
        total_pages=math.ceil(total / page_size) if total else 0,
    )


async def _delete_dependents(s: AsyncSession, question_ids) -> None:
    await s.execute(delete(Vote).where(Vote.question_id.in_(question_ids)))
    await s.execute(delete(Exposure).where(Exposure.question_id.in_(question_ids)))


async def delete_question(s: AsyncSession, question_id: int) -> bool:
    await _delete_dependents(s, [question_id])
    result = await s.execute(delete(Question).where(Question.id == question_id))
    await s.commit()
    deleted = bool(result.rowcount)
    logger.info("question_deleted question_id=%s found=%s", question_id, deleted)
    return deleted


async def clear_questions(s: AsyncSession, study_key: str) -> list[int]:
    ids = list(
        (await s.execute(select(Question.id).where(Question.study_key == study_key))).scalars().all()
    )
    if ids:
        await _delete_dependents(s, ids)
        await s.execute(delete(Question).where(Question.id.in_(ids)))
        await s.commit()
    logger.info("questions_cleared study_key=%s count=%s", study_key, len(ids))
    return ids


async def all_study_keys(s: AsyncSession) -> list[str]:
    rows = (
        await s.execute(select(Question.study_key).distinct().order_by(Question.study_key.asc()))
    ).scalars().all()
    return [r for r in rows if r]


async def question_count(s: AsyncSession, study_key: str) -> int:
    return int(
        (
            await s.execute(select(func.count(Question.id)).where(Question.study_key == study_key))
        ).scalar_one()
    )


async def rename_study_key(s: AsyncSession, old_key: str, new_key: str) -> int:
    result = await s.execute(
        update(Question).where(Question.study_key == old_key).values(study_key=new_key)
    )
    moved_users = await move_users_to_study_key(s, old_key, new_key)
    await s.commit()
    logger.info(
        "study_key_renamed old=%s new=%s questions=%s users=%s",
        old_key,
        new_key,
        result.rowcount,
        moved_users,
    )
    return result.rowcount or 0
