from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .db import upsert_insert
from .models import Question, Vote

logger = logging.getLogger(__name__)

APPROVE = 1
REJECT = -1


class UnknownQuestion(LookupError):
    pass


class VoteOutcome(str, Enum):
    CREATED = "created"
    CHANGED = "changed"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class QuestionStats:
    approve_count: int
    reject_count: int

    @property
    def rating(self) -> float:
        return rating(self.approve_count, self.reject_count)

    @property
    def percent(self) -> int:
        return rating_percent(self.approve_count, self.reject_count)


def rating(approve_count: int, reject_count: int) -> float:
    """Laplace-smoothed approval ratio; 0.5 with no votes, always inside (0, 1)."""
    return (approve_count + 1) / (approve_count + reject_count + 2)


def rating_percent(approve_count: int, reject_count: int) -> int:
    return round(rating(approve_count, reject_count) * 100)


def _counter(polarity: int):
    return Question.approve_count if polarity == APPROVE else Question.reject_count


async def apply_vote(
    s: AsyncSession,
    *,
    user_id: int,
    question_id: int,
    approve: bool,
) -> VoteOutcome:
    """Record a user's vote; one vote per (user, question), repeats are no-ops."""
    exists = (
        await s.execute(select(Question.id).where(Question.id == question_id))
    ).scalar_one_or_none()
    if exists is None:
        raise UnknownQuestion(question_id)

    value = APPROVE if approve else REJECT
    ins = (
        upsert_insert(s, Vote)
        .values({Vote.user_id: user_id, Vote.question_id: question_id, Vote.vote: value})
        .on_conflict_do_nothing(index_elements=["user_id", "question_id"])
    )
    inserted = (await s.execute(ins)).rowcount
    if inserted:
        counter = _counter(value)
        await s.execute(
            update(Question)
            .where(Question.id == question_id)
            .values({counter: counter + 1})
        )
        outcome = VoteOutcome.CREATED
    else:
        flipped = (
            await s.execute(
                update(Vote)
                .where(
                    Vote.user_id == user_id,
                    Vote.question_id == question_id,
                    Vote.vote != value,
                )
                .values(vote=value)
            )
        ).rowcount
        if flipped:
            new_counter = _counter(value)
            old_counter = _counter(-value)
            await s.execute(
                update(Question)
                .where(Question.id == question_id)
                .values({new_counter: new_counter + 1, old_counter: old_counter - 1})
            )
            outcome = VoteOutcome.CHANGED
        else:
            outcome = VoteOutcome.UNCHANGED
    await s.commit()
    logger.info(
        "vote_applied user_id=%s question_id=%s approve=%s outcome=%s",
        user_id,
        question_id,
        approve,
        outcome.value,
    )
    return outcome


async def stored_vote(s: AsyncSession, *, user_id: int, question_id: int) -> int | None:
    return (
        await s.execute(
            select(Vote.vote).where(Vote.user_id == user_id, Vote.question_id == question_id)
        )
    ).scalar_one_or_none()


async def question_stats(s: AsyncSession, question_id: int) -> QuestionStats | None:
    row = (
        await s.execute(
            select(Question.approve_count, Question.reject_count).where(Question.id == question_id)
        )
    ).one_or_none()
    if row is None:
        return None
    return QuestionStats(int(row[0] or 0), int(row[1] or 0))


async def question_rating(s: AsyncSession, question_id: int) -> float:
    stats = await question_stats(s, question_id)
    if stats is None:
        raise UnknownQuestion(question_id)
    return stats.rating
