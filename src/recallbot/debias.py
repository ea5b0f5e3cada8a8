"""Offline reshuffle of stored answer options.

Generated questions tend to put the right answer first. This batch permutes
every question's options uniformly, re-points ``correct_index`` at the same
option, writes both columns in one UPDATE and re-renders the question image.
Failures are per question: logged, skipped, and the batch moves on. A partial
run is safe to repeat.
"""
from __future__ import annotations

import asyncio
import json
import logging
import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import Question

if TYPE_CHECKING:
    from .images import ImageStore
    from .renderer import QuestionRenderer

logger = logging.getLogger(__name__)

_RUN_LOCK = asyncio.Lock()


class ReshuffleInProgress(RuntimeError):
    pass


@dataclass
class ReshuffleReport:
    total: int = 0
    shuffled: int = 0
    skipped: list[int] = field(default_factory=list)
    render_failed: list[int] = field(default_factory=list)


def shuffle_options(
    options: list[str],
    correct_index: int,
    rng: random.Random | None = None,
) -> tuple[list[str], int]:
    """Uniformly permute options, returning them with the new correct index.

    The correct option is tracked by position, not by text, so repeated
    option texts cannot move the answer to a different slot.
    """
    if not 0 <= correct_index < len(options):
        raise ValueError(f"correct_index {correct_index} out of range for {len(options)} options")
    rng = rng or random.Random()
    order = list(range(len(options)))
    rng.shuffle(order)
    return [options[i] for i in order], order.index(correct_index)


def _parse_options(raw: str | None) -> list[str]:
    payload = json.loads(raw or "")
    if not isinstance(payload, list):
        raise ValueError("options_json is not a list")
    return [str(x) for x in payload]


async def _store_order(
    sessionmaker: async_sessionmaker[AsyncSession],
    question_id: int,
    options: list[str],
    correct_index: int,
) -> bool:
    async with sessionmaker() as s:
        result = await s.execute(
            update(Question)
            .where(Question.id == question_id)
            .values(
                options_json=json.dumps(options, ensure_ascii=False),
                correct_index=correct_index,
            )
        )
        await s.commit()
        return bool(result.rowcount)


async def reshuffle_all(
    sessionmaker: async_sessionmaker[AsyncSession],
    *,
    renderer: QuestionRenderer | None = None,
    image_store: ImageStore | None = None,
    rng: random.Random | None = None,
) -> ReshuffleReport:
    if _RUN_LOCK.locked():
        raise ReshuffleInProgress("reshuffle already running")
    async with _RUN_LOCK:
        return await _reshuffle(sessionmaker, renderer=renderer, image_store=image_store, rng=rng)


async def _reshuffle(
    sessionmaker: async_sessionmaker[AsyncSession],
    *,
    renderer: QuestionRenderer | None,
    image_store: ImageStore | None,
    rng: random.Random | None,
) -> ReshuffleReport:
    rng = rng or random.Random()
    async with sessionmaker() as s:
        rows = (
            await s.execute(
                select(
                    Question.id,
                    Question.question_text,
                    Question.options_json,
                    Question.correct_index,
                ).order_by(Question.id)
            )
        ).all()

    report = ReshuffleReport(total=len(rows))
    logger.info("reshuffle_started questions=%s", report.total)
    for question_id, question_text, options_json, correct_index in rows:
        try:
            options = _parse_options(options_json)
            new_options, new_index = shuffle_options(options, int(correct_index), rng)
        except (ValueError, TypeError) as exc:
            logger.error("reshuffle_skipped question_id=%s err=%s", question_id, exc)
            report.skipped.append(question_id)
            continue
        if len(set(options)) != len(options):
            logger.warning("reshuffle_duplicate_options question_id=%s", question_id)

        try:
            stored = await _store_order(sessionmaker, question_id, new_options, new_index)
        except SQLAlchemyError:
            logger.exception("reshuffle_store_failed question_id=%s", question_id)
            report.skipped.append(question_id)
            continue
        if not stored:
            # Deleted since the batch started.
            report.skipped.append(question_id)
            continue
        report.shuffled += 1

        # A cached image must never outlive the option order it shows.
        if renderer is not None and image_store is not None:
            try:
                image = await asyncio.to_thread(renderer.render, question_text, new_options)
                await asyncio.to_thread(image_store.save, question_id, image)
            except Exception:
                logger.exception("reshuffle_render_failed question_id=%s", question_id)
                report.render_failed.append(question_id)
                image_store.delete(question_id)
        elif image_store is not None:
            image_store.delete(question_id)
        if report.shuffled % 10 == 0:
            logger.info("reshuffle_progress shuffled=%s of=%s", report.shuffled, report.total)

    logger.info(
        "reshuffle_finished total=%s shuffled=%s skipped=%s render_failed=%s",
        report.total,
        report.shuffled,
        len(report.skipped),
        len(report.render_failed),
    )
    return report
