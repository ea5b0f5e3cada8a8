import asyncio
import json

import pytest

sqlalchemy = pytest.importorskip("sqlalchemy")
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from recallbot.db import Base
from recallbot.generation import Candidate
from recallbot.models import Exposure, Question, User, Vote
from recallbot.questions import (
    all_study_keys,
    candidate_problem,
    clear_questions,
    delete_question,
    list_questions,
    question_count,
    rename_study_key,
    save_candidates,
)


async def _setup_session():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    Session = async_sessionmaker(engine, expire_on_commit=False)
    return engine, Session


async def _add(s, study_key: str, up: int = 0, down: int = 0) -> int:
    q = Question(
        study_key=study_key,
        question_text=f"{study_key} question",
        options_json=json.dumps(["a", "b"]),
        correct_index=0,
        approve_count=up,
        reject_count=down,
    )
    s.add(q)
    await s.commit()
    return q.id


async def _count(s, model) -> int:
    return (await s.execute(select(func.count()).select_from(model))).scalar_one()


@pytest.mark.parametrize(
    "candidate,problem",
    [
        (Candidate("Q?", ["a", "b"], 1), None),
        (Candidate("  ", ["a", "b"], 0), "empty question text"),
        (Candidate("Q?", ["a"], 0), "fewer than two options"),
        (Candidate("Q?", ["a", " "], 0), "empty option"),
        (Candidate("Q?", ["Paris", "paris "], 0), "duplicate options"),
        (Candidate("Q?", ["a", "b"], 2), "correct index out of range"),
        (Candidate("Q?", ["a", "b"], -1), "correct index out of range"),
    ],
)
def test_candidate_problem(candidate, problem):
    assert candidate_problem(candidate) == problem


def test_save_candidates_skips_invalid():
    async def _run():
        engine, Session = await _setup_session()
        async with Session() as s:
            saved = await save_candidates(
                s,
                "Физика",
                [
                    Candidate(" Что такое инерция? ", ["Свойство тела", " Сила "], 0),
                    Candidate("Bad", ["only one"], 0),
                ],
            )
            stored = (await s.execute(select(Question))).scalars().all()
        await engine.dispose()
        return saved, stored

    saved, stored = asyncio.run(_run())
    assert len(saved) == 1
    assert len(stored) == 1
    q = stored[0]
    assert q.study_key == "Физика"
    assert q.question_text == "Что такое инерция?"
    assert q.options == ["Свойство тела", "Сила"]
    assert "Свойство" in q.options_json
    assert (q.approve_count, q.reject_count) == (0, 0)


def test_list_questions_lowest_rated_first_with_paging():
    async def _run():
        engine, Session = await _setup_session()
        async with Session() as s:
            good = await _add(s, "Physics", up=5)
            bad = await _add(s, "Physics", down=5)
            neutral_old = await _add(s, "Physics")
            neutral_new = await _add(s, "Physics")
            await _add(s, "Biology", down=9)
            first = await list_questions(s, "Physics", 1, page_size=3)
            second = await list_questions(s, "Physics", 2, page_size=3)
            empty = await list_questions(s, "History", 1)
        await engine.dispose()
        return (good, bad, neutral_old, neutral_new), first, second, empty

    (good, bad, neutral_old, neutral_new), first, second, empty = asyncio.run(_run())
    assert [q.id for q in first.items] == [bad, neutral_new, neutral_old]
    assert [q.id for q in second.items] == [good]
    assert (first.total, first.total_pages) == (4, 2)
    assert empty.total == 0 and empty.total_pages == 0 and empty.items == []


def test_delete_question_removes_votes_and_exposures():
    async def _run():
        engine, Session = await _setup_session()
        async with Session() as s:
            keep = await _add(s, "Physics")
            gone = await _add(s, "Physics")
            s.add_all(
                [
                    Vote(user_id=1, question_id=gone, vote=1),
                    Vote(user_id=1, question_id=keep, vote=-1),
                    Exposure(user_id=1, question_id=gone),
                ]
            )
            await s.commit()
            deleted = await delete_question(s, gone)
            again = await delete_question(s, gone)
            counts = (await _count(s, Question), await _count(s, Vote), await _count(s, Exposure))
        await engine.dispose()
        return deleted, again, counts

    deleted, again, counts = asyncio.run(_run())
    assert deleted is True
    assert again is False
    assert counts == (1, 1, 0)


def test_clear_questions_only_touches_one_study_key():
    async def _run():
        engine, Session = await _setup_session()
        async with Session() as s:
            a = await _add(s, "Physics")
            b = await _add(s, "Physics")
            await _add(s, "Biology")
            s.add(Vote(user_id=3, question_id=a, vote=1))
            await s.commit()
            ids = await clear_questions(s, "Physics")
            left = await question_count(s, "Physics")
            other = await question_count(s, "Biology")
            votes = await _count(s, Vote)
            nothing = await clear_questions(s, "Physics")
        await engine.dispose()
        return (a, b), ids, left, other, votes, nothing

    (a, b), ids, left, other, votes, nothing = asyncio.run(_run())
    assert sorted(ids) == [a, b]
    assert (left, other, votes) == (0, 1, 0)
    assert nothing == []


def test_rename_study_key_moves_questions_and_users():
    async def _run():
        engine, Session = await _setup_session()
        async with Session() as s:
            await _add(s, "Phys")
            await _add(s, "Phys")
            await _add(s, "Bio")
            s.add_all([User(id=1, current_study_key="Phys"), User(id=2, current_study_key="Bio")])
            await s.commit()
            moved = await rename_study_key(s, "Phys", "Physics")
            keys = await all_study_keys(s)
            users = dict((await s.execute(select(User.id, User.current_study_key))).all())
        await engine.dispose()
        return moved, keys, users

    moved, keys, users = asyncio.run(_run())
    assert moved == 2
    assert keys == ["Bio", "Physics"]
    assert users == {1: "Physics", 2: "Bio"}
