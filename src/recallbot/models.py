from __future__ import annotations
import datetime as dt
import json
from sqlalchemy import (
    String, Integer, DateTime, Boolean, Text, ForeignKey, Index
)
from sqlalchemy.orm import Mapped, mapped_column
from .db import Base

UTC = dt.timezone.utc
def utcnow() -> dt.datetime:
    return dt.datetime.now(tz=UTC)

class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)  # tg user id
    current_study_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_trusted: Mapped[bool] = mapped_column(Boolean, default=False)

class Username(Base):
    __tablename__ = "usernames"
    username: Mapped[str] = mapped_column(String(64), primary_key=True)  # stored without "@"
    user_id: Mapped[int] = mapped_column(Integer)

class Question(Base):
    __tablename__ = "questions"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    study_key: Mapped[str] = mapped_column(Text, index=True)
    question_text: Mapped[str] = mapped_column(Text)
    options_json: Mapped[str] = mapped_column(Text)  # JSON list of option strings
    correct_index: Mapped[int] = mapped_column(Integer)  # zero-based into options_json
    approve_count: Mapped[int] = mapped_column(Integer, default=0)
    reject_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    @property
    def options(self) -> list[str]:
        return [str(x) for x in json.loads(self.options_json)]

    @property
    def correct_option(self) -> str:
        return self.options[self.correct_index]

class Vote(Base):
    __tablename__ = "votes"
    user_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    question_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("questions.id", ondelete="CASCADE"), primary_key=True
    )
    vote: Mapped[int] = mapped_column(Integer)  # 1 approve | -1 reject

class Exposure(Base):
    __tablename__ = "user_progress"
    user_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    question_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("questions.id", ondelete="CASCADE"), primary_key=True
    )
    last_shown_at: Mapped[dt.datetime] = mapped_column(
        "last_used_at", DateTime(timezone=True), default=utcnow
    )

    __table_args__ = (Index("ix_user_progress_user_last_used", "user_id", "last_used_at"),)
