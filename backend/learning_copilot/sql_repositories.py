"""SQLAlchemy-backed repositories, selected with ``QUIZ_STORE_BACKEND=sql``."""
from __future__ import annotations

import json
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import sessionmaker

from .mastery import TopicMastery
from .models import QuizHistoryRow, QuizSessionRow, TopicMasteryRow
from .question_bank import Difficulty
from .quiz_store import QuizHistoryEntry, QuizSession
from .repositories import HistoryRepository, MasteryRepository, SessionRepository


class SqlSessionRepository(SessionRepository):
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def get(self, session_id: str) -> Optional[QuizSession]:
        with self._session_factory() as db:
            row = db.get(QuizSessionRow, session_id)
            if row is None:
                return None
            return QuizSession.from_dict(json.loads(row.payload))

    def save(self, session: QuizSession) -> None:
        with self._session_factory() as db:
            row = db.get(QuizSessionRow, session.id)
            if row is None:
                row = QuizSessionRow(session_id=session.id, user_id=session.user_id, topic_key=session.topic_key)
                db.add(row)
            row.completed = session.completed
            row.last_activity_at = session.last_activity_at
            row.payload = json.dumps(session.to_dict())
            db.commit()

    def delete(self, session_id: str) -> None:
        with self._session_factory() as db:
            db.execute(delete(QuizSessionRow).where(QuizSessionRow.session_id == session_id))
            db.commit()

    def idle_since(self, threshold: datetime) -> List[str]:
        with self._session_factory() as db:
            rows = db.execute(select(QuizSessionRow.session_id).where(QuizSessionRow.last_activity_at < threshold))
            return [r[0] for r in rows]


def _entry_from_row(row: QuizHistoryRow) -> QuizHistoryEntry:
    return QuizHistoryEntry(
        id=row.entry_id,
        user_id=row.user_id,
        course_id=row.course_id,
        topic=row.topic,
        topic_key=row.topic_key,
        base_difficulty=Difficulty(row.base_difficulty),
        score_percent=row.score_percent,
        correct_count=row.correct_count,
        total_questions=row.total_questions,
        time_spent_seconds=row.time_spent_seconds,
        created_at=row.created_at,
    )


class SqlHistoryRepository(HistoryRepository):
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def append(self, entry: QuizHistoryEntry) -> None:
        with self._session_factory() as db:
            db.add(QuizHistoryRow(
                entry_id=entry.id,
                user_id=entry.user_id,
                course_id=entry.course_id,
                topic=entry.topic,
                topic_key=entry.topic_key,
                base_difficulty=entry.base_difficulty.value,
                score_percent=entry.score_percent,
                correct_count=entry.correct_count,
                total_questions=entry.total_questions,
                time_spent_seconds=entry.time_spent_seconds,
                created_at=entry.created_at,
            ))
            db.commit()

    def get(self, entry_id: str) -> Optional[QuizHistoryEntry]:
        with self._session_factory() as db:
            row = db.execute(select(QuizHistoryRow).where(QuizHistoryRow.entry_id == entry_id)).scalar_one_or_none()
            return _entry_from_row(row) if row else None

    def list_for_user(self, user_id: str) -> List[QuizHistoryEntry]:
        with self._session_factory() as db:
            rows = db.execute(
                select(QuizHistoryRow).where(QuizHistoryRow.user_id == user_id).order_by(QuizHistoryRow.seq)
            ).scalars()
            return [_entry_from_row(r) for r in rows]


class SqlMasteryRepository(MasteryRepository):
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def get(self, user_id: str, topic_key: str) -> Optional[TopicMastery]:
        with self._session_factory() as db:
            row = db.get(TopicMasteryRow, (user_id, topic_key))
            if row is None:
                return None
            return TopicMastery(row.topic_key, row.mastery, row.sessions_count, row.last_studied)

    def save(self, user_id: str, record: TopicMastery) -> None:
        with self._session_factory() as db:
            row = db.get(TopicMasteryRow, (user_id, record.topic))
            if row is None:
                row = TopicMasteryRow(user_id=user_id, topic_key=record.topic)
                db.add(row)
            row.mastery = record.mastery
            row.sessions_count = record.sessions_count
            row.last_studied = record.last_studied
            db.commit()

    def list_for_user(self, user_id: str) -> List[TopicMastery]:
        with self._session_factory() as db:
            rows = db.execute(select(TopicMasteryRow).where(TopicMasteryRow.user_id == user_id)).scalars()
            return [TopicMastery(r.topic_key, r.mastery, r.sessions_count, r.last_studied) for r in rows]
