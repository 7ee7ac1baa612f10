"""Adaptive quiz sessions.

A session moves ``created -> in_progress -> completed``. Each answer nudges the working
difficulty one step up (correct) or down (incorrect) and the next question is drawn, without
repetition, from the static bank or from the session's own AI-generated pool. Finalizing scores
the session once, applies a bounded mastery bump and records a history entry; later calls
return the stored result.
"""
from __future__ import annotations

import logging
import math
import random
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .errors import (
    NoQuestionsAvailable,
    QuestionMismatch,
    QuestionNotFound,
    QuizForbidden,
    SessionAlreadyCompleted,
    SessionNotFound,
)
from .mastery import MasteryTracker, normalize_topic_key, round_half_up
from .question_bank import (
    Difficulty,
    QuestionBank,
    QuizQuestion,
    default_question_bank,
    fallback_difficulties,
    step_difficulty,
)
from .repositories import (
    HistoryRepository,
    InMemoryHistoryRepository,
    InMemorySessionRepository,
    SessionRepository,
)

logger = logging.getLogger(__name__)

MIN_QUESTIONS = 3
MAX_QUESTIONS = 20
MIN_MASTERY_DELTA = 1
MAX_MASTERY_DELTA = 8


def _dt(value: Any) -> datetime:
    return value if isinstance(value, datetime) else datetime.fromisoformat(value)


def _whole_seconds(value: Optional[float]) -> int:
    """Non-negative whole seconds; missing, negative, NaN or infinite input counts as 0."""
    try:
        seconds = float(value or 0)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(seconds):
        return 0
    return max(0, round_half_up(seconds))


@dataclass(frozen=True)
class QuizAttemptItem:
    question_id: str
    difficulty: Difficulty
    selected_index: int
    correct: bool
    correct_index: int
    explanation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question_id": self.question_id,
            "difficulty": self.difficulty.value,
            "selected_index": self.selected_index,
            "correct": self.correct,
            "correct_index": self.correct_index,
            "explanation": self.explanation,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuizAttemptItem":
        return cls(
            question_id=data["question_id"],
            difficulty=Difficulty(data["difficulty"]),
            selected_index=int(data["selected_index"]),
            correct=bool(data["correct"]),
            correct_index=int(data["correct_index"]),
            explanation=data.get("explanation", ""),
        )


@dataclass(frozen=True)
class QuizHistoryEntry:
    id: str
    user_id: str
    course_id: str
    topic: str
    topic_key: str
    base_difficulty: Difficulty
    score_percent: int
    correct_count: int
    total_questions: int
    time_spent_seconds: int
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "course_id": self.course_id,
            "topic": self.topic,
            "topic_key": self.topic_key,
            "base_difficulty": self.base_difficulty.value,
            "score_percent": self.score_percent,
            "correct_count": self.correct_count,
            "total_questions": self.total_questions,
            "time_spent_seconds": self.time_spent_seconds,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuizHistoryEntry":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            course_id=data["course_id"],
            topic=data["topic"],
            topic_key=data["topic_key"],
            base_difficulty=Difficulty(data["base_difficulty"]),
            score_percent=int(data["score_percent"]),
            correct_count=int(data["correct_count"]),
            total_questions=int(data["total_questions"]),
            time_spent_seconds=int(data["time_spent_seconds"]),
            created_at=_dt(data["created_at"]),
        )


@dataclass(frozen=True)
class MasteryChange:
    topic_key: str
    new_mastery: int
    delta: int


@dataclass(frozen=True)
class QuizResult:
    score_percent: int
    correct_count: int
    total_questions: int
    time_spent_seconds: int
    items: Tuple[QuizAttemptItem, ...]
    updated_mastery: MasteryChange
    history_entry: QuizHistoryEntry

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score_percent": self.score_percent,
            "correct_count": self.correct_count,
            "total_questions": self.total_questions,
            "time_spent_seconds": self.time_spent_seconds,
            "items": [i.to_dict() for i in self.items],
            "updated_mastery": {
                "topic_key": self.updated_mastery.topic_key,
                "new_mastery": self.updated_mastery.new_mastery,
                "delta": self.updated_mastery.delta,
            },
            "history_entry": self.history_entry.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuizResult":
        um = data["updated_mastery"]
        return cls(
            score_percent=int(data["score_percent"]),
            correct_count=int(data["correct_count"]),
            total_questions=int(data["total_questions"]),
            time_spent_seconds=int(data["time_spent_seconds"]),
            items=tuple(QuizAttemptItem.from_dict(i) for i in data["items"]),
            updated_mastery=MasteryChange(um["topic_key"], int(um["new_mastery"]), int(um["delta"])),
            history_entry=QuizHistoryEntry.from_dict(data["history_entry"]),
        )


@dataclass(frozen=True)
class AnswerResult:
    correct: bool
    correct_index: int
    explanation: str
    next_question: Optional[Dict[str, Any]]
    progress: Tuple[int, int]
    updated_difficulty: Difficulty
    ended_early: bool = False


@dataclass
class QuizSession:
    id: str
    user_id: str
    course_id: str
    topic: str
    topic_key: str
    target_count: int
    base_difficulty: Difficulty
    current_difficulty: Difficulty
    created_at: datetime
    last_activity_at: datetime
    current_index: int = 0
    asked_question_ids: List[str] = field(default_factory=list)
    pending_question_id: Optional[str] = None
    items: List[QuizAttemptItem] = field(default_factory=list)
    completed: bool = False
    use_ai: bool = False
    # Only set for AI sessions; selection then never touches the static bank
    question_pool: List[QuizQuestion] = field(default_factory=list)
    final_result: Optional[QuizResult] = None

    @property
    def progress(self) -> Tuple[int, int]:
        return self.current_index, self.target_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "course_id": self.course_id,
            "topic": self.topic,
            "topic_key": self.topic_key,
            "target_count": self.target_count,
            "base_difficulty": self.base_difficulty.value,
            "current_difficulty": self.current_difficulty.value,
            "created_at": self.created_at.isoformat(),
            "last_activity_at": self.last_activity_at.isoformat(),
            "current_index": self.current_index,
            "asked_question_ids": list(self.asked_question_ids),
            "pending_question_id": self.pending_question_id,
            "items": [i.to_dict() for i in self.items],
            "completed": self.completed,
            "use_ai": self.use_ai,
            "question_pool": [q.to_dict() for q in self.question_pool],
            "final_result": self.final_result.to_dict() if self.final_result else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuizSession":
        final = data.get("final_result")
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            course_id=data["course_id"],
            topic=data["topic"],
            topic_key=data["topic_key"],
            target_count=int(data["target_count"]),
            base_difficulty=Difficulty(data["base_difficulty"]),
            current_difficulty=Difficulty(data["current_difficulty"]),
            created_at=_dt(data["created_at"]),
            last_activity_at=_dt(data["last_activity_at"]),
            current_index=int(data.get("current_index", 0)),
            asked_question_ids=list(data.get("asked_question_ids", [])),
            pending_question_id=data.get("pending_question_id"),
            items=[QuizAttemptItem.from_dict(i) for i in data.get("items", [])],
            completed=bool(data.get("completed", False)),
            use_ai=bool(data.get("use_ai", False)),
            question_pool=[QuizQuestion.from_dict(q) for q in data.get("question_pool", [])],
            final_result=QuizResult.from_dict(final) if final else None,
        )


class QuizSessionStore:
    def __init__(
        self,
        *,
        bank: Optional[QuestionBank] = None,
        tracker: Optional[MasteryTracker] = None,
        sessions: Optional[SessionRepository] = None,
        history: Optional[HistoryRepository] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.bank = bank or default_question_bank()
        self.tracker = tracker or MasteryTracker()
        self.sessions = sessions or InMemorySessionRepository()
        self.history = history or InMemoryHistoryRepository()
        self._rng = rng or random.Random()
        self._clock = clock
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, session_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(session_id, threading.Lock())

    # ---- selection ----

    def _candidates(self, session: QuizSession, difficulty: Difficulty) -> List[QuizQuestion]:
        if session.use_ai:
            pool = [q for q in session.question_pool if q.difficulty == difficulty]
        else:
            pool = self.bank.questions_for(session.topic_key, difficulty)
        asked = set(session.asked_question_ids)
        return [q for q in pool if q.id not in asked]

    def _pick_next(self, session: QuizSession) -> Optional[QuizQuestion]:
        pool = self._candidates(session, session.current_difficulty)
        if pool:
            return self._rng.choice(pool)
        for difficulty in fallback_difficulties(session.current_difficulty):
            pool = self._candidates(session, difficulty)
            if pool:
                session.current_difficulty = difficulty
                return self._rng.choice(pool)
        return None

    def _ask(self, session: QuizSession, question: QuizQuestion) -> None:
        session.asked_question_ids.append(question.id)
        session.pending_question_id = question.id

    def _find_question(self, session: QuizSession, question_id: str) -> Optional[QuizQuestion]:
        if session.use_ai:
            return next((q for q in session.question_pool if q.id == question_id), None)
        return self.bank.get(question_id)

    def _load(self, session_id: str, user_id: str) -> QuizSession:
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFound("Quiz session not found")
        if session.user_id != user_id:
            raise QuizForbidden("Unauthorized for this quiz session")
        return session

    # ---- operations ----

    def create_session(
        self,
        user_id: str,
        course_id: str,
        topic: str,
        base_difficulty: Difficulty,
        question_count: int,
        questions: Optional[Sequence[QuizQuestion]] = None,
    ) -> Tuple[QuizSession, QuizQuestion]:
        now = self._clock()
        base = Difficulty(base_difficulty)
        session = QuizSession(
            id=uuid.uuid4().hex,
            user_id=user_id,
            course_id=course_id,
            topic=topic,
            topic_key=normalize_topic_key(topic),
            target_count=max(MIN_QUESTIONS, min(MAX_QUESTIONS, int(question_count))),
            base_difficulty=base,
            current_difficulty=base,
            created_at=now,
            last_activity_at=now,
            use_ai=questions is not None,
            question_pool=list(questions or []),
        )
        first = self._pick_next(session)
        if first is None:
            raise NoQuestionsAvailable(f'No questions available for topic "{topic}"')
        self._ask(session, first)
        self.sessions.save(session)
        logger.info("quiz session %s started: topic=%s difficulty=%s target=%d", session.id, session.topic_key, base.value, session.target_count)
        return session, first

    def submit_answer_and_advance(self, session_id: str, user_id: str, question_id: str, selected_index: Optional[int]) -> AnswerResult:
        with self._lock_for(session_id):
            session = self._load(session_id, user_id)
            if session.completed:
                raise SessionAlreadyCompleted("Quiz session already completed")

            question = self._find_question(session, question_id)
            if question is None:
                raise QuestionNotFound("Question not found")
            if question.topic_key != session.topic_key:
                raise QuestionMismatch("Question does not match session topic")
            if question.id != session.pending_question_id:
                raise QuestionMismatch("Question is not the current question of this session")

            selected = selected_index if isinstance(selected_index, int) and 0 <= selected_index < len(question.options) else -1
            correct = selected == question.correct_index
            session.items.append(QuizAttemptItem(
                question_id=question.id,
                difficulty=question.difficulty,
                selected_index=selected,
                correct=correct,
                correct_index=question.correct_index,
                explanation=question.explanation,
            ))
            session.pending_question_id = None
            session.current_index += 1
            session.current_difficulty = step_difficulty(session.current_difficulty, 1 if correct else -1)
            session.last_activity_at = self._clock()

            next_question: Optional[QuizQuestion] = None
            ended_early = False
            if session.current_index < session.target_count:
                next_question = self._pick_next(session)
                if next_question is None:
                    session.completed = True
                    ended_early = True
                    logger.info("quiz session %s ran out of questions after %d", session.id, session.current_index)
                else:
                    self._ask(session, next_question)
            self.sessions.save(session)

            return AnswerResult(
                correct=correct,
                correct_index=question.correct_index,
                explanation=question.explanation,
                next_question=next_question.to_public(session.topic) if next_question else None,
                progress=session.progress,
                updated_difficulty=session.current_difficulty,
                ended_early=ended_early,
            )

    def finalize_quiz(self, session_id: str, user_id: str, time_spent_seconds: Optional[float]) -> QuizResult:
        with self._lock_for(session_id):
            session = self._load(session_id, user_id)
            if session.final_result is not None:
                return session.final_result

            total = len(session.items)
            correct_count = sum(1 for i in session.items if i.correct)
            score = round_half_up(100 * correct_count / total) if total else 0
            delta = max(MIN_MASTERY_DELTA, min(MAX_MASTERY_DELTA, round_half_up(score / 100 * MAX_MASTERY_DELTA)))
            spent = _whole_seconds(time_spent_seconds)

            # nothing below may raise before the result is stored
            session.completed = True
            mastery = self.tracker.update_topic_mastery(session.user_id, session.topic, delta)
            entry = QuizHistoryEntry(
                id=session.id,
                user_id=session.user_id,
                course_id=session.course_id,
                topic=session.topic,
                topic_key=session.topic_key,
                base_difficulty=session.base_difficulty,
                score_percent=score,
                correct_count=correct_count,
                total_questions=total,
                time_spent_seconds=spent,
                created_at=self._clock(),
            )
            self.history.append(entry)
            result = QuizResult(
                score_percent=score,
                correct_count=correct_count,
                total_questions=total,
                time_spent_seconds=entry.time_spent_seconds,
                items=tuple(session.items),
                updated_mastery=MasteryChange(mastery.topic, mastery.mastery, delta),
                history_entry=entry,
            )
            session.final_result = result
            session.last_activity_at = self._clock()
            self.sessions.save(session)
            logger.info("quiz session %s finalized: %d/%d (%d%%)", session.id, correct_count, total, score)
            return result

    def get_session(self, session_id: str, user_id: str) -> QuizSession:
        return self._load(session_id, user_id)

    def get_history(self, user_id: str) -> List[QuizHistoryEntry]:
        return list(reversed(self.history.list_for_user(user_id)))

    def evict_stale(self, max_age: timedelta) -> int:
        """Drop sessions idle for longer than `max_age`. Returns how many were removed."""
        stale = self.sessions.idle_since(self._clock() - max_age)
        for session_id in stale:
            self.sessions.delete(session_id)
            with self._locks_guard:
                self._locks.pop(session_id, None)
        if stale:
            logger.info("evicted %d idle quiz session(s)", len(stale))
        return len(stale)
