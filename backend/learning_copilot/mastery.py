from __future__ import annotations

import logging
import math
import re
import threading
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from .repositories import InMemoryMasteryRepository, MasteryRepository

logger = logging.getLogger(__name__)

MASTERY_MIN = 0
MASTERY_MAX = 100
# Largest change a single update may apply, in either direction
MAX_STEP = 10

_WHITESPACE = re.compile(r"\s+")


def normalize_topic_key(topic: str) -> str:
    """'  Linked   Lists ' -> 'linked-lists'."""
    return _WHITESPACE.sub("-", (topic or "").strip().lower())


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class TopicMastery:
    topic: str
    mastery: int
    sessions_count: int
    last_studied: datetime


@dataclass(frozen=True)
class StudySession:
    id: str
    user_id: str
    course_id: str
    topic: str
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    accuracy: float
    focus_score: float


@dataclass(frozen=True)
class ActiveTimer:
    start_time: datetime
    topic: str
    course_id: str


class TimerAlreadyRunning(Exception):
    pass


class NoActiveTimer(Exception):
    pass


class MasteryTracker:
    """The single place where topic mastery changes."""

    def __init__(self, repository: Optional[MasteryRepository] = None, *, clock: Callable[[], datetime] = datetime.utcnow) -> None:
        self.repository = repository or InMemoryMasteryRepository()
        self._clock = clock
        self._locks: Dict[Tuple[str, str], threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, user_id: str, topic_key: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault((user_id, topic_key), threading.Lock())

    def update_topic_mastery(self, user_id: str, topic: str, delta: int) -> TopicMastery:
        topic_key = normalize_topic_key(topic)
        step = max(-MAX_STEP, min(MAX_STEP, int(delta)))
        with self._lock_for(user_id, topic_key):
            current = self.repository.get(user_id, topic_key)
            if current is None:
                current = TopicMastery(topic=topic_key, mastery=0, sessions_count=0, last_studied=self._clock())
            updated = replace(
                current,
                mastery=min(MASTERY_MAX, max(MASTERY_MIN, current.mastery + step)),
                sessions_count=current.sessions_count + 1,
                last_studied=self._clock(),
            )
            self.repository.save(user_id, updated)
        logger.debug("mastery %s/%s -> %d (%+d)", user_id, topic_key, updated.mastery, step)
        return updated

    def record_practice(self, user_id: str, topic: str, score: float) -> Tuple[TopicMastery, int]:
        improvement = round_half_up((float(score) / 100) * 5)
        return self.update_topic_mastery(user_id, topic, improvement), improvement

    def get_topic(self, user_id: str, topic: str) -> Optional[TopicMastery]:
        return self.repository.get(user_id, normalize_topic_key(topic))

    def list_user_mastery(self, user_id: str) -> List[TopicMastery]:
        return sorted(self.repository.list_for_user(user_id), key=lambda m: m.topic)


class StudyTimer:
    def __init__(self, tracker: MasteryTracker, *, clock: Callable[[], datetime] = datetime.utcnow) -> None:
        self.tracker = tracker
        self._clock = clock
        self._active: Dict[str, ActiveTimer] = {}
        self._sessions: Dict[str, List[StudySession]] = {}
        self._lock = threading.Lock()

    def start(self, user_id: str, topic: str, course_id: str) -> ActiveTimer:
        with self._lock:
            if user_id in self._active:
                raise TimerAlreadyRunning("Timer already running")
            timer = ActiveTimer(start_time=self._clock(), topic=topic or "general", course_id=course_id or "dsa")
            self._active[user_id] = timer
        return timer

    def status(self, user_id: str) -> Optional[Tuple[ActiveTimer, int]]:
        timer = self._active.get(user_id)
        if timer is None:
            return None
        elapsed = round_half_up((self._clock() - timer.start_time).total_seconds())
        return timer, elapsed

    def stop(self, user_id: str, accuracy: float, focus_score: float) -> Tuple[StudySession, int, TopicMastery]:
        with self._lock:
            timer = self._active.pop(user_id, None)
        if timer is None:
            raise NoActiveTimer("No active timer")
        end_time = self._clock()
        duration = round_half_up((end_time - timer.start_time).total_seconds() / 60)
        session = StudySession(
            id=uuid.uuid4().hex,
            user_id=user_id,
            course_id=timer.course_id,
            topic=timer.topic,
            start_time=timer.start_time,
            end_time=end_time,
            duration_minutes=duration,
            accuracy=accuracy,
            focus_score=focus_score,
        )
        self._sessions.setdefault(user_id, []).append(session)
        increase = min(MAX_STEP, round_half_up(accuracy / 10) + 2)
        mastery = self.tracker.update_topic_mastery(user_id, timer.topic, increase)
        return session, increase, mastery

    def sessions_for(self, user_id: str) -> List[StudySession]:
        return list(self._sessions.get(user_id, []))
