"""Storage seams for quiz sessions, quiz history and topic mastery.

The in-memory classes here are the default backing store and the one the tests use. SQL
implementations with the same interface live in ``sql_repositories``.
"""
from __future__ import annotations

import abc
import threading
from datetime import datetime
from typing import TYPE_CHECKING, Dict, List, Optional

if TYPE_CHECKING:
    from .mastery import TopicMastery
    from .quiz_store import QuizHistoryEntry, QuizSession


class SessionRepository(abc.ABC):
    @abc.abstractmethod
    def get(self, session_id: str) -> Optional["QuizSession"]: ...

    @abc.abstractmethod
    def save(self, session: "QuizSession") -> None: ...

    @abc.abstractmethod
    def delete(self, session_id: str) -> None: ...

    @abc.abstractmethod
    def idle_since(self, threshold: datetime) -> List[str]:
        """Ids of sessions whose last activity is older than `threshold`."""


class HistoryRepository(abc.ABC):
    @abc.abstractmethod
    def append(self, entry: "QuizHistoryEntry") -> None: ...

    @abc.abstractmethod
    def get(self, entry_id: str) -> Optional["QuizHistoryEntry"]: ...

    @abc.abstractmethod
    def list_for_user(self, user_id: str) -> List["QuizHistoryEntry"]:
        """Entries in insertion order (oldest first)."""


class MasteryRepository(abc.ABC):
    @abc.abstractmethod
    def get(self, user_id: str, topic_key: str) -> Optional["TopicMastery"]: ...

    @abc.abstractmethod
    def save(self, user_id: str, record: "TopicMastery") -> None: ...

    @abc.abstractmethod
    def list_for_user(self, user_id: str) -> List["TopicMastery"]: ...


class InMemorySessionRepository(SessionRepository):
    def __init__(self) -> None:
        self._sessions: Dict[str, "QuizSession"] = {}

    def get(self, session_id: str) -> Optional["QuizSession"]:
        return self._sessions.get(session_id)

    def save(self, session: "QuizSession") -> None:
        self._sessions[session.id] = session

    def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def idle_since(self, threshold: datetime) -> List[str]:
        return [sid for sid, s in list(self._sessions.items()) if s.last_activity_at < threshold]

    def __len__(self) -> int:
        return len(self._sessions)


class InMemoryHistoryRepository(HistoryRepository):
    def __init__(self) -> None:
        self._by_user: Dict[str, List["QuizHistoryEntry"]] = {}
        self._by_id: Dict[str, "QuizHistoryEntry"] = {}
        self._lock = threading.Lock()

    def append(self, entry: "QuizHistoryEntry") -> None:
        with self._lock:
            self._by_user.setdefault(entry.user_id, []).append(entry)
            self._by_id[entry.id] = entry

    def get(self, entry_id: str) -> Optional["QuizHistoryEntry"]:
        return self._by_id.get(entry_id)

    def list_for_user(self, user_id: str) -> List["QuizHistoryEntry"]:
        return list(self._by_user.get(user_id, []))


class InMemoryMasteryRepository(MasteryRepository):
    def __init__(self) -> None:
        self._by_user: Dict[str, Dict[str, "TopicMastery"]] = {}

    def get(self, user_id: str, topic_key: str) -> Optional["TopicMastery"]:
        return self._by_user.get(user_id, {}).get(topic_key)

    def save(self, user_id: str, record: "TopicMastery") -> None:
        self._by_user.setdefault(user_id, {})[record.topic] = record

    def list_for_user(self, user_id: str) -> List["TopicMastery"]:
        return list(self._by_user.get(user_id, {}).values())
