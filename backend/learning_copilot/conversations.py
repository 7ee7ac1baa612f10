from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Tuple

from .provider_clients import ChatTurn


class ConversationStore:
    """Per-conversation chat turns, kept in process memory."""

    def __init__(self, *, clock: Callable[[], datetime] = datetime.utcnow) -> None:
        self._turns: Dict[str, List[ChatTurn]] = {}
        self._owners: Dict[str, str] = {}
        self._last_active: Dict[str, datetime] = {}
        self._clock = clock
        self._lock = threading.Lock()

    def new_id(self, user_id: str) -> str:
        return f"conv_{user_id}_{int(time.time() * 1000)}"

    def history(self, conversation_id: str) -> Tuple[ChatTurn, ...]:
        return tuple(self._turns.get(conversation_id, ()))

    def owner(self, conversation_id: str) -> str | None:
        return self._owners.get(conversation_id)

    def append_exchange(self, conversation_id: str, user_id: str, message: str, reply: str) -> None:
        with self._lock:
            self._owners.setdefault(conversation_id, user_id)
            self._turns.setdefault(conversation_id, []).extend(
                [ChatTurn("user", message), ChatTurn("assistant", reply)]
            )
            self._last_active[conversation_id] = self._clock()

    def list_for_user(self, user_id: str) -> List[Tuple[str, int]]:
        return [(cid, len(self._turns.get(cid, []))) for cid, owner in list(self._owners.items()) if owner == user_id]

    def evict_idle(self, max_age: timedelta) -> int:
        """Drop conversations with no exchange for longer than `max_age`."""
        threshold = self._clock() - max_age
        with self._lock:
            stale = [cid for cid, seen in self._last_active.items() if seen < threshold]
            for cid in stale:
                self._turns.pop(cid, None)
                self._owners.pop(cid, None)
                del self._last_active[cid]
        return len(stale)

    def __len__(self) -> int:
        return len(self._owners)
