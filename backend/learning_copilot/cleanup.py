from __future__ import annotations
import asyncio
import logging
from datetime import timedelta
from typing import Optional

from .conversations import ConversationStore
from .key_manager import ApiKeyManager
from .quiz_generator import RateLimiter
from .quiz_store import QuizSessionStore

logger = logging.getLogger(__name__)


def purge_idle_sessions(
	store: QuizSessionStore,
	key_manager: ApiKeyManager,
	quiz_ttl: timedelta,
	conversations: Optional[ConversationStore] = None,
	conversation_ttl: Optional[timedelta] = None,
	rate_limiter: Optional[RateLimiter] = None,
) -> int:
	# Abandoned quizzes never reach finalize, so they are dropped after quiz_ttl of inactivity.
	# Key sessions carry their own TTL.
	removed = store.evict_stale(quiz_ttl)
	removed += key_manager.cleanup_expired_sessions()
	if conversations is not None:
		removed += conversations.evict_idle(conversation_ttl or quiz_ttl)
	if rate_limiter is not None:
		rate_limiter.prune()
	return removed


async def cleanup_watcher(
	store: QuizSessionStore,
	key_manager: ApiKeyManager,
	quiz_ttl: timedelta,
	interval_seconds: float,
	conversations: Optional[ConversationStore] = None,
	conversation_ttl: Optional[timedelta] = None,
	rate_limiter: Optional[RateLimiter] = None,
) -> None:
	while True:
		await asyncio.sleep(interval_seconds)
		try:
			removed = purge_idle_sessions(store, key_manager, quiz_ttl, conversations, conversation_ttl, rate_limiter)
		except Exception:
			logger.exception("session cleanup failed")
			continue
		if removed:
			logger.info("cleanup removed %d idle session(s)", removed)
