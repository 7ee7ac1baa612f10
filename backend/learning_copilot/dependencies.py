from __future__ import annotations
from functools import lru_cache

from sqlalchemy.orm import sessionmaker

from .conversations import ConversationStore
from .db import engine, init_db, make_session_factory
from .gateway import AIProviderGateway
from .key_manager import ApiKeyManager
from .mastery import MasteryTracker, StudyTimer
from .quiz_generator import QuizGenerator
from .quiz_store import QuizSessionStore
from .repositories import InMemoryHistoryRepository, InMemoryMasteryRepository, InMemorySessionRepository
from .settings import settings
from .sql_repositories import SqlHistoryRepository, SqlMasteryRepository, SqlSessionRepository

# Process-wide singletons. Tests swap them through app.dependency_overrides.


def _use_sql() -> bool:
	return settings.quiz_store_backend.strip().lower() == "sql"


@lru_cache(maxsize=1)
def _sql_session_factory() -> sessionmaker:
	init_db(engine)
	return make_session_factory(engine)


@lru_cache(maxsize=1)
def get_gateway() -> AIProviderGateway:
	return AIProviderGateway(cfg=settings)


@lru_cache(maxsize=1)
def get_key_manager() -> ApiKeyManager:
	return ApiKeyManager(cfg=settings)


@lru_cache(maxsize=1)
def get_mastery_tracker() -> MasteryTracker:
	repo = SqlMasteryRepository(_sql_session_factory()) if _use_sql() else InMemoryMasteryRepository()
	return MasteryTracker(repo)


@lru_cache(maxsize=1)
def get_quiz_store() -> QuizSessionStore:
	if _use_sql():
		factory = _sql_session_factory()
		return QuizSessionStore(
			tracker=get_mastery_tracker(),
			sessions=SqlSessionRepository(factory),
			history=SqlHistoryRepository(factory),
		)
	return QuizSessionStore(
		tracker=get_mastery_tracker(),
		sessions=InMemorySessionRepository(),
		history=InMemoryHistoryRepository(),
	)


@lru_cache(maxsize=1)
def get_quiz_generator() -> QuizGenerator:
	return QuizGenerator(get_gateway(), cfg=settings)


@lru_cache(maxsize=1)
def get_study_timer() -> StudyTimer:
	return StudyTimer(get_mastery_tracker())


@lru_cache(maxsize=1)
def get_conversations() -> ConversationStore:
	return ConversationStore()
