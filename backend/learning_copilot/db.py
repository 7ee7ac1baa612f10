from __future__ import annotations
from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from .settings import settings


DATABASE_URL = settings.database_url or "sqlite:///./learning_copilot.db"

Base = declarative_base()


def make_engine(url: str) -> Engine:
	connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
	return create_engine(url, connect_args=connect_args, future=True)


def make_session_factory(bind: Engine) -> sessionmaker:
	return sessionmaker(autocommit=False, autoflush=False, bind=bind, future=True)


engine = make_engine(DATABASE_URL)


def init_db(bind: Engine = engine) -> None:
	# models must be imported so their tables are registered on Base.metadata
	from . import models  # noqa: F401
	Base.metadata.create_all(bind=bind)
	ensure_schema(bind)


# Lightweight migrations for databases created by older builds (SQLite-friendly)
def ensure_schema(bind: Engine = engine) -> None:
	inspector = inspect(bind)
	tables = set(inspector.get_table_names())
	if "quiz_sessions" in tables:
		cols = {c["name"] for c in inspector.get_columns("quiz_sessions")}
		with bind.begin() as conn:
			if "completed" not in cols:
				conn.exec_driver_sql("ALTER TABLE quiz_sessions ADD COLUMN completed BOOLEAN DEFAULT 0 NOT NULL")
	if "quiz_history" in tables:
		cols = {c["name"] for c in inspector.get_columns("quiz_history")}
		with bind.begin() as conn:
			if "time_spent_seconds" not in cols:
				conn.exec_driver_sql("ALTER TABLE quiz_history ADD COLUMN time_spent_seconds INTEGER DEFAULT 0 NOT NULL")
