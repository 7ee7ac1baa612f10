from __future__ import annotations
from datetime import datetime
from sqlalchemy import Boolean, Column, String, DateTime, Integer, Text
from .db import Base


class QuizSessionRow(Base):
	__tablename__ = "quiz_sessions"
	session_id = Column(String(64), primary_key=True)
	user_id = Column(String(128), index=True, nullable=False)
	topic_key = Column(String(128), nullable=False)
	completed = Column(Boolean, default=False, nullable=False)
	last_activity_at = Column(DateTime, index=True, nullable=False)
	payload = Column(Text, nullable=False)  # JSON snapshot of the whole session
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class QuizHistoryRow(Base):
	__tablename__ = "quiz_history"
	# Autoincrement key keeps insertion order; the entry id is the quiz session id
	seq = Column(Integer, primary_key=True, autoincrement=True)
	entry_id = Column(String(64), unique=True, index=True, nullable=False)
	user_id = Column(String(128), index=True, nullable=False)
	course_id = Column(String(100), nullable=False)
	topic = Column(String(256), nullable=False)
	topic_key = Column(String(128), nullable=False)
	base_difficulty = Column(String(8), nullable=False)
	score_percent = Column(Integer, nullable=False)
	correct_count = Column(Integer, nullable=False)
	total_questions = Column(Integer, nullable=False)
	time_spent_seconds = Column(Integer, default=0, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class TopicMasteryRow(Base):
	__tablename__ = "topic_mastery"
	user_id = Column(String(128), primary_key=True)
	topic_key = Column(String(128), primary_key=True)
	mastery = Column(Integer, default=0, nullable=False)
	sessions_count = Column(Integer, default=0, nullable=False)
	last_studied = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
