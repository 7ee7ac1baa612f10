"""
SQLite-backed repositories behave like the in-memory ones.
"""

from datetime import timedelta

import pytest

from learning_copilot.db import init_db, make_engine, make_session_factory
from learning_copilot.errors import SessionNotFound
from learning_copilot.mastery import MasteryTracker
from learning_copilot.question_bank import Difficulty
from learning_copilot.quiz_store import QuizSessionStore
from learning_copilot.sql_repositories import SqlHistoryRepository, SqlMasteryRepository, SqlSessionRepository


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'quiz.db'}")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def sql_store(session_factory, rng, clock):
    tracker = MasteryTracker(SqlMasteryRepository(session_factory), clock=clock)
    return QuizSessionStore(
        tracker=tracker,
        sessions=SqlSessionRepository(session_factory),
        history=SqlHistoryRepository(session_factory),
        rng=rng,
        clock=clock,
    )


def test_full_quiz_persists(sql_store, session_factory):
    session, q = sql_store.create_session("u1", "dsa", "Arrays", Difficulty.EASY, 3)
    for _ in range(3):
        result = sql_store.submit_answer_and_advance(session.id, "u1", q.id, q.correct_index)
        if result.next_question:
            q = sql_store.bank.get(result.next_question["id"])
    final = sql_store.finalize_quiz(session.id, "u1", 61)

    assert final.score_percent == 100
    assert sql_store.finalize_quiz(session.id, "u1", 1) == final

    reloaded = SqlSessionRepository(session_factory).get(session.id)
    assert reloaded.completed
    assert len(reloaded.items) == 3
    assert reloaded.final_result == final

    history = SqlHistoryRepository(session_factory).list_for_user("u1")
    assert [h.id for h in history] == [session.id]
    assert history[0].time_spent_seconds == 61

    mastery = SqlMasteryRepository(session_factory).get("u1", "arrays")
    assert mastery.mastery == 8
    assert mastery.sessions_count == 1


def test_history_order_and_lookup(sql_store, clock):
    first, _ = sql_store.create_session("u1", "dsa", "trees", Difficulty.EASY, 3)
    sql_store.finalize_quiz(first.id, "u1", 0)
    clock.advance(minutes=5)
    second, _ = sql_store.create_session("u1", "dsa", "graphs", Difficulty.EASY, 3)
    sql_store.finalize_quiz(second.id, "u1", 0)

    assert [h.id for h in sql_store.get_history("u1")] == [second.id, first.id]
    assert sql_store.history.get(first.id).topic_key == "trees"
    assert sql_store.history.get("nope") is None


def test_eviction(sql_store, clock):
    session, _ = sql_store.create_session("u1", "dsa", "arrays", Difficulty.EASY, 3)
    clock.advance(hours=3)
    assert sql_store.evict_stale(timedelta(minutes=120)) == 1
    with pytest.raises(SessionNotFound):
        sql_store.get_session(session.id, "u1")


def test_mastery_listing(session_factory, clock):
    tracker = MasteryTracker(SqlMasteryRepository(session_factory), clock=clock)
    tracker.update_topic_mastery("u1", "Trees", 4)
    tracker.update_topic_mastery("u1", "Graphs", 6)
    tracker.update_topic_mastery("u2", "Trees", 2)
    assert sorted(m.topic for m in tracker.list_user_mastery("u1")) == ["graphs", "trees"]
    assert tracker.get_topic("u1", "trees").last_studied == clock.now
