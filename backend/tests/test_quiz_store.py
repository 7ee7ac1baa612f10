"""
Adaptive quiz session lifecycle against the static question bank.
"""

from datetime import timedelta

import pytest

from learning_copilot.errors import (
    NoQuestionsAvailable,
    QuestionMismatch,
    QuestionNotFound,
    QuizForbidden,
    SessionAlreadyCompleted,
    SessionNotFound,
)
from learning_copilot.mastery import MasteryTracker
from learning_copilot.question_bank import Difficulty, QuizQuestion
from learning_copilot.quiz_store import QuizSession, QuizSessionStore


@pytest.fixture
def tracker(clock):
    return MasteryTracker(clock=clock)


@pytest.fixture
def store(tracker, rng, clock):
    return QuizSessionStore(tracker=tracker, rng=rng, clock=clock)


def answer(store, session_id, question_id, correct=True, user="u1"):
    session = store.get_session(session_id, user)
    question = next((q for q in session.question_pool if q.id == question_id), None) or store.bank.get(question_id)
    index = question.correct_index if correct else (question.correct_index + 1) % 4
    return store.submit_answer_and_advance(session_id, user, question_id, index)


def test_e2e_all_correct_easy_arrays(store, tracker):
    session, q = store.create_session("u1", "dsa", "Arrays", Difficulty.EASY, 3)
    assert session.topic_key == "arrays"
    assert q.difficulty is Difficulty.EASY

    for _ in range(3):
        result = answer(store, session.id, q.id, correct=True)
        assert result.correct
        q = result.next_question and store.bank.get(result.next_question["id"])
    assert result.next_question is None
    assert result.progress == (3, 3)

    final = store.finalize_quiz(session.id, "u1", 42.4)
    assert final.score_percent == 100
    assert final.correct_count == 3
    assert final.total_questions == 3
    assert final.time_spent_seconds == 42
    assert final.updated_mastery.delta == 8
    assert tracker.get_topic("u1", "arrays").mastery == 8


def test_target_count_is_clamped(store):
    low, _ = store.create_session("u1", "dsa", "arrays", Difficulty.EASY, 1)
    high, _ = store.create_session("u1", "dsa", "arrays", Difficulty.EASY, 99)
    assert low.target_count == 3
    assert high.target_count == 20


def test_no_question_repeats(store):
    session, q = store.create_session("u1", "dsa", "arrays", Difficulty.EASY, 5)
    seen = [q.id]
    for i in range(5):
        result = answer(store, session.id, seen[-1], correct=(i % 2 == 0))
        if result.next_question:
            seen.append(result.next_question["id"])
    assert len(seen) == 5
    assert len(set(seen)) == 5
    snapshot = store.get_session(session.id, "u1")
    assert snapshot.asked_question_ids == seen
    assert len(snapshot.items) == 5


def _pool(topic_key, levels):
    return [
        QuizQuestion(f"ai-t-{i}", topic_key, level, f"Question {i}?", ("a", "b", "c", "d"), i % 4, "because")
        for i, level in enumerate(levels)
    ]


def test_difficulty_moves_up_and_caps(store):
    pool = _pool("heaps", [Difficulty.MEDIUM, Difficulty.HARD, Difficulty.HARD, Difficulty.HARD])
    session, q = store.create_session("u1", "dsa", "heaps", Difficulty.MEDIUM, 4, questions=pool)
    assert q.difficulty is Difficulty.MEDIUM
    result = answer(store, session.id, q.id, correct=True)
    assert result.updated_difficulty is Difficulty.HARD
    result = answer(store, session.id, result.next_question["id"], correct=True)
    assert result.updated_difficulty is Difficulty.HARD
    assert result.next_question["difficulty"] == "hard"


def test_difficulty_floors_at_easy(store):
    session, q = store.create_session("u1", "dsa", "arrays", Difficulty.EASY, 5)
    result = answer(store, session.id, q.id, correct=False)
    assert not result.correct
    assert result.updated_difficulty is Difficulty.EASY


def test_fallback_selects_nearest_difficulty(store):
    # trees has one question per level; after the hard one is used, medium is probed first
    session, q = store.create_session("u1", "dsa", "trees", Difficulty.HARD, 3)
    assert q.id == "trees-h-1"
    result = answer(store, session.id, q.id, correct=True)
    assert result.next_question["id"] == "trees-m-1"
    assert result.updated_difficulty is Difficulty.MEDIUM


def test_out_of_range_and_missing_answers_are_incorrect(store):
    session, q = store.create_session("u1", "dsa", "graphs", Difficulty.EASY, 3)
    result = store.submit_answer_and_advance(session.id, "u1", q.id, 7)
    assert not result.correct
    result = store.submit_answer_and_advance(session.id, "u1", result.next_question["id"], None)
    assert not result.correct
    items = store.get_session(session.id, "u1").items
    assert [i.selected_index for i in items] == [-1, -1]


def test_exhausted_topic_ends_early(store):
    session, q = store.create_session("u1", "dsa", "trees", Difficulty.EASY, 5)
    result = None
    for _ in range(3):
        result = answer(store, session.id, q.id)
        if result.next_question:
            q = store.bank.get(result.next_question["id"])
    assert result.next_question is None
    assert result.ended_early
    assert result.progress == (3, 5)
    assert store.get_session(session.id, "u1").completed
    with pytest.raises(SessionAlreadyCompleted):
        store.submit_answer_and_advance(session.id, "u1", q.id, 0)

    final = store.finalize_quiz(session.id, "u1", 10)
    assert final.total_questions == 3


def test_reaching_target_keeps_session_open(store):
    session, q = store.create_session("u1", "dsa", "arrays", Difficulty.EASY, 3)
    for _ in range(3):
        result = answer(store, session.id, q.id)
        if result.next_question:
            q = store.bank.get(result.next_question["id"])
    assert not result.ended_early
    assert not store.get_session(session.id, "u1").completed


def test_public_question_hides_answer(store):
    _, q = store.create_session("u1", "dsa", "sorting", Difficulty.EASY, 3)
    public = q.to_public("Sorting")
    assert set(public) == {"id", "topic", "difficulty", "question", "options"}
    assert public["topic"] == "Sorting"


def test_finalize_is_idempotent(store, tracker):
    session, q = store.create_session("u1", "dsa", "arrays", Difficulty.EASY, 3)
    answer(store, session.id, q.id, correct=False)

    first = store.finalize_quiz(session.id, "u1", 30)
    second = store.finalize_quiz(session.id, "u1", 999)

    assert first == second
    assert first.score_percent == 0
    assert first.updated_mastery.delta == 1
    m = tracker.get_topic("u1", "arrays")
    assert m.mastery == 1
    assert m.sessions_count == 1
    assert len(store.get_history("u1")) == 1


def test_score_rounding_and_delta(store):
    session, q = store.create_session("u1", "dsa", "arrays", Difficulty.EASY, 3)
    r = answer(store, session.id, q.id, correct=True)
    r = answer(store, session.id, r.next_question["id"], correct=True)
    answer(store, session.id, r.next_question["id"], correct=False)
    final = store.finalize_quiz(session.id, "u1", 0)
    assert final.score_percent == 67
    assert final.updated_mastery.delta == 5  # round(0.67 * 8) = round(5.36)


@pytest.mark.parametrize("spent", [float("inf"), float("-inf"), float("nan"), -12.0])
def test_unusable_time_spent_counts_as_zero(store, tracker, spent):
    session, q = store.create_session("u1", "dsa", "arrays", Difficulty.EASY, 3)
    answer(store, session.id, q.id, correct=True)

    first = store.finalize_quiz(session.id, "u1", spent)
    again = store.finalize_quiz(session.id, "u1", 10)

    assert first.time_spent_seconds == 0
    assert again == first
    m = tracker.get_topic("u1", "arrays")
    assert m.mastery == 8
    assert m.sessions_count == 1
    assert len(store.get_history("u1")) == 1


def test_zero_questions_answered_scores_zero(store):
    session, _ = store.create_session("u1", "dsa", "arrays", Difficulty.EASY, 3)
    final = store.finalize_quiz(session.id, "u1", None)
    assert final.score_percent == 0
    assert final.total_questions == 0
    assert final.updated_mastery.delta == 1


def test_history_newest_first(store, clock):
    ids = []
    for topic in ("arrays", "graphs"):
        session, _ = store.create_session("u1", "dsa", topic, Difficulty.EASY, 3)
        store.finalize_quiz(session.id, "u1", 5)
        ids.append(session.id)
        clock.advance(minutes=1)
    assert [e.id for e in store.get_history("u1")] == list(reversed(ids))
    assert store.get_history("u2") == []


class TestErrors:

    def test_unknown_session(self, store):
        with pytest.raises(SessionNotFound):
            store.submit_answer_and_advance("missing", "u1", "arrays-e-1", 0)
        with pytest.raises(SessionNotFound):
            store.finalize_quiz("missing", "u1", 0)

    def test_other_user_forbidden(self, store):
        session, q = store.create_session("u1", "dsa", "arrays", Difficulty.EASY, 3)
        with pytest.raises(QuizForbidden):
            store.submit_answer_and_advance(session.id, "intruder", q.id, 0)
        with pytest.raises(QuizForbidden):
            store.get_session(session.id, "intruder")

    def test_unknown_question(self, store):
        session, _ = store.create_session("u1", "dsa", "arrays", Difficulty.EASY, 3)
        with pytest.raises(QuestionNotFound):
            store.submit_answer_and_advance(session.id, "u1", "nope", 0)

    def test_question_from_other_topic(self, store):
        session, _ = store.create_session("u1", "dsa", "arrays", Difficulty.EASY, 3)
        with pytest.raises(QuestionMismatch):
            store.submit_answer_and_advance(session.id, "u1", "trees-e-1", 0)

    def test_question_not_currently_asked(self, store):
        session, q = store.create_session("u1", "dsa", "arrays", Difficulty.EASY, 3)
        other = next(x for x in ("arrays-e-1", "arrays-e-2", "arrays-e-3") if x != q.id)
        with pytest.raises(QuestionMismatch):
            store.submit_answer_and_advance(session.id, "u1", other, 0)
        assert store.get_session(session.id, "u1").items == []

    def test_topic_without_questions(self, store):
        with pytest.raises(NoQuestionsAvailable):
            store.create_session("u1", "dsa", "Quantum Computing", Difficulty.EASY, 5)

    def test_answer_after_finalize(self, store):
        session, q = store.create_session("u1", "dsa", "arrays", Difficulty.EASY, 3)
        store.finalize_quiz(session.id, "u1", 1)
        with pytest.raises(SessionAlreadyCompleted):
            store.submit_answer_and_advance(session.id, "u1", q.id, 0)


def test_ai_pool_is_used_exclusively(store):
    pool = _pool("heaps", [Difficulty.MEDIUM] * 3)
    session, q = store.create_session("u1", "dsa", "Heaps", Difficulty.MEDIUM, 3, questions=pool)
    assert session.use_ai
    assert q.id.startswith("ai-t-")
    seen = {q.id}
    result = answer(store, session.id, q.id)
    while result.next_question:
        seen.add(result.next_question["id"])
        result = answer(store, session.id, result.next_question["id"])
    assert seen == {p.id for p in pool}
    assert result.progress == (3, 3)


def test_ai_session_rejects_bank_question(store):
    pool = _pool("arrays", [Difficulty.EASY])
    session, _ = store.create_session("u1", "dsa", "arrays", Difficulty.EASY, 3, questions=pool)
    with pytest.raises(QuestionNotFound):
        store.submit_answer_and_advance(session.id, "u1", "arrays-e-1", 0)


def test_evict_stale_sessions(store, clock):
    old, _ = store.create_session("u1", "dsa", "arrays", Difficulty.EASY, 3)
    clock.advance(minutes=90)
    fresh, _ = store.create_session("u1", "dsa", "graphs", Difficulty.EASY, 3)
    clock.advance(minutes=45)
    assert store.evict_stale(timedelta(minutes=120)) == 1
    with pytest.raises(SessionNotFound):
        store.get_session(old.id, "u1")
    assert store.get_session(fresh.id, "u1")


def test_session_snapshot_round_trip(store):
    session, q = store.create_session("u1", "dsa", "arrays", Difficulty.EASY, 3)
    answer(store, session.id, q.id)
    store.finalize_quiz(session.id, "u1", 12)
    live = store.get_session(session.id, "u1")
    assert QuizSession.from_dict(live.to_dict()) == live
