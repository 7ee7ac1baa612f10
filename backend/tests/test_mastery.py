import random

import pytest

from learning_copilot.mastery import (
    MasteryTracker,
    NoActiveTimer,
    StudyTimer,
    TimerAlreadyRunning,
    normalize_topic_key,
    round_half_up,
)


@pytest.mark.parametrize("topic,key", [
    ("Arrays", "arrays"),
    ("  Linked   Lists ", "linked-lists"),
    ("Signals & Systems", "signals-&-systems"),
    ("dynamic\tprogramming", "dynamic-programming"),
])
def test_normalize_topic_key(topic, key):
    assert normalize_topic_key(topic) == key


def test_round_half_up_matches_browser_rounding():
    assert round_half_up(2.5) == 3
    assert round_half_up(0.5) == 1
    assert round_half_up(66.666) == 67
    assert round_half_up(-2.5) == -2


def test_first_touch_creates_record(clock):
    tracker = MasteryTracker(clock=clock)
    m = tracker.update_topic_mastery("u1", "Linked Lists", 5)
    assert m.topic == "linked-lists"
    assert m.mastery == 5
    assert m.sessions_count == 1
    assert m.last_studied == clock.now
    assert tracker.get_topic("u1", "linked lists") == m


def test_mastery_stays_in_bounds_for_any_sequence(clock):
    tracker = MasteryTracker(clock=clock)
    rnd = random.Random(7)
    previous = 0
    for _ in range(500):
        m = tracker.update_topic_mastery("u1", "graphs", rnd.randint(-50, 50))
        assert 0 <= m.mastery <= 100
        assert abs(m.mastery - previous) <= 10
        previous = m.mastery


def test_users_are_isolated(clock):
    tracker = MasteryTracker(clock=clock)
    tracker.update_topic_mastery("u1", "trees", 8)
    assert tracker.get_topic("u2", "trees") is None
    assert tracker.list_user_mastery("u2") == []


def test_practice_update(clock):
    tracker = MasteryTracker(clock=clock)
    m, improvement = tracker.record_practice("u1", "Sorting", 90)
    assert improvement == 5  # round(4.5) half-up
    assert m.mastery == 5


class TestStudyTimer:

    def test_start_status_stop(self, clock):
        tracker = MasteryTracker(clock=clock)
        timer = StudyTimer(tracker, clock=clock)
        timer.start("u1", "Trees", "dsa")
        clock.advance(minutes=25, seconds=40)

        active, elapsed = timer.status("u1")
        assert active.topic == "Trees"
        assert elapsed == 25 * 60 + 40

        session, increase, mastery = timer.stop("u1", accuracy=85, focus_score=70)
        assert session.duration_minutes == 26
        assert increase == 10  # min(10, round(8.5) + 2)
        assert mastery.topic == "trees"
        assert mastery.mastery == 10
        assert timer.status("u1") is None
        assert timer.sessions_for("u1") == [session]

    def test_low_accuracy_increase(self, clock):
        timer = StudyTimer(MasteryTracker(clock=clock), clock=clock)
        timer.start("u1", "graphs", "dsa")
        _, increase, _ = timer.stop("u1", accuracy=30, focus_score=50)
        assert increase == 5

    def test_one_timer_per_user(self, clock):
        timer = StudyTimer(MasteryTracker(clock=clock), clock=clock)
        timer.start("u1", "graphs", "dsa")
        with pytest.raises(TimerAlreadyRunning):
            timer.start("u1", "trees", "dsa")
        timer.start("u2", "trees", "dsa")

    def test_stop_without_timer(self, clock):
        timer = StudyTimer(MasteryTracker(clock=clock), clock=clock)
        with pytest.raises(NoActiveTimer):
            timer.stop("u1", 50, 50)
