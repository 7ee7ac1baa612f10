from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from ..dependencies import get_mastery_tracker, get_study_timer
from ..mastery import MasteryTracker, NoActiveTimer, StudyTimer, TimerAlreadyRunning, TopicMastery
from .auth import User, get_current_user


router = APIRouter(prefix="/analytics", tags=["analytics"])


class TimerStartRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    topic: Optional[str] = Field(default=None, max_length=200)
    course_id: Optional[str] = Field(default=None, alias="courseId", max_length=100)


class TimerStopRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    accuracy: Optional[float] = Field(default=None, ge=0, le=100)
    focus_score: Optional[float] = Field(default=None, alias="focusScore", ge=0, le=100)


class MasteryUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    topic: Optional[str] = Field(default=None, max_length=200)
    score: Optional[float] = Field(default=None, ge=0, le=100)
    time_spent: Optional[float] = Field(default=None, alias="timeSpent")


def _mastery_out(m: TopicMastery) -> dict:
    return {
        "topic": m.topic,
        "mastery": m.mastery,
        "sessionsCount": m.sessions_count,
        "lastStudied": m.last_studied.isoformat(),
    }


@router.post("/timer/start")
def start_timer(req: TimerStartRequest, user: User = Depends(get_current_user), timer: StudyTimer = Depends(get_study_timer)):
    if not req.topic or not req.course_id:
        raise HTTPException(status_code=400, detail="Missing required fields: topic, courseId")
    try:
        active = timer.start(user.username, req.topic, req.course_id)
    except TimerAlreadyRunning as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"message": "Timer started", "startTime": active.start_time.isoformat(), "topic": active.topic}


@router.post("/timer/stop")
def stop_timer(req: TimerStopRequest, user: User = Depends(get_current_user), timer: StudyTimer = Depends(get_study_timer)):
    if req.accuracy is None or req.focus_score is None:
        raise HTTPException(status_code=400, detail="Missing required fields: accuracy, focusScore")
    try:
        session, increase, mastery = timer.stop(user.username, req.accuracy, req.focus_score)
    except NoActiveTimer as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "message": "Session completed",
        "session": {
            "id": session.id,
            "courseId": session.course_id,
            "topic": session.topic,
            "startTime": session.start_time.isoformat(),
            "endTime": session.end_time.isoformat(),
            "duration": session.duration_minutes,
            "accuracy": session.accuracy,
            "focusScore": session.focus_score,
        },
        "duration": session.duration_minutes,
        "masteryIncrease": increase,
        "updatedMastery": mastery.mastery,
    }


@router.get("/timer/status")
def timer_status(user: User = Depends(get_current_user), timer: StudyTimer = Depends(get_study_timer)):
    status = timer.status(user.username)
    if status is None:
        return {"active": False}
    active, elapsed = status
    return {
        "active": True,
        "startTime": active.start_time.isoformat(),
        "topic": active.topic,
        "courseId": active.course_id,
        "elapsedSeconds": elapsed,
    }


@router.post("/mastery/update")
def update_mastery(req: MasteryUpdateRequest, user: User = Depends(get_current_user), tracker: MasteryTracker = Depends(get_mastery_tracker)):
    if not req.topic or req.score is None:
        raise HTTPException(status_code=400, detail="Missing required fields: topic, score")
    mastery, improvement = tracker.record_practice(user.username, req.topic, req.score)
    return {
        "topic": mastery.topic,
        "newMastery": mastery.mastery,
        "improvement": improvement,
        "message": "Mastery updated successfully",
    }


@router.get("/mastery")
def list_mastery(user: User = Depends(get_current_user), tracker: MasteryTracker = Depends(get_mastery_tracker)):
    return {"mastery": [_mastery_out(m) for m in tracker.list_user_mastery(user.username)]}
