from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional, Sequence

from fastapi import APIRouter, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, ConfigDict, Field

from ..dependencies import get_key_manager, get_quiz_generator, get_quiz_store
from ..errors import QuizError
from ..key_manager import ApiKeyManager
from ..prompts import COURSES
from ..provider_clients import ProviderAttempt
from ..question_bank import Difficulty, QuizQuestion
from ..quiz_generator import QuizGenerationError, QuizGenerator
from ..quiz_store import MAX_QUESTIONS, MIN_QUESTIONS, QuizAttemptItem, QuizHistoryEntry, QuizResult, QuizSessionStore
from .auth import User, get_current_user
from .keys import ApiKeyIn, resolve_credentials


router = APIRouter(prefix="/quiz", tags=["quiz"])
logger = logging.getLogger(__name__)


class StartRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    topic: Optional[str] = Field(default=None, max_length=200)
    difficulty: Optional[str] = None
    question_count: Optional[int] = Field(default=5, alias="questionCount")
    course_id: Optional[str] = Field(default="general", alias="courseId", max_length=100)
    use_ai: bool = Field(default=False, alias="useAI")
    api_keys: Optional[List[ApiKeyIn]] = Field(default=None, alias="apiKeys")
    key_session_id: Optional[str] = Field(default=None, alias="keySessionId")
    subject: Optional[str] = Field(default=None, max_length=200)


class AnswerRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    question_id: str = Field(alias="questionId")
    selected_index: Optional[int] = Field(default=None, alias="selectedIndex")


class FinishRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    time_spent_seconds: Optional[float] = Field(default=0, alias="timeSpentSeconds", ge=0, allow_inf_nan=False)


class GenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    subject: Optional[str] = Field(default=None, max_length=200)
    topic: Optional[str] = Field(default=None, max_length=200)
    difficulty: Optional[str] = None
    count: int = 5
    api_keys: Optional[List[ApiKeyIn]] = Field(default=None, alias="apiKeys")
    key_session_id: Optional[str] = Field(default=None, alias="keySessionId")


def _quiz_http_error(err: QuizError) -> HTTPException:
    return HTTPException(status_code=err.http_status, detail=err.message)


def _generation_http_error(err: QuizGenerationError) -> HTTPException:
    return HTTPException(
        status_code=err.http_status,
        detail={"error": err.message, "code": err.code, "retryable": err.retryable},
    )


def _record_key_outcomes(key_manager: ApiKeyManager, key_session_id: Optional[str], attempts: Sequence[ProviderAttempt]) -> None:
    if key_session_id:
        key_manager.record_attempts(key_session_id, attempts)


def _parse_difficulty(value: Optional[str]) -> Difficulty:
    try:
        return Difficulty((value or "").strip().lower())
    except ValueError:
        raise HTTPException(status_code=400, detail="Difficulty must be one of: easy, medium, hard")


def _item_out(item: QuizAttemptItem) -> Dict[str, Any]:
    return {
        "questionId": item.question_id,
        "difficulty": item.difficulty.value,
        "selectedIndex": item.selected_index,
        "correct": item.correct,
        "correctIndex": item.correct_index,
        "explanation": item.explanation,
    }


def _history_out(entry: QuizHistoryEntry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "userId": entry.user_id,
        "courseId": entry.course_id,
        "topic": entry.topic,
        "topicKey": entry.topic_key,
        "baseDifficulty": entry.base_difficulty.value,
        "scorePercent": entry.score_percent,
        "correctCount": entry.correct_count,
        "totalQuestions": entry.total_questions,
        "timeSpentSeconds": entry.time_spent_seconds,
        "createdAt": entry.created_at.isoformat(),
    }


def _result_out(result: QuizResult) -> Dict[str, Any]:
    return {
        "scorePercent": result.score_percent,
        "correctCount": result.correct_count,
        "totalQuestions": result.total_questions,
        "timeSpentSeconds": result.time_spent_seconds,
        "items": [_item_out(i) for i in result.items],
        "updatedMastery": {
            "topicKey": result.updated_mastery.topic_key,
            "newMastery": result.updated_mastery.new_mastery,
            "delta": result.updated_mastery.delta,
        },
        "historyEntry": _history_out(result.history_entry),
    }


def _generated_out(q: QuizQuestion) -> Dict[str, Any]:
    return {
        "id": q.id,
        "topicKey": q.topic_key,
        "difficulty": q.difficulty.value,
        "question": q.question,
        "options": list(q.options),
        "correctIndex": q.correct_index,
        "explanation": q.explanation,
    }


@router.post("/start")
async def start_quiz(
    req: StartRequest,
    user: User = Depends(get_current_user),
    store: QuizSessionStore = Depends(get_quiz_store),
    generator: QuizGenerator = Depends(get_quiz_generator),
    key_manager: ApiKeyManager = Depends(get_key_manager),
):
    topic = (req.topic or "").strip()
    if not topic or not req.difficulty:
        raise HTTPException(status_code=400, detail="Missing required fields: topic, difficulty")
    difficulty = _parse_difficulty(req.difficulty)
    course_id = (req.course_id or "general").strip() or "general"
    count = req.question_count or 5

    questions: Optional[List[QuizQuestion]] = None
    if req.use_ai:
        if not req.api_keys and not req.key_session_id:
            raise HTTPException(status_code=400, detail="Valid API keys required for AI-generated quizzes")
        credentials = resolve_credentials(req.api_keys, req.key_session_id, key_manager)
        course = COURSES.get(course_id)
        subject = req.subject or (course.name if course else course_id)
        try:
            generated = await generator.generate(
                subject, topic, difficulty, max(MIN_QUESTIONS, min(MAX_QUESTIONS, count)), credentials, user.username
            )
        except QuizGenerationError as e:
            _record_key_outcomes(key_manager, req.key_session_id, e.attempts)
            raise _generation_http_error(e)
        _record_key_outcomes(key_manager, req.key_session_id, generated.attempts)
        questions = generated.questions

    # repository I/O (sqlite under QUIZ_STORE_BACKEND=sql) stays off the event loop
    try:
        session, first = await run_in_threadpool(
            store.create_session, user.username, course_id, topic, difficulty, count, questions=questions
        )
    except QuizError as e:
        raise _quiz_http_error(e)

    return {
        "sessionId": session.id,
        "topic": session.topic,
        "baseDifficulty": session.base_difficulty.value,
        "totalQuestions": session.target_count,
        "question": first.to_public(session.topic),
        "progress": {"current": 0, "total": session.target_count},
        "useAI": session.use_ai,
    }


@router.post("/answer")
def submit_answer(
    req: AnswerRequest,
    user: User = Depends(get_current_user),
    store: QuizSessionStore = Depends(get_quiz_store),
):
    try:
        result = store.submit_answer_and_advance(req.session_id, user.username, req.question_id, req.selected_index)
    except QuizError as e:
        raise _quiz_http_error(e)
    current, total = result.progress
    return {
        "correct": result.correct,
        "correctIndex": result.correct_index,
        "explanation": result.explanation,
        "nextQuestion": result.next_question,
        "progress": {"current": current, "total": total},
        "updatedDifficulty": result.updated_difficulty.value,
        "endedEarly": result.ended_early,
    }


@router.post("/finish")
def finish_quiz(
    req: FinishRequest,
    user: User = Depends(get_current_user),
    store: QuizSessionStore = Depends(get_quiz_store),
):
    try:
        result = store.finalize_quiz(req.session_id, user.username, req.time_spent_seconds)
    except QuizError as e:
        raise _quiz_http_error(e)
    return _result_out(result)


@router.get("/history")
def quiz_history(user: User = Depends(get_current_user), store: QuizSessionStore = Depends(get_quiz_store)):
    return {"quizzes": [_history_out(e) for e in store.get_history(user.username)]}


@router.get("/session/{session_id}")
def get_session(session_id: str, user: User = Depends(get_current_user), store: QuizSessionStore = Depends(get_quiz_store)):
    try:
        session = store.get_session(session_id, user.username)
    except QuizError as e:
        raise _quiz_http_error(e)
    current, total = session.progress
    return {
        "sessionId": session.id,
        "topic": session.topic,
        "baseDifficulty": session.base_difficulty.value,
        "currentDifficulty": session.current_difficulty.value,
        "progress": {"current": current, "total": total},
        "completed": session.completed,
        "useAI": session.use_ai,
    }


@router.post("/generate")
async def generate_quiz(
    req: GenerateRequest,
    user: User = Depends(get_current_user),
    generator: QuizGenerator = Depends(get_quiz_generator),
    key_manager: ApiKeyManager = Depends(get_key_manager),
):
    if not req.subject or not req.topic or not req.difficulty:
        raise HTTPException(status_code=400, detail="Missing required fields: subject, topic, difficulty")
    if not req.api_keys and not req.key_session_id:
        raise HTTPException(status_code=400, detail="Valid API keys required for AI-generated quizzes")
    credentials = resolve_credentials(req.api_keys, req.key_session_id, key_manager)
    try:
        result = await generator.generate(req.subject, req.topic, req.difficulty, req.count, credentials, user.username)
    except QuizGenerationError as e:
        logger.info("quiz generation failed for %s: %s", user.username, e.code)
        _record_key_outcomes(key_manager, req.key_session_id, e.attempts)
        raise _generation_http_error(e)
    _record_key_outcomes(key_manager, req.key_session_id, result.attempts)
    return {
        "questions": [_generated_out(q) for q in result.questions],
        "subject": req.subject,
        "topic": req.topic,
        "difficulty": req.difficulty,
        "count": len(result.questions),
        "requested": result.requested,
        "shortfall": result.shortfall,
        "generated": True,
        "provider": result.provider.value,
        "generationTime": result.generation_time_ms,
        "success": True,
    }
