from __future__ import annotations
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from ..conversations import ConversationStore
from ..dependencies import get_conversations, get_gateway, get_key_manager
from ..errors import ProviderErrorKind
from ..gateway import AIProviderGateway
from ..key_manager import ApiKeyManager
from ..prompts import build_system_prompt
from ..provider_clients import ProviderRequest
from ..settings import settings
from ..validation import clean_course_id, clean_message
from .auth import User, get_current_user
from .keys import ApiKeyIn, resolve_credentials


router = APIRouter(prefix="/chat", tags=["chat"])
logger = logging.getLogger(__name__)


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: Optional[str] = None
    course_id: Optional[str] = Field(default="dsa", alias="courseId")
    conversation_id: Optional[str] = Field(default=None, alias="conversationId", max_length=200)
    api_keys: Optional[List[ApiKeyIn]] = Field(default=None, alias="apiKeys")
    key_session_id: Optional[str] = Field(default=None, alias="keySessionId", max_length=64)


@router.post("/message")
async def send_message(
    req: ChatRequest,
    user: User = Depends(get_current_user),
    gateway: AIProviderGateway = Depends(get_gateway),
    key_manager: ApiKeyManager = Depends(get_key_manager),
    conversations: ConversationStore = Depends(get_conversations),
):
    try:
        message = clean_message(req.message)
        course_id = clean_course_id(req.course_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not req.api_keys and not req.key_session_id:
        raise HTTPException(status_code=400, detail="At least one API key is required for chat functionality")
    credentials = resolve_credentials(req.api_keys, req.key_session_id, key_manager)

    conv_id = req.conversation_id or conversations.new_id(user.username)
    owner = conversations.owner(conv_id)
    if owner is not None and owner != user.username:
        raise HTTPException(status_code=403, detail="Conversation belongs to another user")

    request = ProviderRequest(
        message=message,
        system_prompt=build_system_prompt(course_id),
        history=conversations.history(conv_id),
        timeout_seconds=settings.chat_timeout_seconds,
    )
    result = await gateway.call(request, credentials)
    if req.key_session_id:
        key_manager.record_attempts(req.key_session_id, result.attempts)

    if not result.success:
        logger.info("chat request for course %s failed: %s", course_id, result.error_kind.value if result.error_kind else "?")
        # rejected before any provider was contacted
        if result.error_kind is ProviderErrorKind.INVALID_KEY and not result.attempts:
            raise HTTPException(status_code=400, detail=result.error_message)
        raise HTTPException(status_code=502, detail=result.error_message)

    conversations.append_exchange(conv_id, user.username, message, result.content or "")
    return {
        "response": result.content,
        "conversationId": conv_id,
        "provider": result.provider.value,
        "sanitized": result.was_sanitized,
        "source": "ai",
    }


@router.get("/conversations")
async def list_conversations(
    user: User = Depends(get_current_user),
    conversations: ConversationStore = Depends(get_conversations),
):
    return {
        "conversations": [
            {"conversationId": cid, "messageCount": count}
            for cid, count in conversations.list_for_user(user.username)
        ]
    }
