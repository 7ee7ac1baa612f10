from __future__ import annotations
import secrets
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field

from ..dependencies import get_key_manager
from ..key_manager import ApiKeyManager
from ..keys import ApiKeyCredential, KeyValidationError, validate_api_keys
from ..settings import settings


router = APIRouter(prefix="/keys", tags=["keys"])


class ApiKeyIn(BaseModel):
    key: str = Field(default="", max_length=1000)
    provider: str = ""


class NamedKeyIn(BaseModel):
    name: str = Field(default="key", max_length=100)
    key: str = Field(default="", max_length=1000)


class KeySessionRequest(BaseModel):
    keys: List[NamedKeyIn] = Field(default_factory=list, max_length=10)


def resolve_credentials(
    api_keys: Optional[List[Any]],
    key_session_id: Optional[str],
    key_manager: ApiKeyManager,
) -> List[ApiKeyCredential]:
    """Credentials for one request: a stored key session wins over inline keys."""
    if key_session_id:
        if not key_manager.has_session(key_session_id):
            raise HTTPException(status_code=400, detail="Key session not found or expired")
        creds = key_manager.credentials(key_session_id)
        if not creds:
            raise HTTPException(status_code=400, detail="No usable API keys remain in this key session")
        return creds
    try:
        return validate_api_keys(api_keys)
    except KeyValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/session")
async def create_key_session(req: KeySessionRequest, key_manager: ApiKeyManager = Depends(get_key_manager)):
    if not req.keys:
        raise HTTPException(status_code=400, detail="At least one API key is required")
    session_id = secrets.token_hex(16)
    result = key_manager.initialize_session(session_id, [(k.name, k.key) for k in req.keys])
    if not result.success:
        raise HTTPException(status_code=400, detail={"error": "No valid API keys provided", "errors": result.errors})
    return {
        "sessionId": session_id,
        "validKeys": result.valid_keys,
        "errors": result.errors,
        "expiresInMinutes": settings.key_session_ttl_minutes,
    }


@router.delete("/session/{session_id}", status_code=204)
async def delete_key_session(session_id: str, key_manager: ApiKeyManager = Depends(get_key_manager)):
    key_manager.clear_session(session_id)
    return Response(status_code=204)
