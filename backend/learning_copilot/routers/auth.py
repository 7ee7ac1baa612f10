from datetime import datetime, timedelta, timezone
from typing import Optional
import re
import uuid

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from pydantic import BaseModel, Field

from ..settings import settings

router = APIRouter(prefix="/auth", tags=["auth"])

# auto_error=False: a missing token is not an error, the request runs as the default user
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/guest", auto_error=False)

_USERNAME = re.compile(r"^[A-Za-z0-9_.-]{1,128}$")


class Token(BaseModel):
	access_token: str
	token_type: str = "bearer"


class User(BaseModel):
	username: str


class GuestRequest(BaseModel):
	username: Optional[str] = Field(default=None, max_length=128)


def _resolve_expiry(expires_delta: Optional[timedelta]) -> datetime:
	"""Return a finite JWT expiry timestamp.

	Uses ``expires_delta`` when given, otherwise the configured lifetime, and falls back to
	30 days when that is unset or non-positive.
	"""
	delta = expires_delta
	if delta is None:
		minutes = getattr(settings, "access_token_expire_minutes", None)
		if isinstance(minutes, int) and minutes > 0:
			delta = timedelta(minutes=minutes)
		else:
			delta = timedelta(days=30)
	now = datetime.now(timezone.utc)
	try:
		return now + delta
	except OverflowError:
		return datetime.max.replace(tzinfo=timezone.utc)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
	to_encode = data.copy()
	to_encode.update({"exp": _resolve_expiry(expires_delta)})
	return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


@router.post("/guest", response_model=Token)
async def guest_login(req: GuestRequest):
	username = (req.username or "").strip() or f"guest-{uuid.uuid4().hex[:8]}"
	if not _USERNAME.match(username):
		raise HTTPException(status_code=400, detail="username may only contain letters, digits, '.', '_' and '-'")
	return Token(access_token=create_access_token({"sub": username, "jti": uuid.uuid4().hex}))


def get_current_user(token: Optional[str] = Depends(oauth2_scheme)) -> User:
	if not token:
		return User(username=settings.default_user_id)
	credentials_exception = HTTPException(status_code=401, detail="Could not validate credentials")
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
	except JWTError:
		raise credentials_exception
	username: Optional[str] = payload.get("sub")
	if not username:
		raise credentials_exception
	return User(username=username)


@router.get("/me", response_model=User)
async def me(user: User = Depends(get_current_user)):
	return user
