from __future__ import annotations
import asyncio
from enum import Enum
from typing import Any, Optional

import httpx


class ProviderErrorKind(str, Enum):
	INVALID_KEY = "INVALID_KEY"
	QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
	RATE_LIMIT = "RATE_LIMIT"
	TIMEOUT = "TIMEOUT"
	NETWORK_ERROR = "NETWORK_ERROR"
	UNSUPPORTED_MODEL = "UNSUPPORTED_MODEL"
	INVALID_REQUEST = "INVALID_REQUEST"
	CONCURRENT_REQUEST = "CONCURRENT_REQUEST"
	UNKNOWN_ERROR = "UNKNOWN_ERROR"


class ProviderHTTPError(Exception):
	"""Non-2xx answer from a provider, carrying only the status and the provider's own message."""

	def __init__(self, status_code: int, message: str = "") -> None:
		super().__init__(message or f"HTTP {status_code}")
		self.status_code = status_code
		self.message = message


def _provider_error_message(response: httpx.Response) -> str:
	try:
		data = response.json()
	except ValueError:
		return ""
	if isinstance(data, list) and data:
		data = data[0]
	if not isinstance(data, dict):
		return ""
	err = data.get("error")
	if isinstance(err, dict):
		return str(err.get("message") or "")
	if isinstance(err, str):
		return err
	return str(data.get("message") or "")


def raise_for_provider_status(response: httpx.Response) -> None:
	# httpx.HTTPStatusError embeds the request URL in its text; use the response body instead
	if response.is_success:
		return
	raise ProviderHTTPError(response.status_code, _provider_error_message(response))


def _status_of(error: Any) -> Optional[int]:
	status = getattr(error, "status_code", None)
	if isinstance(status, int):
		return status
	response = getattr(error, "response", None)
	status = getattr(response, "status_code", None)
	return status if isinstance(status, int) else None


def _message_of(error: Any) -> str:
	if isinstance(error, ProviderHTTPError):
		return error.message.lower()
	if isinstance(error, httpx.HTTPStatusError):
		return _provider_error_message(error.response).lower()
	return str(error or "").lower()


def classify_error(error: BaseException) -> ProviderErrorKind:
	"""Map a raw provider failure onto the closed taxonomy. First matching rule wins."""
	message = _message_of(error)

	if isinstance(error, (asyncio.TimeoutError, httpx.TimeoutException)) or "timeout" in message:
		return ProviderErrorKind.TIMEOUT

	# DNS and refused connections surface as OSError subclasses when not wrapped by httpx
	if isinstance(error, (httpx.NetworkError, OSError)):
		return ProviderErrorKind.NETWORK_ERROR

	status = _status_of(error)

	if status in (401, 403) or "invalid" in message or "unauthorized" in message:
		return ProviderErrorKind.INVALID_KEY

	if status == 429 or "rate limit" in message or "quota" in message:
		return ProviderErrorKind.QUOTA_EXCEEDED

	if status == 400 or "model" in message or "not found" in message:
		return ProviderErrorKind.INVALID_REQUEST

	if status == 409 or "concurrent" in message:
		return ProviderErrorKind.CONCURRENT_REQUEST

	return ProviderErrorKind.UNKNOWN_ERROR


def friendly_error(kind: ProviderErrorKind, provider: str) -> str:
	if kind is ProviderErrorKind.INVALID_KEY:
		return f"Invalid API key for {provider}. Please verify your key is correct and try again."
	if kind is ProviderErrorKind.QUOTA_EXCEEDED:
		return f"Quota exceeded for {provider}. Please check your usage limits or try another provider."
	if kind is ProviderErrorKind.RATE_LIMIT:
		return f"Rate limit reached for {provider}. Please wait a moment before trying again."
	if kind is ProviderErrorKind.TIMEOUT:
		return f"Request timed out for {provider}. Please try again."
	if kind is ProviderErrorKind.NETWORK_ERROR:
		return f"Network error connecting to {provider}. Please check your internet connection."
	if kind is ProviderErrorKind.UNSUPPORTED_MODEL:
		return f"Unsupported model for {provider}. Please check your configuration."
	if kind is ProviderErrorKind.INVALID_REQUEST:
		return f"Invalid request format for {provider}. Please try rephrasing your question."
	if kind is ProviderErrorKind.CONCURRENT_REQUEST:
		return f"Too many concurrent requests to {provider}. Please wait and try again."
	return f"An error occurred with {provider}. Please try again or use another provider."


# ---- Quiz engine failures ----

class QuizError(Exception):
	http_status = 400

	def __init__(self, message: str) -> None:
		super().__init__(message)
		self.message = message


class SessionNotFound(QuizError):
	http_status = 404


class QuizForbidden(QuizError):
	http_status = 403


class SessionAlreadyCompleted(QuizError):
	http_status = 409


class QuestionNotFound(QuizError):
	http_status = 404


class QuestionMismatch(QuizError):
	http_status = 400


class NoQuestionsAvailable(QuizError):
	http_status = 404


class InvalidQuestion(ValueError):
	pass
