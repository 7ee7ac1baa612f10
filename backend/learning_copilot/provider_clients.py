from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .errors import ProviderErrorKind, classify_error, friendly_error, raise_for_provider_status
from .keys import ApiKeyCredential, ProviderId
from .sanitizer import sanitize_response
from .settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

HISTORY_WINDOW = 6
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2048


@dataclass(frozen=True)
class ChatTurn:
	role: str  # "user" | "assistant"
	content: str


@dataclass(frozen=True)
class ProviderRequest:
	message: str
	system_prompt: str
	history: Tuple[ChatTurn, ...] = ()
	api_key: str = field(default="", repr=False)
	provider: ProviderId = ProviderId.UNKNOWN
	timeout_seconds: float = 30.0

	def for_key(self, credential: ApiKeyCredential) -> "ProviderRequest":
		return replace(self, api_key=credential.key, provider=credential.provider)

	def recent_history(self) -> Tuple[ChatTurn, ...]:
		return tuple(self.history[-HISTORY_WINDOW:])


@dataclass(frozen=True)
class ProviderAttempt:
	provider: ProviderId
	key_id: Optional[str]
	error_kind: Optional[ProviderErrorKind]


@dataclass(frozen=True)
class ProviderResponse:
	success: bool
	content: Optional[str]
	provider: ProviderId
	error_kind: Optional[ProviderErrorKind] = None
	error_message: Optional[str] = None
	was_sanitized: bool = False
	attempts: Tuple[ProviderAttempt, ...] = ()

	@classmethod
	def failure(cls, provider: ProviderId, kind: ProviderErrorKind, message: Optional[str] = None) -> "ProviderResponse":
		return cls(
			success=False,
			content=None,
			provider=provider,
			error_kind=kind,
			error_message=message or friendly_error(kind, provider.value),
		)


class ProviderAdapter:
	"""One provider's wire call. Subclasses implement `_send`; `complete` never raises."""

	provider: ProviderId = ProviderId.UNKNOWN
	display_name: str = "provider"

	def __init__(self, *, model: str, temperature: float = DEFAULT_TEMPERATURE, max_tokens: int = DEFAULT_MAX_TOKENS) -> None:
		self.model = model
		self.temperature = temperature
		self.max_tokens = max_tokens

	async def _send(self, client: httpx.AsyncClient, request: ProviderRequest) -> Optional[str]:
		raise NotImplementedError

	async def complete(self, client: httpx.AsyncClient, request: ProviderRequest) -> ProviderResponse:
		try:
			raw = await asyncio.wait_for(self._send(client, request), timeout=request.timeout_seconds)
		except Exception as err:
			kind = classify_error(err)
			logger.warning("%s call failed: %s (%s)", self.display_name, kind.value, type(err).__name__)
			return ProviderResponse.failure(self.provider, kind, friendly_error(kind, self.display_name))
		if not raw or not raw.strip():
			return ProviderResponse.failure(self.provider, ProviderErrorKind.UNKNOWN_ERROR, f"Empty response from {self.display_name}")
		cleaned = sanitize_response(raw)
		return ProviderResponse(
			success=True,
			content=cleaned.content,
			provider=self.provider,
			was_sanitized=cleaned.was_sanitized,
		)


class GeminiAdapter(ProviderAdapter):
	provider = ProviderId.GEMINI
	display_name = "Gemini"

	def __init__(self, *, base_url: str, model: str, **kwargs: Any) -> None:
		super().__init__(model=model, **kwargs)
		self.base_url = f"{base_url.rstrip('/')}/models/{model}:generateContent"

	def build_contents(self, request: ProviderRequest) -> List[Dict[str, Any]]:
		# generateContent has no system role in the chat turns; prime it with a user/model exchange
		contents: List[Dict[str, Any]] = [
			{"role": "user", "parts": [{"text": request.system_prompt}]},
			{"role": "model", "parts": [{"text": "I understand. I will help you with your questions."}]},
		]
		for turn in request.recent_history():
			contents.append({"role": "user" if turn.role == "user" else "model", "parts": [{"text": turn.content}]})
		contents.append({"role": "user", "parts": [{"text": request.message}]})
		return contents

	async def _send(self, client: httpx.AsyncClient, request: ProviderRequest) -> Optional[str]:
		payload: Dict[str, Any] = {
			"contents": self.build_contents(request),
			"generationConfig": {
				"temperature": self.temperature,
				"topP": 0.95,
				"topK": 40,
				"maxOutputTokens": self.max_tokens,
			},
		}
		headers = {"x-goog-api-key": request.api_key, "Content-Type": "application/json"}
		r = await client.post(self.base_url, headers=headers, json=payload, timeout=request.timeout_seconds)
		raise_for_provider_status(r)
		data = r.json()
		try:
			parts = data["candidates"][0]["content"]["parts"]
		except (KeyError, IndexError, TypeError):
			return None
		return "".join(str(p.get("text", "")) for p in parts if isinstance(p, dict))


class OpenAICompatibleAdapter(ProviderAdapter):
	"""Chat-completions style providers (Groq, Cerebras, OpenRouter)."""

	def __init__(
		self,
		provider: ProviderId,
		display_name: str,
		*,
		base_url: str,
		model: str,
		extra_payload: Optional[Dict[str, Any]] = None,
		extra_headers: Optional[Dict[str, str]] = None,
		**kwargs: Any,
	) -> None:
		super().__init__(model=model, **kwargs)
		self.provider = provider
		self.display_name = display_name
		self.base_url = base_url
		self.extra_payload = dict(extra_payload or {})
		self.extra_headers = {k: v for k, v in (extra_headers or {}).items() if v}

	def build_messages(self, request: ProviderRequest) -> List[Dict[str, str]]:
		messages = [{"role": "system", "content": request.system_prompt}]
		for turn in request.recent_history():
			messages.append({"role": "user" if turn.role == "user" else "assistant", "content": turn.content})
		messages.append({"role": "user", "content": request.message})
		return messages

	async def _send(self, client: httpx.AsyncClient, request: ProviderRequest) -> Optional[str]:
		payload: Dict[str, Any] = {
			"model": self.model,
			"messages": self.build_messages(request),
			"temperature": self.temperature,
			"max_tokens": self.max_tokens,
			**self.extra_payload,
		}
		headers = {
			"Authorization": f"Bearer {request.api_key}",
			"Content-Type": "application/json",
			**self.extra_headers,
		}
		r = await client.post(self.base_url, headers=headers, json=payload, timeout=request.timeout_seconds)
		raise_for_provider_status(r)
		data = r.json()
		try:
			return data["choices"][0]["message"]["content"]
		except (KeyError, IndexError, TypeError):
			return None


def build_adapters(cfg: Optional[Settings] = None) -> Dict[ProviderId, ProviderAdapter]:
	cfg = cfg or default_settings
	return {
		ProviderId.GEMINI: GeminiAdapter(base_url=cfg.gemini_base_url, model=cfg.gemini_model),
		ProviderId.GROQ: OpenAICompatibleAdapter(
			ProviderId.GROQ,
			"Groq",
			base_url=cfg.groq_base_url,
			model=cfg.groq_model,
			extra_payload={"top_p": 0.95, "frequency_penalty": 0.2, "presence_penalty": 0.1},
		),
		ProviderId.CEREBRAS: OpenAICompatibleAdapter(
			ProviderId.CEREBRAS,
			"Cerebras",
			base_url=cfg.cerebras_base_url,
			model=cfg.cerebras_model,
		),
		ProviderId.OPENROUTER: OpenAICompatibleAdapter(
			ProviderId.OPENROUTER,
			"OpenRouter",
			base_url=cfg.openrouter_base_url,
			model=cfg.openrouter_model,
			extra_headers={"HTTP-Referer": cfg.openrouter_referer, "X-Title": cfg.openrouter_title},
		),
	}
