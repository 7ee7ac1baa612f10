from __future__ import annotations
import logging
from dataclasses import replace
from typing import Dict, List, Optional, Sequence

import httpx

from .errors import ProviderErrorKind
from .keys import ApiKeyCredential, ProviderId, is_well_formed
from .provider_clients import ProviderAdapter, ProviderAttempt, ProviderRequest, ProviderResponse, build_adapters
from .settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

# Cost/quality preference; callers cannot reorder it.
PROVIDER_PRIORITY = (ProviderId.GEMINI, ProviderId.GROQ, ProviderId.CEREBRAS, ProviderId.OPENROUTER)

NO_VALID_KEYS_MESSAGE = "No valid API keys provided. Please check your keys and try again."
ALL_PROVIDERS_FAILED_MESSAGE = "All AI providers failed. Please check your API keys and quota, then try again."


class AIProviderGateway:
	"""Sends one logical request through the fixed provider chain.

	Keys are tried one at a time, never concurrently: the first success wins, an
	INVALID_KEY answer skips the rest of that provider's keys, any other failure moves
	on to the next key and then the next provider.
	"""

	def __init__(
		self,
		*,
		adapters: Optional[Dict[ProviderId, ProviderAdapter]] = None,
		client: Optional[httpx.AsyncClient] = None,
		cfg: Optional[Settings] = None,
	) -> None:
		cfg = cfg or default_settings
		self._adapters = adapters if adapters is not None else build_adapters(cfg)
		self._client = client or httpx.AsyncClient(timeout=cfg.quiz_generation_timeout_seconds)

	def usable_keys(self, candidate_keys: Sequence[ApiKeyCredential]) -> List[ApiKeyCredential]:
		return [
			c for c in candidate_keys
			if c.provider in self._adapters and is_well_formed(c.key, c.provider)
		]

	async def call(self, request: ProviderRequest, candidate_keys: Sequence[ApiKeyCredential]) -> ProviderResponse:
		valid = self.usable_keys(candidate_keys)
		if not valid:
			return ProviderResponse.failure(ProviderId.UNKNOWN, ProviderErrorKind.INVALID_KEY, NO_VALID_KEYS_MESSAGE)

		by_provider: Dict[ProviderId, List[ApiKeyCredential]] = {}
		for cred in valid:
			by_provider.setdefault(cred.provider, []).append(cred)

		attempts: List[ProviderAttempt] = []
		for provider in PROVIDER_PRIORITY:
			keys = by_provider.get(provider)
			if not keys:
				continue
			adapter = self._adapters[provider]
			for index, cred in enumerate(keys):
				response = await adapter.complete(self._client, request.for_key(cred))
				attempts.append(ProviderAttempt(provider=provider, key_id=cred.key_id, error_kind=response.error_kind))
				if response.success:
					logger.info("provider %s answered (key #%d)", provider.value, index + 1)
					return replace(response, attempts=tuple(attempts))
				if response.error_kind is ProviderErrorKind.INVALID_KEY:
					logger.info("provider %s rejected key #%d; skipping its remaining keys", provider.value, index + 1)
					break

		logger.warning("all providers failed after %d attempt(s)", len(attempts))
		failed = ProviderResponse.failure(ProviderId.UNKNOWN, ProviderErrorKind.UNKNOWN_ERROR, ALL_PROVIDERS_FAILED_MESSAGE)
		return replace(failed, attempts=tuple(attempts))

	async def aclose(self) -> None:
		await self._client.aclose()
