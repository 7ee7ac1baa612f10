from __future__ import annotations
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ProviderId(str, Enum):
	GEMINI = "gemini"
	GROQ = "groq"
	CEREBRAS = "cerebras"
	OPENROUTER = "openrouter"
	UNKNOWN = "unknown"


SUPPORTED_PROVIDERS = (ProviderId.GEMINI, ProviderId.GROQ, ProviderId.CEREBRAS, ProviderId.OPENROUTER)

MIN_KEY_LENGTH = 20
MAX_KEY_LENGTH = 500
MAX_KEYS_PER_REQUEST = 10

# Detection walks this mapping in order, so it doubles as the detection priority.
KEY_PATTERNS: Dict[ProviderId, re.Pattern] = {
	ProviderId.GEMINI: re.compile(r"^AIza[0-9A-Za-z_-]{35}$"),
	ProviderId.GROQ: re.compile(r"^gsk_[0-9A-Za-z]{32,}$"),
	ProviderId.CEREBRAS: re.compile(r"^[0-9A-Za-z]{40,}$"),
	ProviderId.OPENROUTER: re.compile(r"^sk-or-v1-[0-9A-Za-z]{32,}$"),
	ProviderId.UNKNOWN: re.compile(r"^.+$"),
}


class KeyValidationError(ValueError):
	pass


@dataclass(frozen=True)
class ApiKeyCredential:
	key: str = field(repr=False)
	provider: ProviderId
	# Set when the key came from the session key manager
	key_id: Optional[str] = None


@dataclass(frozen=True)
class KeyFormatResult:
	is_valid: bool
	provider: ProviderId
	error: Optional[str] = None


def _as_provider(provider: Any) -> Optional[ProviderId]:
	if isinstance(provider, ProviderId):
		return provider
	try:
		return ProviderId(str(provider).strip().lower())
	except ValueError:
		return None


def is_well_formed(key: Any, provider: Any) -> bool:
	"""Check a key against the length bounds and the provider's pattern. Never logs the key."""
	if not key or not isinstance(key, str):
		return False
	trimmed = key.strip()
	if len(trimmed) < MIN_KEY_LENGTH or len(trimmed) > MAX_KEY_LENGTH:
		return False
	pid = _as_provider(provider)
	if pid is None:
		return False
	return KEY_PATTERNS[pid].match(trimmed) is not None


def detect_provider(key: str) -> ProviderId:
	trimmed = (key or "").strip()
	for provider, pattern in KEY_PATTERNS.items():
		if provider is ProviderId.UNKNOWN:
			continue
		if pattern.match(trimmed):
			return provider
	return ProviderId.UNKNOWN


def validate_key_format(key: Any) -> KeyFormatResult:
	if not key or not isinstance(key, str):
		return KeyFormatResult(False, ProviderId.UNKNOWN, "API key must be a non-empty string")
	trimmed = key.strip()
	if len(trimmed) < MIN_KEY_LENGTH:
		return KeyFormatResult(False, ProviderId.UNKNOWN, "API key is too short")
	if len(trimmed) > MAX_KEY_LENGTH:
		return KeyFormatResult(False, ProviderId.UNKNOWN, "API key is too long")
	provider = detect_provider(trimmed)
	if provider is ProviderId.UNKNOWN:
		# Accepted, but the caller should know the provider could not be inferred
		return KeyFormatResult(True, ProviderId.UNKNOWN, "Provider could not be detected. Ensure key format is correct.")
	return KeyFormatResult(True, provider)


def validate_api_keys(items: Any) -> List[ApiKeyCredential]:
	"""Validate the `apiKeys` request payload shape.

	Accepts a list of ``{"key": str, "provider": str}`` mappings (or objects with those
	attributes). Entries with an empty key are skipped. Several keys for the same provider are
	allowed so the gateway can fall back between them.

	Raises:
		KeyValidationError: on any structural problem, or when nothing usable remains.
	"""
	if not items:
		raise KeyValidationError("API keys are required")
	if not isinstance(items, (list, tuple)):
		raise KeyValidationError("API keys must be an array")
	if len(items) > MAX_KEYS_PER_REQUEST:
		raise KeyValidationError(f"Maximum {MAX_KEYS_PER_REQUEST} API keys allowed")
	keys: List[ApiKeyCredential] = []
	for item in items:
		if isinstance(item, dict):
			key, provider = item.get("key"), item.get("provider")
		elif hasattr(item, "key") and hasattr(item, "provider"):
			key, provider = item.key, item.provider
		else:
			raise KeyValidationError("Each API key entry must be an object")
		if isinstance(provider, ProviderId):
			provider = provider.value
		if not isinstance(key, str) or not isinstance(provider, str):
			raise KeyValidationError("Each API key entry must have string key and provider fields")
		trimmed = key.strip()
		if not trimmed:
			continue
		pid = _as_provider(provider)
		if pid not in SUPPORTED_PROVIDERS:
			supported = ", ".join(p.value for p in SUPPORTED_PROVIDERS)
			raise KeyValidationError(f"Invalid provider: {provider}. Supported providers: {supported}")
		keys.append(ApiKeyCredential(key=trimmed, provider=pid))
	if not keys:
		raise KeyValidationError("No valid API keys provided")
	return keys
